"""Centralised configuration and secret management for the docketing service."""

from __future__ import annotations

import base64
import json
import os
import secrets
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


def _default_config_dir() -> Path:
    explicit = os.environ.get("DOCKETING_CONFIG_DIR")
    if explicit:
        return Path(explicit)
    base = os.environ.get("XDG_CONFIG_HOME")
    if base:
        return Path(base) / "ocp-docketing"
    return Path.home() / ".config" / "ocp-docketing"


@dataclass
class SettingsPaths:
    config_dir: Path
    settings_file: Path
    secrets_file: Path
    database_file: Path
    upload_dir: Path


class SettingsManager:
    """Persists plain settings as JSON and secrets in a Fernet-encrypted file."""

    SETTINGS_SCHEMA_VERSION = 1

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        root = config_dir or _default_config_dir()
        self.paths = SettingsPaths(
            config_dir=root,
            settings_file=root / "settings.json",
            secrets_file=root / "secrets.enc",
            database_file=root / "docketing.db",
            upload_dir=root / "uploads",
        )
        self.paths.config_dir.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        self._settings: Dict[str, Any] = {}
        self._load_settings()

        self.default_passphrase: Optional[str] = os.environ.get("DOCKETING_MASTER_KEY")
        if not self.default_passphrase:
            self.default_passphrase = self._load_or_create_master_key()

        self._ensure_schema()

    # ------------------------------------------------------------------
    # Plain settings
    # ------------------------------------------------------------------
    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._settings.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.update({key: value})

    def delete(self, key: str) -> None:
        self.update({}, remove=(key,))

    def update(self, changes: Dict[str, Any], remove: Iterable[str] = ()) -> None:
        """Apply several changes and removals with a single write."""
        with self._lock:
            previous = dict(self._settings)
            self._settings.update(changes)
            removed = [self._settings.pop(key) for key in remove if key in self._settings]
            if not (changes or removed):
                return
            try:
                self._save_settings()
            except (OSError, TypeError, ValueError):
                self._settings = previous
                raise

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------
    def get_secret(self, key: str, default: Any = None, passphrase: Optional[str] = None) -> Any:
        payload = self._load_secrets(passphrase)
        return payload.get(key, default)

    def set_secret(self, key: str, value: Any, passphrase: Optional[str] = None) -> None:
        with self._lock:
            payload = self._load_secrets(passphrase)
            payload[key] = value
            self._store_secrets(payload, passphrase)

    def get_or_create_secret(self, key: str, nbytes: int = 32) -> str:
        """Return a stored secret, generating and persisting one on first use."""
        with self._lock:
            value = self.get_secret(key)
            if not value:
                value = secrets.token_urlsafe(nbytes)
                self.set_secret(key, value)
            return value

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _load_settings(self) -> None:
        try:
            with self.paths.settings_file.open("r", encoding="utf-8") as fh:
                self._settings = json.load(fh)
        except FileNotFoundError:
            self._settings = {}
        except json.JSONDecodeError:
            raise RuntimeError("settings.json is corrupted; please repair or delete it.")

    def _save_settings(self) -> None:
        # Readers only ever see a complete file.
        self.paths.config_dir.mkdir(parents=True, exist_ok=True)
        with self._lock:
            tmp = tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.paths.config_dir, prefix=".settings-", suffix=".tmp", delete=False
            )
            try:
                with tmp as fh:
                    json.dump(self._settings, fh, indent=2, sort_keys=True)
                os.replace(tmp.name, self.paths.settings_file)
            except (OSError, TypeError, ValueError):
                os.unlink(tmp.name)
                raise

    def _ensure_schema(self) -> None:
        version = int(self._settings.get("schema_version", 0))
        if version < 1:
            self._settings.setdefault("schema_version", self.SETTINGS_SCHEMA_VERSION)
            self._settings.setdefault("secret_iterations", 390_000)
            if "secret_salt" not in self._settings:
                salt = os.urandom(16)
                self._settings["secret_salt"] = base64.urlsafe_b64encode(salt).decode("utf-8")
            self._save_settings()

    def _load_or_create_master_key(self) -> str:
        key_path = self.paths.config_dir / "master.key"
        try:
            key = key_path.read_text(encoding="utf-8").strip()
            if key:
                return key
        except FileNotFoundError:
            pass

        key = secrets.token_urlsafe(32)
        key_path.write_text(key, encoding="utf-8")
        try:
            key_path.chmod(0o600)
        except OSError:
            pass
        return key

    def _load_secrets(self, passphrase: Optional[str]) -> Dict[str, Any]:
        if not self.paths.secrets_file.exists():
            return {}

        fernet = Fernet(self._derive_key(passphrase))
        try:
            decrypted = fernet.decrypt(self.paths.secrets_file.read_bytes())
        except InvalidToken as exc:
            raise RuntimeError("Unable to decrypt secrets store. Invalid master key?") from exc

        try:
            return json.loads(decrypted.decode("utf-8"))
        except json.JSONDecodeError as exc:
            raise RuntimeError("Secrets store is corrupted.") from exc

    def _store_secrets(self, payload: Dict[str, Any], passphrase: Optional[str]) -> None:
        fernet = Fernet(self._derive_key(passphrase))
        token = fernet.encrypt(json.dumps(payload).encode("utf-8"))
        self.paths.secrets_file.write_bytes(token)
        try:
            self.paths.secrets_file.chmod(0o600)
        except OSError:
            pass

    def _derive_key(self, passphrase: Optional[str]) -> bytes:
        actual = passphrase or self.default_passphrase
        if not actual:
            raise RuntimeError(
                "Secret passphrase required. Set DOCKETING_MASTER_KEY or provide passphrase explicitly."
            )
        salt_b64 = self._settings.get("secret_salt")
        if not salt_b64:
            raise RuntimeError("Settings missing secret salt; try reinitialising configuration.")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=base64.urlsafe_b64decode(salt_b64),
            iterations=int(self._settings.get("secret_iterations", 390_000)),
        )
        return base64.urlsafe_b64encode(kdf.derive(actual.encode("utf-8")))


settings_manager = SettingsManager()
