"""Module-level configuration for the docketing service."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

from services.settings import settings_manager

_manager = settings_manager


def _load_secret_key() -> str:
    env_key = os.environ.get("DOCKETING_SECRET_KEY")
    if env_key:
        return env_key
    try:
        return _manager.get_or_create_secret("flask_secret_key")
    except RuntimeError:
        # Secrets store unreadable; fall back to a plain persisted value.
        value = _manager.get("flask_secret_key")
        if not value:
            value = os.urandom(24).hex()
            _manager.set("flask_secret_key", value)
        return value


SECRET_KEY = _load_secret_key()

DATABASE_PATH = Path(os.environ.get("DOCKETING_DATABASE") or _manager.paths.database_file)
UPLOAD_ROOT = Path(os.environ.get("DOCKETING_UPLOAD_ROOT") or _manager.paths.upload_dir)

INDEX_CARD_SUBDIR = "index_cards"
PROFILE_PICTURE_SUBDIR = "profiles"
ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png"}
ALLOWED_SPREADSHEET_EXTENSIONS = {"xlsx"}
MAX_IMAGE_BYTES = 5 * 1024 * 1024
MAX_CONTENT_LENGTH = 50 * 1024 * 1024

SESSION_TIMEOUT_MINUTES = int(_manager.get("session_timeout_minutes", 30))
SCHEDULER_POLL_SECONDS = int(_manager.get("scheduler_poll_seconds", 60))
STALE_ACCOUNT_DAYS = 365

AUTO_DELETE_KEY = "auto_delete_schedule"
AUTO_DELETE_LAST_RUN_KEY = "auto_delete_last_run"
ACCOUNT_CLEANUP_LAST_RUN_KEY = "account_cleanup_last_run"


def load_auto_delete_schedule() -> Optional[Dict[str, Any]]:
    return _manager.get(AUTO_DELETE_KEY)


def save_auto_delete_schedule(schedule: Dict[str, Any]) -> None:
    # A changed schedule starts counting occurrences afresh.
    _manager.update({AUTO_DELETE_KEY: schedule}, remove=(AUTO_DELETE_LAST_RUN_KEY,))


def get_marker(key: str) -> Optional[str]:
    return _manager.get(key)


def set_marker(key: str, value: str) -> None:
    _manager.set(key, value)
