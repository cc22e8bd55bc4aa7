"""Storage of uploaded index-card and profile images."""

from __future__ import annotations

import logging
import secrets
import time
from pathlib import Path
from typing import Optional

from flask import current_app, has_app_context
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

import docket_config

logger = logging.getLogger("docketing.uploads")

URL_PREFIX = "/uploads"
NO_IMAGE = "N/A"


class UploadRejected(ValueError):
    """Raised when an uploaded file fails the type or size checks."""


def upload_root() -> Path:
    if has_app_context():
        override = current_app.config.get("UPLOAD_ROOT")
        if override:
            return Path(override)
    return docket_config.UPLOAD_ROOT


def allowed_image(filename: str) -> bool:
    return "." in filename and filename.rsplit(".", 1)[1].lower() in docket_config.ALLOWED_IMAGE_EXTENSIONS


def _stream_size(file: FileStorage) -> int:
    stream = file.stream
    pos = stream.tell()
    stream.seek(0, 2)
    size = stream.tell()
    stream.seek(pos)
    return size


def save_index_card(file: Optional[FileStorage]) -> str:
    """Store an index-card image and return its public path, or "N/A" if none was sent."""
    if file is None or not file.filename:
        return NO_IMAGE
    return save_image(file, docket_config.INDEX_CARD_SUBDIR, "indexcard")


def save_profile_picture(file: FileStorage) -> str:
    return save_image(file, docket_config.PROFILE_PICTURE_SUBDIR, "profile")


def save_image(file: FileStorage, subdir: str, prefix: str) -> str:
    """Validate and store an image under ``subdir``; return its public path."""
    if file is None or not file.filename:
        raise UploadRejected("No file uploaded")

    filename = secure_filename(file.filename)
    if not allowed_image(filename):
        raise UploadRejected("Only image files (JPEG, JPG, PNG) are allowed!")
    if file.mimetype and not file.mimetype.startswith("image/"):
        raise UploadRejected("Only image files (JPEG, JPG, PNG) are allowed!")
    if _stream_size(file) > docket_config.MAX_IMAGE_BYTES:
        raise UploadRejected("Image exceeds the 5 MB limit.")

    ext = filename.rsplit(".", 1)[1].lower()
    stored_name = f"{prefix}-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}.{ext}"
    target_dir = upload_root() / subdir
    target_dir.mkdir(parents=True, exist_ok=True)
    file.save(target_dir / stored_name)
    logger.info("Stored %s image %s", prefix, stored_name)
    return f"{URL_PREFIX}/{subdir}/{stored_name}"


def resolve_upload(public_path: str) -> Optional[Path]:
    """Map a stored ``/uploads/...`` path back to a file under the upload root."""
    if not public_path or not public_path.startswith(URL_PREFIX + "/"):
        return None
    root = upload_root().resolve()
    candidate = (root / public_path[len(URL_PREFIX) + 1:]).resolve()
    if root not in candidate.parents:
        return None
    return candidate


def remove_upload(public_path: Optional[str]) -> bool:
    """Delete a stored upload; paths outside the upload root are ignored."""
    target = resolve_upload(public_path or "")
    if target is None or not target.exists():
        return False
    try:
        target.unlink()
    except OSError as exc:
        logger.warning("Could not remove upload %s: %s", target, exc)
        return False
    logger.info("Removed upload %s", target.name)
    return True
