"""Account management for the docketing service."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from services.db import get_app_db
from services.schemas import ROLES
from services.security import hash_password, needs_rehash, verify_password
from services.uploads import remove_upload

logger = logging.getLogger("docketing.users")


class UserExistsError(ValueError):
    """Raised when attempting to create a user with an email that already exists."""


class EmailInUseError(UserExistsError):
    """Raised when updating a user to an email that already exists."""


class UserNotFoundError(LookupError):
    """Raised when no account matches the given id."""


class LastAdminError(ValueError):
    """Raised when a change would leave no active Admin account."""


class SelfModificationError(ValueError):
    """Raised when an Admin tries to deactivate or delete their own account."""


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def serialize_user(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "name": row["name"],
        "email": row["email"],
        "role": row["role"],
        "isActive": bool(row["is_active"]),
        "lastLoginAt": row["last_login_at"],
        "profilePicture": row["profile_picture"],
        "createdAt": row["created_at"],
    }


def create_user(name: str, email: str, password: str, role: str = "Clerk", is_active: bool = True) -> int:
    email_norm = normalize_email(email)
    if not email_norm:
        raise ValueError("Email is required")
    if role not in ROLES:
        raise ValueError("Invalid role")
    password_hash = hash_password(password)

    conn = get_app_db()
    try:
        cur = conn.execute(
            """
            INSERT INTO users(name, email, password_hash, role, is_active)
            VALUES(?, ?, ?, ?, ?)
            """,
            ((name or "").strip(), email_norm, password_hash, role, 1 if is_active else 0),
        )
        conn.commit()
    except sqlite3.IntegrityError as exc:
        raise UserExistsError("Email already registered") from exc

    logger.info("Created %s account %s (id=%s)", role, email_norm, cur.lastrowid)
    return int(cur.lastrowid)


def get_user_by_email(email: str) -> Optional[sqlite3.Row]:
    email_norm = normalize_email(email)
    if not email_norm:
        return None
    conn = get_app_db()
    return conn.execute("SELECT * FROM users WHERE email = ?", (email_norm,)).fetchone()


def get_user_by_id(user_id: int) -> Optional[sqlite3.Row]:
    conn = get_app_db()
    return conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()


def require_user(user_id: int) -> sqlite3.Row:
    user = get_user_by_id(user_id)
    if user is None:
        raise UserNotFoundError("User not found")
    return user


def authenticate_user(email: str, password: str) -> Optional[sqlite3.Row]:
    user = get_user_by_email(email)
    if not user or not user["is_active"]:
        return None
    if not verify_password(password, user["password_hash"]):
        return None
    if needs_rehash(user["password_hash"]):
        set_user_password(user["id"], password)
    return user


def mark_user_login(user_id: int) -> None:
    conn = get_app_db()
    conn.execute(
        "UPDATE users SET last_login_at = ? WHERE id = ?",
        (datetime.now().isoformat(sep=" ", timespec="seconds"), user_id),
    )
    conn.commit()


def count_users() -> int:
    conn = get_app_db()
    row = conn.execute("SELECT COUNT(*) AS c FROM users").fetchone()
    return int(row["c"] if row else 0)


def count_admins(active_only: bool = True) -> int:
    conn = get_app_db()
    if active_only:
        row = conn.execute("SELECT COUNT(*) AS c FROM users WHERE role = 'Admin' AND is_active = 1").fetchone()
    else:
        row = conn.execute("SELECT COUNT(*) AS c FROM users WHERE role = 'Admin'").fetchone()
    return int(row["c"] if row else 0)


def count_by_role() -> Dict[str, Dict[str, int]]:
    counts = {role: {"active": 0, "inactive": 0} for role in ROLES}
    conn = get_app_db()
    for row in conn.execute("SELECT role, is_active, COUNT(*) AS c FROM users GROUP BY role, is_active"):
        bucket = "active" if row["is_active"] else "inactive"
        counts.setdefault(row["role"], {"active": 0, "inactive": 0})[bucket] = int(row["c"])
    return counts


def list_users() -> list[sqlite3.Row]:
    conn = get_app_db()
    return conn.execute(
        "SELECT id, name, email, role, is_active, profile_picture, created_at, updated_at, last_login_at "
        "FROM users ORDER BY created_at DESC, id DESC"
    ).fetchall()


def _is_sole_active_admin(user: sqlite3.Row) -> bool:
    return user["role"] == "Admin" and bool(user["is_active"]) and count_admins(active_only=True) <= 1


def set_user_password(user_id: int, password: str) -> None:
    conn = get_app_db()
    conn.execute(
        "UPDATE users SET password_hash = ? WHERE id = ?",
        (hash_password(password), user_id),
    )
    conn.commit()


def change_password(user_id: int, current_password: str, new_password: str) -> bool:
    """Replace the password after checking the current one; False if it did not match."""
    user = require_user(user_id)
    if not verify_password(current_password, user["password_hash"]):
        return False
    set_user_password(user_id, new_password)
    logger.info("Password changed for user id=%s", user_id)
    return True


def update_user_profile(user_id: int, name: Optional[str] = None, email: Optional[str] = None) -> sqlite3.Row:
    require_user(user_id)
    conn = get_app_db()
    if name is not None:
        conn.execute("UPDATE users SET name = ? WHERE id = ?", (name.strip(), user_id))
    if email is not None:
        email_norm = normalize_email(email)
        if not email_norm:
            conn.rollback()
            raise ValueError("Email must not be empty")
        try:
            conn.execute("UPDATE users SET email = ? WHERE id = ?", (email_norm, user_id))
        except sqlite3.IntegrityError as exc:
            conn.rollback()
            raise EmailInUseError("Email already taken by another user") from exc
    conn.commit()
    return get_user_by_id(user_id)


def set_profile_picture(user_id: int, public_path: Optional[str]) -> sqlite3.Row:
    """Store (or clear, with None) the picture path and delete the replaced file."""
    user = require_user(user_id)
    conn = get_app_db()
    conn.execute("UPDATE users SET profile_picture = ? WHERE id = ?", (public_path, user_id))
    conn.commit()
    old_path = user["profile_picture"]
    if old_path and old_path != public_path:
        remove_upload(old_path)
    return get_user_by_id(user_id)


def update_user_role(user_id: int, new_role: str) -> sqlite3.Row:
    if new_role not in ROLES:
        raise ValueError("Invalid role")
    user = require_user(user_id)
    if user["role"] == new_role:
        return user
    if new_role != "Admin" and _is_sole_active_admin(user):
        raise LastAdminError("At least one active Admin must remain.")
    conn = get_app_db()
    conn.execute("UPDATE users SET role = ? WHERE id = ?", (new_role, user_id))
    conn.commit()
    logger.info("Changed role of user id=%s from %s to %s", user_id, user["role"], new_role)
    return get_user_by_id(user_id)


def set_user_active(user_id: int, active: bool, acting_user_id: Optional[int] = None) -> sqlite3.Row:
    user = require_user(user_id)
    if not active:
        if acting_user_id is not None and acting_user_id == user_id:
            raise SelfModificationError("You cannot deactivate your own account.")
        if _is_sole_active_admin(user):
            raise LastAdminError("At least one active Admin must remain.")
    conn = get_app_db()
    conn.execute("UPDATE users SET is_active = ? WHERE id = ?", (1 if active else 0, user_id))
    conn.commit()
    logger.info("User id=%s is now %s", user_id, "active" if active else "inactive")
    return get_user_by_id(user_id)


def toggle_user_active(user_id: int, acting_user_id: Optional[int] = None) -> sqlite3.Row:
    user = require_user(user_id)
    return set_user_active(user_id, not user["is_active"], acting_user_id=acting_user_id)


def delete_user(user_id: int, acting_user_id: Optional[int] = None) -> None:
    user = require_user(user_id)
    if acting_user_id is not None and acting_user_id == user_id:
        raise SelfModificationError("You cannot delete your own account.")
    if _is_sole_active_admin(user):
        raise LastAdminError("At least one active Admin must remain.")
    conn = get_app_db()
    conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
    conn.commit()
    remove_upload(user["profile_picture"])
    logger.info("Deleted user id=%s (%s)", user_id, user["email"])


def purge_stale_accounts(now: Optional[datetime] = None, max_age_days: int = 365) -> int:
    """Delete non-Admin accounts not used within ``max_age_days``.

    ``now`` and ``last_login_at`` are local time; ``created_at`` is stored
    by SQLite in UTC and is converted before comparing.
    """
    cutoff = ((now or datetime.now()) - timedelta(days=max_age_days)).isoformat(sep=" ", timespec="seconds")
    conn = get_app_db()
    stale = conn.execute(
        """
        SELECT id, profile_picture FROM users
        WHERE role != 'Admin'
          AND COALESCE(last_login_at, datetime(created_at, 'localtime')) < ?
        """,
        (cutoff,),
    ).fetchall()
    if not stale:
        return 0
    conn.executemany("DELETE FROM users WHERE id = ?", [(row["id"],) for row in stale])
    conn.commit()
    for row in stale:
        remove_upload(row["profile_picture"])
    logger.info("Deleted %d inactive account(s)", len(stale))
    return len(stale)
