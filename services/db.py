"""Database utilities for the docketing service."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional

from flask import current_app, g, has_app_context

import docket_config


# Global schema version for the application database.
_SCHEMA_VERSION = 3


def app_db_path() -> Path:
    """Return the database path, preferring the Flask app override."""
    if has_app_context():
        override = current_app.config.get("DATABASE")
        if override:
            return Path(override)
    return docket_config.DATABASE_PATH


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS app_meta (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )

    row = conn.execute(
        "SELECT value FROM app_meta WHERE key = 'schema_version'"
    ).fetchone()
    current_version = int(row["value"]) if row else 0

    if current_version < 1:
        _migrate_to_v1(conn)
        current_version = 1

    if current_version < 2:
        _migrate_to_v2(conn)
        current_version = 2

    if current_version < 3:
        _migrate_to_v3(conn)
        current_version = 3

    conn.execute(
        "INSERT INTO app_meta(key, value) VALUES('schema_version', ?) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
        (str(_SCHEMA_VERSION),),
    )
    conn.commit()


def _migrate_to_v1(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            email TEXT NOT NULL UNIQUE,
            password_hash TEXT NOT NULL,
            role TEXT NOT NULL DEFAULT 'Clerk' CHECK(role IN ('Admin','Staff','Clerk')),
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            last_login_at TEXT
        )
        """
    )

    conn.execute(
        """
        CREATE TRIGGER IF NOT EXISTS trg_users_updated_at
        AFTER UPDATE ON users
        BEGIN
            UPDATE users SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
        END;
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS cases (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            docket_no TEXT NOT NULL,
            date_filed TEXT,
            complainant TEXT NOT NULL,
            respondent TEXT NOT NULL,
            address_of_respondent TEXT NOT NULL DEFAULT 'N/A',
            offense TEXT NOT NULL,
            date_of_commission TEXT,
            date_resolved TEXT,
            resolving_prosecutor TEXT,
            criminal_case_no TEXT,
            branch TEXT NOT NULL DEFAULT 'N/A',
            date_filed_in_court TEXT,
            remarks_decision TEXT NOT NULL DEFAULT 'Pending',
            penalty TEXT,
            index_cards TEXT NOT NULL DEFAULT 'N/A',
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    # Docket numbers compare trimmed and case-insensitively.
    conn.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_cases_docket ON cases(lower(trim(docket_no)))"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_cases_active ON cases(is_active, date_filed)"
    )
    conn.execute(
        """
        CREATE TRIGGER IF NOT EXISTS trg_cases_updated_at
        AFTER UPDATE ON cases
        BEGIN
            UPDATE cases SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
        END;
        """
    )

    conn.execute(
        "INSERT INTO app_meta(key, value) VALUES('schema_version', '1') "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value"
    )


def _migrate_to_v2(conn: sqlite3.Connection) -> None:
    # Termination timestamp drives the auto-purge boundary.
    columns = {row["name"] for row in conn.execute("PRAGMA table_info(cases)")}
    if "deleted_at" not in columns:
        conn.execute("ALTER TABLE cases ADD COLUMN deleted_at TEXT")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_cases_deleted ON cases(is_active, deleted_at)"
    )


def _migrate_to_v3(conn: sqlite3.Connection) -> None:
    case_columns = {row["name"] for row in conn.execute("PRAGMA table_info(cases)")}
    if "remarks" not in case_columns:
        conn.execute("ALTER TABLE cases ADD COLUMN remarks TEXT")
    user_columns = {row["name"] for row in conn.execute("PRAGMA table_info(users)")}
    if "profile_picture" not in user_columns:
        conn.execute("ALTER TABLE users ADD COLUMN profile_picture TEXT")

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS clearances (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            or_number TEXT NOT NULL UNIQUE,
            format_type TEXT NOT NULL CHECK(format_type IN ('A','B','C','D','E','F')),
            first_name TEXT NOT NULL,
            middle_name TEXT,
            last_name TEXT NOT NULL,
            suffix TEXT,
            alias TEXT,
            age INTEGER NOT NULL,
            civil_status TEXT NOT NULL,
            nationality TEXT NOT NULL DEFAULT 'Filipino',
            address TEXT NOT NULL,
            purpose TEXT NOT NULL,
            purpose_fee REAL NOT NULL DEFAULT 0,
            issued_upon_request_by TEXT,
            date_issued TEXT NOT NULL,
            prc_id_number TEXT,
            validity_period TEXT NOT NULL,
            validity_expiry TEXT NOT NULL,
            has_criminal_record INTEGER NOT NULL DEFAULT 0,
            case_numbers TEXT,
            crime_description TEXT,
            legal_statute TEXT,
            date_of_commission TEXT,
            date_information_filed TEXT,
            case_status TEXT,
            court_branch TEXT,
            notes TEXT,
            criminal_cases TEXT,
            issued_by_user_id INTEGER,
            issued_by_name TEXT,
            updated_by_user_id INTEGER,
            updated_by_name TEXT,
            download_count INTEGER NOT NULL DEFAULT 0,
            last_downloaded_at TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_clearances_issued ON clearances(date_issued)"
    )
    conn.execute(
        """
        CREATE TRIGGER IF NOT EXISTS trg_clearances_updated_at
        AFTER UPDATE ON clearances
        BEGIN
            UPDATE clearances SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
        END;
        """
    )
    # Audit trail survives deletion of the clearance itself.
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS clearance_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            clearance_id INTEGER NOT NULL,
            or_number TEXT NOT NULL,
            action TEXT NOT NULL,
            user_id INTEGER,
            user_name TEXT,
            created_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_clearance_logs_clearance ON clearance_logs(clearance_id)"
    )


def connect(path: Optional[Path] = None) -> sqlite3.Connection:
    """Open a standalone connection with the schema applied."""
    db_path = Path(path) if path else app_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    _ensure_schema(conn)
    return conn


def get_app_db() -> sqlite3.Connection:
    """Return a connection to the application database bound to Flask's context."""
    if "app_db" not in g:
        g.app_db = connect()
    return g.app_db


def close_app_db(_: Optional[BaseException]) -> None:
    conn = g.pop("app_db", None)
    if conn is not None:
        conn.close()
