"""Service layer helpers for the docketing backend."""

from . import settings, security, db, schemas, columns, lifecycle, uploads, cases, clearances, users, scheduler, excel  # noqa: F401

__all__ = [
    "settings",
    "security",
    "db",
    "schemas",
    "columns",
    "lifecycle",
    "uploads",
    "cases",
    "clearances",
    "users",
    "scheduler",
    "excel",
]
