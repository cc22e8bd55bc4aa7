"""Case records: CRUD, search and the terminate/restore/purge lifecycle."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from services.db import get_app_db
from services.lifecycle import CaseAction, CaseState, state_of, transition
from services.schemas import REMARKS_DECISIONS, CaseCreate, CaseSearch
from services.uploads import NO_IMAGE, remove_upload

logger = logging.getLogger("docketing.cases")

# Storage column -> wire name.
CASE_FIELDS: Dict[str, str] = {
    "id": "id",
    "docket_no": "docketNo",
    "date_filed": "dateFiled",
    "complainant": "complainant",
    "respondent": "respondent",
    "address_of_respondent": "addressOfRespondent",
    "offense": "offense",
    "date_of_commission": "dateOfCommission",
    "date_resolved": "dateResolved",
    "resolving_prosecutor": "resolvingProsecutor",
    "criminal_case_no": "criminalCaseNo",
    "branch": "branch",
    "date_filed_in_court": "dateFiledInCourt",
    "remarks_decision": "remarksDecision",
    "remarks": "remarks",
    "penalty": "penalty",
    "index_cards": "indexCards",
    "is_active": "isActive",
    "deleted_at": "deletedAt",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}

EDITABLE_COLUMNS = (
    "docket_no", "date_filed", "complainant", "respondent", "address_of_respondent",
    "offense", "date_of_commission", "date_resolved", "resolving_prosecutor",
    "criminal_case_no", "branch", "date_filed_in_court", "remarks_decision",
    "remarks", "penalty", "index_cards",
)


class CaseNotFoundError(LookupError):
    """Raised when no case matches the given id or docket number."""


class DuplicateDocketError(ValueError):
    """Raised when a docket number is already used by another case."""


def _now() -> str:
    return datetime.now().isoformat(sep=" ", timespec="seconds")


def _norm_docket(docket_no: str) -> str:
    return (docket_no or "").strip().lower()


def serialize_case(row: Mapping[str, Any]) -> Dict[str, Any]:
    data = {wire: row[column] for column, wire in CASE_FIELDS.items()}
    data["isActive"] = bool(data["isActive"])
    return data


def get_case(case_id: int) -> Optional[sqlite3.Row]:
    conn = get_app_db()
    return conn.execute("SELECT * FROM cases WHERE id = ?", (case_id,)).fetchone()


def find_case_by_docket(docket_no: str) -> Optional[sqlite3.Row]:
    if not _norm_docket(docket_no):
        return None
    conn = get_app_db()
    return conn.execute(
        "SELECT * FROM cases WHERE lower(trim(docket_no)) = ?",
        (_norm_docket(docket_no),),
    ).fetchone()


def list_active_cases() -> List[sqlite3.Row]:
    conn = get_app_db()
    return conn.execute(
        "SELECT * FROM cases WHERE is_active = 1 ORDER BY date_filed DESC, id DESC"
    ).fetchall()


def list_terminated_cases() -> List[sqlite3.Row]:
    conn = get_app_db()
    return conn.execute(
        "SELECT * FROM cases WHERE is_active = 0 ORDER BY deleted_at DESC, id DESC"
    ).fetchall()


def list_all_cases() -> List[sqlite3.Row]:
    conn = get_app_db()
    return conn.execute("SELECT * FROM cases ORDER BY id").fetchall()


def like_pattern(term: str) -> str:
    """Substring pattern for ``LIKE ? ESCAPE '\\'`` with wildcards in ``term`` taken literally."""
    escaped = term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def search_cases(criteria: CaseSearch) -> List[sqlite3.Row]:
    sql = "SELECT * FROM cases WHERE 1=1"
    values: List[Any] = []

    if not criteria.include_terminated:
        sql += " AND is_active = 1"
    for column, value in (
        ("docket_no", criteria.docket_no),
        ("respondent", criteria.respondent),
        ("resolving_prosecutor", criteria.resolving_prosecutor),
    ):
        if value:
            sql += f" AND lower({column}) LIKE ? ESCAPE '\\'"
            values.append(like_pattern(value))
    if criteria.remarks:
        # Matches the outcome label or the free-text remarks.
        sql += (
            " AND (lower(remarks_decision) LIKE ? ESCAPE '\\'"
            " OR lower(coalesce(remarks, '')) LIKE ? ESCAPE '\\')"
        )
        values.extend([like_pattern(criteria.remarks)] * 2)
    if criteria.start_date:
        sql += " AND date_filed >= ?"
        values.append(criteria.start_date.isoformat())
    if criteria.end_date:
        sql += " AND date_filed <= ?"
        values.append(criteria.end_date.isoformat())
    sql += " ORDER BY date_filed DESC, id DESC"

    conn = get_app_db()
    return conn.execute(sql, values).fetchall()


def insert_case_record(record: Dict[str, Any]) -> int:
    """Insert a validated record (column-name keys) and return its id."""
    columns = [c for c in (*EDITABLE_COLUMNS, "is_active", "deleted_at") if c in record]
    conn = get_app_db()
    try:
        cur = conn.execute(
            f"INSERT INTO cases({', '.join(columns)}) VALUES({', '.join('?' for _ in columns)})",
            [record[c] for c in columns],
        )
        conn.commit()
    except sqlite3.IntegrityError as exc:
        conn.rollback()
        raise DuplicateDocketError(
            f"Docket number {record.get('docket_no')!r} already exists"
        ) from exc
    return int(cur.lastrowid)


def create_case(payload: CaseCreate, index_cards: Optional[str] = None) -> sqlite3.Row:
    record = payload.to_record()
    if index_cards:
        record["index_cards"] = index_cards
    if not record["is_active"]:
        record["deleted_at"] = _now()
    case_id = insert_case_record(record)
    logger.info("Created case %s (id=%s)", record["docket_no"], case_id)
    return get_case(case_id)


def update_case(case_id: int, changes: Dict[str, Any]) -> sqlite3.Row:
    """Apply a partial update keyed by storage column names."""
    fields = {k: v for k, v in changes.items() if k in EDITABLE_COLUMNS}
    if not fields:
        raise ValueError("No fields to update.")

    existing = get_case(case_id)
    if existing is None:
        raise CaseNotFoundError("No matching case found.")

    assignments = ", ".join(f"{column} = ?" for column in fields)
    conn = get_app_db()
    try:
        conn.execute(
            f"UPDATE cases SET {assignments} WHERE id = ?",
            [*fields.values(), case_id],
        )
        conn.commit()
    except sqlite3.IntegrityError as exc:
        conn.rollback()
        raise DuplicateDocketError(
            f"Docket number {fields.get('docket_no')!r} already exists"
        ) from exc

    old_image = existing["index_cards"]
    if "index_cards" in fields and old_image != fields["index_cards"] and old_image != NO_IMAGE:
        remove_upload(old_image)
    logger.info("Updated case id=%s fields=%s", case_id, sorted(fields))
    return get_case(case_id)


def _require_docket(docket_no: str) -> sqlite3.Row:
    if not _norm_docket(docket_no):
        raise ValueError("Docket number is required.")
    row = find_case_by_docket(docket_no)
    if row is None:
        raise CaseNotFoundError("No matching case found.")
    return row


def terminate_case(docket_no: str) -> sqlite3.Row:
    """Soft-delete an active case; it moves to the terminated list."""
    row = _require_docket(docket_no)
    transition(state_of(row), CaseAction.TERMINATE)
    conn = get_app_db()
    conn.execute(
        "UPDATE cases SET is_active = 0, deleted_at = ? WHERE id = ?",
        (_now(), row["id"]),
    )
    conn.commit()
    logger.info("Terminated case %s", row["docket_no"])
    return get_case(row["id"])


def restore_case(docket_no: str) -> sqlite3.Row:
    row = _require_docket(docket_no)
    transition(state_of(row), CaseAction.RESTORE)
    conn = get_app_db()
    conn.execute(
        "UPDATE cases SET is_active = 1, deleted_at = NULL WHERE id = ?",
        (row["id"],),
    )
    conn.commit()
    logger.info("Restored case %s", row["docket_no"])
    return get_case(row["id"])


def _purge_rows(rows: List[sqlite3.Row]) -> int:
    if not rows:
        return 0
    conn = get_app_db()
    conn.executemany("DELETE FROM cases WHERE id = ?", [(row["id"],) for row in rows])
    conn.commit()
    for row in rows:
        if row["index_cards"] and row["index_cards"] != NO_IMAGE:
            remove_upload(row["index_cards"])
    return len(rows)


def purge_case(docket_no: str) -> None:
    """Permanently delete a terminated case. Irreversible."""
    row = _require_docket(docket_no)
    if transition(state_of(row), CaseAction.PURGE) is CaseState.PURGED:
        _purge_rows([row])
        logger.info("Purged case %s", row["docket_no"])


def purge_terminated_before(cutoff: datetime) -> int:
    """Purge every terminated case whose termination is strictly before ``cutoff``."""
    conn = get_app_db()
    rows = conn.execute(
        "SELECT * FROM cases WHERE is_active = 0 AND deleted_at IS NOT NULL AND deleted_at < ?",
        (cutoff.isoformat(sep=" ", timespec="seconds"),),
    ).fetchall()
    count = _purge_rows(rows)
    if count:
        logger.info("Auto-purged %d terminated case(s) older than %s", count, cutoff)
    return count


def case_statistics() -> Dict[str, Any]:
    conn = get_app_db()
    totals = conn.execute(
        """
        SELECT
            SUM(CASE WHEN is_active = 1 THEN 1 ELSE 0 END) AS active,
            SUM(CASE WHEN is_active = 0 THEN 1 ELSE 0 END) AS terminated
        FROM cases
        """
    ).fetchone()
    by_remarks = {label: 0 for label in REMARKS_DECISIONS}
    for row in conn.execute(
        "SELECT remarks_decision, COUNT(*) AS c FROM cases WHERE is_active = 1 GROUP BY remarks_decision"
    ):
        key = row["remarks_decision"] or "Pending"
        by_remarks[key] = by_remarks.get(key, 0) + int(row["c"])
    recent = conn.execute(
        "SELECT * FROM cases WHERE is_active = 1 ORDER BY date_filed DESC, id DESC LIMIT 5"
    ).fetchall()
    return {
        "active": int(totals["active"] or 0),
        "terminated": int(totals["terminated"] or 0),
        "byRemarksDecision": by_remarks,
        "recent": [serialize_case(row) for row in recent],
    }
