"""Police/prosecutor clearance certificates: issuance, history and audit log."""

from __future__ import annotations

import calendar
import json
import logging
import math
import sqlite3
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from services.cases import like_pattern
from services.db import get_app_db
from services.schemas import FORMAT_TYPES, PURPOSE_FEES, ClearanceCreate, ClearanceQuery

logger = logging.getLogger("docketing.clearances")

# Columns written from a validated payload.
CLEARANCE_COLUMNS = (
    "format_type", "first_name", "middle_name", "last_name", "suffix", "alias", "age",
    "civil_status", "nationality", "address", "purpose", "purpose_fee", "issued_upon_request_by",
    "date_issued", "prc_id_number", "validity_period", "validity_expiry", "has_criminal_record",
    "case_numbers", "crime_description", "legal_statute", "date_of_commission",
    "date_information_filed", "case_status", "court_branch", "notes", "criminal_cases",
)

_CRIMINAL_RECORD_COLUMNS = (
    "case_numbers", "crime_description", "legal_statute", "date_of_commission",
    "date_information_filed", "case_status", "court_branch", "criminal_cases",
)

# Fields a criminal-record certificate needs when no itemised cases are given.
_CRIMINAL_RECORD_REQUIRED = (
    ("case_numbers", "Case number(s) required for criminal record clearance"),
    ("crime_description", "Crime description required for criminal record clearance"),
    ("legal_statute", "Legal statute required for criminal record clearance"),
    ("date_of_commission", "Date of commission required for criminal record clearance"),
    ("date_information_filed", "Date information filed required for criminal record clearance"),
    ("case_status", "Case status required for criminal record clearance"),
    ("court_branch", "Court/Branch required for criminal record clearance"),
)

OR_PREFIX = "OR"
_OR_ATTEMPTS = 5


class ClearanceNotFoundError(LookupError):
    """Raised when no clearance matches the given id."""


class ClearanceInvalid(ValueError):
    """Raised with field-level ``errors`` when a clearance payload is rejected."""

    def __init__(self, errors: List[Dict[str, str]]) -> None:
        self.errors = errors
        super().__init__(errors[0]["message"] if len(errors) == 1 else "Validation failed")


def _now() -> str:
    return datetime.now().isoformat(sep=" ", timespec="seconds")


def add_months(start: date, months: int) -> date:
    """Shift ``start`` by whole months, clamping the day to the target month's end."""
    index = start.month - 1 + months
    year, month = start.year + index // 12, index % 12 + 1
    return start.replace(year=year, month=month, day=min(start.day, calendar.monthrange(year, month)[1]))


def expiry_for(date_issued: date, validity_period: str) -> date:
    return add_months(date_issued, 12 if validity_period == "1 Year" else 6)


def status_of(validity_expiry: Optional[str], today: Optional[date] = None) -> str:
    today = today or date.today()
    if validity_expiry and validity_expiry >= today.isoformat():
        return "Valid"
    return "Expired"


# ---- Validation -------------------------------------------------------------
def _label(field: str) -> str:
    return field.replace("_", " ").capitalize()


def _schema_errors(exc: ValidationError) -> List[Dict[str, str]]:
    errors: List[Dict[str, str]] = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ())]
        field = ".".join(loc)
        kind = err.get("type", "")
        if kind == "missing" or (
            kind == "string_too_short" and (err.get("ctx") or {}).get("min_length") == 1
        ):
            message = f"{_label(loc[-1]) if loc else 'Value'} is required"
        else:
            message = err.get("msg", "Invalid value")
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
        errors.append({"field": field, "message": message})
    return errors


def clearance_problems(payload: ClearanceCreate, today: Optional[date] = None) -> List[Dict[str, str]]:
    """Rules that span several fields, in the order the form lists them."""
    today = today or date.today()
    problems: List[Dict[str, str]] = []

    if payload.has_criminal_record and not payload.criminal_cases:
        for field, message in _CRIMINAL_RECORD_REQUIRED:
            if getattr(payload, field) is None:
                problems.append({"field": field, "message": message})
    if (
        payload.has_criminal_record
        and payload.date_of_commission
        and payload.date_information_filed
        and payload.date_of_commission > payload.date_information_filed
    ):
        problems.append({
            "field": "date_of_commission",
            "message": "Date of commission cannot be after date information filed",
        })

    if payload.purpose == "Other" and not payload.custom_purpose:
        problems.append({
            "field": "custom_purpose",
            "message": 'Please specify the purpose when selecting "Other"',
        })
    if payload.date_issued > today:
        problems.append({"field": "date_issued", "message": "Date issued cannot be in the future"})
    if payload.validity_expiry is not None and payload.validity_expiry <= payload.date_issued:
        problems.append({
            "field": "validity_expiry",
            "message": "Validity expiry date must be after date issued",
        })
    return problems


def validate_clearance(data: Mapping[str, Any], today: Optional[date] = None) -> ClearanceCreate:
    try:
        payload = ClearanceCreate(**data)
    except ValidationError as exc:
        raise ClearanceInvalid(_schema_errors(exc)) from exc
    problems = clearance_problems(payload, today)
    if problems:
        raise ClearanceInvalid(problems)
    return payload


def to_record(payload: ClearanceCreate) -> Dict[str, Any]:
    """Column-keyed values with purpose, fee and expiry resolved."""
    data = payload.model_dump(exclude={"custom_purpose"})
    if payload.purpose == "Other":
        data["purpose"] = payload.custom_purpose
    if payload.purpose_fee is None:
        data["purpose_fee"] = PURPOSE_FEES.get(payload.purpose, 0)
    expiry = payload.validity_expiry or expiry_for(payload.date_issued, payload.validity_period)
    data["validity_expiry"] = expiry
    data["has_criminal_record"] = 1 if payload.has_criminal_record else 0

    if payload.has_criminal_record:
        cases = [entry.model_dump(mode="json") for entry in payload.criminal_cases]
        data["criminal_cases"] = json.dumps(cases) if cases else None
        if not data["case_numbers"] and cases:
            data["case_numbers"] = ", ".join(entry["case_number"] for entry in cases)
    else:
        for column in _CRIMINAL_RECORD_COLUMNS:
            data[column] = None

    for key, value in data.items():
        if isinstance(value, date):
            data[key] = value.isoformat()
    return data


# ---- Reads ------------------------------------------------------------------
def serialize_clearance(row: Mapping[str, Any], today: Optional[date] = None) -> Dict[str, Any]:
    data = dict(row)
    data["has_criminal_record"] = bool(data["has_criminal_record"])
    data["criminal_cases"] = json.loads(data["criminal_cases"]) if data["criminal_cases"] else []
    data["format_label"] = FORMAT_TYPES.get(data["format_type"], data["format_type"])
    data["status"] = status_of(data["validity_expiry"], today)
    return data


def get_clearance(clearance_id: int) -> Optional[sqlite3.Row]:
    conn = get_app_db()
    return conn.execute("SELECT * FROM clearances WHERE id = ?", (clearance_id,)).fetchone()


def require_clearance(clearance_id: int) -> sqlite3.Row:
    row = get_clearance(clearance_id)
    if row is None:
        raise ClearanceNotFoundError("Clearance not found")
    return row


def _filters(query: ClearanceQuery, today: date) -> Tuple[str, List[Any]]:
    sql = " WHERE 1=1"
    values: List[Any] = []
    if query.search:
        pattern = like_pattern(query.search)
        columns = ("or_number", "first_name", "middle_name", "last_name", "alias",
                   "first_name || ' ' || last_name")
        sql += " AND (" + " OR ".join(f"lower(coalesce({c}, '')) LIKE ? ESCAPE '\\'" for c in columns) + ")"
        values.extend([pattern] * len(columns))
    if query.format_type:
        sql += " AND format_type = ?"
        values.append(query.format_type)
    if query.has_criminal_record is not None:
        sql += " AND has_criminal_record = ?"
        values.append(1 if query.has_criminal_record else 0)
    if query.date_from:
        sql += " AND date_issued >= ?"
        values.append(query.date_from.isoformat())
    if query.date_to:
        sql += " AND date_issued <= ?"
        values.append(query.date_to.isoformat())
    if query.issued_by is not None:
        sql += " AND issued_by_user_id = ?"
        values.append(query.issued_by)
    if query.status == "Valid":
        sql += " AND validity_expiry >= ?"
        values.append(today.isoformat())
    elif query.status == "Expired":
        sql += " AND validity_expiry < ?"
        values.append(today.isoformat())
    return sql, values


def search_clearances(query: ClearanceQuery, today: Optional[date] = None) -> Tuple[List[sqlite3.Row], Dict[str, int]]:
    """One page of matching clearances, newest issue date first, with pagination info."""
    today = today or date.today()
    where, values = _filters(query, today)
    conn = get_app_db()
    total = int(conn.execute(f"SELECT COUNT(*) AS c FROM clearances{where}", values).fetchone()["c"])
    rows = conn.execute(
        f"SELECT * FROM clearances{where} ORDER BY date_issued DESC, id DESC LIMIT ? OFFSET ?",
        [*values, query.limit, (query.page - 1) * query.limit],
    ).fetchall()
    pagination = {
        "page": query.page,
        "limit": query.limit,
        "total": total,
        "totalPages": math.ceil(total / query.limit),
    }
    return rows, pagination


def all_matching(query: ClearanceQuery, today: Optional[date] = None) -> List[sqlite3.Row]:
    where, values = _filters(query, today or date.today())
    conn = get_app_db()
    return conn.execute(
        f"SELECT * FROM clearances{where} ORDER BY date_issued DESC, id DESC", values
    ).fetchall()


def clearance_statistics(today: Optional[date] = None) -> Dict[str, int]:
    today = today or date.today()
    conn = get_app_db()
    row = conn.execute(
        """
        SELECT
            COUNT(*) AS total,
            SUM(CASE WHEN date_issued >= ? AND date_issued <= ? THEN 1 ELSE 0 END) AS this_month,
            SUM(CASE WHEN has_criminal_record = 0 THEN 1 ELSE 0 END) AS no_record,
            SUM(CASE WHEN has_criminal_record = 1 THEN 1 ELSE 0 END) AS has_record,
            SUM(CASE WHEN validity_expiry >= ? THEN 1 ELSE 0 END) AS valid
        FROM clearances
        """,
        (
            today.replace(day=1).isoformat(),
            today.replace(day=calendar.monthrange(today.year, today.month)[1]).isoformat(),
            today.isoformat(),
        ),
    ).fetchone()
    total = int(row["total"] or 0)
    valid = int(row["valid"] or 0)
    return {
        "total": total,
        "thisMonth": int(row["this_month"] or 0),
        "noCriminalRecord": int(row["no_record"] or 0),
        "hasCriminalRecord": int(row["has_record"] or 0),
        "valid": valid,
        "expired": total - valid,
    }


def list_issuers() -> List[Dict[str, Any]]:
    conn = get_app_db()
    rows = conn.execute(
        """
        SELECT DISTINCT issued_by_user_id, issued_by_name FROM clearances
        WHERE issued_by_user_id IS NOT NULL
        ORDER BY issued_by_name
        """
    ).fetchall()
    return [dict(row) for row in rows]


def list_logs(clearance_id: int) -> List[Dict[str, Any]]:
    conn = get_app_db()
    rows = conn.execute(
        "SELECT * FROM clearance_logs WHERE clearance_id = ? ORDER BY id",
        (clearance_id,),
    ).fetchall()
    return [dict(row) for row in rows]


# ---- Writes -----------------------------------------------------------------
def _log(conn: sqlite3.Connection, row: Mapping[str, Any], action: str, user: Optional[Mapping[str, Any]]) -> None:
    conn.execute(
        """
        INSERT INTO clearance_logs(clearance_id, or_number, action, user_id, user_name, created_at)
        VALUES(?, ?, ?, ?, ?, ?)
        """,
        (row["id"], row["or_number"], action,
         user["id"] if user else None, user["name"] if user else None, _now()),
    )


def next_or_number(conn: sqlite3.Connection, year: int) -> str:
    """Next official-receipt number for ``year``: ``OR-<year>-<6-digit sequence>``."""
    prefix = f"{OR_PREFIX}-{year}-"
    row = conn.execute(
        "SELECT or_number FROM clearances WHERE or_number LIKE ? ORDER BY or_number DESC LIMIT 1",
        (prefix + "%",),
    ).fetchone()
    seq = int(row["or_number"][len(prefix):]) + 1 if row else 1
    return f"{prefix}{seq:06d}"


def create_clearance(data: Mapping[str, Any], user: Mapping[str, Any], today: Optional[date] = None) -> sqlite3.Row:
    today = today or date.today()
    record = to_record(validate_clearance(data, today))
    record["issued_by_user_id"] = user["id"]
    record["issued_by_name"] = user["name"]
    columns = ["or_number", *record]

    conn = get_app_db()
    for _ in range(_OR_ATTEMPTS):
        or_number = next_or_number(conn, today.year)
        try:
            cur = conn.execute(
                f"INSERT INTO clearances({', '.join(columns)}) VALUES({', '.join('?' for _ in columns)})",
                [or_number, *record.values()],
            )
        except sqlite3.IntegrityError:
            conn.rollback()
            continue
        row = get_clearance(cur.lastrowid)
        _log(conn, row, "created", user)
        conn.commit()
        logger.info("Issued clearance %s (format %s, id=%s)", or_number, row["format_type"], row["id"])
        return row
    raise RuntimeError("Could not allocate an O.R. number; try again.")


def _as_input(row: sqlite3.Row) -> Dict[str, Any]:
    data = {column: row[column] for column in CLEARANCE_COLUMNS}
    data["criminal_cases"] = json.loads(row["criminal_cases"]) if row["criminal_cases"] else []
    return data


def update_clearance(
    clearance_id: int,
    changes: Mapping[str, Any],
    user: Mapping[str, Any],
    today: Optional[date] = None,
) -> sqlite3.Row:
    """Merge ``changes`` over the stored certificate and re-validate the whole of it."""
    existing = require_clearance(clearance_id)
    merged = {**_as_input(existing), **changes}
    # Derived values are recomputed when their inputs change and no override is sent.
    if ("date_issued" in changes or "validity_period" in changes) and "validity_expiry" not in changes:
        merged.pop("validity_expiry", None)
    if "purpose" in changes and "purpose_fee" not in changes:
        merged.pop("purpose_fee", None)
    record = to_record(validate_clearance(merged, today))
    record["updated_by_user_id"] = user["id"]
    record["updated_by_name"] = user["name"]

    conn = get_app_db()
    conn.execute(
        f"UPDATE clearances SET {', '.join(f'{column} = ?' for column in record)} WHERE id = ?",
        [*record.values(), clearance_id],
    )
    _log(conn, existing, "updated", user)
    conn.commit()
    logger.info("Updated clearance %s (id=%s)", existing["or_number"], clearance_id)
    return get_clearance(clearance_id)


def delete_clearance(clearance_id: int, user: Mapping[str, Any]) -> None:
    existing = require_clearance(clearance_id)
    conn = get_app_db()
    conn.execute("DELETE FROM clearances WHERE id = ?", (clearance_id,))
    _log(conn, existing, "deleted", user)
    conn.commit()
    logger.info("Deleted clearance %s (id=%s)", existing["or_number"], clearance_id)


def log_download(clearance_id: int, user: Mapping[str, Any]) -> sqlite3.Row:
    existing = require_clearance(clearance_id)
    conn = get_app_db()
    conn.execute(
        "UPDATE clearances SET download_count = download_count + 1, last_downloaded_at = ? WHERE id = ?",
        (_now(), clearance_id),
    )
    _log(conn, existing, "downloaded", user)
    conn.commit()
    return get_clearance(clearance_id)
