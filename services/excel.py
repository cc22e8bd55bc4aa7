"""Excel import/export of case records and the clearance register."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence, Tuple
from zipfile import BadZipFile

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException
from pydantic import ValidationError

from services import cases
from services.columns import EXPECTED_COLUMNS, normalize_header, validate_columns
from services.schemas import CaseCreate, CaseUpdate, field_errors

logger = logging.getLogger("docketing.excel")

SHEET_TITLE = "Cases"
DOWNLOAD_NAME = "cases.xlsx"

# Spreadsheet column -> storage column.
COLUMN_MAP: Dict[str, str] = {
    "ID": "id",
    "Docket No": "docket_no",
    "Date Filed": "date_filed",
    "Complainant": "complainant",
    "Respondent": "respondent",
    "Address of Respondent": "address_of_respondent",
    "Offense": "offense",
    "Date of Commission": "date_of_commission",
    "Date Resolved": "date_resolved",
    "Resolving Prosecutor": "resolving_prosecutor",
    "Criminal Case No": "criminal_case_no",
    "Branch": "branch",
    "Date Filed in Court": "date_filed_in_court",
    "Remarks Decision": "remarks_decision",
    "Penalty": "penalty",
    "Index Cards": "index_cards",
    "Remarks": "remarks",
}

# Free-text remarks ride after the fixed column list; sheets may omit them.
SHEET_COLUMNS: Tuple[str, ...] = (*EXPECTED_COLUMNS, "Remarks")

# Images are attached through the upload endpoints, never through a sheet.
_IMPORT_IGNORED = {"id", "index_cards"}


class ColumnValidationError(ValueError):
    """Raised when the header row of an uploaded sheet is not acceptable."""

    def __init__(self, errors: List[str]) -> None:
        self.errors = errors
        super().__init__("Column validation failed")


class SpreadsheetError(ValueError):
    """Raised when the upload cannot be read as a workbook."""


@dataclass
class ImportSummary:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def message(self) -> str:
        text = f"Import complete: {self.inserted} added, {self.updated} updated"
        if self.skipped:
            text += f", {self.skipped} skipped"
        if self.errors:
            text += f", {len(self.errors)} row error(s)"
        return text + "."


def build_workbook(include_terminated: bool = False) -> BytesIO:
    rows = cases.list_all_cases() if include_terminated else cases.list_active_cases()

    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    ws.append(list(SHEET_COLUMNS))
    for cell in ws[1]:
        cell.font = Font(bold=True)

    for row in rows:
        ws.append([row[COLUMN_MAP[column]] for column in SHEET_COLUMNS])

    # Docket and case numbers stay text so Excel keeps leading zeros.
    for column in ("Docket No", "Criminal Case No"):
        letter = get_column_letter(EXPECTED_COLUMNS.index(column) + 1)
        for cell in ws[letter][1:]:
            cell.number_format = "@"
    for idx, column in enumerate(SHEET_COLUMNS, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = max(12, len(column) + 4)
    ws.freeze_panes = "A2"

    buffer = BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    logger.info("Exported %d case(s) to Excel", len(rows))
    return buffer


def _trim_headers(headers: Sequence[Any]) -> List[Any]:
    trimmed = list(headers)
    while trimmed and (trimmed[-1] is None or str(trimmed[-1]).strip() == ""):
        trimmed.pop()
    return trimmed


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _as_id(value: Any) -> Optional[int]:
    if _is_blank(value):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def read_headers(data: bytes) -> List[Any]:
    """Return the first row of the first sheet, for pre-upload validation."""
    wb = _open(data)
    try:
        first = next(wb.worksheets[0].iter_rows(min_row=1, max_row=1, values_only=True), ())
        return _trim_headers(first)
    finally:
        wb.close()


def validate_sheet_headers(headers: Sequence[Any]) -> List[str]:
    return validate_columns(headers, expected=SHEET_COLUMNS)


def _open(data: bytes):
    try:
        return load_workbook(BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError, ValueError) as exc:
        raise SpreadsheetError(f"Could not read Excel file: {exc}") from exc


def import_workbook(data: bytes) -> ImportSummary:
    """Validate the header row, then insert or update one case per data row.

    Rows match an existing case by ID first, then by docket number; unmatched
    rows are inserted. Blank cells leave stored values unchanged on update.
    """
    wb = _open(data)
    try:
        rows = wb.worksheets[0].iter_rows(values_only=True)
        headers = _trim_headers(next(rows, ()))
        errors = validate_sheet_headers(headers)
        if errors:
            raise ColumnValidationError(errors)

        lookup = {normalize_header(column): storage for column, storage in COLUMN_MAP.items()}
        # Unnamed columns map to None and are dropped.
        columns = [lookup.get(normalize_header(header)) for header in headers]

        summary = ImportSummary()
        for row_number, values in enumerate(rows, start=2):
            cells = {column: value for column, value in zip(columns, values) if column}
            if all(_is_blank(value) for value in cells.values()):
                continue
            _import_row(row_number, cells, summary)
    finally:
        wb.close()

    logger.info(
        "Excel import: %d inserted, %d updated, %d skipped, %d errors",
        summary.inserted, summary.updated, summary.skipped, len(summary.errors),
    )
    return summary


def _import_row(row_number: int, cells: Dict[str, Any], summary: ImportSummary) -> None:
    existing = None
    case_id = _as_id(cells.get("id"))
    if case_id is not None:
        existing = cases.get_case(case_id)
    if existing is None and not _is_blank(cells.get("docket_no")):
        existing = cases.find_case_by_docket(str(cells["docket_no"]))

    values = {k: v for k, v in cells.items() if k not in _IMPORT_IGNORED and not _is_blank(v)}
    try:
        if existing is not None:
            if not values:
                summary.skipped += 1
                return
            update = CaseUpdate(**values)
            cases.update_case(existing["id"], update.to_record(exclude_unset=True))
            summary.updated += 1
        else:
            cases.insert_case_record(CaseCreate(**values).to_record())
            summary.inserted += 1
    except ValidationError as exc:
        summary.skipped += 1
        for err in field_errors(exc):
            summary.errors.append(f"Row {row_number}: {err['field'] or 'row'}: {err['message']}")
    except (cases.DuplicateDocketError, ValueError) as exc:
        summary.skipped += 1
        summary.errors.append(f"Row {row_number}: {exc}")


CLEARANCE_SHEET_TITLE = "Clearances"

# Header -> serialized clearance key.
CLEARANCE_EXPORT_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("O.R. Number", "or_number"),
    ("Format", "format_label"),
    ("Last Name", "last_name"),
    ("First Name", "first_name"),
    ("Middle Name", "middle_name"),
    ("Suffix", "suffix"),
    ("Age", "age"),
    ("Civil Status", "civil_status"),
    ("Address", "address"),
    ("Purpose", "purpose"),
    ("Fee", "purpose_fee"),
    ("Date Issued", "date_issued"),
    ("Valid Until", "validity_expiry"),
    ("Status", "status"),
    ("Criminal Record", "has_criminal_record"),
    ("Case Numbers", "case_numbers"),
    ("Issued By", "issued_by_name"),
    ("Downloads", "download_count"),
)


def clearance_download_name(today: date) -> str:
    return f"clearances_export_{today.isoformat()}.xlsx"


def build_clearance_workbook(records: Sequence[Dict[str, Any]]) -> BytesIO:
    """Workbook of serialized clearances, one row each."""
    wb = Workbook()
    ws = wb.active
    ws.title = CLEARANCE_SHEET_TITLE
    ws.append([header for header, _ in CLEARANCE_EXPORT_COLUMNS])
    for cell in ws[1]:
        cell.font = Font(bold=True)

    for record in records:
        values = []
        for _, key in CLEARANCE_EXPORT_COLUMNS:
            value = record.get(key)
            if key == "has_criminal_record":
                value = "Yes" if value else "No"
            values.append(value)
        ws.append(values)

    for idx, (header, _) in enumerate(CLEARANCE_EXPORT_COLUMNS, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = max(12, len(header) + 4)
    ws.freeze_panes = "A2"

    buffer = BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    logger.info("Exported %d clearance(s) to Excel", len(records))
    return buffer
