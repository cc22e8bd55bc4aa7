"""Header validation for uploaded case spreadsheets."""

from __future__ import annotations

from typing import Any, Iterable, List, Optional, Sequence, Tuple

EXPECTED_COLUMNS: Tuple[str, ...] = (
    "ID",
    "Docket No",
    "Date Filed",
    "Complainant",
    "Respondent",
    "Address of Respondent",
    "Offense",
    "Date of Commission",
    "Date Resolved",
    "Resolving Prosecutor",
    "Criminal Case No",
    "Branch",
    "Date Filed in Court",
    "Remarks Decision",
    "Penalty",
    "Index Cards",
)

REQUIRED_COLUMNS: Tuple[str, ...] = ("Docket No", "Complainant", "Respondent")

MAX_SUGGESTION_DISTANCE = 3


def normalize_header(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def levenshtein(a: str, b: str) -> int:
    """Edit distance (insert, delete, substitute) between two strings."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j - 1], previous[j], current[j - 1]))
        previous = current
    return previous[-1]


def closest_column(header: Any, expected: Sequence[str] = EXPECTED_COLUMNS) -> Optional[str]:
    """Return the nearest expected column, or None when nothing is close enough.

    Ties go to the column listed first.
    """
    normalized = normalize_header(header)
    best: Optional[str] = None
    best_distance: Optional[int] = None
    for column in expected:
        distance = levenshtein(normalized, normalize_header(column))
        if best_distance is None or distance < best_distance:
            best, best_distance = column, distance
    if best_distance is None or best_distance > MAX_SUGGESTION_DISTANCE:
        return None
    return best


def validate_columns(
    headers: Iterable[Any],
    expected: Sequence[str] = EXPECTED_COLUMNS,
    required: Sequence[str] = REQUIRED_COLUMNS,
) -> List[str]:
    """Check spreadsheet headers against the expected column list.

    Returns human-readable errors: one per unrecognised header (in header
    order, with a suggested correction when one is within edit distance 3),
    followed by one per missing required column (in ``required`` order).
    Blank header cells are unnamed spacer columns and are skipped.
    An empty list means the headers are acceptable.
    """
    headers = list(headers)
    known = {normalize_header(column) for column in expected}
    present = {normalize_header(header) for header in headers}

    errors: List[str] = []
    for header in headers:
        normalized = normalize_header(header)
        if not normalized or normalized in known:
            continue
        label = str(header)
        suggestion = closest_column(header, expected)
        if suggestion:
            errors.append(f'Column "{label}" is wrong name, use "{suggestion}" instead.')
        else:
            errors.append(f'Column "{label}" is not a valid column name.')

    for column in required:
        if normalize_header(column) not in present:
            errors.append(f'Required column "{column}" is missing.')
    return errors
