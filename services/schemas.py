"""Request schemas for cases, accounts and the auto-delete schedule.

Field names travel as camelCase on the wire (``docketNo``); the snake_case
attribute names and the upper-snake names posted by the legacy forms
(``DOCKET_NO``) are accepted on input as well.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    EmailStr,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

REMARKS_DECISIONS = ("Pending", "Dismissed", "Convicted")
ROLES = ("Admin", "Staff", "Clerk")


def _normalize_role(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().capitalize()
    return value


Role = Annotated[Literal["Admin", "Staff", "Clerk"], BeforeValidator(_normalize_role)]

_NULL_MARKERS = {"", "n/a", "na", "none", "null"}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _field(name: str, *legacy: str, **kwargs: Any) -> Any:
    """Field accepting camelCase, snake_case and legacy spellings on input."""
    camel = _camel(name)
    choices = [camel, name, name.upper(), *legacy]
    return Field(
        validation_alias=AliasChoices(*dict.fromkeys(choices)),
        serialization_alias=camel,
        **kwargs,
    )


def _coerce_date(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if text.lower() in _NULL_MARKERS:
        return None
    # Full ISO datetimes are truncated to their calendar date.
    if len(text) > 10 and text[4:5] == "-" and text[10:11] in ("T", " "):
        return text[:10]
    return text


# Human labels for field-level messages, keyed by wire name.
FIELD_LABELS: Dict[str, str] = {
    "docketNo": "Docket number",
    "dateFiled": "Date filed",
    "complainant": "Complainant name",
    "respondent": "Respondent name",
    "addressOfRespondent": "Address",
    "offense": "Offense",
    "dateOfCommission": "Date of commission",
    "branch": "Branch",
    "name": "Name",
    "email": "Email",
    "password": "Password",
}

_CASE_DATE_FIELDS = ("date_filed", "date_of_commission", "date_resolved", "date_filed_in_court")
_CASE_OPTIONAL_TEXT = ("resolving_prosecutor", "criminal_case_no", "penalty", "remarks")


class _CaseFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    @field_validator(*_CASE_DATE_FIELDS, mode="before", check_fields=False)
    @classmethod
    def _dates(cls, value: Any) -> Any:
        return _coerce_date(value)

    @field_validator(*_CASE_OPTIONAL_TEXT, mode="before", check_fields=False)
    @classmethod
    def _optional_text(cls, value: Any) -> Any:
        if value is None:
            return None
        text = str(value).strip()
        return None if text.lower() in _NULL_MARKERS else text

    @field_validator("docket_no", "complainant", "respondent", "branch", mode="before", check_fields=False)
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        # Spreadsheet cells arrive as numbers; docket numbers are still text.
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(int(value)) if float(value).is_integer() else str(value)
        return value

    @field_validator("index_cards", mode="before", check_fields=False)
    @classmethod
    def _index_cards(cls, value: Any) -> Any:
        if value is None or str(value).strip().lower() in _NULL_MARKERS:
            return "N/A"
        return value

    def to_record(self, *, exclude_unset: bool = False) -> Dict[str, Any]:
        """Column-name keyed dict ready for the cases table."""
        data = self.model_dump(exclude_unset=exclude_unset)
        for key in _CASE_DATE_FIELDS:
            if isinstance(data.get(key), date):
                data[key] = data[key].isoformat()
        if "is_active" in data:
            data["is_active"] = 1 if data["is_active"] else 0
        return data


class CaseCreate(_CaseFields):
    docket_no: str = _field("docket_no", min_length=1, max_length=100)
    date_filed: date = _field("date_filed", "DATE_FILED")
    complainant: str = _field("complainant", min_length=1, max_length=200)
    respondent: str = _field("respondent", min_length=1, max_length=200)
    address_of_respondent: str = _field("address_of_respondent", min_length=1, max_length=500)
    offense: str = _field("offense", min_length=1, max_length=200)
    date_of_commission: date = _field("date_of_commission")
    date_resolved: Optional[date] = _field("date_resolved", default=None)
    resolving_prosecutor: Optional[str] = _field("resolving_prosecutor", default=None, max_length=200)
    criminal_case_no: Optional[str] = _field("criminal_case_no", "CRIM_CASE_NO", default=None, max_length=100)
    branch: str = _field("branch", min_length=1, max_length=100)
    date_filed_in_court: Optional[date] = _field("date_filed_in_court", "DATEFILED_IN_COURT", default=None)
    remarks_decision: str = _field("remarks_decision", default="Pending", max_length=1000)
    remarks: Optional[str] = _field("remarks", default=None, max_length=2000)
    penalty: Optional[str] = _field("penalty", default=None, max_length=500)
    index_cards: str = _field("index_cards", default="N/A", max_length=500)
    is_active: bool = _field("is_active", default=True)

    @field_validator("remarks_decision", mode="before")
    @classmethod
    def _remarks(cls, value: Any) -> Any:
        if value is None or str(value).strip().lower() in _NULL_MARKERS:
            return "Pending"
        return normalize_remarks(str(value))


class CaseUpdate(_CaseFields):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="forbid")

    docket_no: Optional[str] = _field("docket_no", default=None, min_length=1, max_length=100)
    date_filed: Optional[date] = _field("date_filed", default=None)
    complainant: Optional[str] = _field("complainant", default=None, min_length=1, max_length=200)
    respondent: Optional[str] = _field("respondent", default=None, min_length=1, max_length=200)
    address_of_respondent: Optional[str] = _field("address_of_respondent", default=None, min_length=1, max_length=500)
    offense: Optional[str] = _field("offense", default=None, min_length=1, max_length=200)
    date_of_commission: Optional[date] = _field("date_of_commission", default=None)
    date_resolved: Optional[date] = _field("date_resolved", default=None)
    resolving_prosecutor: Optional[str] = _field("resolving_prosecutor", default=None, max_length=200)
    criminal_case_no: Optional[str] = _field("criminal_case_no", "CRIM_CASE_NO", default=None, max_length=100)
    branch: Optional[str] = _field("branch", default=None, min_length=1, max_length=100)
    date_filed_in_court: Optional[date] = _field("date_filed_in_court", "DATEFILED_IN_COURT", default=None)
    remarks_decision: Optional[str] = _field("remarks_decision", default=None, max_length=1000)
    remarks: Optional[str] = _field("remarks", default=None, max_length=2000)
    penalty: Optional[str] = _field("penalty", default=None, max_length=500)
    index_cards: Optional[str] = _field("index_cards", default=None, max_length=500)

    @field_validator("remarks_decision", mode="before")
    @classmethod
    def _remarks(cls, value: Any) -> Any:
        if value is None:
            return None
        return normalize_remarks(str(value))

    @model_validator(mode="after")
    def _required_not_null(self) -> "CaseUpdate":
        for name in ("docket_no", "complainant", "respondent", "address_of_respondent",
                     "offense", "branch", "date_filed", "date_of_commission"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{_camel(name)} cannot be cleared")
        return self


class CaseSearch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    docket_no: Optional[str] = None
    respondent: Optional[str] = None
    resolving_prosecutor: Optional[str] = None
    remarks: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    include_terminated: bool = False

    @field_validator("docket_no", "respondent", "resolving_prosecutor", "remarks", mode="before")
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        if value is None or not str(value).strip():
            return None
        return value

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _dates(cls, value: Any) -> Any:
        return _coerce_date(value)

    @model_validator(mode="after")
    def _at_least_one(self) -> "CaseSearch":
        criteria = (self.docket_no, self.respondent, self.resolving_prosecutor,
                    self.remarks, self.start_date, self.end_date)
        if all(value is None for value in criteria):
            raise ValueError("At least one search criteria is required.")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("Start date must not be after end date.")
        return self


def normalize_remarks(value: str) -> str:
    """Map the known outcome labels to their canonical spelling."""
    text = value.strip()
    for label in REMARKS_DECISIONS:
        if text.lower() == label.lower():
            return label
    return text


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class UserRegister(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6)
    role: Role = "Clerk"


class UserUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None


class RoleUpdate(BaseModel):
    role: Role


class PasswordChange(BaseModel):
    current_password: str = Field(
        min_length=1, validation_alias=AliasChoices("currentPassword", "current_password")
    )
    new_password: str = Field(
        min_length=6, validation_alias=AliasChoices("newPassword", "new_password")
    )


class AutoDeleteSchedule(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    enabled: bool = True
    schedule_type: Literal["daily", "weekly", "monthly"] = Field(
        validation_alias=AliasChoices("schedule_type", "scheduleType", "frequency")
    )
    day_of_week: Optional[int] = Field(
        default=None, ge=0, le=6, validation_alias=AliasChoices("day_of_week", "dayOfWeek")
    )
    day_of_month: Optional[int] = Field(
        default=None, ge=1, le=31, validation_alias=AliasChoices("day_of_month", "dayOfMonth")
    )
    time: str = Field(default="00:00", pattern=r"^([01]\d|2[0-3]):[0-5]\d$")

    @field_validator("schedule_type", mode="before")
    @classmethod
    def _lower(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _day_required(self) -> "AutoDeleteSchedule":
        if self.schedule_type == "weekly" and self.day_of_week is None:
            raise ValueError("day_of_week is required for a weekly schedule")
        if self.schedule_type == "monthly" and self.day_of_month is None:
            raise ValueError("day_of_month is required for a monthly schedule")
        if self.schedule_type != "weekly":
            self.day_of_week = None
        if self.schedule_type != "monthly":
            self.day_of_month = None
        return self


def field_errors(exc: ValidationError) -> List[Dict[str, str]]:
    """Flatten a ValidationError into ``[{"field", "message"}]`` entries."""
    errors: List[Dict[str, str]] = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if not isinstance(part, int)]
        field = _camel(loc[0].lower() if "_" in loc[0] else loc[0]) if loc else ""
        label = FIELD_LABELS.get(field, field or "Request")
        kind = err.get("type", "")
        if kind == "missing":
            message = f"{label} is required"
        elif kind == "string_too_short" and (err.get("ctx") or {}).get("min_length") == 1:
            message = f"{label} is required"
        elif kind == "extra_forbidden":
            message = f"Unknown field {field!r}"
        else:
            message = err.get("msg", "Invalid value")
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
        errors.append({"field": field, "message": message})
    return errors


# ---- Clearances -----------------------------------------------------------
# Clearance payloads travel in snake_case, as the certificate forms post them.

FORMAT_TYPES: Dict[str, str] = {
    "A": "Individual - No Criminal Record",
    "B": "Individual - Has Criminal Record",
    "C": "Family/Requester - No Criminal Record",
    "D": "Family/Requester - Has Criminal Record",
    "E": "Individual - No Derogatory Record",
    "F": "Individual - Balsaff Application (With Case)",
}
CRIMINAL_RECORD_FORMATS = ("B", "D", "F")
CIVIL_STATUS_OPTIONS = ("Single", "Married", "Widow", "Widower", "Separated", "Divorced")
CASE_STATUS_OPTIONS = (
    "Pending in Court",
    "Pending with Prosecutor",
    "Dismissed",
    "Convicted",
    "Acquitted",
    "Referred to Other Agency",
    "Other",
)
VALIDITY_PERIODS = ("6 Months", "1 Year")
PURPOSE_FEES: Dict[str, float] = {
    "Local Employment": 50,
    "Foreign Employment": 100,
    "Foreign Travel": 200,
    "Firearm License": 1000,
    "Permit to Carry Firearm": 500,
    "Business Permit": 300,
    "Retirement/Resignation": 100,
    "Certification of No Pending Case": 75,
    "Promotion": 0,
    "Probation": 0,
    "Plea Bargaining Agreement": 0,
    "For Family Verification": 0,
    "For Adoption Proceedings": 0,
    "No Derogatory Record": 50,
    "Application for Balsaff": 100,
    "Other": 0,
}
DEFAULT_CASE_ORIGIN = "Tagbilaran City"

_NAME_RE = re.compile(r"^[a-zA-ZÀ-ÿ\s\-']+$")


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class CriminalCaseEntry(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    case_number: str = Field(min_length=1, max_length=100)
    crime: str = Field(min_length=1, max_length=255)
    date_info_filed: Optional[date] = None
    origin: str = Field(default=DEFAULT_CASE_ORIGIN, max_length=100)
    status: Optional[str] = Field(default=None, max_length=100)

    @field_validator("date_info_filed", mode="before")
    @classmethod
    def _date(cls, value: Any) -> Any:
        return _coerce_date(value)

    @field_validator("origin", mode="before")
    @classmethod
    def _origin(cls, value: Any) -> Any:
        return _blank_to_none(value) or DEFAULT_CASE_ORIGIN

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> Any:
        return _blank_to_none(value)


class ClearanceCreate(BaseModel):
    """Shape and per-field checks; cross-field rules live in ``services.clearances``."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    format_type: Literal["A", "B", "C", "D", "E", "F"] = "A"
    first_name: str = Field(min_length=1, max_length=100)
    middle_name: Optional[str] = Field(default=None, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    suffix: Optional[str] = Field(default=None, max_length=20)
    alias: Optional[str] = Field(default=None, max_length=255)
    age: int
    civil_status: Literal["Single", "Married", "Widow", "Widower", "Separated", "Divorced"] = "Single"
    nationality: str = Field(default="Filipino", max_length=50)
    address: str = Field(max_length=500)
    purpose: str = Field(min_length=1, max_length=255)
    purpose_fee: Optional[float] = Field(default=None, ge=0)
    custom_purpose: Optional[str] = Field(default=None, max_length=255)
    issued_upon_request_by: Optional[str] = Field(default=None, max_length=255)
    date_issued: date
    prc_id_number: Optional[str] = Field(default=None, max_length=50)
    validity_period: Literal["6 Months", "1 Year"] = "6 Months"
    validity_expiry: Optional[date] = None

    case_numbers: Optional[str] = Field(default=None, max_length=255)
    crime_description: Optional[str] = Field(default=None, max_length=2000)
    legal_statute: Optional[str] = Field(default=None, max_length=255)
    date_of_commission: Optional[date] = None
    date_information_filed: Optional[date] = None
    case_status: Optional[str] = Field(default=None, max_length=100)
    court_branch: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=2000)
    criminal_cases: List[CriminalCaseEntry] = Field(default_factory=list)

    @field_validator(
        "middle_name", "suffix", "alias", "custom_purpose", "issued_upon_request_by", "prc_id_number",
        "case_numbers", "crime_description", "legal_statute", "case_status", "court_branch", "notes",
        mode="before",
    )
    @classmethod
    def _optional_text(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("format_type", mode="before")
    @classmethod
    def _format(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("nationality", mode="before")
    @classmethod
    def _nationality(cls, value: Any) -> Any:
        return _blank_to_none(value) or "Filipino"

    @field_validator("first_name", "last_name")
    @classmethod
    def _name(cls, value: str) -> str:
        if not _NAME_RE.match(value):
            raise ValueError("Name can only contain letters, hyphens, apostrophes and spaces")
        return value

    @field_validator("age", mode="before")
    @classmethod
    def _age(cls, value: Any) -> Any:
        try:
            age = int(str(value).strip())
        except (TypeError, ValueError):
            raise ValueError("Age must be between 18 and 120") from None
        if not 18 <= age <= 120:
            raise ValueError("Age must be between 18 and 120")
        return age

    @field_validator("address")
    @classmethod
    def _address(cls, value: str) -> str:
        if len(value) < 10:
            raise ValueError("Address must be at least 10 characters")
        return value

    @field_validator("date_issued", "validity_expiry", "date_of_commission", "date_information_filed", mode="before")
    @classmethod
    def _dates(cls, value: Any) -> Any:
        return _coerce_date(value)

    @field_validator("criminal_cases", mode="before")
    @classmethod
    def _drop_blank_cases(cls, value: Any) -> Any:
        # Forms always send one empty row; a row counts once it names a case or crime.
        if value is None:
            return []
        if isinstance(value, list):
            return [
                entry for entry in value
                if not isinstance(entry, dict)
                or any(_blank_to_none(entry.get(key)) is not None for key in ("case_number", "crime"))
            ]
        return value

    @property
    def has_criminal_record(self) -> bool:
        return self.format_type in CRIMINAL_RECORD_FORMATS


class ClearanceQuery(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    search: Optional[str] = None
    format_type: Optional[Literal["A", "B", "C", "D", "E", "F"]] = None
    has_criminal_record: Optional[bool] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    issued_by: Optional[int] = None
    status: Optional[Literal["Valid", "Expired"]] = None

    @field_validator("search", "has_criminal_record", "issued_by", mode="before")
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def _dates(cls, value: Any) -> Any:
        return _coerce_date(_blank_to_none(value))

    @field_validator("format_type", mode="before")
    @classmethod
    def _format(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        return value.strip().capitalize() if isinstance(value, str) else value
