from datetime import date

import pytest
from pydantic import ValidationError

from conftest import case_payload
from services.schemas import (
    AutoDeleteSchedule,
    CaseCreate,
    CaseSearch,
    CaseUpdate,
    UserRegister,
    field_errors,
)


def test_case_create_defaults() -> None:
    case = CaseCreate(**case_payload())

    assert case.is_active is True
    assert case.remarks_decision == "Pending"
    assert case.index_cards == "N/A"
    assert case.date_filed == date(2024, 1, 15)
    assert case.model_dump(by_alias=True)["docketNo"] == "NPS-2024-001"


def test_missing_docket_number_reports_field_message() -> None:
    payload = case_payload()
    del payload["docketNo"]

    with pytest.raises(ValidationError) as excinfo:
        CaseCreate(**payload)

    assert {"field": "docketNo", "message": "Docket number is required"} in field_errors(excinfo.value)


def test_blank_required_text_counts_as_missing() -> None:
    with pytest.raises(ValidationError) as excinfo:
        CaseCreate(**case_payload(complainant="   "))

    assert field_errors(excinfo.value) == [{"field": "complainant", "message": "Complainant name is required"}]


def test_legacy_form_names_are_accepted() -> None:
    case = CaseCreate(
        DOCKET_NO="NPS-2024-009",
        DATE_FILED="2024-02-01T09:30:00",
        COMPLAINANT="Ana Reyes",
        RESPONDENT="Jose Cruz",
        ADDRESS_OF_RESPONDENT="Pasig",
        OFFENSE="Estafa",
        DATE_OF_COMMISSION="2024-01-20",
        BRANCH="Branch 3",
        DATEFILED_IN_COURT="2024-03-01",
        CRIM_CASE_NO="CR-77",
        REMARKS_DECISION="dismissed",
    )

    record = case.to_record()
    assert record["date_filed"] == "2024-02-01"
    assert record["date_filed_in_court"] == "2024-03-01"
    assert record["criminal_case_no"] == "CR-77"
    assert record["remarks_decision"] == "Dismissed"
    assert record["is_active"] == 1


def test_numeric_docket_from_spreadsheet_becomes_text() -> None:
    case = CaseCreate(**case_payload(docketNo=2024001.0))

    assert case.docket_no == "2024001"


def test_case_update_rejects_unknown_fields() -> None:
    with pytest.raises(ValidationError) as excinfo:
        CaseUpdate(**{"remarksDecision": "Convicted", "courtroom": "3"})

    assert field_errors(excinfo.value) == [{"field": "courtroom", "message": "Unknown field 'courtroom'"}]


def test_case_update_keeps_only_sent_fields() -> None:
    changes = CaseUpdate(**{"penalty": "n/a", "dateResolved": "2024-05-02"}).to_record(exclude_unset=True)

    assert changes == {"penalty": None, "date_resolved": "2024-05-02"}


def test_case_update_cannot_clear_required_field() -> None:
    with pytest.raises(ValidationError) as excinfo:
        CaseUpdate(dateFiled="")

    assert field_errors(excinfo.value)[0]["message"] == "dateFiled cannot be cleared"


def test_search_needs_a_criterion() -> None:
    with pytest.raises(ValidationError) as excinfo:
        CaseSearch(docket_no="  ")

    assert field_errors(excinfo.value)[0]["message"] == "At least one search criteria is required."


def test_search_rejects_inverted_range() -> None:
    with pytest.raises(ValidationError):
        CaseSearch(start_date="2024-05-01", end_date="2024-01-01")


def test_schedule_requires_day_for_weekly() -> None:
    with pytest.raises(ValidationError):
        AutoDeleteSchedule(schedule_type="weekly", time="02:00")


def test_schedule_drops_irrelevant_day_fields() -> None:
    schedule = AutoDeleteSchedule(frequency="Monthly", day_of_month=31, day_of_week=2, time="23:59")

    assert schedule.schedule_type == "monthly"
    assert schedule.day_of_week is None
    assert schedule.day_of_month == 31


@pytest.mark.parametrize("value", ["24:00", "7:00", "noon"])
def test_schedule_time_format(value) -> None:
    with pytest.raises(ValidationError):
        AutoDeleteSchedule(schedule_type="daily", time=value)


def test_register_normalizes_role_and_checks_email() -> None:
    user = UserRegister(name="Maria Clara", email="maria@example.com", password="secret123", role="staff")
    assert user.role == "Staff"

    with pytest.raises(ValidationError) as excinfo:
        UserRegister(name="Maria Clara", email="not-an-email", password="secret123")
    assert field_errors(excinfo.value)[0]["field"] == "email"
