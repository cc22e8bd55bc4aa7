from datetime import datetime, time

import docket_config
from conftest import case_payload
from services import cases, scheduler
from services.db import get_app_db
from services.schemas import CaseCreate
from services.scheduler import Recurrence, describe_schedule, run_account_cleanup, run_auto_purge, run_pending
from services.users import create_user, get_user_by_email


def test_daily_next_run_is_strictly_after() -> None:
    daily = Recurrence("daily", time(2, 0))

    assert daily.next_run(datetime(2024, 3, 10, 1, 0)) == datetime(2024, 3, 10, 2, 0)
    assert daily.next_run(datetime(2024, 3, 10, 2, 0)) == datetime(2024, 3, 11, 2, 0)
    assert daily.previous_run(datetime(2024, 3, 10, 2, 0)) == datetime(2024, 3, 9, 2, 0)


def test_weekly_occurrences() -> None:
    mondays = Recurrence("weekly", time(0, 0), day_of_week=0)
    wednesday = datetime(2024, 3, 13, 12, 0)

    assert mondays.next_run(wednesday) == datetime(2024, 3, 18, 0, 0)
    assert mondays.previous_run(wednesday) == datetime(2024, 3, 11, 0, 0)


def test_monthly_day_is_clamped_to_month_end() -> None:
    month_end = Recurrence("monthly", time(0, 0), day_of_month=31)

    assert month_end.next_run(datetime(2024, 1, 31, 0, 0)) == datetime(2024, 2, 29, 0, 0)
    assert month_end.next_run(datetime(2024, 4, 1)) == datetime(2024, 4, 30, 0, 0)


def test_describe_schedule() -> None:
    assert describe_schedule(None) == {"enabled": False}
    described = describe_schedule(
        {"enabled": True, "schedule_type": "daily", "time": "03:30"}, now=datetime(2024, 3, 10, 4, 0)
    )
    assert described["next_run"] == "2024-03-11 03:30"


def _terminated(docket_no, deleted_at):
    record = CaseCreate(**case_payload(docketNo=docket_no)).to_record()
    record.update(is_active=0, deleted_at=deleted_at)
    return cases.insert_case_record(record)


def _dockets():
    return sorted(row["docket_no"] for row in cases.list_all_cases())


def test_purge_boundary_is_previous_occurrence(app) -> None:
    docket_config.save_auto_delete_schedule(
        {"enabled": True, "schedule_type": "daily", "time": "00:00", "configured_at": "2024-03-01 12:00:00"}
    )
    with app.app_context():
        cases.insert_case_record(CaseCreate(**case_payload(docketNo="ACTIVE-1")).to_record())
        _terminated("OLD-1", "2024-03-08 23:00:00")
        _terminated("NEW-1", "2024-03-09 06:00:00")

        assert run_auto_purge(datetime(2024, 3, 10, 0, 30)) == 1
        assert _dockets() == ["ACTIVE-1", "NEW-1"]

        # Same occurrence does not run twice.
        assert run_auto_purge(datetime(2024, 3, 10, 23, 0)) == 0

        assert run_auto_purge(datetime(2024, 3, 11, 0, 5)) == 1
        assert _dockets() == ["ACTIVE-1"]


def test_no_run_before_first_occurrence_after_configuration(app) -> None:
    docket_config.save_auto_delete_schedule(
        {"enabled": True, "schedule_type": "daily", "time": "00:00", "configured_at": "2024-03-10 00:10:00"}
    )
    with app.app_context():
        _terminated("OLD-1", "2024-01-01 00:00:00")

        assert run_auto_purge(datetime(2024, 3, 10, 0, 30)) == 0
        assert run_auto_purge(datetime(2024, 3, 11, 0, 1)) == 1


def test_disabled_schedule_never_purges(app) -> None:
    docket_config.save_auto_delete_schedule({"enabled": False})
    with app.app_context():
        _terminated("OLD-1", "2020-01-01 00:00:00")

        assert run_auto_purge(datetime(2024, 3, 10)) == 0
        assert _dockets() == ["OLD-1"]


def test_stale_non_admin_accounts_are_removed_once_a_day(app) -> None:
    with app.app_context():
        create_user("Old Clerk", "old@example.com", "secret123", role="Clerk")
        create_user("Old Admin", "boss@example.com", "secret123", role="Admin")
        create_user("Fresh Staff", "fresh@example.com", "secret123", role="Staff")
        conn = get_app_db()
        conn.execute(
            "UPDATE users SET last_login_at = '2022-01-01 08:00:00' WHERE email IN ('old@example.com', 'boss@example.com')"
        )
        conn.execute("UPDATE users SET last_login_at = '2024-02-01 08:00:00' WHERE email = 'fresh@example.com'")
        conn.commit()

        assert run_account_cleanup(datetime(2024, 3, 10, 9, 0)) == 1
        assert get_user_by_email("old@example.com") is None
        assert get_user_by_email("boss@example.com") is not None
        assert get_user_by_email("fresh@example.com") is not None
        assert run_pending(datetime(2024, 3, 10, 10, 0)) == {"purged": 0, "accounts_removed": 0}


def test_scheduler_tick_runs_inside_app_context(app) -> None:
    assert scheduler.PurgeScheduler(app, poll_seconds=1).tick() == {"purged": 0, "accounts_removed": 0}


def test_configure_endpoint(admin_client) -> None:
    resp = admin_client.post("/configure-auto-delete", json={"schedule_type": "weekly", "time": "02:00"})
    assert resp.status_code == 400

    resp = admin_client.post(
        "/configure-auto-delete", json={"schedule_type": "weekly", "day_of_week": 4, "time": "02:00"}
    )
    assert resp.status_code == 200
    schedule = resp.get_json()["schedule"]
    assert schedule["enabled"] is True
    assert schedule["day_of_week"] == 4
    assert schedule["next_run"]
    assert datetime.strptime(schedule["next_run"], "%Y-%m-%d %H:%M").weekday() == 4

    current = admin_client.get("/configure-auto-delete").get_json()["schedule"]
    assert current["schedule_type"] == "weekly"

    resp = admin_client.post("/configure-auto-delete", json={"enabled": False, "schedule_type": "daily"})
    assert resp.get_json()["schedule"] == {"enabled": False}


def test_configure_endpoint_is_admin_only(clerk_client) -> None:
    resp = clerk_client.post("/configure-auto-delete", json={"schedule_type": "daily"})

    assert resp.status_code == 403


def test_first_request_starts_one_background_scheduler(app, client) -> None:
    app.config.update(SCHEDULER_ENABLED=True, SCHEDULER_POLL_SECONDS=3600)
    try:
        client.get("/ping")
        runner = app.extensions["purge_scheduler"]
        assert runner.running
        assert runner.poll_seconds == 3600

        client.get("/ping")
        assert app.extensions["purge_scheduler"] is runner
    finally:
        app.config["SCHEDULER_ENABLED"] = False
        stopped = app.extensions.pop("purge_scheduler", None)
        if stopped is not None:
            stopped.stop()
    assert not stopped.running


def test_disabled_scheduler_is_not_started(app, client) -> None:
    client.get("/ping")

    assert "purge_scheduler" not in app.extensions
