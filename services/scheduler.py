"""Recurring auto-purge of terminated cases and stale-account cleanup.

A schedule fires daily, weekly (on ``day_of_week``, Monday = 0) or monthly
(on ``day_of_month``, clamped to the month's last day) at ``time``. When an
occurrence fires, terminated cases whose termination predates the previous
occurrence are purged, so every purged case sat in the terminated list for
at least one full schedule period.
"""

from __future__ import annotations

import calendar
import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Optional

import docket_config
from services import cases, users

logger = logging.getLogger("docketing.scheduler")

_SEARCH_DAYS = 62


@dataclass(frozen=True)
class Recurrence:
    schedule_type: str
    at: time
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Recurrence":
        hour, minute = (int(part) for part in str(data.get("time") or "00:00").split(":"))
        return cls(
            schedule_type=data["schedule_type"],
            at=time(hour, minute),
            day_of_week=data.get("day_of_week"),
            day_of_month=data.get("day_of_month"),
        )

    def fires_on(self, day: date) -> bool:
        if self.schedule_type == "daily":
            return True
        if self.schedule_type == "weekly":
            return day.weekday() == self.day_of_week
        if self.schedule_type == "monthly":
            last_day = calendar.monthrange(day.year, day.month)[1]
            return day.day == min(int(self.day_of_month or 1), last_day)
        raise ValueError(f"Unknown schedule type {self.schedule_type!r}")

    def next_run(self, after: datetime) -> datetime:
        """First occurrence strictly after ``after``."""
        day = after.date()
        for offset in range(_SEARCH_DAYS + 1):
            candidate_day = day + timedelta(days=offset)
            if self.fires_on(candidate_day):
                candidate = datetime.combine(candidate_day, self.at)
                if candidate > after:
                    return candidate
        raise RuntimeError("No occurrence found; schedule is malformed")

    def previous_run(self, before: datetime) -> datetime:
        """Last occurrence strictly before ``before``."""
        day = before.date()
        for offset in range(_SEARCH_DAYS + 1):
            candidate_day = day - timedelta(days=offset)
            if self.fires_on(candidate_day):
                candidate = datetime.combine(candidate_day, self.at)
                if candidate < before:
                    return candidate
        raise RuntimeError("No occurrence found; schedule is malformed")

    def latest_due(self, now: datetime) -> datetime:
        """Most recent occurrence at or before ``now``."""
        return self.previous_run(now + timedelta(microseconds=1))


def describe_schedule(schedule: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> Dict[str, Any]:
    if not schedule or not schedule.get("enabled"):
        return {"enabled": False}
    described = dict(schedule)
    described["next_run"] = Recurrence.from_dict(schedule).next_run(now or datetime.now()).isoformat(
        sep=" ", timespec="minutes"
    )
    return described


def _parse_marker(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        return None


def run_auto_purge(now: Optional[datetime] = None) -> int:
    """Run the configured purge if an occurrence is due. Requires an app context."""
    now = now or datetime.now()
    schedule = docket_config.load_auto_delete_schedule()
    if not schedule or not schedule.get("enabled"):
        return 0

    recurrence = Recurrence.from_dict(schedule)
    due = recurrence.latest_due(now)
    last_run = (
        _parse_marker(docket_config.get_marker(docket_config.AUTO_DELETE_LAST_RUN_KEY))
        or _parse_marker(schedule.get("configured_at"))
    )
    if last_run is not None and due <= last_run:
        return 0

    cutoff = recurrence.previous_run(due)
    purged = cases.purge_terminated_before(cutoff)
    docket_config.set_marker(docket_config.AUTO_DELETE_LAST_RUN_KEY, due.isoformat())
    logger.info("Auto-delete run for %s purged %d case(s) terminated before %s", due, purged, cutoff)
    return purged


def run_account_cleanup(now: Optional[datetime] = None) -> int:
    """Remove stale non-Admin accounts at most once per calendar day."""
    now = now or datetime.now()
    today = now.date().isoformat()
    if docket_config.get_marker(docket_config.ACCOUNT_CLEANUP_LAST_RUN_KEY) == today:
        return 0
    removed = users.purge_stale_accounts(now, max_age_days=docket_config.STALE_ACCOUNT_DAYS)
    docket_config.set_marker(docket_config.ACCOUNT_CLEANUP_LAST_RUN_KEY, today)
    return removed


def run_pending(now: Optional[datetime] = None) -> Dict[str, int]:
    return {
        "purged": run_auto_purge(now),
        "accounts_removed": run_account_cleanup(now),
    }


class PurgeScheduler:
    """Background thread that periodically calls :func:`run_pending`."""

    def __init__(self, app, poll_seconds: Optional[int] = None) -> None:
        self.app = app
        self.poll_seconds = poll_seconds or docket_config.SCHEDULER_POLL_SECONDS
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="docketing-scheduler", daemon=True)
        self._thread.start()
        logger.info("Scheduler started (poll every %ss)", self.poll_seconds)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def tick(self) -> Dict[str, int]:
        with self.app.app_context():
            return run_pending()

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception as exc:
                logger.error("Scheduled maintenance failed: %s", exc, exc_info=True)
            self._stop.wait(self.poll_seconds)


_start_lock = threading.Lock()


def ensure_started(app) -> Optional[PurgeScheduler]:
    """Start the app's scheduler once; later calls return the running one.

    Disabled when ``SCHEDULER_ENABLED`` is false in the app config.
    """
    if not app.config.get("SCHEDULER_ENABLED", True):
        return None
    with _start_lock:
        runner = app.extensions.get("purge_scheduler")
        if runner is None:
            runner = PurgeScheduler(app, poll_seconds=app.config.get("SCHEDULER_POLL_SECONDS"))
            app.extensions["purge_scheduler"] = runner
        runner.start()
    return runner
