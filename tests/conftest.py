# tests/conftest.py

from __future__ import annotations

from datetime import date
from pathlib import Path
from types import SimpleNamespace

import pytest

from homeloop.cli.bootstrap import create_initial_state
from homeloop.core.state import AppState
from homeloop.tasks.task_models import Assignment, RecurrenceRule, ScheduleRecord


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="homeloop-test",
        log_level="DEBUG",
        console_enabled=False,
        matrix_enabled=False,
        matrix_homeserver="",
        matrix_user_id="",
        matrix_password="",
        matrix_member_rooms={},
        matrix_default_room="",
        data_dir=tmp_path,
        db_path=tmp_path / "homeloop.sqlite3",
        matrix_store_path=tmp_path / "matrix_store",
        default_due_time="21:00",
        startup_lookback_days=0,
        scheduler_interval_seconds=0.01,
        daily_generation_hour=0,
        settlement_day_of_week=0,
        settlement_hour=18,
    )


@pytest.fixture()
def state(settings: SimpleNamespace) -> AppState:
    """
    AppState wired by the real composition root.

    Real SQLite stores on tmp_path; the notifier is the log-only dispatcher.
    """
    return create_initial_state(settings=settings)


def make_schedule(
    schedule_id: int,
    *,
    days: set[int],
    interval: int = 1,
    start: date = date(2025, 1, 1),
    end: date | None = None,
    last_generated: date | None = None,
    time_of_day: str | None = None,
    household_id: str = "h1",
    assignment: Assignment | None = None,
    archived: bool = False,
) -> ScheduleRecord:
    return ScheduleRecord(
        id=schedule_id,
        household_id=household_id,
        name=f"chore-{schedule_id}",
        rule=RecurrenceRule(
            days_of_week=frozenset(days),
            weekly_interval=interval,
            start_date=start,
            end_date=end,
            time_of_day=time_of_day,
        ),
        assignment=assignment or Assignment.unassigned(),
        last_generated_date=last_generated,
        archived=archived,
    )
