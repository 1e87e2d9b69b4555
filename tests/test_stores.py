# tests/test_stores.py

from __future__ import annotations

import sqlite3
from datetime import UTC, date, datetime
from pathlib import Path

import pytest

from homeloop.goals.goal_models import Deduction, remaining_points
from homeloop.goals.goal_store import GoalStore
from homeloop.households.member_store import MemberStore
from homeloop.points.activity import ActivityLogService
from homeloop.points.ledger import PointsLedgerService
from homeloop.points.points_models import ActivityEntry, ActivityType, AwardRequest, PointsSource
from homeloop.tasks.schedule_store import ScheduleStore
from homeloop.tasks.task_models import Assignment, NewTask, RecurrenceRule
from homeloop.tasks.task_store import TaskStore

from .fakes import FakeNotifier


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "homeloop.sqlite3"


def _rule(**kw) -> RecurrenceRule:
    return RecurrenceRule(
        days_of_week=frozenset(kw.pop("days", {1, 3})),
        weekly_interval=kw.pop("interval", 1),
        start_date=kw.pop("start", date(2025, 1, 1)),
        **kw,
    )


def test_schedule_store_roundtrip_and_active_filter(db_path: Path) -> None:
    store = ScheduleStore(db_path)
    s1 = store.create_schedule(
        household_id="h1",
        name="Dishes",
        rule=_rule(time_of_day="19:30"),
        assignment=Assignment.for_role("child"),
        created_by="mom",
    )
    s2 = store.create_schedule(household_id="h1", name="Trash", rule=_rule(end_date=date(2025, 1, 31)))
    s3 = store.create_schedule(household_id="h1", name="Garden", rule=_rule(start=date(2025, 3, 1)))

    fetched = store.get_schedule(s1.id)
    assert fetched is not None
    assert fetched.rule.days_of_week == frozenset({1, 3})
    assert fetched.rule.time_of_day == "19:30"
    assert fetched.assignment == Assignment.for_role("child")
    assert fetched.last_generated_date is None

    active_feb = {s.id for s in store.find_active_schedules(on_date=date(2025, 2, 5))}
    assert s2.id not in active_feb
    assert s3.id not in active_feb

    active_mar = {s.id for s in store.find_active_schedules(on_date=date(2025, 3, 5))}
    assert s3.id in active_mar


def test_schedule_store_archive_and_last_generated(db_path: Path) -> None:
    store = ScheduleStore(db_path)
    s = store.create_schedule(household_id="h1", name="Dishes", rule=_rule())

    store.update_last_generated_date(s.id, date(2025, 1, 8))
    assert store.get_schedule(s.id).last_generated_date == date(2025, 1, 8)

    assert store.archive_schedule(s.id) is True
    assert store.find_active_schedules() == []
    assert store.find_active_schedules(on_date=date(2025, 1, 8)) == []


def test_task_store_lookup_by_calendar_date(db_path: Path) -> None:
    store = TaskStore(db_path)
    task = store.create_task(
        NewTask(
            household_id="h1",
            name="Dishes",
            due_at=datetime(2025, 1, 8, 21, 0, tzinfo=UTC),
            assignment=Assignment.for_member("kid"),
            schedule_id=7,
        )
    )

    found = store.find_task_by_schedule_and_date(7, date(2025, 1, 8))
    assert found is not None and found.id == task.id
    assert found.assignment == Assignment.for_member("kid")
    assert store.find_task_by_schedule_and_date(7, date(2025, 1, 9)) is None
    assert store.find_task_by_schedule_and_date(8, date(2025, 1, 8)) is None


def test_task_store_incomplete_and_delete(db_path: Path) -> None:
    store = TaskStore(db_path)
    ids = [
        store.create_task(
            NewTask(household_id="h1", name="Dishes", due_at=datetime(2025, 1, d, 21, tzinfo=UTC), schedule_id=7)
        ).id
        for d in (6, 8, 10)
    ]
    assert store.complete_task(ids[0]) is True
    assert store.complete_task(ids[0]) is False

    assert [t.id for t in store.find_incomplete_tasks_by_schedule(7)] == ids[1:]
    assert store.delete_tasks_by_ids([]) == 0
    assert store.delete_tasks_by_ids(ids[1:]) == 2
    assert store.count_tasks() == 1
    assert store.get_task(ids[0]).is_complete


def test_goal_store_deductions_and_delete(db_path: Path) -> None:
    store = GoalStore(db_path)
    goal = store.create_for_week(household_id="h1", member_id="kid", title="Help", max_points=100, week_start=date(2025, 1, 5))

    d = Deduction(amount=20, reason="late", recorded_by="mom", at=datetime(2025, 1, 6, tzinfo=UTC))
    updated = store.add_deduction(goal.id, d)
    assert updated is not None
    assert remaining_points(updated) == 80
    assert updated.deductions == (d,)

    assert [g.id for g in store.find_active_goals_for_week(date(2025, 1, 5))] == [goal.id]
    assert store.find_active_goals_for_week(date(2025, 1, 12)) == []

    assert store.delete_by_id(goal.id) is True
    assert store.delete_by_id(goal.id) is False
    assert store.add_deduction(goal.id, d) is None


def test_goal_store_one_goal_per_member_and_week(db_path: Path) -> None:
    store = GoalStore(db_path)
    kw = dict(household_id="h1", member_id="kid", title="Help", max_points=10, week_start=date(2025, 1, 5))
    store.create_for_week(**kw)

    with pytest.raises(sqlite3.IntegrityError):
        store.create_for_week(**kw)
    with pytest.raises(ValueError):
        store.create_for_week(**{**kw, "week_start": date(2025, 1, 12), "max_points": 0})


def test_member_store_roles(db_path: Path) -> None:
    store = MemberStore(db_path)
    store.add_member("h1", "mom", "parent")
    store.add_member("h1", "kid", "child")
    store.add_member("h2", "other", "parent")

    assert sorted(store.member_ids("h1")) == ["kid", "mom"]
    assert store.member_ids_with_role("h1", "child") == ["kid"]

    store.add_member("h1", "kid", "parent")
    assert sorted(store.member_ids_with_role("h1", "parent")) == ["kid", "mom"]

    with pytest.raises(ValueError):
        store.add_member("h1", "x", "guest")
    assert store.remove_member("h1", "kid") is True


@pytest.mark.asyncio
async def test_ledger_awards_and_notifies(db_path: Path) -> None:
    notifier = FakeNotifier()
    ledger = PointsLedgerService(db_path, notifier=notifier)
    request = AwardRequest(
        household_id="h1", member_id="kid", amount=30, source=PointsSource.MANUAL_GRANT, description="Bonus"
    )

    await ledger.award_points(request)
    await ledger.award_points(request, notify=False)

    assert ledger.get_balance("h1", "kid") == 60
    assert len(ledger.list_events("h1", "kid")) == 2
    assert [n.kind for _, n in notifier.sent] == ["points_awarded"]

    with pytest.raises(ValueError):
        await ledger.award_points(
            AwardRequest(household_id="h1", member_id="kid", amount=0, source=PointsSource.MANUAL_GRANT, description="")
        )


@pytest.mark.asyncio
async def test_ledger_notification_failure_is_swallowed(db_path: Path) -> None:
    ledger = PointsLedgerService(db_path, notifier=FakeNotifier(fail=True))
    request = AwardRequest(
        household_id="h1", member_id="kid", amount=5, source=PointsSource.MANUAL_GRANT, description="Bonus"
    )

    event = await ledger.award_points(request)

    assert event.amount == 5
    assert ledger.get_balance("h1", "kid") == 5


@pytest.mark.asyncio
async def test_activity_log_records_entries(db_path: Path) -> None:
    log = ActivityLogService(db_path)
    await log.record_event(
        ActivityEntry(
            member_id="kid",
            type=ActivityType.CONTRIBUTION_GOAL,
            title="Weekly goal completed",
            template_key="activity.contributionGoal.awarded",
            template_params={"points": 80},
        )
    )

    [entry] = log.list_events("kid")
    assert entry["type"] == ActivityType.CONTRIBUTION_GOAL
    assert entry["template_params"] == {"points": 80}


def test_schema_migration_adds_missing_columns(db_path: Path) -> None:
    conn = sqlite3.connect(db_path)
    conn.execute("CREATE TABLE household_members (household_id TEXT NOT NULL, user_id TEXT NOT NULL)")
    conn.commit()
    conn.close()

    MemberStore(db_path)

    conn = sqlite3.connect(db_path)
    cols = {row[1] for row in conn.execute("PRAGMA table_info(household_members)")}
    conn.close()
    assert {"role", "created_at"} <= cols
