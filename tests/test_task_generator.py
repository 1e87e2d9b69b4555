# tests/test_task_generator.py

from __future__ import annotations

from datetime import UTC, date, datetime, time

import pytest

from homeloop.core.batch import RecordOutcome
from homeloop.events.emitters import TASK_CREATED, EventEmitter
from homeloop.tasks.task_generator import TaskRecurrenceRunner, build_due_at
from homeloop.tasks.task_models import Assignment, TaskInstance

from .conftest import make_schedule
from .fakes import FakeDirectory, FakePublisher, FakeScheduleRepo, FakeTaskRepo, complete

MON, WED, FRI = 1, 3, 5
WEDNESDAY = date(2025, 1, 8)


def _open_task(task_id: int, schedule_id: int, due: date) -> TaskInstance:
    return TaskInstance(
        id=task_id,
        household_id="h1",
        name=f"chore-{schedule_id}",
        due_at=datetime(due.year, due.month, due.day, 21, 0, tzinfo=UTC),
        assignment=Assignment.unassigned(),
        schedule_id=schedule_id,
    )


def test_build_due_at_defaults_to_21_utc() -> None:
    assert build_due_at(WEDNESDAY, None) == datetime(2025, 1, 8, 21, 0, tzinfo=UTC)
    assert build_due_at(WEDNESDAY, "07:45") == datetime(2025, 1, 8, 7, 45, tzinfo=UTC)
    assert build_due_at(WEDNESDAY, None, time(18, 30)) == datetime(2025, 1, 8, 18, 30, tzinfo=UTC)


@pytest.mark.asyncio
async def test_generates_task_and_records_last_generated_date() -> None:
    schedules = FakeScheduleRepo([make_schedule(1, days={MON, WED, FRI}, last_generated=date(2025, 1, 6))])
    tasks = FakeTaskRepo()
    runner = TaskRecurrenceRunner(schedules, tasks)

    summary = await runner.generate_for_date(WEDNESDAY)

    assert summary.created_count == 1
    assert summary.error_count == 0
    created = tasks.for_schedule(1)
    assert len(created) == 1
    assert created[0].due_at == datetime(2025, 1, 8, 21, 0, tzinfo=UTC)
    assert created[0].name == "chore-1"
    assert schedules.updates == [(1, WEDNESDAY)]


@pytest.mark.asyncio
async def test_uses_time_of_day_from_rule() -> None:
    schedules = FakeScheduleRepo([make_schedule(1, days={WED}, time_of_day="08:15")])
    tasks = FakeTaskRepo()

    await TaskRecurrenceRunner(schedules, tasks).generate_for_date(WEDNESDAY)

    assert tasks.for_schedule(1)[0].due_at == datetime(2025, 1, 8, 8, 15, tzinfo=UTC)


@pytest.mark.asyncio
async def test_second_run_for_same_date_is_a_no_op() -> None:
    schedules = FakeScheduleRepo([make_schedule(1, days={WED})])
    tasks = FakeTaskRepo()
    runner = TaskRecurrenceRunner(schedules, tasks)

    first = await runner.generate_for_date(WEDNESDAY)
    second = await runner.generate_for_date(WEDNESDAY)

    assert first.created_count == 1
    assert second.created_count == 0
    assert second.count(RecordOutcome.SKIPPED_EXISTS) == 1
    assert len(tasks.for_schedule(1)) == 1
    assert tasks.delete_calls == []


@pytest.mark.asyncio
async def test_existing_task_short_circuits_even_if_rule_would_match() -> None:
    schedules = FakeScheduleRepo([make_schedule(1, days={WED}, last_generated=date(2025, 1, 1))])
    tasks = FakeTaskRepo([_open_task(10, 1, WEDNESDAY)])

    summary = await TaskRecurrenceRunner(schedules, tasks).generate_for_date(WEDNESDAY)

    assert summary.count(RecordOutcome.SKIPPED_EXISTS) == 1
    assert schedules.updates == []
    assert tasks.delete_calls == []


@pytest.mark.asyncio
async def test_stale_incomplete_tasks_are_replaced() -> None:
    schedules = FakeScheduleRepo([make_schedule(1, days={MON, WED, FRI}, last_generated=date(2025, 1, 6))])
    stale = [_open_task(10, 1, date(2025, 1, 1)), _open_task(11, 1, date(2025, 1, 3)), _open_task(12, 1, date(2025, 1, 6))]
    done = complete(_open_task(13, 1, date(2024, 12, 30)))
    tasks = FakeTaskRepo([*stale, done])

    summary = await TaskRecurrenceRunner(schedules, tasks).generate_for_date(WEDNESDAY)

    assert summary.created_count == 1
    assert tasks.delete_calls == [[10, 11, 12]]
    remaining = tasks.for_schedule(1)
    assert {t.id for t in remaining if t.completed_at is None} == {14}
    # Completed history is never touched.
    assert 13 in tasks.tasks


@pytest.mark.asyncio
async def test_no_delete_call_without_incomplete_tasks() -> None:
    schedules = FakeScheduleRepo([make_schedule(1, days={WED})])
    tasks = FakeTaskRepo([complete(_open_task(10, 1, date(2025, 1, 6)))])

    await TaskRecurrenceRunner(schedules, tasks).generate_for_date(WEDNESDAY)

    assert tasks.delete_calls == []


@pytest.mark.asyncio
async def test_schedule_not_due_is_skipped() -> None:
    schedules = FakeScheduleRepo(
        [
            make_schedule(1, days={MON}),
            make_schedule(2, days={WED}, interval=2, last_generated=date(2025, 1, 1)),
        ]
    )
    tasks = FakeTaskRepo()

    summary = await TaskRecurrenceRunner(schedules, tasks).generate_for_date(WEDNESDAY)

    assert summary.count(RecordOutcome.SKIPPED_NOT_DUE) == 2
    assert summary.created_count == 0
    assert tasks.tasks == {}
    assert schedules.updates == []


@pytest.mark.asyncio
async def test_one_failing_schedule_does_not_stop_the_batch() -> None:
    schedules = FakeScheduleRepo([make_schedule(i, days={WED}) for i in (1, 2, 3)])
    tasks = FakeTaskRepo()
    tasks.fail_create_for = {2}

    summary = await TaskRecurrenceRunner(schedules, tasks).generate_for_date(WEDNESDAY)

    assert summary.total == 3
    assert summary.created_count == 2
    assert summary.error_count == 1
    assert summary.failed_ids == [2]
    assert summary.as_log_dict() == {
        "schedulesProcessed": 3,
        "tasksCreated": 2,
        "tasksSkipped": 0,
        "errorCount": 1,
    }
    # The failed schedule keeps its old marker so the next run retries it.
    assert schedules.schedules[2].last_generated_date is None
    assert schedules.schedules[3].last_generated_date == WEDNESDAY


@pytest.mark.asyncio
async def test_candidate_fetch_failure_propagates() -> None:
    runner = TaskRecurrenceRunner(FakeScheduleRepo(fail_fetch=True), FakeTaskRepo())

    with pytest.raises(RuntimeError, match="schedule store unavailable"):
        await runner.generate_for_date(WEDNESDAY)


@pytest.mark.asyncio
async def test_is_active_predicate_filters_candidates() -> None:
    schedules = FakeScheduleRepo(
        [
            make_schedule(1, days={WED}),
            make_schedule(2, days={WED}, archived=True),
            make_schedule(3, days={WED}, end=date(2025, 1, 7)),
        ]
    )
    tasks = FakeTaskRepo()

    summary = await TaskRecurrenceRunner(schedules, tasks).generate_for_date(WEDNESDAY)

    assert summary.total == 1
    assert [t.schedule_id for t in tasks.tasks.values()] == [1]

    only_two = TaskRecurrenceRunner(schedules, FakeTaskRepo(), is_active=lambda s, d: s.id == 2)
    assert (await only_two.generate_for_date(WEDNESDAY)).created_count == 1


@pytest.mark.asyncio
async def test_startup_catch_up_generates_only_today_by_default() -> None:
    schedules = FakeScheduleRepo([make_schedule(1, days={MON, WED, FRI})])
    tasks = FakeTaskRepo()
    runner = TaskRecurrenceRunner(schedules, tasks)

    summary = await runner.generate_missed_on_startup(WEDNESDAY)
    again = await runner.generate_missed_on_startup(WEDNESDAY)

    assert summary.created_count == 1
    assert again.created_count == 0
    assert [t.due_at.date() for t in tasks.tasks.values()] == [WEDNESDAY]


@pytest.mark.asyncio
async def test_startup_catch_up_with_lookback_keeps_only_latest_open_task() -> None:
    schedules = FakeScheduleRepo([make_schedule(1, days={MON, WED, FRI})])
    tasks = FakeTaskRepo()

    summary = await TaskRecurrenceRunner(schedules, tasks).generate_missed_on_startup(WEDNESDAY, lookback_days=3)

    # Sun 5th .. Wed 8th: Monday and Wednesday are due.
    assert summary.created_count == 2
    open_tasks = [t for t in tasks.tasks.values() if t.completed_at is None]
    assert [t.due_at.date() for t in open_tasks] == [WEDNESDAY]
    assert schedules.schedules[1].last_generated_date == WEDNESDAY


@pytest.mark.asyncio
async def test_generate_task_for_schedule_immediately() -> None:
    schedule = make_schedule(1, days={WED})
    schedules = FakeScheduleRepo([schedule])
    tasks = FakeTaskRepo()
    runner = TaskRecurrenceRunner(schedules, tasks)

    assert await runner.generate_task_for_schedule(schedule, WEDNESDAY) is True
    assert await runner.generate_task_for_schedule(schedule, WEDNESDAY) is False

    tasks.fail_create_for = {1}
    with pytest.raises(RuntimeError):
        await runner.generate_task_for_schedule(schedule, date(2025, 1, 15))


@pytest.mark.asyncio
async def test_task_created_event_goes_to_role_members() -> None:
    publisher = FakePublisher()
    directory = FakeDirectory({"h1": {"mom": "parent", "kid1": "child", "kid2": "child"}})
    schedules = FakeScheduleRepo([make_schedule(1, days={WED}, assignment=Assignment.for_role("child"))])
    tasks = FakeTaskRepo()
    runner = TaskRecurrenceRunner(schedules, tasks, events=EventEmitter(publisher, directory))

    await runner.generate_for_date(WEDNESDAY)

    assert publisher.names() == [TASK_CREATED]
    event = publisher.published[0]
    assert event.recipients == ["kid1", "kid2"]
    assert event.payload["task"]["scheduleId"] == 1


@pytest.mark.asyncio
async def test_event_failure_does_not_fail_generation() -> None:
    publisher = FakePublisher(fail=True)
    directory = FakeDirectory({"h1": {"mom": "parent"}})
    schedules = FakeScheduleRepo([make_schedule(1, days={WED})])
    tasks = FakeTaskRepo()
    runner = TaskRecurrenceRunner(schedules, tasks, events=EventEmitter(publisher, directory))

    summary = await runner.generate_for_date(WEDNESDAY)

    assert summary.created_count == 1
    assert summary.error_count == 0
