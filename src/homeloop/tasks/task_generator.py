# src/homeloop/tasks/task_generator.py

from __future__ import annotations

"""
Task generation from recurring schedules.

For one calendar date, every active schedule is processed in isolation:
- skip if a task already exists for (schedule, date)   <- idempotency
- skip if the recurrence rule is not due
- delete still-open earlier occurrences                <- one open task per schedule
- create the new task, then record last_generated_date

A failing schedule is logged and counted; the batch keeps going.
Failing to fetch the schedule list is fatal and propagates to the caller.
"""

import logging
from collections.abc import Callable
from datetime import UTC, date, datetime, time, timedelta

from ..core.batch import GenerationSummary, RecordOutcome, RecordResult
from ..core.ports import ScheduleRepo, TaskRepo
from ..events.emitters import EventEmitter
from ..logging_setup import PER_RECORD
from .recurrence import as_utc_date, is_within_date_range, should_generate_for_date
from .task_models import NewTask, ScheduleRecord, parse_time_of_day

logger = logging.getLogger(__name__)

DEFAULT_DUE_TIME = time(21, 0)

ActivePredicate = Callable[[ScheduleRecord, date], bool]


def schedule_is_active(schedule: ScheduleRecord, on_date: date) -> bool:
    """Default activity check: not archived and inside the rule's own date range."""
    if schedule.archived:
        return False
    return is_within_date_range(on_date, schedule.rule.start_date, schedule.rule.end_date)


def build_due_at(on_date: date, time_of_day: str | None, default: time = DEFAULT_DUE_TIME) -> datetime:
    """Due timestamp (UTC) on `on_date`: the rule's HH:MM when set, else `default`."""
    if time_of_day:
        hour, minute = parse_time_of_day(time_of_day)
        return datetime(on_date.year, on_date.month, on_date.day, hour, minute, tzinfo=UTC)
    return datetime.combine(on_date, default, tzinfo=UTC)


def utc_today() -> date:
    return datetime.now(UTC).date()


class TaskRecurrenceRunner:
    def __init__(
        self,
        schedule_store: ScheduleRepo,
        task_store: TaskRepo,
        *,
        events: EventEmitter | None = None,
        is_active: ActivePredicate | None = None,
        default_due_time: time = DEFAULT_DUE_TIME,
    ) -> None:
        self._schedules = schedule_store
        self._tasks = task_store
        self._events = events
        self._is_active = is_active or schedule_is_active
        self._default_due_time = default_due_time

    async def generate_for_date(self, on_date: date | datetime) -> GenerationSummary:
        day = as_utc_date(on_date)
        logger.info("Starting task generation date=%s", day)

        schedules = self._schedules.find_active_schedules(on_date=day)
        active = [s for s in schedules if self._is_active(s, day)]
        logger.debug("Found active schedules count=%d date=%s", len(active), day)

        summary = GenerationSummary()
        for schedule in active:
            try:
                outcome = await self._process_schedule(schedule, day)
                summary.add(RecordResult(schedule.id, outcome, owner_id=schedule.household_id))
            except Exception as exc:
                logger.exception(
                    "Failed to generate task from schedule schedule_id=%s household=%s date=%s",
                    schedule.id,
                    schedule.household_id,
                    day,
                )
                summary.add(
                    RecordResult(schedule.id, RecordOutcome.FAILED, owner_id=schedule.household_id, error=exc)
                )

        logger.info("Task generation completed date=%s %s", day, summary.as_log_dict())
        return summary

    async def generate_missed_on_startup(
        self,
        today: date | None = None,
        *,
        lookback_days: int = 0,
    ) -> GenerationSummary:
        """
        Catch up after downtime.

        By default only `today` is generated: older missed occurrences would be
        superseded right away by the cleanup step, so backfilling them is pointless.
        With lookback_days > 0 the dates are replayed oldest first. Re-running
        over an already generated date is a no-op thanks to the existence check.
        """
        end = as_utc_date(today) if today is not None else utc_today()
        start = end - timedelta(days=max(0, int(lookback_days)))
        logger.info("Starting task generation on startup from=%s to=%s", start, end)

        summary = GenerationSummary()
        day = start
        while day <= end:
            summary.extend(await self.generate_for_date(day))
            day += timedelta(days=1)

        logger.info("Task generation on startup completed %s", summary.as_log_dict())
        return summary

    async def generate_task_for_schedule(
        self,
        schedule: ScheduleRecord,
        on_date: date | datetime | None = None,
    ) -> bool:
        """Generate right away for a freshly created schedule. Returns True when a task was created."""
        day = as_utc_date(on_date) if on_date is not None else utc_today()
        try:
            return await self._process_schedule(schedule, day) == RecordOutcome.CREATED
        except Exception:
            logger.exception(
                "Failed to generate task for schedule schedule_id=%s name=%s", schedule.id, schedule.name
            )
            raise

    async def _process_schedule(self, schedule: ScheduleRecord, day: date) -> RecordOutcome:
        existing = self._tasks.find_task_by_schedule_and_date(schedule.id, day)
        if existing is not None:
            logger.debug(
                "Task already exists schedule_id=%s task_id=%s date=%s", schedule.id, existing.id, day
            )
            return RecordOutcome.SKIPPED_EXISTS

        if not should_generate_for_date(schedule.rule, day, schedule.last_generated_date):
            logger.debug("Skipping schedule - criteria not met schedule_id=%s date=%s", schedule.id, day)
            return RecordOutcome.SKIPPED_NOT_DUE

        self._cleanup_incomplete_tasks(schedule)

        task = self._tasks.create_task(
            NewTask(
                household_id=schedule.household_id,
                name=schedule.name,
                due_at=build_due_at(day, schedule.rule.time_of_day, self._default_due_time),
                assignment=schedule.assignment,
                schedule_id=schedule.id,
                description=schedule.description,
                created_by=schedule.created_by,
            )
        )
        self._schedules.update_last_generated_date(schedule.id, day)
        schedule.last_generated_date = day

        logger.info(
            "Task generated from schedule task_id=%s schedule_id=%s household=%s due_at=%s",
            task.id,
            schedule.id,
            schedule.household_id,
            task.due_at.isoformat(),
            extra=PER_RECORD,
        )

        if self._events is not None:
            await self._events.task_created(task)

        return RecordOutcome.CREATED

    def _cleanup_incomplete_tasks(self, schedule: ScheduleRecord) -> None:
        incomplete = self._tasks.find_incomplete_tasks_by_schedule(schedule.id)
        if not incomplete:
            return

        task_ids = [t.id for t in incomplete]
        deleted = self._tasks.delete_tasks_by_ids(task_ids)
        logger.info(
            "Cleaned up incomplete tasks schedule_id=%s deleted=%s task_ids=%s",
            schedule.id,
            deleted,
            task_ids,
            extra=PER_RECORD,
        )
