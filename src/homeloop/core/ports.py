# src/homeloop/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the recurrence engine.

The runners depend on Protocols instead of concrete implementations.
Stores are plain synchronous calls (SQLite in this repo); services are
coroutines that the runners await one at a time.
"""

from collections.abc import Sequence
from datetime import date
from typing import TYPE_CHECKING, Any, Awaitable, Protocol

if TYPE_CHECKING:
    from ..goals.goal_models import ContributionGoal
    from ..notifications.templates import Notification
    from ..points.points_models import ActivityEntry, AwardRequest, PointsEvent
    from ..tasks.task_models import NewTask, ScheduleRecord, TaskInstance


class ScheduleRepo(Protocol):
    def find_active_schedules(self, on_date: date | None = None) -> list[ScheduleRecord]: ...
    def update_last_generated_date(self, schedule_id: int, value: date) -> None: ...


class TaskRepo(Protocol):
    def find_task_by_schedule_and_date(self, schedule_id: int, value: date) -> TaskInstance | None: ...
    def find_incomplete_tasks_by_schedule(self, schedule_id: int) -> list[TaskInstance]: ...
    def delete_tasks_by_ids(self, task_ids: Sequence[int]) -> int: ...
    def create_task(self, data: NewTask) -> TaskInstance: ...


class GoalRepo(Protocol):
    def find_active_goals_for_week(self, week_start: date) -> list[ContributionGoal]: ...
    def delete_by_id(self, goal_id: int) -> bool: ...

    def create_for_week(
            self,
            *,
            household_id: str,
            member_id: str,
            title: str,
            max_points: int,
            week_start: date,
            recurring: bool = False,
            description: str | None = None,
    ) -> ContributionGoal: ...


class PointsLedger(Protocol):
    """Points are credited here; notify=False means the caller notifies on its own."""

    def award_points(self, request: AwardRequest, *, notify: bool = True) -> Awaitable[PointsEvent]: ...


class ActivityLog(Protocol):
    def record_event(self, entry: ActivityEntry) -> Awaitable[Any]: ...


class NotificationDispatcher(Protocol):
    def send_to_user(self, user_id: str, notification: Notification) -> Awaitable[None]: ...


class EventPublisher(Protocol):
    """Realtime fan-out: deliver `payload` under `event` to every id in `recipients`."""

    def publish(self, event: str, recipients: Sequence[str], payload: dict[str, Any]) -> Awaitable[None]: ...


class MemberDirectory(Protocol):
    def member_ids(self, household_id: str) -> list[str]: ...
    def member_ids_with_role(self, household_id: str, role: str) -> list[str]: ...
