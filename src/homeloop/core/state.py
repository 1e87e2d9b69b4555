# src/homeloop/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..events.bus import RealtimeEventBus
    from ..events.emitters import EventEmitter
    from ..goals.goal_store import GoalStore
    from ..goals.settlement import ContributionSettlementRunner
    from ..households.member_store import MemberStore
    from ..points.activity import ActivityLogService
    from ..points.ledger import PointsLedgerService
    from ..scheduler import SchedulerBackgroundRunner, SchedulerState
    from ..tasks.schedule_store import ScheduleStore
    from ..tasks.task_generator import TaskRecurrenceRunner
    from ..tasks.task_store import TaskStore
    from .ports import NotificationDispatcher


@dataclass
class AppState:
    """
    Shared application state.

    Built once by the composition root (cli/bootstrap.py) and passed to commands
    and the scheduler thread. Stores open short-lived SQLite connections per call,
    so the same objects are safe to use from both threads.
    """

    settings: Any

    schedules: ScheduleStore
    tasks: TaskStore
    goals: GoalStore
    members: MemberStore
    ledger: PointsLedgerService
    activity: ActivityLogService

    notifier: NotificationDispatcher
    bus: RealtimeEventBus
    events: EventEmitter

    generator: TaskRecurrenceRunner
    settlement: ContributionSettlementRunner

    scheduler_state: SchedulerState
    scheduler_runner: SchedulerBackgroundRunner | None = None

    # Last summaries, for /status.
    last_results: dict[str, Any] = field(default_factory=dict)
