# src/homeloop/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations (SQLite stores, ledger, dispatcher, event bus)
  into the two runners and AppState.
"""

from __future__ import annotations

import logging
from datetime import time

from ..config import get_settings
from ..core.ports import NotificationDispatcher
from ..core.state import AppState
from ..events.bus import RealtimeEventBus
from ..events.emitters import EventEmitter
from ..goals.goal_store import GoalStore
from ..goals.settlement import ContributionSettlementRunner
from ..households.member_store import MemberStore
from ..notifications.dispatcher import (
    LogNotificationDispatcher,
    MatrixNotificationDispatcher,
    create_matrix_client,
)
from ..points.activity import ActivityLogService
from ..points.ledger import PointsLedgerService
from ..scheduler import SchedulerState
from ..tasks.schedule_store import ScheduleStore
from ..tasks.task_generator import DEFAULT_DUE_TIME, TaskRecurrenceRunner
from ..tasks.task_models import parse_time_of_day
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    if settings.matrix_enabled:
        settings.matrix_store_path.mkdir(parents=True, exist_ok=True)


def _default_due_time(settings) -> time:
    raw = str(getattr(settings, "default_due_time", "") or "")
    try:
        hour, minute = parse_time_of_day(raw)
    except ValueError:
        logger.warning("Invalid default due time %r; using %s", raw, DEFAULT_DUE_TIME)
        return DEFAULT_DUE_TIME
    return time(hour, minute)


def _create_notifier(settings) -> NotificationDispatcher:
    if not settings.matrix_enabled:
        return LogNotificationDispatcher()

    async def _factory():
        return await create_matrix_client(settings)

    logger.info(
        "Matrix notifications enabled (member rooms=%d, default room=%s)",
        len(settings.matrix_member_rooms),
        settings.matrix_default_room or "-",
    )
    return MatrixNotificationDispatcher(
        _factory,
        member_rooms=settings.matrix_member_rooms,
        default_room=settings.matrix_default_room,
    )


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)
    db_path = settings.db_path

    schedules = ScheduleStore(db_path)
    tasks = TaskStore(db_path)
    goals = GoalStore(db_path)
    members = MemberStore(db_path)

    notifier = _create_notifier(settings)
    ledger = PointsLedgerService(db_path, notifier=notifier)
    activity = ActivityLogService(db_path)

    bus = RealtimeEventBus()
    events = EventEmitter(bus, members)

    generator = TaskRecurrenceRunner(
        schedules,
        tasks,
        events=events,
        default_due_time=_default_due_time(settings),
    )
    settlement = ContributionSettlementRunner(
        goals,
        ledger,
        notifier,
        activity_log=activity,
        events=events,
    )

    return AppState(
        settings=settings,
        schedules=schedules,
        tasks=tasks,
        goals=goals,
        members=members,
        ledger=ledger,
        activity=activity,
        notifier=notifier,
        bus=bus,
        events=events,
        generator=generator,
        settlement=settlement,
        scheduler_state=SchedulerState(),
    )
