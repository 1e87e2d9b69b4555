# src/homeloop/goals/goal_api.py

from __future__ import annotations

import logging
from datetime import date

from ..core.sqlite_store import now_utc
from ..events.emitters import EventEmitter
from ..tasks.recurrence import as_utc_date
from .goal_models import ContributionGoal, Deduction, GoalAction, remaining_points, week_start_for
from .goal_store import GoalStore

logger = logging.getLogger(__name__)


async def create_goal(
    store: GoalStore,
    events: EventEmitter | None,
    *,
    household_id: str,
    member_id: str,
    title: str,
    max_points: int,
    week_start: date | None = None,
    recurring: bool = False,
    description: str | None = None,
) -> ContributionGoal:
    """
    Create a weekly goal for a member.
    week_start defaults to the Sunday of the current week; any other date is
    snapped back to the Sunday of its week.
    """
    week = week_start_for(as_utc_date(week_start) if week_start is not None else now_utc())
    goal = store.create_for_week(
        household_id=household_id,
        member_id=member_id,
        title=title,
        max_points=max_points,
        week_start=week,
        recurring=recurring,
        description=description,
    )
    logger.info(
        "Contribution goal created goal_id=%s member=%s week_start=%s max_points=%s",
        goal.id,
        member_id,
        week,
        max_points,
    )

    if events is not None:
        await events.goal_updated(goal, GoalAction.CREATED)
    return goal


async def record_deduction(
    store: GoalStore,
    events: EventEmitter | None,
    goal_id: int,
    *,
    amount: int,
    reason: str,
    recorded_by: str | None = None,
) -> ContributionGoal:
    """
    Record a deduction against a goal. Raises ValueError for a non-positive
    amount or an unknown goal. Remaining points are allowed to go negative;
    settlement treats anything <= 0 as "nothing earned".
    """
    deduction = Deduction(amount=amount, reason=reason, recorded_by=recorded_by, at=now_utc())

    goal = store.add_deduction(goal_id, deduction)
    if goal is None:
        raise ValueError(f"contribution goal {goal_id} not found")

    logger.info(
        "Deduction recorded goal_id=%s member=%s amount=%s remaining=%s",
        goal.id,
        goal.member_id,
        deduction.amount,
        remaining_points(goal),
    )

    if events is not None:
        await events.goal_deducted(goal, deduction)
    return goal
