# src/homeloop/goals/settlement.py

from __future__ import annotations

"""
Weekly settlement of contribution goals.

Every goal of the finished week is turned into points:
    remaining = max_points - sum(deductions)
    remaining > 0  -> credit the ledger, "goal completed" notification
    remaining <= 0 -> no ledger call, "zero balance" notification
Then the goal is deleted (and re-created for the next week if recurring).

Notifications and realtime events are best-effort. Ledger, activity and
delete failures fail only the goal at hand; the goal stays in the store and
is picked up again by the next run for the same week.
"""

import logging
from datetime import date, datetime, timedelta

from ..core.batch import RecordOutcome, RecordResult, SettlementSummary
from ..core.ports import ActivityLog, GoalRepo, NotificationDispatcher, PointsLedger
from ..events.emitters import EventEmitter
from ..logging_setup import PER_RECORD
from ..notifications.templates import build_goal_awarded_notification, build_goal_zero_balance_notification
from ..points.points_models import ActivityEntry, ActivityType, AwardRequest, PointsSource
from ..tasks.recurrence import as_utc_date
from .goal_models import ContributionGoal, remaining_points

logger = logging.getLogger(__name__)

ACTIVITY_AWARDED_KEY = "activity.contributionGoal.awarded"
ACTIVITY_DEDUCTED_KEY = "activity.contributionGoal.deducted"


def build_award_request(goal: ContributionGoal, points: int) -> AwardRequest:
    return AwardRequest(
        household_id=goal.household_id,
        member_id=goal.member_id,
        amount=points,
        source=PointsSource.CONTRIBUTION_GOAL_WEEKLY,
        description=f"Weekly contribution goal: {goal.title}",
        metadata={
            "goalId": goal.id,
            "weekStartDate": goal.week_start_date.isoformat(),
            "maxPoints": goal.max_points,
            "deductionsCount": len(goal.deductions),
        },
    )


def build_activity_entry(goal: ContributionGoal, points: int) -> ActivityEntry:
    if points > 0:
        return ActivityEntry(
            member_id=goal.member_id,
            type=ActivityType.CONTRIBUTION_GOAL,
            detail="AWARDED",
            title="Weekly goal completed",
            description=f"Earned {points} points from {goal.title}",
            template_key=ACTIVITY_AWARDED_KEY,
            template_params={"points": points, "goalTitle": goal.title},
            metadata={"goalId": goal.id, "points": points},
        )
    return ActivityEntry(
        member_id=goal.member_id,
        type=ActivityType.CONTRIBUTION_GOAL,
        detail="DEDUCTED",
        title="Weekly goal ended",
        description=f"All points deducted from {goal.title}",
        template_key=ACTIVITY_DEDUCTED_KEY,
        template_params={"goalTitle": goal.title},
        metadata={"goalId": goal.id, "points": 0},
    )


class ContributionSettlementRunner:
    def __init__(
        self,
        goal_store: GoalRepo,
        ledger: PointsLedger,
        notifier: NotificationDispatcher,
        *,
        activity_log: ActivityLog | None = None,
        events: EventEmitter | None = None,
    ) -> None:
        self._goals = goal_store
        self._ledger = ledger
        self._notifier = notifier
        self._activity = activity_log
        self._events = events

    async def process_week(self, week_start: date | datetime) -> SettlementSummary:
        week = as_utc_date(week_start)
        logger.info("Processing contribution goals week_start=%s", week)

        goals = self._goals.find_active_goals_for_week(week)
        summary = SettlementSummary()

        if not goals:
            logger.info("No contribution goals to process week_start=%s", week)
            return summary

        logger.info("Found contribution goals count=%d week_start=%s", len(goals), week)

        for goal in goals:
            try:
                points = await self._settle_goal(goal)
                summary.add(
                    RecordResult(goal.id, RecordOutcome.SETTLED, owner_id=goal.member_id, points_awarded=points)
                )
            except Exception as exc:
                logger.exception(
                    "Failed to process contribution goal goal_id=%s member=%s", goal.id, goal.member_id
                )
                summary.add(RecordResult(goal.id, RecordOutcome.FAILED, owner_id=goal.member_id, error=exc))

        logger.info("Contribution goal processing completed week_start=%s %s", week, summary.as_log_dict())
        return summary

    async def _settle_goal(self, goal: ContributionGoal) -> int:
        remaining = remaining_points(goal)
        points = remaining if remaining > 0 else 0

        logger.debug(
            "Settling goal goal_id=%s member=%s max=%s deductions=%d remaining=%s",
            goal.id,
            goal.member_id,
            goal.max_points,
            len(goal.deductions),
            remaining,
        )

        if points > 0:
            # The runner sends its own goal-specific notification below.
            await self._ledger.award_points(build_award_request(goal, points), notify=False)

        if self._activity is not None:
            await self._activity.record_event(build_activity_entry(goal, points))

        if self._events is not None:
            await self._events.goal_awarded(goal, points)

        await self._notify(goal, points)

        deleted = self._goals.delete_by_id(goal.id)
        if not deleted:
            logger.warning("Contribution goal already gone at delete goal_id=%s", goal.id)

        if goal.recurring:
            self._recreate_for_next_week(goal)

        logger.info(
            "Contribution goal settled goal_id=%s member=%s points=%s",
            goal.id,
            goal.member_id,
            points,
            extra=PER_RECORD,
        )
        return points

    async def _notify(self, goal: ContributionGoal, points: int) -> None:
        if points > 0:
            notification = build_goal_awarded_notification(points, goal.title)
        else:
            notification = build_goal_zero_balance_notification(goal.title)

        try:
            await self._notifier.send_to_user(goal.member_id, notification)
        except Exception:
            logger.exception(
                "Failed to send contribution goal notification goal_id=%s member=%s", goal.id, goal.member_id
            )

    def _recreate_for_next_week(self, goal: ContributionGoal) -> None:
        next_week = goal.week_start_date + timedelta(days=7)
        try:
            created = self._goals.create_for_week(
                household_id=goal.household_id,
                member_id=goal.member_id,
                title=goal.title,
                max_points=goal.max_points,
                week_start=next_week,
                recurring=True,
                description=goal.description,
            )
            logger.info(
                "Recurring contribution goal renewed goal_id=%s new_goal_id=%s week_start=%s",
                goal.id,
                created.id,
                next_week,
                extra=PER_RECORD,
            )
        except Exception:
            logger.exception(
                "Failed to renew recurring contribution goal goal_id=%s week_start=%s", goal.id, next_week
            )
