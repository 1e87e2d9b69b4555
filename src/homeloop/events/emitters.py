# src/homeloop/events/emitters.py

from __future__ import annotations

import logging
from typing import Any

from ..core.ports import EventPublisher, MemberDirectory
from ..goals.goal_models import ContributionGoal, Deduction, GoalAction, remaining_points
from ..tasks.task_models import AssignmentType, TaskInstance

logger = logging.getLogger(__name__)

TASK_CREATED = "task.created"
GOAL_AWARDED = "contribution_goal.awarded"
GOAL_DEDUCTED = "contribution_goal.deducted"
GOAL_UPDATED = "contribution_goal.updated"


def task_to_dto(task: TaskInstance) -> dict[str, Any]:
    return {
        "id": task.id,
        "householdId": task.household_id,
        "name": task.name,
        "description": task.description,
        "dueDate": task.due_at.isoformat(),
        "assignment": task.assignment.to_dict(),
        "scheduleId": task.schedule_id,
        "completedAt": task.completed_at.isoformat() if task.completed_at else None,
    }


def deduction_to_dto(deduction: Deduction) -> dict[str, Any]:
    return {
        "amount": deduction.amount,
        "reason": deduction.reason,
        "recordedBy": deduction.recorded_by,
        "createdAt": deduction.at.isoformat(),
    }


def goal_to_dto(goal: ContributionGoal) -> dict[str, Any]:
    return {
        "id": goal.id,
        "householdId": goal.household_id,
        "memberId": goal.member_id,
        "weekStartDate": goal.week_start_date.isoformat(),
        "title": goal.title,
        "description": goal.description,
        "maxPoints": goal.max_points,
        "currentPoints": remaining_points(goal),
        "recurring": goal.recurring,
        "deductions": [deduction_to_dto(d) for d in goal.deductions],
    }


class EventEmitter:
    """
    Builds realtime payloads and hands them to the publisher.

    Every method is fire-and-forget from the caller's point of view:
    failures (directory lookups, publisher errors) are logged and swallowed.
    """

    def __init__(self, publisher: EventPublisher, directory: MemberDirectory) -> None:
        self._publisher = publisher
        self._directory = directory

    def _task_recipients(self, task: TaskInstance) -> list[str]:
        assignment = task.assignment
        if assignment.type == AssignmentType.MEMBER and assignment.member_id:
            return [assignment.member_id]
        if assignment.type == AssignmentType.ROLE and assignment.role:
            return self._directory.member_ids_with_role(task.household_id, assignment.role)
        return self._directory.member_ids(task.household_id)

    async def _emit(self, event: str, recipients: list[str], payload: dict[str, Any]) -> None:
        if not recipients:
            logger.debug("%s has no recipients; skipped", event)
            return
        await self._publisher.publish(event, recipients, payload)

    async def task_created(self, task: TaskInstance) -> None:
        try:
            recipients = self._task_recipients(task)
            await self._emit(
                TASK_CREATED,
                recipients,
                {
                    "taskId": task.id,
                    "householdId": task.household_id,
                    "assignedTo": recipients,
                    "task": task_to_dto(task),
                },
            )
        except Exception:
            logger.exception("Failed to emit %s task_id=%s", TASK_CREATED, task.id)

    async def goal_awarded(self, goal: ContributionGoal, points: int) -> None:
        try:
            await self._emit(
                GOAL_AWARDED,
                self._directory.member_ids(goal.household_id),
                {
                    "goalId": goal.id,
                    "householdId": goal.household_id,
                    "memberId": goal.member_id,
                    "pointsAwarded": points,
                    "goalTitle": goal.title,
                },
            )
        except Exception:
            logger.exception("Failed to emit %s goal_id=%s", GOAL_AWARDED, goal.id)

    async def goal_deducted(self, goal: ContributionGoal, deduction: Deduction) -> None:
        try:
            await self._emit(
                GOAL_DEDUCTED,
                self._directory.member_ids(goal.household_id),
                {
                    "goalId": goal.id,
                    "householdId": goal.household_id,
                    "memberId": goal.member_id,
                    "goal": goal_to_dto(goal),
                    "deduction": deduction_to_dto(deduction),
                },
            )
        except Exception:
            logger.exception("Failed to emit %s goal_id=%s", GOAL_DEDUCTED, goal.id)

    async def goal_updated(self, goal: ContributionGoal, action: GoalAction) -> None:
        try:
            await self._emit(
                GOAL_UPDATED,
                self._directory.member_ids(goal.household_id),
                {
                    "goalId": goal.id,
                    "householdId": goal.household_id,
                    "memberId": goal.member_id,
                    "action": action.value,
                    "goal": goal_to_dto(goal) if action != GoalAction.DELETED else None,
                },
            )
        except Exception:
            logger.exception("Failed to emit %s goal_id=%s", GOAL_UPDATED, goal.id)
