# src/homeloop/goals/goal_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import StrEnum
from typing import Any

from ..tasks.recurrence import as_utc_date, day_of_week


class GoalAction(StrEnum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    DELETED = "DELETED"


@dataclass(slots=True, frozen=True)
class Deduction:
    amount: int
    reason: str
    recorded_by: str | None
    at: datetime

    def __post_init__(self) -> None:
        # bool is an int subclass.
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise ValueError(f"deduction amount must be a whole number of points, got {self.amount!r}")
        if self.amount <= 0:
            raise ValueError(f"deduction amount must be positive, got {self.amount}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "amount": self.amount,
            "reason": self.reason,
            "recorded_by": self.recorded_by,
            "at": self.at.isoformat(),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Deduction:
        return cls(
            amount=int(raw["amount"]),
            reason=str(raw.get("reason") or ""),
            recorded_by=raw.get("recorded_by"),
            at=datetime.fromisoformat(str(raw["at"])),
        )


@dataclass(slots=True)
class ContributionGoal:
    """One member's allowance of points for one week."""

    id: int
    household_id: str
    member_id: str
    week_start_date: date
    title: str
    max_points: int
    deductions: tuple[Deduction, ...] = field(default_factory=tuple)

    # Recurring goals are recreated for the following week once settled.
    recurring: bool = False
    description: str | None = None
    created_at: datetime | None = None


def remaining_points(goal: ContributionGoal) -> int:
    """max_points minus every recorded deduction. May be zero or negative."""
    return int(goal.max_points) - sum(d.amount for d in goal.deductions)


def week_start_for(value: date | datetime) -> date:
    """The Sunday that starts the week containing `value`."""
    d = as_utc_date(value)
    return d - timedelta(days=day_of_week(d))


def previous_week_start(value: date | datetime) -> date:
    """The Sunday that starts the week before the one containing `value`."""
    return week_start_for(value) - timedelta(days=7)
