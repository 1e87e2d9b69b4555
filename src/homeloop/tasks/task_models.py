# src/homeloop/tasks/task_models.py

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import Any

_TIME_OF_DAY_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

MIN_WEEKLY_INTERVAL = 1
MAX_WEEKLY_INTERVAL = 4


def parse_time_of_day(value: str) -> tuple[int, int]:
    """Parse "HH:MM" (24h) into (hour, minute). Raises ValueError on bad input."""
    m = _TIME_OF_DAY_RE.match((value or "").strip())
    if not m:
        raise ValueError(f"time_of_day must be HH:MM, got {value!r}")
    return int(m.group(1)), int(m.group(2))


class AssignmentType(StrEnum):
    UNASSIGNED = "unassigned"
    ROLE = "role"
    MEMBER = "member"


@dataclass(slots=True, frozen=True)
class Assignment:
    """
    Who a task belongs to.

    - UNASSIGNED: anyone in the household may pick it up
    - ROLE: every member holding `role` ("parent" / "child")
    - MEMBER: exactly one member
    """

    type: AssignmentType = AssignmentType.UNASSIGNED
    role: str | None = None
    member_id: str | None = None

    def __post_init__(self) -> None:
        if self.type == AssignmentType.ROLE and not self.role:
            raise ValueError("role assignment requires a role")
        if self.type == AssignmentType.MEMBER and not self.member_id:
            raise ValueError("member assignment requires a member_id")

    @classmethod
    def unassigned(cls) -> Assignment:
        return cls()

    @classmethod
    def for_role(cls, role: str) -> Assignment:
        return cls(type=AssignmentType.ROLE, role=role)

    @classmethod
    def for_member(cls, member_id: str) -> Assignment:
        return cls(type=AssignmentType.MEMBER, member_id=member_id)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type.value}
        if self.role:
            out["role"] = self.role
        if self.member_id:
            out["member_id"] = self.member_id
        return out

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> Assignment:
        if not raw:
            return cls()
        try:
            kind = AssignmentType(raw.get("type") or AssignmentType.UNASSIGNED)
        except ValueError:
            kind = AssignmentType.UNASSIGNED
        return cls(type=kind, role=raw.get("role"), member_id=raw.get("member_id"))


@dataclass(slots=True, frozen=True)
class RecurrenceRule:
    """
    When a schedule is due.

    days_of_week uses 0=Sunday .. 6=Saturday.
    weekly_interval is the minimum number of weeks between generations (1..4).
    """

    days_of_week: frozenset[int]
    weekly_interval: int
    start_date: date
    end_date: date | None = None
    time_of_day: str | None = None

    def __post_init__(self) -> None:
        days = frozenset(int(d) for d in self.days_of_week)
        object.__setattr__(self, "days_of_week", days)

        if not days:
            raise ValueError("days_of_week must not be empty")
        if any(d < 0 or d > 6 for d in days):
            raise ValueError(f"days_of_week must be within 0..6, got {sorted(days)}")
        if not MIN_WEEKLY_INTERVAL <= int(self.weekly_interval) <= MAX_WEEKLY_INTERVAL:
            raise ValueError(f"weekly_interval must be within 1..4, got {self.weekly_interval}")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if self.time_of_day is not None:
            parse_time_of_day(self.time_of_day)


@dataclass(slots=True)
class ScheduleRecord:
    id: int
    household_id: str
    name: str
    rule: RecurrenceRule
    assignment: Assignment

    # Mutated only by the recurrence runner after a successful generation.
    last_generated_date: date | None = None

    description: str | None = None
    created_by: str | None = None
    archived: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class TaskInstance:
    id: int
    household_id: str
    name: str
    due_at: datetime
    assignment: Assignment

    # None for ad-hoc tasks.
    schedule_id: int | None = None
    completed_at: datetime | None = None

    description: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None


@dataclass(slots=True, frozen=True)
class NewTask:
    """Payload for TaskRepo.create_task()."""

    household_id: str
    name: str
    due_at: datetime
    assignment: Assignment = field(default_factory=Assignment)
    schedule_id: int | None = None
    description: str | None = None
    created_by: str | None = None
