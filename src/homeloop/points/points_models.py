# src/homeloop/points/points_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class PointsSource(StrEnum):
    CONTRIBUTION_GOAL_WEEKLY = "contribution_goal_weekly"
    TASK_COMPLETION = "task_completion"
    MANUAL_GRANT = "manual_grant"


@dataclass(slots=True, frozen=True)
class AwardRequest:
    household_id: str
    member_id: str
    amount: int
    source: PointsSource
    description: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class PointsEvent:
    id: int
    household_id: str
    member_id: str
    amount: int
    source: str
    description: str
    created_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)


class ActivityType(StrEnum):
    CONTRIBUTION_GOAL = "CONTRIBUTION_GOAL"
    TASK = "TASK"
    POINTS = "POINTS"


@dataclass(slots=True, frozen=True)
class ActivityEntry:
    member_id: str
    type: ActivityType
    title: str
    detail: str | None = None
    description: str | None = None
    template_key: str | None = None
    template_params: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
