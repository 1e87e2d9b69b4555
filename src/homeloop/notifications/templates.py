# src/homeloop/notifications/templates.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True, frozen=True)
class Notification:
    title: str
    body: str
    kind: str
    data: dict[str, Any] = field(default_factory=dict)

    def render_text(self) -> str:
        return f"{self.title}\n{self.body}" if self.body else self.title


def build_goal_awarded_notification(points: int, goal_title: str) -> Notification:
    return Notification(
        title="Weekly goal completed!",
        body=f'You earned {points} points from "{goal_title}"',
        kind="contribution_goal_awarded",
        data={"points": points, "goal_title": goal_title},
    )


def build_goal_zero_balance_notification(goal_title: str) -> Notification:
    return Notification(
        title="Weekly goal ended",
        body=(
            f'Your contribution goal "{goal_title}" ended with no points - '
            "all potential points were deducted"
        ),
        kind="contribution_goal_zero_balance",
        data={"points": 0, "goal_title": goal_title},
    )


def build_points_awarded_notification(amount: int, description: str) -> Notification:
    return Notification(
        title=f"+{amount} points",
        body=description,
        kind="points_awarded",
        data={"points": amount},
    )
