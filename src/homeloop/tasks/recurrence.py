# src/homeloop/tasks/recurrence.py

"""
Recurrence matching.

Pure predicates deciding whether a schedule is due on a calendar date.
Everything works on calendar dates: datetimes are reduced to their UTC date
before comparison, so time-of-day never influences the outcome.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, date, datetime

from .task_models import RecurrenceRule

DAYS_PER_WEEK = 7


def as_utc_date(value: date | datetime) -> date:
    """Reduce a date/datetime to a calendar date (aware datetimes are converted to UTC first)."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.date()
    return value


def day_of_week(value: date | datetime) -> int:
    """Day of week with 0=Sunday .. 6=Saturday."""
    return (as_utc_date(value).weekday() + 1) % DAYS_PER_WEEK


def matches_day_of_week(day: int, days_of_week: Iterable[int]) -> bool:
    return day in set(days_of_week)


def matches_weekly_interval(
    last_generated: date | datetime | None,
    candidate: date | datetime,
    interval: int,
) -> bool:
    """
    True when enough time has passed since the last generation.

    - No previous generation: always True.
    - Same day (or earlier): always False.
    - interval 1: any later day.
    - interval N >= 2: at least N * 7 days.

    This is a threshold, not an exact multiple: a larger gap (downtime) still matches.
    """
    if last_generated is None:
        return True

    elapsed = (as_utc_date(candidate) - as_utc_date(last_generated)).days
    if elapsed <= 0:
        return False

    if interval <= 1:
        return True

    return elapsed >= interval * DAYS_PER_WEEK


def is_within_date_range(
    value: date | datetime,
    start: date | datetime,
    end: date | datetime | None = None,
) -> bool:
    """Inclusive on both bounds; a missing end means open-ended."""
    d = as_utc_date(value)
    if d < as_utc_date(start):
        return False
    if end is not None and d > as_utc_date(end):
        return False
    return True


def should_generate_for_date(
    rule: RecurrenceRule,
    value: date | datetime,
    last_generated: date | datetime | None = None,
) -> bool:
    return (
        matches_day_of_week(day_of_week(value), rule.days_of_week)
        and matches_weekly_interval(last_generated, value, rule.weekly_interval)
        and is_within_date_range(value, rule.start_date, rule.end_date)
    )
