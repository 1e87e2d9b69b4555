# tests/test_recurrence.py

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from homeloop.tasks.recurrence import (
    day_of_week,
    is_within_date_range,
    matches_day_of_week,
    matches_weekly_interval,
    should_generate_for_date,
)
from homeloop.tasks.task_models import RecurrenceRule

MON, TUE, WED, FRI, SAT, SUN = 1, 2, 3, 5, 6, 0


def test_day_of_week_uses_sunday_zero() -> None:
    assert day_of_week(date(2025, 1, 5)) == SUN
    assert day_of_week(date(2025, 1, 6)) == MON
    assert day_of_week(date(2025, 1, 11)) == SAT


def test_day_of_week_reduces_aware_datetime_to_utc_date() -> None:
    # 23:30 on Monday at UTC-05:00 is already Tuesday in UTC.
    late_monday = datetime(2025, 1, 6, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
    assert day_of_week(late_monday) == TUE


def test_matches_day_of_week_is_membership() -> None:
    assert matches_day_of_week(MON, {MON, WED, FRI})
    assert not matches_day_of_week(TUE, {MON, WED, FRI})
    assert matches_day_of_week(SUN, [SUN])


def test_weekly_interval_first_generation_always_matches() -> None:
    for interval in (1, 2, 3, 4):
        assert matches_weekly_interval(None, date(2025, 1, 6), interval)


def test_weekly_interval_same_day_never_matches() -> None:
    d = date(2025, 1, 6)
    for interval in (1, 2, 3, 4):
        assert not matches_weekly_interval(d, d, interval)


def test_weekly_interval_ignores_time_of_day() -> None:
    last = datetime(2025, 1, 6, 23, 59, tzinfo=UTC)
    assert not matches_weekly_interval(last, datetime(2025, 1, 6, 0, 1, tzinfo=UTC), 1)
    assert matches_weekly_interval(last, datetime(2025, 1, 7, 0, 0, tzinfo=UTC), 1)


def test_weekly_interval_one_matches_any_later_day() -> None:
    last = date(2025, 1, 6)
    assert matches_weekly_interval(last, date(2025, 1, 7), 1)
    assert matches_weekly_interval(last, date(2025, 1, 8), 1)


@pytest.mark.parametrize("interval", [2, 3, 4])
def test_weekly_interval_threshold_for_multi_week(interval: int) -> None:
    last = date(2025, 1, 6)
    needed = interval * 7
    assert not matches_weekly_interval(last, last + timedelta(days=needed - 1), interval)
    assert matches_weekly_interval(last, last + timedelta(days=needed), interval)
    # A longer gap (downtime) still matches: threshold, not exact multiple.
    assert matches_weekly_interval(last, last + timedelta(days=needed + 3), interval)


def test_is_within_date_range_is_inclusive() -> None:
    start, end = date(2025, 1, 1), date(2025, 1, 31)
    assert is_within_date_range(start, start, end)
    assert is_within_date_range(end, start, end)
    assert not is_within_date_range(date(2024, 12, 31), start, end)
    assert not is_within_date_range(date(2025, 2, 1), start, end)


def test_is_within_date_range_open_ended() -> None:
    assert is_within_date_range(date(2030, 1, 1), date(2025, 1, 1), None)


def test_mon_wed_fri_weekly_scenario() -> None:
    rule = RecurrenceRule(days_of_week=frozenset({MON, WED, FRI}), weekly_interval=1, start_date=date(2025, 1, 1))
    last = date(2025, 1, 6)

    assert should_generate_for_date(rule, date(2025, 1, 8), last)
    assert should_generate_for_date(rule, date(2025, 1, 10), last)
    assert should_generate_for_date(rule, date(2025, 1, 13), last)
    assert not should_generate_for_date(rule, date(2025, 1, 14), last)


def test_biweekly_monday_scenario() -> None:
    rule = RecurrenceRule(days_of_week=frozenset({MON}), weekly_interval=2, start_date=date(2025, 1, 1))
    last = date(2025, 1, 6)

    assert not should_generate_for_date(rule, date(2025, 1, 13), last)
    assert should_generate_for_date(rule, date(2025, 1, 20), last)


def test_should_generate_respects_range() -> None:
    rule = RecurrenceRule(
        days_of_week=frozenset({MON}),
        weekly_interval=1,
        start_date=date(2025, 1, 13),
        end_date=date(2025, 1, 20),
    )
    assert not should_generate_for_date(rule, date(2025, 1, 6))
    assert should_generate_for_date(rule, date(2025, 1, 13))
    assert should_generate_for_date(rule, date(2025, 1, 20))
    assert not should_generate_for_date(rule, date(2025, 1, 27))


@pytest.mark.parametrize(
    "kwargs",
    [
        {"days_of_week": frozenset(), "weekly_interval": 1},
        {"days_of_week": frozenset({7}), "weekly_interval": 1},
        {"days_of_week": frozenset({-1}), "weekly_interval": 1},
        {"days_of_week": frozenset({MON}), "weekly_interval": 0},
        {"days_of_week": frozenset({MON}), "weekly_interval": 5},
        {"days_of_week": frozenset({MON}), "weekly_interval": 1, "time_of_day": "24:00"},
        {"days_of_week": frozenset({MON}), "weekly_interval": 1, "time_of_day": "7:30"},
        {"days_of_week": frozenset({MON}), "weekly_interval": 1, "end_date": date(2024, 12, 31)},
    ],
)
def test_recurrence_rule_rejects_invalid_input(kwargs) -> None:
    with pytest.raises(ValueError):
        RecurrenceRule(start_date=date(2025, 1, 1), **kwargs)
