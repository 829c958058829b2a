from __future__ import annotations

from datetime import date

import pytest

from venuebook.core.entities.recurrence import RecurrencePattern, RecurrenceRule
from venuebook.core.errors import ValidationError
from venuebook.core.scheduling.calendar_expander import (
    expand,
    expand_after,
    first_occurrence_on_or_after,
    nth_weekday_of_month,
)


def _weekly(end: date, days=None) -> RecurrenceRule:
    return RecurrenceRule(
        pattern=RecurrencePattern.WEEKLY,
        end_date=end,
        days_of_week=frozenset(days) if days else None,
    )


def _monthly(end: date, week=None, dow=None) -> RecurrenceRule:
    return RecurrenceRule(pattern=RecurrencePattern.MONTHLY, end_date=end, week_of_month=week, day_of_week=dow)


def test_weekly_without_days_steps_seven_days() -> None:
    dates = expand(date(2025, 3, 3), _weekly(date(2025, 3, 24)))

    assert dates == [date(2025, 3, 3), date(2025, 3, 10), date(2025, 3, 17), date(2025, 3, 24)]


def test_weekly_with_days_walks_selected_weekdays() -> None:
    # 1 = Monday, 3 = Wednesday
    dates = expand(date(2025, 3, 3), _weekly(date(2025, 3, 12), days={1, 3}))

    assert dates == [date(2025, 3, 3), date(2025, 3, 5), date(2025, 3, 10), date(2025, 3, 12)]


def test_daily_includes_both_ends() -> None:
    rule = RecurrenceRule(pattern=RecurrencePattern.DAILY, end_date=date(2025, 3, 4))

    assert expand(date(2025, 3, 1), rule) == [date(2025, 3, 1), date(2025, 3, 2), date(2025, 3, 3), date(2025, 3, 4)]


def test_end_date_equal_to_anchor_yields_only_anchor() -> None:
    assert expand(date(2025, 3, 3), _weekly(date(2025, 3, 3))) == [date(2025, 3, 3)]


def test_second_saturday_of_month() -> None:
    dates = expand(date(2024, 1, 13), _monthly(date(2024, 4, 30), week=2, dow=6))

    assert dates == [date(2024, 1, 13), date(2024, 2, 10), date(2024, 3, 9), date(2024, 4, 13)]


def test_last_friday_of_month() -> None:
    dates = expand(date(2024, 1, 26), _monthly(date(2024, 3, 31), week=5, dow=5))

    assert dates == [date(2024, 1, 26), date(2024, 2, 23), date(2024, 3, 29)]


def test_same_day_of_month_clamps_to_month_end() -> None:
    dates = expand(date(2025, 1, 31), _monthly(date(2025, 5, 31)))

    assert dates == [
        date(2025, 1, 31),
        date(2025, 2, 28),
        date(2025, 3, 31),
        date(2025, 4, 30),
        date(2025, 5, 31),
    ]


def test_same_day_of_month_in_leap_year() -> None:
    assert expand(date(2024, 1, 31), _monthly(date(2024, 2, 29))) == [date(2024, 1, 31), date(2024, 2, 29)]


def test_expansion_is_deterministic_and_strictly_ascending() -> None:
    rule = _weekly(date(2025, 12, 31), days={0, 2, 4})

    first = expand(date(2025, 1, 5), rule)
    second = expand(date(2025, 1, 5), rule)

    assert first == second
    assert all(a < b for a, b in zip(first, first[1:]))
    assert first[0] == date(2025, 1, 5)
    assert first[-1] <= rule.end_date


def test_end_before_anchor_is_rejected() -> None:
    with pytest.raises(ValidationError):
        expand(date(2025, 3, 10), _weekly(date(2025, 3, 3)))


def test_max_occurrences_bound_is_enforced() -> None:
    rule = RecurrenceRule(pattern=RecurrencePattern.DAILY, end_date=date(2025, 12, 31))

    with pytest.raises(ValidationError):
        expand(date(2025, 1, 1), rule, max_occurrences=10)

    assert len(expand(date(2025, 1, 1), rule, max_occurrences=365)) == 365


def test_expand_after_continues_the_anchor_cadence() -> None:
    dates = expand_after(date(2025, 3, 3), _weekly(date(2025, 4, 14)), date(2025, 3, 24))

    assert dates == [date(2025, 3, 31), date(2025, 4, 7), date(2025, 4, 14)]


def test_nth_weekday_of_month() -> None:
    # March 2025 starts on a Saturday
    assert nth_weekday_of_month(2025, 3, 1, 0) == date(2025, 3, 2)
    assert nth_weekday_of_month(2025, 3, 1, 6) == date(2025, 3, 1)
    assert nth_weekday_of_month(2025, 3, 5, 1) == date(2025, 3, 31)


def test_first_occurrence_on_or_after() -> None:
    assert first_occurrence_on_or_after(date(2024, 1, 13), 5, 5) == date(2024, 1, 26)
    assert first_occurrence_on_or_after(date(2024, 1, 27), 5, 5) == date(2024, 2, 23)
    assert first_occurrence_on_or_after(date(2024, 1, 26), 5, 5) == date(2024, 1, 26)
