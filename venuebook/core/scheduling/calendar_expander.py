"""
Recurrence expansion: turns an anchor date and a recurrence rule into concrete occurrence dates.

Every lifecycle operation goes through this module; nothing else in the package does date
arithmetic for series. All functions are pure.
"""
from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Iterator

from dateutil.relativedelta import relativedelta

from venuebook.core.entities.recurrence import (
    LAST_WEEK_OF_MONTH,
    RecurrencePattern,
    RecurrenceRule,
    sunday_based_weekday,
)
from venuebook.core.errors import ValidationError

ONE_DAY = timedelta(days=1)
ONE_WEEK = timedelta(days=7)


def nth_weekday_of_month(year: int, month: int, week_of_month: int, day_of_week: int) -> date | None:
    """
    Return the ``week_of_month``-th ``day_of_week`` (0 = Sunday) of the given month.

    ``week_of_month`` 5 means the last such weekday, which always exists. For 1-4 the result is
    ``None`` when the month does not contain that occurrence.
    """
    days_in_month = calendar.monthrange(year, month)[1]

    if week_of_month == LAST_WEEK_OF_MONTH:
        last_day = date(year, month, days_in_month)
        days_back = (sunday_based_weekday(last_day) - day_of_week + 7) % 7
        return last_day - timedelta(days=days_back)

    first_day = date(year, month, 1)
    offset = (day_of_week - sunday_based_weekday(first_day) + 7) % 7
    target_day = 1 + offset + (week_of_month - 1) * 7
    if target_day > days_in_month:
        return None
    return date(year, month, target_day)


def first_occurrence_on_or_after(start: date, week_of_month: int, day_of_week: int) -> date:
    """First nth-weekday occurrence falling on or after ``start``."""
    month_start = start.replace(day=1)
    # Any weekday occurs at least four times a month, so this settles within two months.
    for months_ahead in range(13):
        current = month_start + relativedelta(months=months_ahead)
        candidate = nth_weekday_of_month(current.year, current.month, week_of_month, day_of_week)
        if candidate is not None and candidate >= start:
            return candidate
    raise ValidationError(
        f"No occurrence of week {week_of_month}, weekday {day_of_week} found after {start.isoformat()}"
    )


def expand(anchor_date: date, rule: RecurrenceRule, max_occurrences: int | None = None) -> list[date]:
    """
    Expand ``rule`` from ``anchor_date``.

    The result starts with ``anchor_date``, is strictly ascending and never passes
    ``rule.end_date``. Raises ValidationError when the end date precedes the anchor or when the
    expansion would produce more than ``max_occurrences`` dates.
    """
    if rule.end_date < anchor_date:
        raise ValidationError(
            f"Recurrence end date {rule.end_date.isoformat()} is before the first occurrence "
            f"{anchor_date.isoformat()}"
        )

    dates = [anchor_date]
    for occurrence in _iter_following(anchor_date, rule):
        if occurrence > rule.end_date:
            break
        dates.append(occurrence)
        if max_occurrences is not None and len(dates) > max_occurrences:
            raise ValidationError(
                f"Recurrence produces more than {max_occurrences} occurrences; choose an earlier end date"
            )
    return dates


def expand_after(
    anchor_date: date,
    rule: RecurrenceRule,
    after: date,
    max_occurrences: int | None = None,
) -> list[date]:
    """Occurrences of the anchor's cadence that fall strictly after ``after``."""
    return [d for d in expand(anchor_date, rule, max_occurrences) if d > after]


# -----------------------------
# Per-pattern generators
# -----------------------------
def _iter_following(anchor_date: date, rule: RecurrenceRule) -> Iterator[date]:
    """Yield occurrences after the anchor in ascending order. The caller stops at the end date."""
    if rule.pattern is RecurrencePattern.DAILY:
        return _iter_stepped(anchor_date, ONE_DAY)
    if rule.pattern is RecurrencePattern.WEEKLY:
        if rule.days_of_week:
            return _iter_weekdays(anchor_date, rule.days_of_week, rule.end_date)
        return _iter_stepped(anchor_date, ONE_WEEK)
    if rule.pattern is RecurrencePattern.MONTHLY:
        if rule.is_nth_weekday:
            return _iter_nth_weekday(anchor_date, rule.week_of_month, rule.day_of_week, rule.end_date)
        return _iter_same_day_of_month(anchor_date)
    raise ValidationError(f"Unsupported recurrence pattern: {rule.pattern!r}")


def _iter_stepped(anchor_date: date, step: timedelta) -> Iterator[date]:
    current = anchor_date + step
    while True:
        yield current
        current += step


def _iter_weekdays(anchor_date: date, days_of_week: frozenset[int], end_date: date) -> Iterator[date]:
    current = anchor_date + ONE_DAY
    while current <= end_date:
        if sunday_based_weekday(current) in days_of_week:
            yield current
        current += ONE_DAY


def _iter_same_day_of_month(anchor_date: date) -> Iterator[date]:
    # relativedelta clamps to the last day of shorter months and every step is taken from the
    # anchor, so an anchor on the 31st returns to the 31st whenever the month allows it.
    months_ahead = 1
    while True:
        yield anchor_date + relativedelta(months=months_ahead)
        months_ahead += 1


def _iter_nth_weekday(
    anchor_date: date,
    week_of_month: int,
    day_of_week: int,
    end_date: date,
) -> Iterator[date]:
    month_start = anchor_date.replace(day=1)
    months_ahead = 1
    while True:
        current = month_start + relativedelta(months=months_ahead)
        if current > end_date:
            return
        months_ahead += 1
        occurrence = nth_weekday_of_month(current.year, current.month, week_of_month, day_of_week)
        if occurrence is None:
            # This month has no such week; later months may.
            continue
        yield occurrence
