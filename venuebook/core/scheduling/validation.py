from __future__ import annotations

import re
from datetime import date

from venuebook.core.entities.recurrence import LAST_WEEK_OF_MONTH, RecurrencePattern, RecurrenceRule
from venuebook.core.entities.reservation import TimeRange
from venuebook.core.entities.scheduling_config import SchedulingConfig
from venuebook.core.errors import ValidationError

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(?::[0-5]\d)?$")


def normalize_time(value: object) -> str:
    """Accept ``HH:MM`` or ``HH:MM:SS`` and return ``HH:MM``."""
    if not isinstance(value, str):
        raise ValidationError(f"Invalid time {value!r}. Use HH:MM")
    match = _TIME_RE.match(value.strip())
    if match is None:
        raise ValidationError(f"Invalid time format {value!r}. Use HH:MM")
    return f"{match.group(1)}:{match.group(2)}"


def parse_date(value: object) -> date:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError as e:
            raise ValidationError(f"Invalid date provided: {value!r}") from e
    raise ValidationError(f"Invalid date provided: {value!r}")


def validate_time_range(start_time: object, end_time: object, config: SchedulingConfig) -> TimeRange:
    start = normalize_time(start_time)
    end = normalize_time(end_time)

    # Zero-padded HH:MM strings order the same way as the times they denote.
    if end <= start:
        raise ValidationError("End time must be after start time")

    opening = normalize_time(config.opening_time)
    closing = normalize_time(config.closing_time)
    if start < opening or end > closing:
        raise ValidationError(f"Reservation must be within the venue opening hours ({opening} - {closing})")

    return TimeRange(start, end)


def _require_weekday(value: object, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 6:
        raise ValidationError(f"{name} must be a weekday number between 0 (Sunday) and 6 (Saturday)")
    return value


def validate_week_of_month(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= LAST_WEEK_OF_MONTH:
        raise ValidationError("week_of_month must be between 1 and 5 (5 = last)")
    return value


def validate_day_of_week(value: object) -> int:
    return _require_weekday(value, "day_of_week")


def validate_rule(rule: RecurrenceRule | None, anchor_date: date) -> RecurrenceRule:
    """Reject a rule that is incomplete, inconsistent with its pattern, or ends before its anchor."""
    if rule is None:
        raise ValidationError("A recurring reservation requires a recurrence rule")

    if not isinstance(rule.pattern, RecurrencePattern):
        raise ValidationError(f"Unsupported recurrence pattern: {rule.pattern!r}")

    if rule.end_date is None:
        raise ValidationError("A recurring reservation requires an end date")

    if rule.end_date < anchor_date:
        raise ValidationError("Recurrence end date must not be before the reservation date")

    if rule.days_of_week:
        if rule.pattern is not RecurrencePattern.WEEKLY:
            raise ValidationError("days_of_week only applies to weekly recurrence")
        for day in rule.days_of_week:
            _require_weekday(day, "days_of_week")

    has_week = rule.week_of_month is not None
    has_day = rule.day_of_week is not None
    if has_week or has_day:
        if rule.pattern is not RecurrencePattern.MONTHLY:
            raise ValidationError("week_of_month and day_of_week only apply to monthly recurrence")
        if has_week != has_day:
            raise ValidationError("week_of_month and day_of_week must be given together")
        validate_week_of_month(rule.week_of_month)
        validate_day_of_week(rule.day_of_week)

    return rule
