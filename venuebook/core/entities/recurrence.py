from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from enum import Enum

LAST_WEEK_OF_MONTH = 5

WEEKDAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


class RecurrencePattern(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


def sunday_based_weekday(value: date) -> int:
    """Weekday of ``value`` numbered 0 = Sunday .. 6 = Saturday."""
    return (value.weekday() + 1) % 7


@dataclass(frozen=True, slots=True)
class RecurrenceRule:
    """
    Authoritative recurrence rule stored on a series anchor.

    Weekdays use 0 = Sunday .. 6 = Saturday. ``week_of_month`` 1-4 selects the nth weekday of a
    month, 5 selects the last one. ``days_of_week`` only applies to weekly rules and the
    ``(week_of_month, day_of_week)`` pair only to monthly rules.
    """
    pattern: RecurrencePattern
    end_date: date
    days_of_week: frozenset[int] | None = None
    week_of_month: int | None = None
    day_of_week: int | None = None

    @property
    def is_nth_weekday(self) -> bool:
        return (
            self.pattern is RecurrencePattern.MONTHLY
            and self.week_of_month is not None
            and self.day_of_week is not None
        )

    def with_end_date(self, end_date: date) -> RecurrenceRule:
        return replace(self, end_date=end_date)

    def with_nth_weekday(self, week_of_month: int, day_of_week: int) -> RecurrenceRule:
        return replace(self, week_of_month=week_of_month, day_of_week=day_of_week)

    def describe(self) -> str:
        if self.pattern is RecurrencePattern.DAILY:
            cadence = "every day"
        elif self.pattern is RecurrencePattern.WEEKLY:
            if self.days_of_week:
                names = ", ".join(WEEKDAY_NAMES[d] for d in sorted(self.days_of_week))
                cadence = f"every week on {names}"
            else:
                cadence = "every week"
        elif self.is_nth_weekday:
            ordinal = ("first", "second", "third", "fourth", "last")[self.week_of_month - 1]
            cadence = f"on the {ordinal} {WEEKDAY_NAMES[self.day_of_week]} of each month"
        else:
            cadence = "every month"
        return f"{cadence} until {self.end_date.isoformat()}"
