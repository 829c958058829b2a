from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from venuebook.core.entities.recurrence import RecurrenceRule


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = frozenset({ReservationStatus.PENDING, ReservationStatus.CONFIRMED})

_ALLOWED_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset({ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED}),
    ReservationStatus.CONFIRMED: frozenset({ReservationStatus.CANCELLED}),
    ReservationStatus.CANCELLED: frozenset(),
}


class Visibility(str, Enum):
    PRIVATE = "private"
    PUBLIC = "public"


class SeriesRole(str, Enum):
    ANCHOR = "anchor"
    CHILD = "child"


@dataclass(frozen=True, slots=True)
class TimeRange:
    """Half-open local time-of-day interval, both ends as zero-padded ``HH:MM``."""
    start_time: str
    end_time: str


@dataclass(frozen=True, slots=True)
class SeriesMembership:
    """
    Explicit link between an occurrence and its series.

    The anchor has ``parent_id=None``; every child points at the anchor. ``series_end_date``
    is the declared end of the series and is kept identical on every member.
    """
    series_id: str
    role: SeriesRole
    parent_id: str | None
    series_end_date: date

    @property
    def is_anchor(self) -> bool:
        return self.role is SeriesRole.ANCHOR

    @classmethod
    def anchor(cls, series_id: str, series_end_date: date) -> SeriesMembership:
        return cls(series_id=series_id, role=SeriesRole.ANCHOR, parent_id=None, series_end_date=series_end_date)

    @classmethod
    def child(cls, series_id: str, parent_id: str, series_end_date: date) -> SeriesMembership:
        return cls(series_id=series_id, role=SeriesRole.CHILD, parent_id=parent_id, series_end_date=series_end_date)

    def with_end_date(self, series_end_date: date) -> SeriesMembership:
        return SeriesMembership(
            series_id=self.series_id,
            role=self.role,
            parent_id=self.parent_id,
            series_end_date=series_end_date,
        )


@dataclass(slots=True)
class BookingDetails:
    """Caller-supplied payload copied onto every occurrence of a booking."""
    user_id: str
    event_name: str = ""
    purpose: str = ""
    attendees: int = 1
    visibility: Visibility = Visibility.PRIVATE
    admin_notes: str | None = None


@dataclass(slots=True)
class Reservation:
    reservation_id: str
    organization_id: str
    resource_id: str
    date: date
    start_time: str
    end_time: str
    user_id: str
    status: ReservationStatus = ReservationStatus.PENDING
    event_name: str = ""
    purpose: str = ""
    attendees: int = 1
    visibility: Visibility = Visibility.PRIVATE
    admin_notes: str | None = None
    membership: SeriesMembership | None = None
    recurrence_rule: RecurrenceRule | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def series_id(self) -> str | None:
        return self.membership.series_id if self.membership else None

    @property
    def parent_id(self) -> str | None:
        return self.membership.parent_id if self.membership else None

    @property
    def is_singleton(self) -> bool:
        return self.membership is None

    @property
    def is_anchor(self) -> bool:
        return self.membership is not None and self.membership.is_anchor

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(self.start_time, self.end_time)

    def can_transition_to(self, status: ReservationStatus) -> bool:
        return status in _ALLOWED_TRANSITIONS[self.status]

