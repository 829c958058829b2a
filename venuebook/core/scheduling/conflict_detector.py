from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from venuebook.core.entities.reservation import Reservation, TimeRange
from venuebook.core.repositories.reservation_repository import ReservationRepository

logger = logging.getLogger(__name__)


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    """Half-open intervals ``[s1, e1)`` and ``[s2, e2)`` overlap iff ``s1 < e2 and e1 > s2``."""
    return a.start_time < b.end_time and a.end_time > b.start_time


class ConflictDetector:
    """
    Decides whether a proposed slot collides with existing pending or confirmed reservations.

    This is a read-then-decide check; callers run it inside ``ReservationRepository.unit_of_work``
    so nothing can be written between the check and their own insert.
    """

    def __init__(self, *, reservation_repo: ReservationRepository) -> None:
        self._reservation_repo = reservation_repo

    def has_conflict(
            self,
            resource_id: str,
            on_date: date,
            start_time: str,
            end_time: str,
            exclude_reservation_id: str | None = None,
            *,
            exclude_series_id: str | None = None,
    ) -> bool:
        proposed = TimeRange(start_time, end_time)
        existing = self._reservation_repo.list_by_resource_and_date_range(resource_id, on_date, on_date)
        for reservation in existing:
            if self._is_blocking(reservation, proposed, exclude_reservation_id, exclude_series_id):
                logger.debug(
                    "Conflict on resource=%s date=%s %s-%s with reservation %s",
                    resource_id, on_date, start_time, end_time, reservation.reservation_id,
                )
                return True
        return False

    def conflicting_dates(
            self,
            resource_id: str,
            dates: Iterable[date],
            time_range: TimeRange,
            *,
            exclude_reservation_id: str | None = None,
            exclude_series_id: str | None = None,
    ) -> list[date]:
        """Every date in ``dates`` whose slot is taken. Checks all of them; never stops at the first."""
        dates = sorted(set(dates))
        if not dates:
            return []

        by_date: dict[date, list[Reservation]] = {}
        for reservation in self._reservation_repo.list_by_resource_and_date_range(
                resource_id, dates[0], dates[-1]
        ):
            by_date.setdefault(reservation.date, []).append(reservation)

        return [
            d for d in dates
            if any(
                self._is_blocking(r, time_range, exclude_reservation_id, exclude_series_id)
                for r in by_date.get(d, ())
            )
        ]

    @staticmethod
    def _is_blocking(
            reservation: Reservation,
            proposed: TimeRange,
            exclude_reservation_id: str | None,
            exclude_series_id: str | None,
    ) -> bool:
        # Cancelled reservations never hold a slot, even when re-booking the exact same time.
        if not reservation.is_active:
            return False
        if exclude_reservation_id is not None and reservation.reservation_id == exclude_reservation_id:
            return False
        if exclude_series_id is not None and reservation.series_id == exclude_series_id:
            return False
        return overlaps(reservation.time_range, proposed)
