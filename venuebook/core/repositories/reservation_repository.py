from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date
from typing import Any, Iterable, Mapping

from venuebook.core.entities.reservation import Reservation


class ReservationRepository(ABC):
    """
    Persistence port for reservations.

    An implementation is bound to one organization (tenant) and scopes every query to it.
    Writes are only durable once the surrounding ``unit_of_work`` exits cleanly.
    """

    @property
    @abstractmethod
    def organization_id(self) -> str:
        """Tenant every operation of this repository is scoped to."""
        raise NotImplementedError

    @abstractmethod
    def insert(self, reservation: Reservation) -> Reservation:
        """Persist a new reservation and return it as stored."""
        raise NotImplementedError

    @abstractmethod
    def get_by_id(self, reservation_id: str) -> Reservation | None:
        raise NotImplementedError

    @abstractmethod
    def list_by_series_id(self, series_id: str) -> list[Reservation]:
        """All members of a series, ordered by date."""
        raise NotImplementedError

    @abstractmethod
    def update(self, reservation_id: str, fields: Mapping[str, Any]) -> Reservation | None:
        """Apply a partial update keyed by Reservation attribute names. None if the row is missing."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, reservation_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_by_resource_and_date_range(
        self,
        resource_id: str,
        from_date: date,
        to_date: date,
    ) -> list[Reservation]:
        """Reservations of any status on ``resource_id`` with ``from_date <= date <= to_date``."""
        raise NotImplementedError

    @abstractmethod
    def unit_of_work(self, resource_ids: Iterable[str]) -> AbstractContextManager[None]:
        """
        Serialize check-then-write on the given resources and make the enclosed writes atomic.

        Commits when the block exits normally and rolls back every write of the block otherwise.
        """
        raise NotImplementedError
