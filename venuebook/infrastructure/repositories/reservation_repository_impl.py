from __future__ import annotations

import logging
import threading
from contextlib import ExitStack, contextmanager
from datetime import date, datetime, timezone
from typing import Any, Iterable, Iterator, Mapping

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from venuebook.core.entities.recurrence import RecurrencePattern, RecurrenceRule
from venuebook.core.entities.reservation import (
    Reservation,
    ReservationStatus,
    SeriesMembership,
    SeriesRole,
    Visibility,
)
from venuebook.core.errors import RepositoryError
from venuebook.core.repositories.reservation_repository import ReservationRepository
from venuebook.infrastructure.models.models import ReservationModel

logger = logging.getLogger(__name__)

_PLAIN_COLUMNS = frozenset({
    "resource_id",
    "date",
    "start_time",
    "end_time",
    "user_id",
    "status",
    "event_name",
    "purpose",
    "attendees",
    "visibility",
    "admin_notes",
})


class _ResourceLocks:
    """Process-wide registry of one lock per (organization, resource)."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, str], threading.Lock] = {}

    def get(self, organization_id: str, resource_id: str) -> threading.Lock:
        key = (organization_id, resource_id)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock


resource_locks = _ResourceLocks()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReservationRepositoryImpl(ReservationRepository):
    """
    SQLAlchemy implementation scoped to a single organization.

    ``unit_of_work`` holds the per-resource locks for the whole check-then-write sequence and
    commits or rolls back the session as one transaction. Outside a unit of work writes are only
    flushed, never committed.
    """

    def __init__(self, db: Session, *, organization_id: str) -> None:
        self._db = db
        self._organization_id = organization_id
        self._depth = 0

    @property
    def organization_id(self) -> str:
        return self._organization_id

    # -----------------------------
    # Transactions
    # -----------------------------
    @contextmanager
    def unit_of_work(self, resource_ids: Iterable[str]) -> Iterator[None]:
        if self._depth:
            # Already inside an outer unit of work that owns the locks and the commit.
            yield
            return

        with ExitStack() as stack:
            # Fixed acquisition order so two multi-resource operations cannot deadlock.
            for resource_id in sorted(set(resource_ids)):
                stack.enter_context(resource_locks.get(self._organization_id, resource_id))

            self._depth += 1
            try:
                yield
                self._db.commit()
            except SQLAlchemyError as e:
                self._db.rollback()
                logger.exception("Reservation transaction failed; rolled back")
                raise RepositoryError(f"Storage failure: {e}") from e
            except BaseException:
                self._db.rollback()
                raise
            finally:
                self._depth -= 1

    # -----------------------------
    # Reads
    # -----------------------------
    def get_by_id(self, reservation_id: str) -> Reservation | None:
        row = self._get_row(reservation_id)
        if row is None:
            return None
        return self._to_entity(row)

    def list_by_series_id(self, series_id: str) -> list[Reservation]:
        stmt = (
            select(ReservationModel)
            .where(ReservationModel.organization_id == self._organization_id)
            .where(ReservationModel.series_id == series_id)
            .order_by(ReservationModel.date, ReservationModel.start_time)
        )
        return [self._to_entity(row) for row in self._execute(stmt)]

    def list_by_resource_and_date_range(
            self,
            resource_id: str,
            from_date: date,
            to_date: date,
    ) -> list[Reservation]:
        stmt = (
            select(ReservationModel)
            .where(ReservationModel.organization_id == self._organization_id)
            .where(ReservationModel.resource_id == resource_id)
            .where(ReservationModel.date >= from_date)
            .where(ReservationModel.date <= to_date)
            .order_by(ReservationModel.date, ReservationModel.start_time)
        )
        return [self._to_entity(row) for row in self._execute(stmt)]

    # -----------------------------
    # Writes
    # -----------------------------
    def insert(self, reservation: Reservation) -> Reservation:
        now = _utcnow()
        row = ReservationModel(
            reservation_id=reservation.reservation_id,
            organization_id=self._organization_id,
            created_at=reservation.created_at or now,
            updated_at=now,
        )
        self._apply(row, self._entity_fields(reservation))
        self._db.add(row)
        self._flush()
        return self._to_entity(row)

    def update(self, reservation_id: str, fields: Mapping[str, Any]) -> Reservation | None:
        row = self._get_row(reservation_id)
        if row is None:
            return None

        self._apply(row, fields)
        row.updated_at = _utcnow()
        self._flush()
        return self._to_entity(row)

    def delete(self, reservation_id: str) -> None:
        row = self._get_row(reservation_id)
        if row is None:
            return
        self._db.delete(row)
        self._flush()

    # -----------------------------
    # Internal helpers
    # -----------------------------
    def _get_row(self, reservation_id: str) -> ReservationModel | None:
        try:
            row = self._db.get(ReservationModel, reservation_id)
        except SQLAlchemyError as e:
            raise RepositoryError(f"Storage failure: {e}") from e
        if row is None or row.organization_id != self._organization_id:
            return None
        return row

    def _execute(self, stmt) -> list[ReservationModel]:
        try:
            return list(self._db.scalars(stmt))
        except SQLAlchemyError as e:
            raise RepositoryError(f"Storage failure: {e}") from e

    def _flush(self) -> None:
        try:
            self._db.flush()
        except SQLAlchemyError as e:
            raise RepositoryError(f"Storage failure: {e}") from e

    @staticmethod
    def _entity_fields(reservation: Reservation) -> dict[str, Any]:
        return {
            "resource_id": reservation.resource_id,
            "date": reservation.date,
            "start_time": reservation.start_time,
            "end_time": reservation.end_time,
            "user_id": reservation.user_id,
            "status": reservation.status,
            "event_name": reservation.event_name,
            "purpose": reservation.purpose,
            "attendees": reservation.attendees,
            "visibility": reservation.visibility,
            "admin_notes": reservation.admin_notes,
            "membership": reservation.membership,
            "recurrence_rule": reservation.recurrence_rule,
        }

    @staticmethod
    def _apply(row: ReservationModel, fields: Mapping[str, Any]) -> None:
        for name, value in fields.items():
            if name in _PLAIN_COLUMNS:
                setattr(row, name, value)
            elif name == "membership":
                membership: SeriesMembership | None = value
                row.series_id = membership.series_id if membership else None
                row.series_role = membership.role if membership else None
                row.parent_id = membership.parent_id if membership else None
                row.series_end_date = membership.series_end_date if membership else None
            elif name == "recurrence_rule":
                rule: RecurrenceRule | None = value
                row.recurrence_pattern = rule.pattern if rule else None
                row.recurrence_days = (
                    ",".join(str(d) for d in sorted(rule.days_of_week))
                    if rule and rule.days_of_week else None
                )
                row.recurrence_week_of_month = rule.week_of_month if rule else None
                row.recurrence_day_of_week = rule.day_of_week if rule else None
            else:
                raise ValueError(f"Unknown reservation field: {name!r}")

    @staticmethod
    def _to_entity(row: ReservationModel) -> Reservation:
        membership = None
        if row.series_id is not None:
            membership = SeriesMembership(
                series_id=row.series_id,
                role=SeriesRole(row.series_role),
                parent_id=row.parent_id,
                series_end_date=row.series_end_date,
            )

        rule = None
        if row.recurrence_pattern is not None:
            rule = RecurrenceRule(
                pattern=RecurrencePattern(row.recurrence_pattern),
                end_date=row.series_end_date,
                days_of_week=(
                    frozenset(int(d) for d in row.recurrence_days.split(","))
                    if row.recurrence_days else None
                ),
                week_of_month=row.recurrence_week_of_month,
                day_of_week=row.recurrence_day_of_week,
            )

        return Reservation(
            reservation_id=row.reservation_id,
            organization_id=row.organization_id,
            resource_id=row.resource_id,
            date=row.date,
            start_time=row.start_time,
            end_time=row.end_time,
            user_id=row.user_id,
            status=ReservationStatus(row.status),
            event_name=row.event_name,
            purpose=row.purpose,
            attendees=row.attendees,
            visibility=Visibility(row.visibility),
            admin_notes=row.admin_notes,
            membership=membership,
            recurrence_rule=rule,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
