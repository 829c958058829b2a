from __future__ import annotations

from datetime import date
from typing import Any

from sqlalchemy.orm import Session

from venuebook.core.entities.recurrence import RecurrencePattern as CorePattern
from venuebook.core.entities.recurrence import RecurrenceRule as CoreRecurrenceRule
from venuebook.core.entities.reservation import BookingDetails as CoreBookingDetails
from venuebook.core.entities.reservation import Reservation as CoreReservation
from venuebook.core.entities.reservation import Visibility as CoreVisibility
from venuebook.core.entities.scheduling_config import SchedulingConfig
from venuebook.core.scheduling.conflict_detector import ConflictDetector
from venuebook.core.use_cases.series_manager import Notifier, SeriesManager, UpdateScope
from venuebook.infrastructure.notifications.notifier_impl import HttpNotifier, LoggingNotifier
from venuebook.infrastructure.repositories.reservation_repository_impl import ReservationRepositoryImpl
from venuebook.schemas.models import (
    AddDateRequest,
    ConvertToSeriesRequest,
    EditPatternRequest,
    ExtendSeriesRequest,
    OccurrencePreview,
    RecurrenceRule,
    Reservation,
    ReservationCreate,
    ReservationUpdate,
    SeriesMembership,
    SeriesPreviewRequest,
    StatusChange,
)


def _settings():
    from venuebook.infrastructure.config import settings
    return settings


def _scheduling_config() -> SchedulingConfig:
    return _settings().scheduling_config()


def _default_notifier() -> Notifier:
    settings = _settings()
    if settings.notification_service_url:
        return HttpNotifier(
            base_url=settings.notification_service_url,
            timeout=settings.notification_timeout,
        )
    return LoggingNotifier()


def build_series_manager(db: Session, organization_id: str, notifier: Notifier | None = None) -> SeriesManager:
    reservation_repo = ReservationRepositoryImpl(db, organization_id=organization_id)
    return SeriesManager(
        reservation_repo=reservation_repo,
        conflict_detector=ConflictDetector(reservation_repo=reservation_repo),
        notifier=notifier or _default_notifier(),
    )


# -----------------------------
# Schema <-> core translation
# -----------------------------
def _to_core_rule(body: RecurrenceRule) -> CoreRecurrenceRule:
    return CoreRecurrenceRule(
        pattern=CorePattern(body.pattern.value),
        end_date=body.end_date,
        days_of_week=frozenset(body.days_of_week) if body.days_of_week else None,
        week_of_month=body.week_of_month,
        day_of_week=body.day_of_week,
    )


def _to_core_details(body: ReservationCreate) -> CoreBookingDetails:
    return CoreBookingDetails(
        user_id=body.user_id,
        event_name=body.event_name,
        purpose=body.purpose,
        attendees=body.attendees,
        visibility=CoreVisibility(body.visibility.value),
        admin_notes=body.admin_notes,
    )


def to_schema(reservation: CoreReservation) -> Reservation:
    membership = None
    if reservation.membership is not None:
        membership = SeriesMembership(
            series_id=reservation.membership.series_id,
            role=reservation.membership.role.value,
            parent_id=reservation.membership.parent_id,
            series_end_date=reservation.membership.series_end_date,
        )

    rule = None
    if reservation.recurrence_rule is not None:
        core_rule = reservation.recurrence_rule
        rule = RecurrenceRule(
            pattern=core_rule.pattern.value,
            end_date=core_rule.end_date,
            days_of_week=sorted(core_rule.days_of_week) if core_rule.days_of_week else None,
            week_of_month=core_rule.week_of_month,
            day_of_week=core_rule.day_of_week,
        )

    return Reservation(
        reservation_id=reservation.reservation_id,
        organization_id=reservation.organization_id,
        resource_id=reservation.resource_id,
        date=reservation.date,
        start_time=reservation.start_time,
        end_time=reservation.end_time,
        user_id=reservation.user_id,
        status=reservation.status.value,
        event_name=reservation.event_name,
        purpose=reservation.purpose,
        attendees=reservation.attendees,
        visibility=reservation.visibility.value,
        admin_notes=reservation.admin_notes,
        membership=membership,
        recurrence_rule=rule,
        created_at=reservation.created_at,
        updated_at=reservation.updated_at,
    )


# -----------------------------
# Operations
# -----------------------------
def create_reservation_service(body: ReservationCreate, db: Session, organization_id: str) -> list[Reservation]:
    """A body with ``recurrence`` creates a whole series, otherwise a single reservation."""
    manager = build_series_manager(db, organization_id)
    config = _scheduling_config()

    if body.recurrence is None:
        created = [
            manager.create_reservation(
                resource_id=body.resource_id,
                on_date=body.date,
                start_time=body.start_time,
                end_time=body.end_time,
                details=_to_core_details(body),
                config=config,
            )
        ]
    else:
        created = manager.create_series(
            resource_id=body.resource_id,
            anchor_date=body.date,
            start_time=body.start_time,
            end_time=body.end_time,
            rule=_to_core_rule(body.recurrence),
            details=_to_core_details(body),
            config=config,
        )
    return [to_schema(r) for r in created]


def preview_series_service(body: SeriesPreviewRequest, db: Session, organization_id: str) -> list[OccurrencePreview]:
    manager = build_series_manager(db, organization_id)
    previews = manager.preview_series(
        resource_id=body.resource_id,
        anchor_date=body.date,
        start_time=body.start_time,
        end_time=body.end_time,
        rule=_to_core_rule(body.recurrence),
        config=_scheduling_config(),
    )
    return [OccurrencePreview(date=p.date, conflict=p.conflict) for p in previews]


def get_reservation_service(reservation_id: str, db: Session, organization_id: str) -> Reservation:
    manager = build_series_manager(db, organization_id)
    return to_schema(manager.get_reservation(reservation_id))


def get_series_service(series_id: str, db: Session, organization_id: str) -> list[Reservation]:
    manager = build_series_manager(db, organization_id)
    return [to_schema(r) for r in manager.get_series(series_id)]


def list_resource_reservations_service(
        resource_id: str,
        from_date: date,
        to_date: date,
        db: Session,
        organization_id: str,
) -> list[Reservation]:
    manager = build_series_manager(db, organization_id)
    reservations = manager.list_for_resource(resource_id=resource_id, from_date=from_date, to_date=to_date)
    return [to_schema(r) for r in reservations]


def update_reservation_service(
        reservation_id: str,
        body: ReservationUpdate,
        db: Session,
        organization_id: str,
) -> list[Reservation]:
    fields: dict[str, Any] = body.model_dump(exclude_unset=True, exclude={"scope"}, mode="json")
    manager = build_series_manager(db, organization_id)
    updated = manager.update_reservation(
        reservation_id=reservation_id,
        fields=fields,
        scope=UpdateScope(body.scope.value),
        config=_scheduling_config(),
    )
    return [to_schema(r) for r in updated]


def change_status_service(
        reservation_id: str,
        body: StatusChange,
        db: Session,
        organization_id: str,
) -> list[Reservation]:
    manager = build_series_manager(db, organization_id)
    updated = manager.change_status(
        reservation_id=reservation_id,
        status=body.status.value,
        scope=UpdateScope(body.scope.value),
    )
    return [to_schema(r) for r in updated]


def cancel_reservation_service(
        reservation_id: str,
        scope: str,
        db: Session,
        organization_id: str,
) -> list[Reservation]:
    manager = build_series_manager(db, organization_id)
    return [to_schema(r) for r in manager.cancel(reservation_id=reservation_id, scope=UpdateScope(scope))]


def convert_to_series_service(
        reservation_id: str,
        body: ConvertToSeriesRequest,
        db: Session,
        organization_id: str,
) -> list[Reservation]:
    manager = build_series_manager(db, organization_id)
    created = manager.convert_to_series(
        reservation_id=reservation_id,
        rule=_to_core_rule(body.recurrence),
        config=_scheduling_config(),
    )
    return [to_schema(r) for r in created]


def extend_series_service(series_id: str, body: ExtendSeriesRequest, db: Session, organization_id: str) -> list[Reservation]:
    manager = build_series_manager(db, organization_id)
    created = manager.extend_series(series_id=series_id, new_end_date=body.new_end_date, config=_scheduling_config())
    return [to_schema(r) for r in created]


def edit_pattern_service(series_id: str, body: EditPatternRequest, db: Session, organization_id: str) -> list[Reservation]:
    manager = build_series_manager(db, organization_id)
    result = manager.edit_recurrence_pattern(
        series_id=series_id,
        week_of_month=body.week_of_month,
        day_of_week=body.day_of_week,
        config=_scheduling_config(),
    )
    return [to_schema(r) for r in result]


def add_series_date_service(series_id: str, body: AddDateRequest, db: Session, organization_id: str) -> Reservation:
    manager = build_series_manager(db, organization_id)
    return to_schema(manager.add_single_date(series_id=series_id, on_date=body.date))
