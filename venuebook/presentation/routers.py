from __future__ import annotations

from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from venuebook.infrastructure.database import SessionLocal
from venuebook.schemas.models import (
    AddDateRequest,
    ConflictReport,
    ConvertToSeriesRequest,
    EditPatternRequest,
    ExtendSeriesRequest,
    OccurrencePreview,
    Reservation,
    ReservationCreate,
    ReservationUpdate,
    Scope,
    SeriesPreviewRequest,
    StatusChange,
)
from venuebook.services.reservation_service import (
    add_series_date_service,
    cancel_reservation_service,
    change_status_service,
    convert_to_series_service,
    create_reservation_service,
    edit_pattern_service,
    extend_series_service,
    get_reservation_service,
    get_series_service,
    list_resource_reservations_service,
    preview_series_service,
    update_reservation_service,
)

router = APIRouter()


def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_organization_id(x_organization_id: str = Header(...)) -> str:
    return x_organization_id


@router.post(
    "/reservations",
    response_model=List[Reservation],
    status_code=201,
    responses={409: {"model": ConflictReport}},
)
def post_reservations(
    body: ReservationCreate,
    db: Session = Depends(get_db),
    organization_id: str = Depends(get_organization_id),
) -> List[Reservation]:
    """
    Create a single reservation, or a whole series when ``recurrence`` is given

    Returns:
      - 201 with every created reservation
      - 409 with ``{message, conflictingDates}`` when any date is taken (nothing is created)
      - 422 on validation error
    """
    return create_reservation_service(body, db, organization_id)


@router.post("/reservations/preview", response_model=List[OccurrencePreview])
def post_reservations_preview(
    body: SeriesPreviewRequest,
    db: Session = Depends(get_db),
    organization_id: str = Depends(get_organization_id),
) -> List[OccurrencePreview]:
    """
    List the dates a recurring request would occupy and which of them are taken
    """
    return preview_series_service(body, db, organization_id)


@router.get("/reservations/{reservation_id}", response_model=Reservation)
def get_reservations_reservation_id(
    reservation_id: str,
    db: Session = Depends(get_db),
    organization_id: str = Depends(get_organization_id),
) -> Reservation:
    return get_reservation_service(reservation_id, db, organization_id)


@router.patch("/reservations/{reservation_id}", response_model=List[Reservation])
def patch_reservations_reservation_id(
    reservation_id: str,
    body: ReservationUpdate,
    db: Session = Depends(get_db),
    organization_id: str = Depends(get_organization_id),
) -> List[Reservation]:
    """
    Update one occurrence (``scope=single``) or every member of its series (``scope=group``)
    """
    return update_reservation_service(reservation_id, body, db, organization_id)


@router.post("/reservations/{reservation_id}/status", response_model=List[Reservation])
def post_reservations_reservation_id_status(
    reservation_id: str,
    body: StatusChange,
    db: Session = Depends(get_db),
    organization_id: str = Depends(get_organization_id),
) -> List[Reservation]:
    return change_status_service(reservation_id, body, db, organization_id)


@router.post("/reservations/{reservation_id}/cancel", response_model=List[Reservation])
def post_reservations_reservation_id_cancel(
    reservation_id: str,
    scope: Scope = Query(Scope.single),
    db: Session = Depends(get_db),
    organization_id: str = Depends(get_organization_id),
) -> List[Reservation]:
    return cancel_reservation_service(reservation_id, scope.value, db, organization_id)


@router.post("/reservations/{reservation_id}/series", response_model=List[Reservation], status_code=201)
def post_reservations_reservation_id_series(
    reservation_id: str,
    body: ConvertToSeriesRequest,
    db: Session = Depends(get_db),
    organization_id: str = Depends(get_organization_id),
) -> List[Reservation]:
    """
    Convert a single reservation into the anchor of a new series
    """
    return convert_to_series_service(reservation_id, body, db, organization_id)


@router.get("/series/{series_id}", response_model=List[Reservation])
def get_series_series_id(
    series_id: str,
    db: Session = Depends(get_db),
    organization_id: str = Depends(get_organization_id),
) -> List[Reservation]:
    return get_series_service(series_id, db, organization_id)


@router.post("/series/{series_id}/extend", response_model=List[Reservation])
def post_series_series_id_extend(
    series_id: str,
    body: ExtendSeriesRequest,
    db: Session = Depends(get_db),
    organization_id: str = Depends(get_organization_id),
) -> List[Reservation]:
    """
    Extend a series to a later end date; returns the newly created occurrences
    """
    return extend_series_service(series_id, body, db, organization_id)


@router.post("/series/{series_id}/pattern", response_model=List[Reservation])
def post_series_series_id_pattern(
    series_id: str,
    body: EditPatternRequest,
    db: Session = Depends(get_db),
    organization_id: str = Depends(get_organization_id),
) -> List[Reservation]:
    """
    Re-pattern a monthly series to a new nth weekday
    """
    return edit_pattern_service(series_id, body, db, organization_id)


@router.post("/series/{series_id}/dates", response_model=Reservation, status_code=201)
def post_series_series_id_dates(
    series_id: str,
    body: AddDateRequest,
    db: Session = Depends(get_db),
    organization_id: str = Depends(get_organization_id),
) -> Reservation:
    return add_series_date_service(series_id, body, db, organization_id)


@router.get("/resources/{resource_id}/reservations", response_model=List[Reservation])
def get_resources_resource_id_reservations(
    resource_id: str,
    from_date: date = Query(...),
    to_date: date = Query(...),
    db: Session = Depends(get_db),
    organization_id: str = Depends(get_organization_id),
) -> List[Reservation]:
    return list_resource_reservations_service(resource_id, from_date, to_date, db, organization_id)
