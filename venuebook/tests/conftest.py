from __future__ import annotations

from datetime import date
from typing import Callable, Iterator

import pytest
from fastapi import FastAPI
from sqlalchemy.orm import Session, sessionmaker
from starlette.testclient import TestClient

import venuebook.presentation.routers as routers
from venuebook.core.entities.notification import NotificationKind
from venuebook.core.entities.reservation import BookingDetails, Reservation
from venuebook.core.entities.scheduling_config import SchedulingConfig
from venuebook.core.scheduling.conflict_detector import ConflictDetector
from venuebook.core.use_cases.series_manager import SeriesManager
from venuebook.infrastructure.database import Base, build_engine
from venuebook.infrastructure.models import models  # noqa: F401
from venuebook.infrastructure.repositories.reservation_repository_impl import ReservationRepositoryImpl
from venuebook.presentation.error_handlers import register_exception_handlers

ORG_ID = "org-1"
RESOURCE_ID = "room-1"


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[NotificationKind, str]] = []

    def notify(self, kind: NotificationKind, reservation: Reservation) -> None:
        self.sent.append((kind, reservation.reservation_id))


@pytest.fixture()
def db() -> Iterator[Session]:
    """Fresh in-memory database per test."""
    engine = build_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def repo(db: Session) -> ReservationRepositoryImpl:
    return ReservationRepositoryImpl(db, organization_id=ORG_ID)


@pytest.fixture()
def detector(repo: ReservationRepositoryImpl) -> ConflictDetector:
    return ConflictDetector(reservation_repo=repo)


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def config() -> SchedulingConfig:
    return SchedulingConfig()


@pytest.fixture()
def manager(repo: ReservationRepositoryImpl, notifier: RecordingNotifier) -> SeriesManager:
    return SeriesManager(reservation_repo=repo, notifier=notifier)


@pytest.fixture()
def manager_for(db: Session) -> Callable[[str], SeriesManager]:
    def _build(organization_id: str) -> SeriesManager:
        return SeriesManager(reservation_repo=ReservationRepositoryImpl(db, organization_id=organization_id))

    return _build


@pytest.fixture()
def book(manager: SeriesManager, config: SchedulingConfig) -> Callable[..., Reservation]:
    """Book a single slot on the default resource for another user."""

    def _book(on_date: date, start_time: str = "10:00", end_time: str = "11:00", **kwargs) -> Reservation:
        return manager.create_reservation(
            resource_id=kwargs.pop("resource_id", RESOURCE_ID),
            on_date=on_date,
            start_time=start_time,
            end_time=end_time,
            details=BookingDetails(user_id=kwargs.pop("user_id", "someone-else"), **kwargs),
            config=config,
        )

    return _book


@pytest.fixture()
def client(db: Session) -> TestClient:
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(routers.router)

    def _override_get_db():
        yield db

    app.dependency_overrides[routers.get_db] = _override_get_db
    return TestClient(app, headers={"X-Organization-Id": ORG_ID})
