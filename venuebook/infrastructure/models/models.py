from __future__ import annotations

import datetime as dt

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from venuebook.core.entities.recurrence import RecurrencePattern
from venuebook.core.entities.reservation import ReservationStatus, SeriesRole, Visibility
from venuebook.infrastructure.database import Base


class ReservationModel(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_reservation_time_order"),
        Index("ix_reservations_org_resource_date", "organization_id", "resource_id", "date"),
    )

    reservation_id: Mapped[str] = mapped_column(String, primary_key=True)
    organization_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    resource_id: Mapped[str] = mapped_column(String, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    status: Mapped[ReservationStatus] = mapped_column(
        Enum(ReservationStatus), nullable=False, default=ReservationStatus.PENDING
    )

    event_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    purpose: Mapped[str] = mapped_column(Text, nullable=False, default="")
    attendees: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    visibility: Mapped[Visibility] = mapped_column(Enum(Visibility), nullable=False, default=Visibility.PRIVATE)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Series membership, all null for a singleton
    series_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    series_role: Mapped[SeriesRole | None] = mapped_column(Enum(SeriesRole), nullable=True)
    parent_id: Mapped[str | None] = mapped_column(
        ForeignKey("reservations.reservation_id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    series_end_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)

    # Recurrence rule, set on the anchor only
    recurrence_pattern: Mapped[RecurrencePattern | None] = mapped_column(Enum(RecurrencePattern), nullable=True)
    recurrence_days: Mapped[str | None] = mapped_column(String, nullable=True)
    recurrence_week_of_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    recurrence_day_of_week: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
