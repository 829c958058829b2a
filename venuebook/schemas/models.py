from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Status(Enum):
    pending = 'pending'
    confirmed = 'confirmed'
    cancelled = 'cancelled'


class Pattern(Enum):
    daily = 'daily'
    weekly = 'weekly'
    monthly = 'monthly'


class Visibility(Enum):
    private = 'private'
    public = 'public'


class Scope(Enum):
    single = 'single'
    group = 'group'


class Role(Enum):
    anchor = 'anchor'
    child = 'child'


class RecurrenceRule(BaseModel):
    pattern: Pattern
    end_date: dt.date
    days_of_week: Optional[List[int]] = None
    week_of_month: Optional[int] = None
    day_of_week: Optional[int] = None


class BookingDetails(BaseModel):
    user_id: str
    event_name: str = ""
    purpose: str = ""
    attendees: int = 1
    visibility: Visibility = Visibility.private
    admin_notes: Optional[str] = None


class ReservationCreate(BookingDetails):
    resource_id: str
    date: dt.date
    start_time: str
    end_time: str
    recurrence: Optional[RecurrenceRule] = None


class SeriesPreviewRequest(BaseModel):
    resource_id: str
    date: dt.date
    start_time: str
    end_time: str
    recurrence: RecurrenceRule


class OccurrencePreview(BaseModel):
    date: dt.date
    conflict: bool


class ConvertToSeriesRequest(BaseModel):
    recurrence: RecurrenceRule


class ExtendSeriesRequest(BaseModel):
    new_end_date: dt.date


class EditPatternRequest(BaseModel):
    week_of_month: int
    day_of_week: int


class AddDateRequest(BaseModel):
    date: dt.date


class ReservationUpdate(BaseModel):
    scope: Scope = Scope.single
    resource_id: Optional[str] = None
    date: Optional[dt.date] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    event_name: Optional[str] = None
    purpose: Optional[str] = None
    attendees: Optional[int] = None
    visibility: Optional[Visibility] = None
    admin_notes: Optional[str] = None
    status: Optional[Status] = None


class StatusChange(BaseModel):
    status: Status
    scope: Scope = Scope.single


class SeriesMembership(BaseModel):
    series_id: str
    role: Role
    parent_id: Optional[str]
    series_end_date: dt.date


class Reservation(BaseModel):
    reservation_id: str
    organization_id: str
    resource_id: str
    date: dt.date
    start_time: str
    end_time: str
    user_id: str
    status: Status
    event_name: str
    purpose: str
    attendees: int
    visibility: Visibility
    admin_notes: Optional[str] = None
    membership: Optional[SeriesMembership] = None
    recurrence_rule: Optional[RecurrenceRule] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


class ConflictReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    conflicting_dates: List[dt.date] = Field(alias="conflictingDates")
