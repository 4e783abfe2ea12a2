"""Booking schemas."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.core.enums import BookingStatusEnum, RecurrenceFrequencyEnum
from app.modules.booking.intervals import Interval
from app.modules.booking.recurrence import RecurrenceRule, weekdays_from


class IntervalPayload(BaseModel):
    """Start/end pair; validated into a half-open interval by the service."""

    start_at: datetime
    end_at: datetime

    def to_interval(self) -> Interval:
        return Interval(self.start_at, self.end_at)


class RecurrenceRulePayload(BaseModel):
    """Recurrence rule request body.

    Days of week accept ``0``-``6`` (Monday first) or names such as ``"monday"``.
    """

    frequency: RecurrenceFrequencyEnum
    interval: int = 1
    days_of_week: list[int | str] = Field(default_factory=list)
    start_date: date
    occurrence_count: int | None = None
    end_date: date | None = None

    def to_rule(self) -> RecurrenceRule:
        return RecurrenceRule(
            frequency=self.frequency,
            interval=self.interval,
            days_of_week=weekdays_from(self.days_of_week),
            start_date=self.start_date,
            occurrence_count=self.occurrence_count,
            end_date=self.end_date,
        )


class BookingCreateRequest(IntervalPayload):
    """Create single booking request."""

    resource_id: UUID
    title: str | None = Field(default=None, max_length=255)


class BookingSeriesCreateRequest(BookingCreateRequest):
    """Create recurring booking request; without a rule it behaves like a single booking."""

    recurrence: RecurrenceRulePayload | None = None


class AvailabilityRequest(IntervalPayload):
    """Availability check request."""

    resource_id: UUID
    exclude_booking_ids: list[UUID] = Field(default_factory=list)


class BookingRescheduleRequest(IntervalPayload):
    """Move booking to a new interval."""


class BookingCancelRequest(BaseModel):
    """Cancel booking request."""

    reason: str | None = Field(default=None, max_length=512)


class BookingRejectRequest(BaseModel):
    """Reject pending booking request."""

    reason: str = Field(min_length=1, max_length=512)


class BookingRead(BaseModel):
    """Booking response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    resource_id: UUID
    requested_by: UUID
    title: str | None
    start_at: datetime
    end_at: datetime
    series_id: UUID | None
    recurrence_rule: dict | None
    status: BookingStatusEnum
    requires_approval: bool
    approved_at: datetime | None
    approved_by: UUID | None
    cancelled_at: datetime | None
    cancelled_by: UUID | None
    cancellation_reason: str | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime


class RejectedOccurrenceRead(BaseModel):
    """Occurrence skipped because it overlaps active bookings."""

    start_at: datetime
    end_at: datetime
    conflicting_booking_ids: list[UUID]


class SeriesResultRead(BaseModel):
    """Aggregate outcome of a booking request."""

    series_id: UUID | None
    accepted: list[BookingRead]
    rejected: list[RejectedOccurrenceRead]


class ConflictReportRead(BaseModel):
    """Availability check response."""

    start_at: datetime
    end_at: datetime
    available: bool
    conflicting_booking_ids: list[UUID]


class BookingStatisticsRead(BaseModel):
    """Booking counters for a resource or the whole platform."""

    total: int
    pending: int
    confirmed: int
    cancelled: int
    completed: int
    confirmation_rate: float
    cancellation_rate: float
