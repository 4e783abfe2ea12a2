"""Booking API router."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.core.enums import BookingStatusEnum
from app.core.security import Actor, get_current_actor
from app.modules.booking.conflicts import ConflictReport
from app.modules.booking.schemas import (
    AvailabilityRequest,
    BookingCancelRequest,
    BookingCreateRequest,
    BookingRead,
    BookingRejectRequest,
    BookingRescheduleRequest,
    BookingSeriesCreateRequest,
    BookingStatisticsRead,
    ConflictReportRead,
    RejectedOccurrenceRead,
    SeriesResultRead,
)
from app.modules.booking.series import SeriesResult
from app.modules.booking.service import BookingFilters, BookingService, get_booking_service
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _series_read(result: SeriesResult) -> SeriesResultRead:
    return SeriesResultRead(
        series_id=result.series_id,
        accepted=[BookingRead.model_validate(item) for item in result.accepted],
        rejected=[
            RejectedOccurrenceRead(
                start_at=item.interval.start,
                end_at=item.interval.end,
                conflicting_booking_ids=item.conflicting_booking_ids,
            )
            for item in result.rejected
        ],
    )


def _report_read(report: ConflictReport) -> ConflictReportRead:
    return ConflictReportRead(
        start_at=report.interval.start,
        end_at=report.interval.end,
        available=not report.has_conflicts,
        conflicting_booking_ids=report.conflicting_booking_ids,
    )


def get_booking_filters(
    resource_id: UUID | None = Query(default=None),
    status_filter: BookingStatusEnum | None = Query(default=None, alias="status"),
    starts_after: datetime | None = Query(default=None),
    starts_before: datetime | None = Query(default=None),
) -> BookingFilters:
    """Query-string filters shared by list and statistics endpoints."""
    return BookingFilters(
        resource_id=resource_id,
        status=status_filter,
        starts_after=starts_after,
        starts_before=starts_before,
    )


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreateRequest,
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    """Create a single booking; 409 with conflicting ids when the slot is taken."""
    booking = await service.create_booking(
        payload.resource_id,
        payload.to_interval(),
        current_actor,
        title=payload.title,
    )
    return BookingRead.model_validate(booking)


@router.post("/series", response_model=SeriesResultRead, status_code=status.HTTP_201_CREATED)
async def create_series(
    payload: BookingSeriesCreateRequest,
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> SeriesResultRead:
    """Create a recurring booking; conflicting occurrences are listed as rejected."""
    result = await service.create_series(
        payload.resource_id,
        payload.to_interval(),
        payload.recurrence.to_rule() if payload.recurrence else None,
        current_actor,
        title=payload.title,
    )
    return _series_read(result)


@router.post("/availability", response_model=ConflictReportRead)
async def check_availability(
    payload: AvailabilityRequest,
    service: BookingService = Depends(get_booking_service),
    _: Actor = Depends(get_current_actor),
) -> ConflictReportRead:
    """Check whether an interval is free on a space."""
    report = await service.check_availability(
        payload.resource_id,
        payload.to_interval(),
        exclude_booking_ids=payload.exclude_booking_ids,
    )
    return _report_read(report)


@router.get("", response_model=Page[BookingRead])
async def list_bookings(
    filters: BookingFilters = Depends(get_booking_filters),
    pagination=Depends(get_pagination_params),
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> Page[BookingRead]:
    """List bookings visible to the current actor."""
    items, total = await service.list_bookings(current_actor, filters, pagination.limit, pagination.offset)
    serialized = [BookingRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/approvals/pending", response_model=Page[BookingRead])
async def list_pending_approvals(
    pagination=Depends(get_pagination_params),
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> Page[BookingRead]:
    """Approval queue, oldest first."""
    items, total = await service.list_pending_approvals(current_actor, pagination.limit, pagination.offset)
    serialized = [BookingRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/statistics", response_model=BookingStatisticsRead)
async def get_statistics(
    filters: BookingFilters = Depends(get_booking_filters),
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> BookingStatisticsRead:
    """Booking counters and rates."""
    stats = await service.get_statistics(current_actor, filters)
    return BookingStatisticsRead.model_validate(stats, from_attributes=True)


@router.post("/complete-elapsed", response_model=int)
async def complete_elapsed_bookings(
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> int:
    """Complete ended confirmed bookings (admin task endpoint)."""
    return await service.complete_elapsed(current_actor)


@router.post("/series/{series_id}/cancel", response_model=list[BookingRead])
async def cancel_series(
    series_id: UUID,
    payload: BookingCancelRequest,
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> list[BookingRead]:
    """Cancel remaining occurrences of a series."""
    bookings = await service.cancel_series(series_id, current_actor, payload.reason)
    return [BookingRead.model_validate(item) for item in bookings]


@router.get("/{booking_id}", response_model=BookingRead)
async def get_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    booking = await service.get_booking(booking_id, current_actor)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/approve", response_model=BookingRead)
async def approve_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    """Approve pending booking from PENDING to CONFIRMED."""
    booking = await service.approve(booking_id, current_actor)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/reject", response_model=BookingRead)
async def reject_booking(
    booking_id: UUID,
    payload: BookingRejectRequest,
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    """Reject pending booking."""
    booking = await service.reject(booking_id, current_actor, payload.reason)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingRead)
async def cancel_booking(
    booking_id: UUID,
    payload: BookingCancelRequest,
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    """Cancel or withdraw booking."""
    booking = await service.cancel(booking_id, current_actor, payload.reason)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/reschedule", response_model=BookingRead)
async def reschedule_booking(
    booking_id: UUID,
    payload: BookingRescheduleRequest,
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    """Move booking to a new interval."""
    booking = await service.reschedule(booking_id, payload.to_interval(), current_actor)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/complete", response_model=BookingRead)
async def complete_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_actor: Actor = Depends(get_current_actor),
) -> BookingRead:
    """Complete booking after its end."""
    booking = await service.complete(booking_id, current_actor)
    return BookingRead.model_validate(booking)
