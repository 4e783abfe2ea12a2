"""Booking repository layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Select, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import ACTIVE_BOOKING_STATUSES, BookingStatusEnum
from app.modules.booking.models import Booking
from app.modules.spaces.models import Space


def resource_lock_key(resource_id: UUID) -> int:
    """Signed 64-bit advisory lock key derived from the resource id."""
    return int.from_bytes(resource_id.bytes[:8], "big", signed=True)


def _scoped(stmt: Select, tenant_id: str | None) -> Select:
    """Restrict a booking query to spaces of one tenant."""
    if tenant_id is None:
        return stmt
    return stmt.join(Space, Space.id == Booking.resource_id).where(Space.tenant_id == tenant_id)


class BookingRepository:
    """DB operations for booking domain."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def lock_resource(self, resource_id: UUID) -> None:
        """Serialize check-and-write on one resource until the transaction ends."""
        await self.session.execute(
            text("SELECT pg_advisory_xact_lock(:key)"),
            {"key": resource_lock_key(resource_id)},
        )

    async def find_active_by_resource(
        self,
        resource_id: UUID,
        window_start: datetime,
        window_end: datetime,
    ) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(
                Booking.resource_id == resource_id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                Booking.start_at < window_end,
                Booking.end_at > window_start,
            )
            .order_by(Booking.start_at.asc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def create_booking(
        self,
        *,
        resource_id: UUID,
        requested_by: UUID,
        start_at: datetime,
        end_at: datetime,
        status: BookingStatusEnum,
        requires_approval: bool,
        title: str | None = None,
        series_id: UUID | None = None,
        recurrence_rule: dict | None = None,
    ) -> Booking:
        booking = Booking(
            resource_id=resource_id,
            requested_by=requested_by,
            start_at=start_at,
            end_at=end_at,
            status=status,
            requires_approval=requires_approval,
            title=title,
            series_id=series_id,
            recurrence_rule=recurrence_rule,
        )
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def update_status(
        self,
        booking: Booking,
        status: BookingStatusEnum,
        changes: dict[str, Any],
    ) -> Booking:
        booking.status = status
        for name, value in changes.items():
            setattr(booking, name, value)
        await self.session.flush()
        return booking

    async def update_interval(self, booking: Booking, start_at: datetime, end_at: datetime) -> Booking:
        booking.start_at = start_at
        booking.end_at = end_at
        await self.session.flush()
        return booking

    async def get_booking_by_id(self, booking_id: UUID) -> Booking | None:
        stmt = select(Booking).where(Booking.id == booking_id)
        return await self.session.scalar(stmt)

    async def reload(self, booking: Booking) -> Booking:
        await self.session.refresh(booking)
        return booking

    async def list_by_series(self, series_id: UUID) -> list[Booking]:
        stmt = select(Booking).where(Booking.series_id == series_id).order_by(Booking.start_at.asc())
        return list((await self.session.scalars(stmt)).all())

    async def list_bookings(
        self,
        *,
        requested_by: UUID | None,
        resource_id: UUID | None,
        status: BookingStatusEnum | None,
        starts_after: datetime | None,
        starts_before: datetime | None,
        limit: int,
        offset: int,
        tenant_id: str | None = None,
    ) -> tuple[list[Booking], int]:
        base_stmt = _scoped(select(Booking), tenant_id)
        if requested_by is not None:
            base_stmt = base_stmt.where(Booking.requested_by == requested_by)
        if resource_id is not None:
            base_stmt = base_stmt.where(Booking.resource_id == resource_id)
        if status is not None:
            base_stmt = base_stmt.where(Booking.status == status)
        if starts_after is not None:
            base_stmt = base_stmt.where(Booking.start_at >= starts_after)
        if starts_before is not None:
            base_stmt = base_stmt.where(Booking.start_at <= starts_before)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(Booking.start_at.desc()).limit(limit).offset(offset)
        items = list((await self.session.scalars(stmt)).all())
        return items, total

    async def list_pending(
        self,
        limit: int,
        offset: int,
        tenant_id: str | None = None,
    ) -> tuple[list[Booking], int]:
        base_stmt = _scoped(select(Booking), tenant_id).where(
            Booking.status == BookingStatusEnum.PENDING,
        )
        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(Booking.created_at.asc()).limit(limit).offset(offset)
        items = list((await self.session.scalars(stmt)).all())
        return items, total

    async def find_elapsed_confirmed(self, now: datetime, tenant_id: str | None = None) -> list[Booking]:
        stmt = _scoped(select(Booking), tenant_id).where(
            Booking.status == BookingStatusEnum.CONFIRMED,
            Booking.end_at <= now,
        )
        return list((await self.session.scalars(stmt)).all())

    async def count_by_status(
        self,
        resource_id: UUID | None,
        starts_after: datetime | None,
        starts_before: datetime | None,
        tenant_id: str | None = None,
    ) -> dict[BookingStatusEnum, int]:
        stmt = _scoped(select(Booking.status, func.count()), tenant_id).group_by(Booking.status)
        if resource_id is not None:
            stmt = stmt.where(Booking.resource_id == resource_id)
        if starts_after is not None:
            stmt = stmt.where(Booking.start_at >= starts_after)
        if starts_before is not None:
            stmt = stmt.where(Booking.start_at <= starts_before)
        rows = (await self.session.execute(stmt)).all()
        return {status: int(count) for status, count in rows}
