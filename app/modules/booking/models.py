"""Booking ORM models."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum as SAEnum, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import JSONB, UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base, EntityMixin
from app.core.enums import BookingStatusEnum

if TYPE_CHECKING:
    from app.modules.spaces.models import Space


class Booking(EntityMixin, Base):
    """Reservation of a space for ``[start_at, end_at)``."""

    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("end_at > start_at", name="interval_positive"),
        Index("ix_bookings_resource_window", "resource_id", "start_at", "end_at"),
    )

    resource_id: Mapped[UUID] = mapped_column(
        ForeignKey("spaces.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    requested_by: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)

    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    series_id: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True, index=True)
    recurrence_rule: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    status: Mapped[BookingStatusEnum] = mapped_column(
        SAEnum(
            BookingStatusEnum,
            name="booking_status_enum",
            native_enum=False,
            values_callable=lambda enum: [item.value for item in enum],
        ),
        default=BookingStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[UUID | None] = mapped_column(PGUUID(as_uuid=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    resource: Mapped[Space] = relationship(back_populates="bookings")
