"""Conflict detection between candidate intervals and active bookings."""

from __future__ import annotations

from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from app.modules.booking.intervals import Interval, bounding_window, overlaps

if TYPE_CHECKING:
    from app.modules.booking.models import Booking


class ActiveBookingSource(Protocol):
    async def find_active_by_resource(
        self,
        resource_id: UUID,
        window_start: datetime,
        window_end: datetime,
    ) -> Sequence[Booking]: ...


@dataclass(frozen=True, slots=True)
class ConflictReport:
    """Candidate interval paired with the active bookings it overlaps."""

    interval: Interval
    conflicts: tuple[Booking, ...] = field(default_factory=tuple)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def conflicting_booking_ids(self) -> list[UUID]:
        return [booking.id for booking in self.conflicts]


def booking_interval(booking: Booking) -> Interval:
    return Interval(booking.start_at, booking.end_at)


def find_overlaps(candidate: Interval, active: Iterable[Booking]) -> ConflictReport:
    """Pair ``candidate`` with every booking in ``active`` it overlaps."""
    hits = tuple(booking for booking in active if overlaps(candidate, booking_interval(booking)))
    return ConflictReport(interval=candidate, conflicts=hits)


class ConflictDetector:
    """Read-only authority consulted before any slot-reserving transition."""

    def __init__(self, repository: ActiveBookingSource) -> None:
        self.repository = repository

    async def load_active(
        self,
        resource_id: UUID,
        candidates: Sequence[Interval],
        exclude_booking_ids: Collection[UUID] = (),
    ) -> list[Booking]:
        """Fetch active bookings of the resource inside the candidates' window."""
        window = bounding_window(candidates)
        bookings = await self.repository.find_active_by_resource(resource_id, window.start, window.end)
        return [booking for booking in bookings if booking.id not in exclude_booking_ids]

    async def check(
        self,
        resource_id: UUID,
        candidates: Sequence[Interval],
        exclude_booking_ids: Collection[UUID] = (),
    ) -> list[ConflictReport]:
        """Return one report per candidate, in candidate order."""
        if not candidates:
            return []
        active = await self.load_active(resource_id, candidates, exclude_booking_ids)
        return [find_overlaps(candidate, active) for candidate in candidates]
