"""Series orchestration: expand, check and create occurrences as one request."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from app.core.config import Settings
from app.modules.booking.conflicts import ConflictDetector, find_overlaps
from app.modules.booking.intervals import Interval
from app.modules.booking.lifecycle import initial_status, requires_approval
from app.modules.booking.recurrence import RecurrenceRule, expand
from app.shared.exceptions import NotFoundException, ResourceUnavailableError

if TYPE_CHECKING:
    from app.modules.booking.models import Booking
    from app.modules.booking.repository import BookingRepository
    from app.modules.spaces.models import Space
    from app.modules.spaces.repository import SpaceRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BookingPolicy:
    """Platform booking policy knobs."""

    max_occurrences: int = 366
    cancellation_grace: timedelta = timedelta(0)
    always_require_approval: bool = False
    approval_duration_hours: float | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> BookingPolicy:
        return cls(
            max_occurrences=settings.booking_max_occurrences,
            cancellation_grace=timedelta(minutes=settings.booking_cancellation_grace_minutes),
            always_require_approval=settings.booking_always_require_approval,
            approval_duration_hours=settings.booking_approval_duration_hours,
        )


@dataclass(frozen=True, slots=True)
class RejectedOccurrence:
    interval: Interval
    conflicting_booking_ids: list[UUID]


@dataclass(slots=True)
class SeriesResult:
    """Accepted bookings and skipped occurrences of one request.

    Partial success is a normal outcome; rolling back is up to the caller.
    """

    series_id: UUID | None
    accepted: list[Booking] = field(default_factory=list)
    rejected: list[RejectedOccurrence] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.accepted) and bool(self.rejected)


class SeriesOrchestrator:
    """Create a single or recurring booking with existing-booking precedence."""

    def __init__(
        self,
        booking_repository: BookingRepository,
        space_repository: SpaceRepository,
        policy: BookingPolicy,
    ) -> None:
        self.booking_repository = booking_repository
        self.space_repository = space_repository
        self.detector = ConflictDetector(booking_repository)
        self.policy = policy

    def occurrences(self, base_interval: Interval, rule: RecurrenceRule | None) -> list[Interval]:
        """Chronological occurrence list; a missing rule means one occurrence."""
        if rule is None:
            return [base_interval]
        return sorted(expand(rule, base_interval, self.policy.max_occurrences))

    async def get_bookable_resource(self, resource_id: UUID) -> Space:
        """Return the space or raise when it is missing, inactive or not bookable."""
        resource = await self.space_repository.get_space_by_id(resource_id)
        if resource is None:
            raise NotFoundException("Space not found")
        if not resource.is_active or not resource.is_bookable:
            raise ResourceUnavailableError("Space is not available for booking")
        return resource

    def needs_approval(self, resource: Space, interval: Interval) -> bool:
        return requires_approval(
            resource_requires_approval=resource.requires_approval,
            duration=interval.duration,
            always_require_approval=self.policy.always_require_approval,
            approval_duration_hours=self.policy.approval_duration_hours,
        )

    async def create_series(
        self,
        resource_id: UUID,
        base_interval: Interval,
        rule: RecurrenceRule | None,
        requested_by: UUID,
        title: str | None = None,
        occurrences: list[Interval] | None = None,
        resource: Space | None = None,
    ) -> SeriesResult:
        """Run the series algorithm inside the caller's transaction.

        ``occurrences`` and ``resource`` may be passed when the caller already
        expanded ``rule`` and loaded the space (to reject bad input before
        taking a lock).
        """
        if occurrences is None:
            occurrences = self.occurrences(base_interval, rule)
        if resource is None:
            resource = await self.get_bookable_resource(resource_id)

        needs_approval = self.needs_approval(resource, base_interval)
        status = initial_status(needs_approval)
        result = SeriesResult(series_id=uuid4() if rule is not None else None)
        rule_snapshot = rule.to_dict() if rule is not None else None

        active = await self.detector.load_active(resource_id, occurrences)
        for occurrence in occurrences:
            report = find_overlaps(occurrence, [*active, *result.accepted])
            if report.has_conflicts:
                result.rejected.append(
                    RejectedOccurrence(
                        interval=occurrence,
                        conflicting_booking_ids=report.conflicting_booking_ids,
                    ),
                )
                continue

            booking = await self.booking_repository.create_booking(
                resource_id=resource_id,
                requested_by=requested_by,
                start_at=occurrence.start,
                end_at=occurrence.end,
                status=status,
                requires_approval=needs_approval,
                title=title,
                series_id=result.series_id,
                recurrence_rule=rule_snapshot,
            )
            result.accepted.append(booking)

        logger.info(
            "Booking request on space %s: %d accepted, %d rejected (series=%s)",
            resource_id,
            len(result.accepted),
            len(result.rejected),
            result.series_id,
        )
        return result
