"""Booking business logic layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import ACTIVE_BOOKING_STATUSES, BookingStatusEnum
from app.core.metrics import record_occurrences, record_transition
from app.core.security import Actor
from app.modules.audit.repository import AuditRepository
from app.modules.booking.conflicts import ConflictDetector, ConflictReport
from app.modules.booking.intervals import Interval
from app.modules.booking.lifecycle import (
    TransitionPlan,
    plan_approval,
    plan_cancellation,
    plan_completion,
)
from app.modules.booking.models import Booking
from app.modules.booking.recurrence import RecurrenceRule
from app.modules.booking.repository import BookingRepository
from app.modules.booking.series import BookingPolicy, SeriesOrchestrator, SeriesResult
from app.modules.spaces.models import Space
from app.modules.spaces.repository import SpaceRepository
from app.shared.exceptions import (
    BookingConflictError,
    BusinessRuleException,
    InvalidStateTransitionError,
    NotFoundException,
    UnauthorizedException,
)
from app.shared.utils import safe_ratio, utc_now

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BookingFilters:
    resource_id: UUID | None = None
    status: BookingStatusEnum | None = None
    starts_after: datetime | None = None
    starts_before: datetime | None = None


@dataclass(frozen=True, slots=True)
class BookingStatistics:
    total: int
    pending: int
    confirmed: int
    cancelled: int
    completed: int
    confirmation_rate: float
    cancellation_rate: float


def _booking_payload(booking: Booking) -> dict:
    return {
        "booking_id": str(booking.id),
        "resource_id": str(booking.resource_id),
        "requested_by": str(booking.requested_by),
        "series_id": str(booking.series_id) if booking.series_id else None,
        "start_at": booking.start_at.isoformat(),
        "end_at": booking.end_at.isoformat(),
        "status": str(booking.status),
    }


class BookingService:
    """Booking engine entry points: series creation, availability and approvals."""

    def __init__(
        self,
        booking_repository: BookingRepository,
        space_repository: SpaceRepository,
        audit_repository: AuditRepository,
        policy: BookingPolicy | None = None,
    ) -> None:
        self.booking_repository = booking_repository
        self.space_repository = space_repository
        self.audit_repository = audit_repository
        self.policy = policy or BookingPolicy.from_settings(settings)
        self.detector = ConflictDetector(booking_repository)
        self.orchestrator = SeriesOrchestrator(booking_repository, space_repository, self.policy)

    def _validate_actor_access(self, booking: Booking, actor: Actor) -> None:
        if actor.is_approver or booking.requested_by == actor.id:
            return
        raise UnauthorizedException("You cannot manage this booking")

    @staticmethod
    def _require_approver(actor: Actor, message: str) -> None:
        if not actor.is_approver:
            raise UnauthorizedException(message)

    @staticmethod
    def _validate_tenant(actor: Actor, space: Space) -> None:
        if not actor.can_access_tenant(space.tenant_id):
            raise UnauthorizedException("Space belongs to another tenant")

    async def _validate_resource_tenant(self, resource_id: UUID, actor: Actor) -> None:
        space = await self.space_repository.get_space_by_id(resource_id)
        if space is not None:
            self._validate_tenant(actor, space)

    async def _get_booking(self, booking_id: UUID, actor: Actor) -> Booking:
        booking = await self.booking_repository.get_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        await self._validate_resource_tenant(booking.resource_id, actor)
        return booking

    async def _get_locked_booking(self, booking_id: UUID, actor: Actor) -> Booking:
        """Load booking, lock its space and re-read state under the lock."""
        booking = await self._get_booking(booking_id, actor)
        await self.booking_repository.lock_resource(booking.resource_id)
        return await self.booking_repository.reload(booking)

    async def _record(self, booking: Booking, actor_id: UUID, event_type: str, **extra: object) -> None:
        """Write audit row and outbox event for a booking change."""
        payload = {**_booking_payload(booking), **extra}
        await self.audit_repository.create_audit_log(
            actor_id=actor_id,
            action=event_type,
            entity_type="booking",
            entity_id=str(booking.id),
            payload=payload,
        )
        await self.audit_repository.create_outbox_event(
            aggregate_type="booking",
            aggregate_id=str(booking.id),
            event_type=event_type,
            payload=payload,
        )

    async def _apply(
        self,
        booking: Booking,
        plan: TransitionPlan,
        actor_id: UUID,
        event_type: str,
    ) -> Booking:
        booking = await self.booking_repository.update_status(booking, plan.target, plan.changes)
        record_transition(plan.source, plan.target)
        await self._record(booking, actor_id, event_type, previous_status=str(plan.source))
        return booking

    async def create_series(
        self,
        resource_id: UUID,
        base_interval: Interval,
        rule: RecurrenceRule | None,
        actor: Actor,
        title: str | None = None,
    ) -> SeriesResult:
        """Create a single or recurring booking; conflicts are reported, not raised."""
        occurrences = self.orchestrator.occurrences(base_interval, rule)
        resource = await self.orchestrator.get_bookable_resource(resource_id)
        self._validate_tenant(actor, resource)
        await self.booking_repository.lock_resource(resource_id)
        result = await self.orchestrator.create_series(
            resource_id=resource_id,
            base_interval=base_interval,
            rule=rule,
            requested_by=actor.id,
            title=title,
            occurrences=occurrences,
            resource=resource,
        )

        for booking in result.accepted:
            await self._record(booking, actor.id, "booking.created")
        record_occurrences("accepted", len(result.accepted))
        record_occurrences("rejected", len(result.rejected))

        if result.is_partial:
            logger.warning(
                "Series %s partially accepted: %d occurrence(s) conflict",
                result.series_id,
                len(result.rejected),
            )
        return result

    async def create_booking(
        self,
        resource_id: UUID,
        interval: Interval,
        actor: Actor,
        title: str | None = None,
    ) -> Booking:
        """Create one booking or raise ``BookingConflictError``."""
        result = await self.create_series(resource_id, interval, None, actor, title=title)
        if result.rejected:
            raise BookingConflictError(result.rejected[0].conflicting_booking_ids)
        return result.accepted[0]

    async def check_availability(
        self,
        resource_id: UUID,
        interval: Interval,
        exclude_booking_ids: list[UUID] | None = None,
    ) -> ConflictReport:
        """Report active bookings overlapping ``interval``; no writes."""
        reports = await self.detector.check(resource_id, [interval], exclude_booking_ids or ())
        return reports[0]

    async def approve(self, booking_id: UUID, actor: Actor) -> Booking:
        """Confirm a pending booking after a fresh conflict re-check."""
        self._require_approver(actor, "Only space admins can approve bookings")
        booking = await self._get_locked_booking(booking_id, actor)

        plan = plan_approval(booking, actor.id, utc_now())
        report = await self.check_availability(
            booking.resource_id,
            Interval(booking.start_at, booking.end_at),
            exclude_booking_ids=[booking.id],
        )
        if report.has_conflicts:
            logger.warning(
                "Approval of booking %s blocked by %s",
                booking.id,
                report.conflicting_booking_ids,
            )
            raise BookingConflictError(
                report.conflicting_booking_ids,
                "Slot was taken while the booking awaited approval",
            )

        booking = await self._apply(booking, plan, actor.id, "booking.approved")
        logger.info("Booking %s approved by %s", booking.id, actor.id)
        return booking

    async def reject(self, booking_id: UUID, actor: Actor, reason: str) -> Booking:
        """Reject a pending booking."""
        self._require_approver(actor, "Only space admins can reject bookings")
        booking = await self._get_locked_booking(booking_id, actor)
        if booking.status != BookingStatusEnum.PENDING:
            raise InvalidStateTransitionError(str(booking.status), "rejected")

        plan = plan_cancellation(booking, actor.id, reason, utc_now())
        booking = await self._apply(booking, plan, actor.id, "booking.rejected")
        logger.info("Booking %s rejected by %s", booking.id, actor.id)
        return booking

    async def cancel(self, booking_id: UUID, actor: Actor, reason: str | None = None) -> Booking:
        """Withdraw a pending booking or cancel a confirmed one before it starts."""
        booking = await self._get_locked_booking(booking_id, actor)
        self._validate_actor_access(booking, actor)

        plan = plan_cancellation(
            booking,
            actor.id,
            reason,
            utc_now(),
            grace=self.policy.cancellation_grace,
        )
        booking = await self._apply(booking, plan, actor.id, "booking.cancelled")
        logger.info("Booking %s cancelled by %s", booking.id, actor.id)
        return booking

    async def cancel_series(
        self,
        series_id: UUID,
        actor: Actor,
        reason: str | None = None,
    ) -> list[Booking]:
        """Cancel every occurrence of a series that can still be cancelled."""
        bookings = await self.booking_repository.list_by_series(series_id)
        if not bookings:
            raise NotFoundException("Series not found")
        self._validate_actor_access(bookings[0], actor)
        await self._validate_resource_tenant(bookings[0].resource_id, actor)
        await self.booking_repository.lock_resource(bookings[0].resource_id)

        now = utc_now()
        grace = self.policy.cancellation_grace
        cancelled: list[Booking] = []
        for booking in bookings:
            booking = await self.booking_repository.reload(booking)
            if booking.status not in ACTIVE_BOOKING_STATUSES:
                continue
            # Occurrences already inside the cancellation window are left as they are.
            if booking.status == BookingStatusEnum.CONFIRMED and now >= booking.start_at - grace:
                continue
            plan = plan_cancellation(booking, actor.id, reason, now, grace=grace)
            cancelled.append(await self._apply(booking, plan, actor.id, "booking.cancelled"))

        logger.info("Series %s: %d occurrence(s) cancelled by %s", series_id, len(cancelled), actor.id)
        return cancelled

    async def reschedule(self, booking_id: UUID, new_interval: Interval, actor: Actor) -> Booking:
        """Move an active booking to a new interval on the same space.

        Status is kept. A confirmed booking that needs approval, either through
        its space or through the new interval's length, can only be moved by an
        approver, and members lose the right to move it once the cancellation
        window has closed.
        """
        booking = await self._get_locked_booking(booking_id, actor)
        self._validate_actor_access(booking, actor)
        if booking.status not in ACTIVE_BOOKING_STATUSES:
            raise InvalidStateTransitionError(str(booking.status), "rescheduled")

        now = utc_now()
        confirmed = booking.status == BookingStatusEnum.CONFIRMED
        if confirmed and not actor.is_approver and now >= booking.start_at - self.policy.cancellation_grace:
            raise BusinessRuleException("Reschedule window for this booking has closed")
        if new_interval.start <= now:
            raise BusinessRuleException("Booking cannot be moved into the past")

        resource = await self.orchestrator.get_bookable_resource(booking.resource_id)
        needs_approval = booking.requires_approval or self.orchestrator.needs_approval(resource, new_interval)
        if confirmed and needs_approval and not actor.is_approver:
            raise UnauthorizedException("Only space admins can move a booking that requires approval")

        report = await self.check_availability(
            booking.resource_id,
            new_interval,
            exclude_booking_ids=[booking.id],
        )
        if report.has_conflicts:
            raise BookingConflictError(report.conflicting_booking_ids)

        previous_start_at = booking.start_at.isoformat()
        previous_end_at = booking.end_at.isoformat()
        booking = await self.booking_repository.update_interval(booking, new_interval.start, new_interval.end)
        await self._record(
            booking,
            actor.id,
            "booking.rescheduled",
            previous_start_at=previous_start_at,
            previous_end_at=previous_end_at,
        )
        logger.info("Booking %s rescheduled by %s", booking.id, actor.id)
        return booking

    async def complete(self, booking_id: UUID, actor: Actor) -> Booking:
        """Mark a confirmed booking whose interval has ended as completed."""
        self._require_approver(actor, "Only space admins can complete bookings")
        booking = await self._get_locked_booking(booking_id, actor)
        plan = plan_completion(booking, utc_now())
        return await self._apply(booking, plan, actor.id, "booking.completed")

    async def complete_elapsed(self, actor: Actor) -> int:
        """Complete every confirmed booking that has already ended."""
        self._require_approver(actor, "Only space admins can run booking completion")
        now = utc_now()
        bookings = await self.booking_repository.find_elapsed_confirmed(now, actor.scope_tenant_id)
        for booking in bookings:
            await self._apply(booking, plan_completion(booking, now), actor.id, "booking.completed")
        return len(bookings)

    async def get_booking(self, booking_id: UUID, actor: Actor) -> Booking:
        booking = await self._get_booking(booking_id, actor)
        self._validate_actor_access(booking, actor)
        return booking

    async def list_bookings(
        self,
        actor: Actor,
        filters: BookingFilters,
        limit: int,
        offset: int,
    ) -> tuple[list[Booking], int]:
        """List bookings; members only see their own."""
        return await self.booking_repository.list_bookings(
            requested_by=None if actor.is_approver else actor.id,
            resource_id=filters.resource_id,
            status=filters.status,
            starts_after=filters.starts_after,
            starts_before=filters.starts_before,
            limit=limit,
            offset=offset,
            tenant_id=actor.scope_tenant_id,
        )

    async def list_pending_approvals(
        self,
        actor: Actor,
        limit: int,
        offset: int,
    ) -> tuple[list[Booking], int]:
        """Pending bookings, oldest request first."""
        self._require_approver(actor, "Only space admins can review approvals")
        return await self.booking_repository.list_pending(limit, offset, actor.scope_tenant_id)

    async def get_statistics(self, actor: Actor, filters: BookingFilters) -> BookingStatistics:
        self._require_approver(actor, "Only space admins can view booking statistics")
        counts = await self.booking_repository.count_by_status(
            filters.resource_id,
            filters.starts_after,
            filters.starts_before,
            actor.scope_tenant_id,
        )
        total = sum(counts.values())
        confirmed = counts.get(BookingStatusEnum.CONFIRMED, 0)
        cancelled = counts.get(BookingStatusEnum.CANCELLED, 0)
        completed = counts.get(BookingStatusEnum.COMPLETED, 0)
        return BookingStatistics(
            total=total,
            pending=counts.get(BookingStatusEnum.PENDING, 0),
            confirmed=confirmed,
            cancelled=cancelled,
            completed=completed,
            confirmation_rate=safe_ratio(confirmed + completed, total),
            cancellation_rate=safe_ratio(cancelled, total),
        )


async def get_booking_service(session: AsyncSession = Depends(get_db_session)) -> BookingService:
    """Dependency provider for booking service."""
    return BookingService(
        booking_repository=BookingRepository(session),
        space_repository=SpaceRepository(session),
        audit_repository=AuditRepository(session),
    )
