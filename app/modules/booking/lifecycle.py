"""Booking lifecycle state machine.

Every status change goes through one of the ``plan_*`` functions, which check the
move against :data:`BOOKING_TRANSITIONS` plus the time-based guards and return
the field changes the repository applies. Conflict re-checks for approvals are
the service's job because they need the repository.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from app.core.enums import BookingStatusEnum
from app.shared.exceptions import BusinessRuleException, InvalidStateTransitionError

BOOKING_TRANSITIONS: dict[BookingStatusEnum, frozenset[BookingStatusEnum]] = {
    BookingStatusEnum.PENDING: frozenset({BookingStatusEnum.CONFIRMED, BookingStatusEnum.CANCELLED}),
    BookingStatusEnum.CONFIRMED: frozenset({BookingStatusEnum.CANCELLED, BookingStatusEnum.COMPLETED}),
    BookingStatusEnum.CANCELLED: frozenset(),
    BookingStatusEnum.COMPLETED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class TransitionPlan:
    """Validated status change and the audit fields that go with it."""

    source: BookingStatusEnum
    target: BookingStatusEnum
    changes: dict[str, Any] = field(default_factory=dict)


def is_terminal(status: BookingStatusEnum) -> bool:
    return not BOOKING_TRANSITIONS[status]


def assert_transition(current: BookingStatusEnum, target: BookingStatusEnum) -> None:
    """Raise ``InvalidStateTransitionError`` unless ``current -> target`` is allowed."""
    if target not in BOOKING_TRANSITIONS.get(current, frozenset()):
        raise InvalidStateTransitionError(str(current), str(target))


def initial_status(requires_approval: bool) -> BookingStatusEnum:
    """Status a conflict-free booking is created in."""
    return BookingStatusEnum.PENDING if requires_approval else BookingStatusEnum.CONFIRMED


def requires_approval(
    *,
    resource_requires_approval: bool,
    duration: timedelta,
    always_require_approval: bool = False,
    approval_duration_hours: float | None = None,
) -> bool:
    """Resolve the approval policy frozen onto a new booking."""
    if resource_requires_approval or always_require_approval:
        return True
    if approval_duration_hours is not None:
        return duration > timedelta(hours=approval_duration_hours)
    return False


def plan_approval(booking: Any, approver_id: UUID, now: datetime) -> TransitionPlan:
    assert_transition(booking.status, BookingStatusEnum.CONFIRMED)
    return TransitionPlan(
        source=booking.status,
        target=BookingStatusEnum.CONFIRMED,
        changes={"approved_at": now, "approved_by": approver_id},
    )


def plan_cancellation(
    booking: Any,
    actor_id: UUID,
    reason: str | None,
    now: datetime,
    grace: timedelta = timedelta(0),
) -> TransitionPlan:
    """Cancel (or reject) a booking.

    Confirmed bookings can only be cancelled until ``start_at - grace``.
    Pending bookings can be withdrawn or rejected at any time.
    """
    assert_transition(booking.status, BookingStatusEnum.CANCELLED)
    if booking.status == BookingStatusEnum.CONFIRMED and now >= booking.start_at - grace:
        raise BusinessRuleException("Cancellation window for this booking has closed")
    return TransitionPlan(
        source=booking.status,
        target=BookingStatusEnum.CANCELLED,
        changes={"cancelled_at": now, "cancelled_by": actor_id, "cancellation_reason": reason},
    )


def plan_completion(booking: Any, now: datetime) -> TransitionPlan:
    assert_transition(booking.status, BookingStatusEnum.COMPLETED)
    if now < booking.end_at:
        raise BusinessRuleException("Booking cannot be completed before it ends")
    return TransitionPlan(
        source=booking.status,
        target=BookingStatusEnum.COMPLETED,
        changes={"completed_at": now},
    )
