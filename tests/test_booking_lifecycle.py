from __future__ import annotations

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest

from app.core.enums import BookingStatusEnum
from app.modules.booking.lifecycle import (
    BOOKING_TRANSITIONS,
    assert_transition,
    initial_status,
    is_terminal,
    plan_approval,
    plan_cancellation,
    plan_completion,
    requires_approval,
)
from app.shared.exceptions import BusinessRuleException, InvalidStateTransitionError

NOW = datetime(2024, 1, 1, 8, tzinfo=UTC)


def _booking(status: BookingStatusEnum, start_offset: timedelta = timedelta(hours=2)) -> SimpleNamespace:
    start_at = NOW + start_offset
    return SimpleNamespace(
        id=uuid4(),
        status=status,
        start_at=start_at,
        end_at=start_at + timedelta(hours=1),
    )


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (BookingStatusEnum.PENDING, BookingStatusEnum.CONFIRMED),
        (BookingStatusEnum.PENDING, BookingStatusEnum.CANCELLED),
        (BookingStatusEnum.CONFIRMED, BookingStatusEnum.CANCELLED),
        (BookingStatusEnum.CONFIRMED, BookingStatusEnum.COMPLETED),
    ],
)
def test_allowed_transitions(current: BookingStatusEnum, target: BookingStatusEnum) -> None:
    assert_transition(current, target)


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (BookingStatusEnum.PENDING, BookingStatusEnum.COMPLETED),
        (BookingStatusEnum.CONFIRMED, BookingStatusEnum.PENDING),
        (BookingStatusEnum.CANCELLED, BookingStatusEnum.CONFIRMED),
        (BookingStatusEnum.COMPLETED, BookingStatusEnum.CANCELLED),
    ],
)
def test_disallowed_transitions_raise(current: BookingStatusEnum, target: BookingStatusEnum) -> None:
    with pytest.raises(InvalidStateTransitionError) as exc:
        assert_transition(current, target)
    assert exc.value.details == {"current": str(current), "target": str(target)}


def test_cancelled_and_completed_are_terminal() -> None:
    assert {status for status in BOOKING_TRANSITIONS if is_terminal(status)} == {
        BookingStatusEnum.CANCELLED,
        BookingStatusEnum.COMPLETED,
    }


def test_initial_status_follows_approval_flag() -> None:
    assert initial_status(True) == BookingStatusEnum.PENDING
    assert initial_status(False) == BookingStatusEnum.CONFIRMED


def test_approval_policy_by_resource_and_duration() -> None:
    assert requires_approval(resource_requires_approval=True, duration=timedelta(minutes=30))
    assert requires_approval(
        resource_requires_approval=False,
        duration=timedelta(minutes=30),
        always_require_approval=True,
    )
    assert requires_approval(
        resource_requires_approval=False,
        duration=timedelta(hours=5),
        approval_duration_hours=4,
    )
    assert not requires_approval(
        resource_requires_approval=False,
        duration=timedelta(hours=4),
        approval_duration_hours=4,
    )
    assert not requires_approval(resource_requires_approval=False, duration=timedelta(hours=12))


def test_plan_approval_records_approver() -> None:
    approver_id = uuid4()

    plan = plan_approval(_booking(BookingStatusEnum.PENDING), approver_id, NOW)

    assert plan.source == BookingStatusEnum.PENDING
    assert plan.target == BookingStatusEnum.CONFIRMED
    assert plan.changes == {"approved_at": NOW, "approved_by": approver_id}


def test_plan_approval_rejects_confirmed_booking() -> None:
    with pytest.raises(InvalidStateTransitionError):
        plan_approval(_booking(BookingStatusEnum.CONFIRMED), uuid4(), NOW)


def test_confirmed_booking_cannot_be_cancelled_after_start() -> None:
    booking = _booking(BookingStatusEnum.CONFIRMED, start_offset=timedelta(minutes=-5))

    with pytest.raises(BusinessRuleException):
        plan_cancellation(booking, uuid4(), None, NOW)


def test_cancellation_grace_closes_window_before_start() -> None:
    booking = _booking(BookingStatusEnum.CONFIRMED, start_offset=timedelta(minutes=30))

    plan_cancellation(booking, uuid4(), None, NOW)
    with pytest.raises(BusinessRuleException):
        plan_cancellation(booking, uuid4(), None, NOW, grace=timedelta(hours=1))


def test_pending_booking_can_be_withdrawn_after_start() -> None:
    actor_id = uuid4()
    booking = _booking(BookingStatusEnum.PENDING, start_offset=timedelta(hours=-1))

    plan = plan_cancellation(booking, actor_id, "no longer needed", NOW)

    assert plan.target == BookingStatusEnum.CANCELLED
    assert plan.changes == {
        "cancelled_at": NOW,
        "cancelled_by": actor_id,
        "cancellation_reason": "no longer needed",
    }


def test_completion_requires_end_reached() -> None:
    booking = _booking(BookingStatusEnum.CONFIRMED)

    with pytest.raises(BusinessRuleException):
        plan_completion(booking, NOW)

    plan = plan_completion(booking, booking.end_at)
    assert plan.target == BookingStatusEnum.COMPLETED
    assert plan.changes == {"completed_at": booking.end_at}


def test_pending_booking_cannot_be_completed() -> None:
    booking = _booking(BookingStatusEnum.PENDING, start_offset=timedelta(hours=-3))

    with pytest.raises(InvalidStateTransitionError):
        plan_completion(booking, NOW)
