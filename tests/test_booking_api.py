from __future__ import annotations

from datetime import UTC, datetime
from types import SimpleNamespace
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

import app.main as main_module
from app.core.enums import BookingStatusEnum, RoleEnum
from app.core.security import Actor, get_current_actor
from app.modules.booking.conflicts import ConflictReport
from app.modules.booking.intervals import Interval
from app.modules.booking.series import RejectedOccurrence, SeriesResult
from app.modules.booking.service import get_booking_service
from app.shared.exceptions import BookingConflictError, InvalidStateTransitionError

PREFIX = main_module.settings.api_prefix
MEMBER = Actor(id=uuid4(), role=RoleEnum.MEMBER)


def _booking(**overrides) -> SimpleNamespace:
    now = datetime(2024, 1, 1, tzinfo=UTC)
    fields = {
        "id": uuid4(),
        "resource_id": uuid4(),
        "requested_by": MEMBER.id,
        "title": None,
        "start_at": datetime(2024, 1, 1, 9, tzinfo=UTC),
        "end_at": datetime(2024, 1, 1, 10, tzinfo=UTC),
        "series_id": None,
        "recurrence_rule": None,
        "status": BookingStatusEnum.CONFIRMED,
        "requires_approval": False,
        "approved_at": None,
        "approved_by": None,
        "cancelled_at": None,
        "cancelled_by": None,
        "cancellation_reason": None,
        "completed_at": None,
        "created_at": now,
        "updated_at": now,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


class StubBookingService:
    def __init__(self) -> None:
        self.taken_by: UUID | None = None
        self.calls: list[tuple] = []

    async def create_booking(self, resource_id, interval, actor, title=None):
        if self.taken_by is not None:
            raise BookingConflictError([self.taken_by])
        self.calls.append(("create_booking", resource_id, interval, actor.id, title))
        return _booking(resource_id=resource_id, start_at=interval.start, end_at=interval.end, title=title)

    async def create_series(self, resource_id, base_interval, rule, actor, title=None):
        self.calls.append(("create_series", resource_id, base_interval, rule))
        series_id = uuid4()
        accepted = [_booking(resource_id=resource_id, series_id=series_id)]
        rejected = [RejectedOccurrence(interval=base_interval, conflicting_booking_ids=[uuid4()])]
        return SeriesResult(series_id=series_id, accepted=accepted, rejected=rejected)

    async def check_availability(self, resource_id, interval, exclude_booking_ids=None):
        self.calls.append(("check_availability", resource_id, exclude_booking_ids))
        return ConflictReport(interval=interval)

    async def approve(self, booking_id, actor):
        raise InvalidStateTransitionError("cancelled", "confirmed")


@pytest.fixture
def stub_service() -> StubBookingService:
    return StubBookingService()


@pytest.fixture
def client(stub_service: StubBookingService):
    main_module.app.dependency_overrides[get_booking_service] = lambda: stub_service
    main_module.app.dependency_overrides[get_current_actor] = lambda: MEMBER
    yield TestClient(main_module.app)
    main_module.app.dependency_overrides.clear()


def _interval_body(**extra) -> dict:
    return {
        "resource_id": str(uuid4()),
        "start_at": "2024-01-01T09:00:00Z",
        "end_at": "2024-01-01T10:00:00Z",
        **extra,
    }


def test_create_booking_returns_created_booking(client: TestClient, stub_service: StubBookingService) -> None:
    response = client.post(f"{PREFIX}/bookings", json=_interval_body(title="Standup"))

    assert response.status_code == 201
    assert response.json()["status"] == "confirmed"
    assert response.json()["title"] == "Standup"
    assert stub_service.calls[0][4] == "Standup"


def test_create_booking_conflict_lists_conflicting_ids(
    client: TestClient,
    stub_service: StubBookingService,
) -> None:
    stub_service.taken_by = uuid4()

    response = client.post(f"{PREFIX}/bookings", json=_interval_body())

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "booking_conflict"
    assert error["details"] == {"conflicting_booking_ids": [str(stub_service.taken_by)]}


def test_inverted_interval_is_rejected(client: TestClient) -> None:
    response = client.post(
        f"{PREFIX}/bookings",
        json=_interval_body(start_at="2024-01-01T10:00:00Z", end_at="2024-01-01T09:00:00Z"),
    )

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "invalid_interval"


def test_series_request_reports_accepted_and_rejected(
    client: TestClient,
    stub_service: StubBookingService,
) -> None:
    body = _interval_body(
        recurrence={
            "frequency": "weekly",
            "days_of_week": ["monday", 2],
            "start_date": "2024-01-01",
            "occurrence_count": 4,
        },
    )

    response = client.post(f"{PREFIX}/bookings/series", json=body)

    assert response.status_code == 201
    payload = response.json()
    assert len(payload["accepted"]) == 1
    assert len(payload["rejected"]) == 1
    assert payload["accepted"][0]["series_id"] == payload["series_id"]
    rule = stub_service.calls[0][3]
    assert rule.occurrence_count == 4
    assert sorted(int(day) for day in rule.days_of_week) == [0, 2]


def test_series_request_with_both_bounds_is_rejected(client: TestClient) -> None:
    body = _interval_body(
        recurrence={
            "frequency": "daily",
            "start_date": "2024-01-01",
            "occurrence_count": 4,
            "end_date": "2024-02-01",
        },
    )

    response = client.post(f"{PREFIX}/bookings/series", json=body)

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "invalid_recurrence_rule"


def test_availability_reports_free_slot(client: TestClient, stub_service: StubBookingService) -> None:
    excluded = uuid4()

    response = client.post(
        f"{PREFIX}/bookings/availability",
        json=_interval_body(exclude_booking_ids=[str(excluded)]),
    )

    assert response.status_code == 200
    assert response.json()["available"] is True
    assert response.json()["conflicting_booking_ids"] == []
    assert stub_service.calls[0][2] == [excluded]


def test_invalid_transition_maps_to_conflict(client: TestClient) -> None:
    response = client.post(f"{PREFIX}/bookings/{uuid4()}/approve")

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "invalid_state_transition"
    assert error["details"] == {"current": "cancelled", "target": "confirmed"}


def test_interval_payload_is_normalized_to_utc(client: TestClient, stub_service: StubBookingService) -> None:
    client.post(
        f"{PREFIX}/bookings",
        json=_interval_body(start_at="2024-01-01T11:00:00+02:00", end_at="2024-01-01T12:00:00+02:00"),
    )

    interval: Interval = stub_service.calls[0][2]
    assert interval.start == datetime(2024, 1, 1, 9, tzinfo=UTC)
