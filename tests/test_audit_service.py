from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID, uuid4

import pytest

import app.modules.audit.service as audit_service_module
from app.core.enums import OutboxStatusEnum, RoleEnum
from app.core.security import Actor
from app.modules.audit.service import AuditService
from app.shared.exceptions import ConflictException, NotFoundException, UnauthorizedException

NOW = datetime(2024, 1, 1, 12, tzinfo=UTC)


@dataclass
class FakeOutboxEvent:
    id: UUID
    event_type: str
    status: OutboxStatusEnum = OutboxStatusEnum.PENDING
    processed_at: datetime | None = None


class FakeAuditRepository:
    def __init__(self, events: list[FakeOutboxEvent]) -> None:
        self._events = {event.id: event for event in events}

    async def list_pending_outbox(self, limit: int) -> list[FakeOutboxEvent]:
        pending = [event for event in self._events.values() if event.status == OutboxStatusEnum.PENDING]
        return pending[:limit]

    async def get_outbox_event(self, event_id: UUID) -> FakeOutboxEvent | None:
        return self._events.get(event_id)

    async def mark_outbox_processed(self, event: FakeOutboxEvent, processed_at: datetime) -> FakeOutboxEvent:
        event.status = OutboxStatusEnum.PROCESSED
        event.processed_at = processed_at
        return event


ADMIN = Actor(id=uuid4(), role=RoleEnum.PLATFORM_ADMIN)
MEMBER = Actor(id=uuid4(), role=RoleEnum.MEMBER)


@pytest.mark.asyncio
async def test_acknowledge_marks_event_processed(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(audit_service_module, "utc_now", lambda: NOW)
    event = FakeOutboxEvent(id=uuid4(), event_type="booking.approved")
    service = AuditService(FakeAuditRepository([event]))

    acknowledged = await service.acknowledge(event.id, ADMIN)

    assert acknowledged.status == OutboxStatusEnum.PROCESSED
    assert acknowledged.processed_at == NOW
    assert await service.list_pending_outbox(ADMIN, limit=10) == []


@pytest.mark.asyncio
async def test_acknowledge_twice_conflicts() -> None:
    event = FakeOutboxEvent(id=uuid4(), event_type="booking.created", status=OutboxStatusEnum.PROCESSED)
    service = AuditService(FakeAuditRepository([event]))

    with pytest.raises(ConflictException):
        await service.acknowledge(event.id, ADMIN)


@pytest.mark.asyncio
async def test_acknowledge_unknown_event_is_not_found() -> None:
    service = AuditService(FakeAuditRepository([]))

    with pytest.raises(NotFoundException):
        await service.acknowledge(uuid4(), ADMIN)


@pytest.mark.asyncio
async def test_members_cannot_read_outbox() -> None:
    service = AuditService(FakeAuditRepository([]))

    with pytest.raises(UnauthorizedException):
        await service.list_pending_outbox(MEMBER, limit=10)
