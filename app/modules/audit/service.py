"""Audit trail and outbox access for administrators."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db_session
from app.core.enums import OutboxStatusEnum
from app.core.security import Actor
from app.modules.audit.models import AuditLog, OutboxEvent
from app.modules.audit.repository import AuditRepository
from app.shared.exceptions import ConflictException, NotFoundException, UnauthorizedException
from app.shared.utils import utc_now


class AuditService:
    """Read side of the booking audit trail plus outbox acknowledgement."""

    def __init__(self, repository: AuditRepository) -> None:
        self.repository = repository

    @staticmethod
    def _require_approver(actor: Actor, message: str) -> None:
        if not actor.is_approver:
            raise UnauthorizedException(message)

    async def list_logs(
        self,
        actor: Actor,
        entity_id: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[AuditLog], int]:
        """List audit logs, optionally for one booking (admin only)."""
        self._require_approver(actor, "Only admins can view audit logs")
        return await self.repository.list_audit_logs(entity_id=entity_id, limit=limit, offset=offset)

    async def list_pending_outbox(self, actor: Actor, limit: int) -> list[OutboxEvent]:
        """List pending outbox events (admin only)."""
        self._require_approver(actor, "Only admins can view outbox")
        return await self.repository.list_pending_outbox(limit)

    async def acknowledge(self, event_id: UUID, actor: Actor) -> OutboxEvent:
        """Mark outbox event as delivered by the notification collaborator."""
        self._require_approver(actor, "Only admins can acknowledge outbox events")
        event = await self.repository.get_outbox_event(event_id)
        if event is None:
            raise NotFoundException("Outbox event not found")
        if event.status != OutboxStatusEnum.PENDING:
            raise ConflictException("Outbox event was already processed")
        return await self.repository.mark_outbox_processed(event, utc_now())


async def get_audit_service(session: AsyncSession = Depends(get_db_session)) -> AuditService:
    """Dependency provider for audit service."""
    return AuditService(AuditRepository(session))
