"""Audit API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.core.security import Actor, get_current_actor
from app.modules.audit.schemas import AuditLogRead, OutboxEventRead
from app.modules.audit.service import AuditService, get_audit_service
from app.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/logs", response_model=Page[AuditLogRead])
async def list_logs(
    entity_id: str | None = Query(default=None),
    pagination=Depends(get_pagination_params),
    service: AuditService = Depends(get_audit_service),
    current_actor: Actor = Depends(get_current_actor),
) -> Page[AuditLogRead]:
    """List audit logs."""
    items, total = await service.list_logs(current_actor, entity_id, pagination.limit, pagination.offset)
    serialized = [AuditLogRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/outbox/pending", response_model=list[OutboxEventRead])
async def list_pending_outbox(
    limit: int = Query(default=100, ge=1, le=500),
    service: AuditService = Depends(get_audit_service),
    current_actor: Actor = Depends(get_current_actor),
) -> list[OutboxEventRead]:
    """List pending outbox events."""
    items = await service.list_pending_outbox(current_actor, limit=limit)
    return [OutboxEventRead.model_validate(item) for item in items]


@router.post("/outbox/{event_id}/ack", response_model=OutboxEventRead)
async def acknowledge_outbox_event(
    event_id: UUID,
    service: AuditService = Depends(get_audit_service),
    current_actor: Actor = Depends(get_current_actor),
) -> OutboxEventRead:
    """Mark outbox event as delivered."""
    event = await service.acknowledge(event_id, current_actor)
    return OutboxEventRead.model_validate(event)
