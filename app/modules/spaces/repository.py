"""Read-only access to bookable spaces."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.spaces.models import Space


class SpaceRepository:
    """Resource lookup used by the booking engine."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_space_by_id(self, space_id: UUID) -> Space | None:
        stmt = select(Space).where(Space.id == space_id)
        return await self.session.scalar(stmt)
