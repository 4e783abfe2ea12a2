"""Bearer token verification for identity-provider issued JWTs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.core.config import get_settings
from app.core.enums import APPROVER_ROLES, RoleEnum

settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=True)


@dataclass(frozen=True, slots=True)
class Actor:
    """Authenticated caller resolved from identity-provider claims."""

    id: UUID
    role: RoleEnum
    tenant_id: str | None = None

    @property
    def is_approver(self) -> bool:
        return self.role in APPROVER_ROLES

    @property
    def scope_tenant_id(self) -> str | None:
        """Tenant the actor is confined to; None means every tenant."""
        if self.role == RoleEnum.PLATFORM_ADMIN:
            return None
        return self.tenant_id

    def can_access_tenant(self, tenant_id: str | None) -> bool:
        scope = self.scope_tenant_id
        return scope is None or tenant_id is None or scope == tenant_id


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def decode_token(token: str) -> dict[str, Any]:
    """Decode and validate JWT token."""
    options = {"verify_aud": settings.identity_jwt_audience is not None}
    try:
        return jwt.decode(
            token,
            settings.identity_jwt_secret,
            algorithms=[settings.identity_jwt_algorithm],
            audience=settings.identity_jwt_audience,
            options=options,
        )
    except JWTError as exc:
        raise _unauthorized("Invalid token") from exc


def actor_from_claims(claims: dict[str, Any]) -> Actor:
    """Map token claims onto an actor."""
    subject = claims.get("sub")
    if not subject:
        raise _unauthorized("Token subject is missing")
    try:
        actor_id = UUID(str(subject))
    except ValueError as exc:
        raise _unauthorized("Token subject is not a valid id") from exc

    try:
        role = RoleEnum(str(claims.get("role", RoleEnum.MEMBER)).lower())
    except ValueError as exc:
        raise _unauthorized("Token role is not recognized") from exc

    tenant_id = claims.get("tenant_id")
    return Actor(id=actor_id, role=role, tenant_id=str(tenant_id) if tenant_id else None)


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> Actor:
    """Resolve currently authenticated actor from bearer token."""
    return actor_from_claims(decode_token(credentials.credentials))
