from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest
from fastapi import HTTPException
from jose import jwt
from pydantic import ValidationError

import app.core.security as security_module
from app.core.config import Settings
from app.core.enums import RoleEnum
from app.core.security import Actor, actor_from_claims, decode_token
from app.shared.utils import utc_now


def test_default_identity_secret_allowed_in_development() -> None:
    settings = Settings(_env_file=None, app_env="development", identity_jwt_secret="change-me")
    assert settings.identity_jwt_secret == "change-me"


def test_default_identity_secret_rejected_in_production() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, app_env="production", identity_jwt_secret="change-me")


def test_placeholder_identity_secret_prefix_rejected_in_production() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, app_env="prod", identity_jwt_secret="change-me-in-production")


def test_custom_identity_secret_allowed_in_production() -> None:
    settings = Settings(_env_file=None, app_env="production", identity_jwt_secret="super-secure-value")
    assert settings.identity_jwt_secret == "super-secure-value"


def test_booking_policy_defaults() -> None:
    settings = Settings(_env_file=None)
    assert settings.booking_max_occurrences == 366
    assert settings.booking_cancellation_grace_minutes == 0
    assert settings.booking_approval_duration_hours is None


def test_empty_approval_duration_disables_policy() -> None:
    settings = Settings(_env_file=None, booking_approval_duration_hours="")
    assert settings.booking_approval_duration_hours is None


@pytest.mark.parametrize("hours", [0, -1])
def test_non_positive_approval_duration_rejected(hours: float) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, booking_approval_duration_hours=hours)


def test_zero_max_occurrences_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, booking_max_occurrences=0)


def _token(claims: dict, secret: str | None = None) -> str:
    settings = security_module.settings
    payload = {"exp": utc_now() + timedelta(minutes=5), **claims}
    return jwt.encode(
        payload,
        secret or settings.identity_jwt_secret,
        algorithm=settings.identity_jwt_algorithm,
    )


def test_decode_token_maps_claims_to_actor() -> None:
    subject = uuid4()

    actor = actor_from_claims(decode_token(_token({"sub": str(subject), "role": "SPACE_ADMIN", "tenant_id": "acme"})))

    assert actor.id == subject
    assert actor.role == RoleEnum.SPACE_ADMIN
    assert actor.tenant_id == "acme"
    assert actor.is_approver


def test_role_defaults_to_member() -> None:
    actor = actor_from_claims({"sub": str(uuid4())})

    assert actor.role == RoleEnum.MEMBER
    assert not actor.is_approver


def test_token_signed_with_other_secret_is_unauthorized() -> None:
    with pytest.raises(HTTPException) as exc:
        decode_token(_token({"sub": str(uuid4())}, secret="another-signing-secret"))
    assert exc.value.status_code == 401


def test_expired_token_is_unauthorized() -> None:
    with pytest.raises(HTTPException) as exc:
        decode_token(_token({"sub": str(uuid4()), "exp": utc_now() - timedelta(minutes=1)}))
    assert exc.value.status_code == 401


@pytest.mark.parametrize(
    "claims",
    [
        {},
        {"sub": "not-a-uuid"},
        {"sub": "6f1c1d1e-5b7a-4c1e-9f59-3b0a2b9c1d11", "role": "janitor"},
    ],
)
def test_invalid_claims_are_unauthorized(claims: dict) -> None:
    with pytest.raises(HTTPException) as exc:
        actor_from_claims(claims)
    assert exc.value.status_code == 401


@pytest.mark.parametrize(
    ("role", "tenant_id", "space_tenant", "allowed"),
    [
        (RoleEnum.MEMBER, "acme", "acme", True),
        (RoleEnum.MEMBER, "acme", "globex", False),
        (RoleEnum.SPACE_ADMIN, "acme", "globex", False),
        (RoleEnum.MEMBER, "acme", None, True),
        (RoleEnum.MEMBER, None, "globex", True),
        (RoleEnum.PLATFORM_ADMIN, "acme", "globex", True),
    ],
)
def test_actor_tenant_access(role: RoleEnum, tenant_id: str | None, space_tenant: str | None, allowed: bool) -> None:
    actor = Actor(id=uuid4(), role=role, tenant_id=tenant_id)

    assert actor.can_access_tenant(space_tenant) is allowed


def test_platform_admin_is_not_confined_to_a_tenant() -> None:
    assert Actor(id=uuid4(), role=RoleEnum.PLATFORM_ADMIN, tenant_id="acme").scope_tenant_id is None
    assert Actor(id=uuid4(), role=RoleEnum.SPACE_ADMIN, tenant_id="acme").scope_tenant_id == "acme"
