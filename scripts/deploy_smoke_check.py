"""Post-deploy smoke checks executed from the app container."""

from __future__ import annotations

import json
import urllib.error
import urllib.request
from datetime import timedelta
from uuid import uuid4

from jose import jwt

from app.core.config import get_settings
from app.core.enums import RoleEnum
from app.shared.utils import utc_now

BASE_URL = "http://localhost:8000"


def request(
    path: str,
    *,
    method: str = "GET",
    body: dict[str, str] | None = None,
    headers: dict[str, str] | None = None,
    expected: int = 200,
) -> bytes:
    payload = None
    req_headers = {"Accept": "application/json"}
    if headers:
        req_headers.update(headers)
    if body is not None:
        payload = json.dumps(body).encode("utf-8")
        req_headers["Content-Type"] = "application/json"

    request_obj = urllib.request.Request(
        f"{BASE_URL}{path}",
        data=payload,
        method=method,
        headers=req_headers,
    )
    try:
        with urllib.request.urlopen(request_obj, timeout=30) as response:
            content = response.read()
            status = response.getcode()
    except urllib.error.HTTPError as exc:  # pragma: no cover - runtime smoke script
        body_text = exc.read().decode("utf-8", errors="ignore")
        raise RuntimeError(f"{method} {path} -> {exc.code}: {body_text}") from exc

    if status != expected:
        raise RuntimeError(f"{method} {path} -> {status}, expected {expected}")
    return content


def _smoke_token(role: RoleEnum) -> str:
    """Short-lived token signed with the configured identity secret."""
    settings = get_settings()
    claims: dict[str, object] = {
        "sub": str(uuid4()),
        "role": str(role),
        "exp": utc_now() + timedelta(minutes=5),
    }
    if settings.identity_jwt_audience:
        claims["aud"] = settings.identity_jwt_audience
    return jwt.encode(claims, settings.identity_jwt_secret, algorithm=settings.identity_jwt_algorithm)


def main() -> None:
    for endpoint in ["/health", "/ready", "/docs", "/metrics"]:
        request(endpoint, expected=200)

    prefix = get_settings().api_prefix
    member_headers = {"Authorization": f"Bearer {_smoke_token(RoleEnum.MEMBER)}"}
    admin_headers = {"Authorization": f"Bearer {_smoke_token(RoleEnum.SPACE_ADMIN)}"}

    request(f"{prefix}/bookings", headers=member_headers, expected=200)
    request(f"{prefix}/bookings/approvals/pending", headers=admin_headers, expected=200)
    request(f"{prefix}/bookings/approvals/pending", headers=member_headers, expected=403)

    print("Smoke checks passed.")


if __name__ == "__main__":
    main()
