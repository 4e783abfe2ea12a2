from __future__ import annotations

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

import app.main as main_module


def _database_ready(monkeypatch: pytest.MonkeyPatch, ready: bool) -> None:
    async def _check() -> bool:
        return ready

    monkeypatch.setattr(main_module, "_is_database_ready", _check)


def test_health_reports_ok_without_touching_the_database(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _unexpected() -> bool:
        raise AssertionError("liveness must not query the database")

    monkeypatch.setattr(main_module, "_is_database_ready", _unexpected)
    client = TestClient(main_module.app)

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_ready_reports_database_and_timestamp(monkeypatch: pytest.MonkeyPatch) -> None:
    _database_ready(monkeypatch, True)
    client = TestClient(main_module.app)

    response = client.get("/ready")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ready"
    assert body["database"] == "ok"
    assert datetime.fromisoformat(body["timestamp"]).tzinfo is not None


def test_ready_uses_unified_error_body_when_database_is_down(monkeypatch: pytest.MonkeyPatch) -> None:
    _database_ready(monkeypatch, False)
    client = TestClient(main_module.app)

    response = client.get("/ready")

    assert response.status_code == 503
    assert response.json() == {
        "error": {"code": "http_error", "message": "Database is not ready"},
    }
