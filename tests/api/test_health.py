from __future__ import annotations

from fastapi.testclient import TestClient


def test_health_returns_ok(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    # Tests run without DATABASE_URL or Pinata credentials.
    assert data["checks"]["database"] == "not_configured"
    assert data["checks"]["content_store"] == "in_memory"


def test_ready_returns_200_without_database(client: TestClient) -> None:
    resp = client.get("/ready")
    assert resp.status_code == 200


def test_ready_returns_503_when_database_down(client: TestClient, monkeypatch) -> None:
    from decertify.api import health

    async def _down() -> bool:
        raise ConnectionRefusedError("db down")

    monkeypatch.setattr(health, "engine", object())
    monkeypatch.setattr(health, "ping_database", _down)

    assert client.get("/ready").status_code == 503
    data = client.get("/health").json()
    assert data["status"] == "degraded"
    assert data["checks"]["database"] == "degraded"
