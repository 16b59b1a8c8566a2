"""Tests for the health endpoint."""

from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from order_intake.api.v1.endpoints import health


def test_health_all_components_up(test_client: TestClient, monkeypatch) -> None:
    temporal = MagicMock()
    temporal.service_client.check_health = AsyncMock(return_value=True)
    monkeypatch.setattr(health.db_client, "health_check", AsyncMock(return_value={"status": "healthy"}))
    monkeypatch.setattr(health, "get_temporal_client", AsyncMock(return_value=temporal))

    response = test_client.get("/health/")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["components"] == {"database": "healthy", "temporal": "healthy"}


def test_health_degraded_when_temporal_unreachable(test_client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(health.db_client, "health_check", AsyncMock(return_value={"status": "healthy"}))
    monkeypatch.setattr(health, "get_temporal_client", AsyncMock(side_effect=RuntimeError("refused")))

    body = test_client.get("/health/").json()

    assert body["status"] == "degraded"
    assert body["components"]["temporal"] == "unhealthy"
