import pytest

from huddle.settings import settings


@pytest.mark.asyncio
async def test_health_live(api_client):
    response = await api_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers.get("X-Request-Id")


@pytest.mark.asyncio
async def test_metrics_requires_token_unless_public(api_client, monkeypatch):
    monkeypatch.setattr(settings, "obs_metrics_public", False)
    monkeypatch.setattr(settings, "obs_admin_token", "ops-token")

    denied = await api_client.get("/metrics")
    assert denied.status_code == 403

    allowed = await api_client.get("/metrics", headers={"X-Admin-Token": "ops-token"})
    assert allowed.status_code == 200
    assert "huddle_http_requests_total" in allowed.text
