"""Health endpoint tests."""

import pytest


@pytest.mark.asyncio
async def test_health_returns_ok(client):
    """Health endpoint should return server status and version."""
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["server"] == "ok"
    assert data["status"] == "healthy"
    assert data["database"] == "ok"
    assert "version" in data


@pytest.mark.asyncio
async def test_health_reports_subscriber_count(client, hub):
    hub.subscribe(device_id="device_a")
    hub.subscribe(device_id="device_b")

    resp = await client.get("/api/v1/health")
    assert resp.json()["subscribers"] == 2


@pytest.mark.asyncio
async def test_health_redis_is_optional(client):
    """No Redis in tests: reported as unavailable, status stays healthy."""
    data = (await client.get("/api/v1/health")).json()
    assert data["redis"].startswith("unavailable")
    assert data["status"] == "healthy"


@pytest.mark.asyncio
async def test_health_reports_vault_reachability(client, fake_vault):
    assert (await client.get("/api/v1/health")).json()["vault"] == "ok"

    fake_vault.fail_with = 503
    data = (await client.get("/api/v1/health")).json()
    assert data["vault"] == "unreachable"
    assert data["status"] == "healthy"
