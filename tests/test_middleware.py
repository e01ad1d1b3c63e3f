"""Tests for security middleware — headers, request IDs.

Learn: Rate limiting is skipped in tests (no Redis available),
so we only test security headers and request ID middleware here.
"""

import pytest


@pytest.mark.asyncio
async def test_security_headers_on_health(client):
    """Health endpoint returns security headers."""
    r = await client.get("/api/v1/health")
    assert r.status_code == 200
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
    assert r.headers["Cache-Control"] == "no-store"
    assert r.headers["Content-Security-Policy"] == "default-src 'none'; frame-ancestors 'none'"


@pytest.mark.asyncio
async def test_request_id_generated(client):
    """Each request gets a unique X-Request-ID header."""
    r1 = await client.get("/api/v1/health")
    r2 = await client.get("/api/v1/health")
    assert "X-Request-ID" in r1.headers
    assert "X-Request-ID" in r2.headers
    # Each request gets a unique ID
    assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_propagated(client):
    """Incoming X-Request-ID is propagated through the response."""
    custom_id = "test-trace-12345"
    r = await client.get(
        "/api/v1/health",
        headers={"X-Request-ID": custom_id},
    )
    assert r.headers["X-Request-ID"] == custom_id


@pytest.mark.asyncio
async def test_no_hsts_on_http(client):
    """HSTS header is NOT set on HTTP connections (only HTTPS)."""
    r = await client.get("/api/v1/health")
    assert "Strict-Transport-Security" not in r.headers


@pytest.mark.asyncio
async def test_validation_errors_are_400(client):
    """Malformed bodies are reported as 400 with a detail message, not 422."""
    r = await client.post("/api/v1/sessions", json={"deviceId": "device_a"})
    assert r.status_code == 400
    body = r.json()
    assert "itemId" in body["detail"] or "item_id" in body["detail"]
    assert body["errors"]


@pytest.mark.asyncio
async def test_hsts_behind_tls_proxy(client):
    r = await client.get("/api/v1/health", headers={"X-Forwarded-Proto": "https"})
    assert r.headers["Strict-Transport-Security"].startswith("max-age=")


@pytest.mark.asyncio
async def test_rate_limit_skipped_without_redis(client):
    """No Redis in tests: writes are never throttled and carry no limit headers."""
    for _ in range(5):
        r = await client.post("/api/v1/events", json={"type": "item-deleted", "payload": {"id": "x1"}})
        assert r.status_code == 202
    assert "X-RateLimit-Limit" not in r.headers
