"""Event stream API tests.

Learn: httpx's ASGITransport buffers the whole response body, which never
ends for an open SSE stream. So the streaming path is tested by calling
the route function directly and pulling frames off its body iterator;
plain request/response behaviour goes through the HTTP client.
"""

import pytest

from vaultsync.api.events import stream_events
from vaultsync.events.types import ITEM_UNLOCKED


@pytest.mark.asyncio
async def test_stream_requires_device_id(client):
    r = await client.get("/api/v1/events")
    assert r.status_code == 400
    assert r.json()["detail"] == "Missing deviceId"


@pytest.mark.asyncio
async def test_stream_headers_and_handshake(hub):
    response = await stream_events(device_id="device_a", hub=hub)
    assert response.media_type == "text/event-stream"
    assert response.headers["Cache-Control"] == "no-cache"
    assert response.headers["X-Accel-Buffering"] == "no"

    body = response.body_iterator
    assert await body.__anext__() == 'data: {"type":"connected"}\n\n'
    assert len(hub) == 1
    assert hub.subscribers[0].device_id == "device_a"
    await body.aclose()


@pytest.mark.asyncio
async def test_stream_forwards_published_events_then_unsubscribes(hub):
    response = await stream_events(device_id="device_a", hub=hub)
    body = response.body_iterator
    await body.__anext__()  # handshake

    hub.publish_event(ITEM_UNLOCKED, {"id": "x1"})
    assert await body.__anext__() == 'event: item-unlocked\ndata: {"id":"x1"}\n\n'

    await body.aclose()  # client went away
    assert len(hub) == 0


@pytest.mark.asyncio
async def test_stream_ends_when_hub_closes(hub):
    response = await stream_events(device_id="device_a", hub=hub)
    body = response.body_iterator
    await body.__anext__()

    hub.close()

    with pytest.raises(StopAsyncIteration):
        await body.__anext__()


@pytest.mark.asyncio
async def test_publish_endpoint_fans_out(client, hub):
    a = hub.subscribe(device_id="device_a")
    b = hub.subscribe(device_id="device_b")

    r = await client.post(
        "/api/v1/events", json={"type": "item-unlocked", "payload": {"id": "x1"}}
    )
    assert r.status_code == 202
    assert r.json() == {"type": "item-unlocked", "delivered": 2}
    assert (await a.get()).payload == {"id": "x1"}
    assert (await b.get()).type == ITEM_UNLOCKED


@pytest.mark.asyncio
async def test_publish_with_no_subscribers(client):
    r = await client.post("/api/v1/events", json={"type": "item-deleted", "payload": {"id": "x1"}})
    assert r.status_code == 202
    assert r.json()["delivered"] == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("event_type", ["ping", "item-exploded", ""])
async def test_publish_rejects_reserved_and_unknown_types(client, event_type):
    r = await client.post("/api/v1/events", json={"type": event_type, "payload": {}})
    assert r.status_code == 400
