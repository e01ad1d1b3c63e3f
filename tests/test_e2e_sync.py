"""End-to-end: a mutation on one device reaches the others' caches.

Learn: The engines here stream from the real /events route function on
the test app's hub, and mutations go through the real HTTP API. Only the
socket between them is skipped.

    client A (connected)  ── sees item-unlocked, invalidates x1 + lists
    client B (torn down)  ── cache untouched
"""

import pytest
import pytest_asyncio

from vaultsync.client.cache import PREFERENCES, STATS, item_detail_key, item_list_key
from vaultsync.client.engine import ConnectionState, SyncEngine


def _warm(engine: SyncEngine) -> None:
    engine.cache.set(STATS, {"total": 1})
    engine.cache.set(PREFERENCES, {})
    engine.cache.set(item_list_key(None), [{"id": "x1"}])
    engine.cache.set(item_detail_key("x1"), {"id": "x1", "unlocked": False})


@pytest_asyncio.fixture()
async def engines(hub, clock, make_api):
    a = SyncEngine(make_api(hub=hub), "device_a", clock=clock)
    b = SyncEngine(make_api(hub=hub), "device_b", clock=clock)
    for engine in (a, b):
        _warm(engine)
        await engine.start(persisted={})
    await clock.advance(0)
    yield a, b
    await a.stop()
    await b.stop()


@pytest.mark.asyncio
async def test_both_clients_connect_through_hub(engines, hub):
    a, b = engines
    assert a.state is ConnectionState.CONNECTED
    assert b.state is ConnectionState.CONNECTED
    assert len(hub) == 2


@pytest.mark.asyncio
async def test_item_unlocked_reaches_connected_client_only(engines, client, hub, clock):
    a, b = engines
    await b.stop()
    await clock.advance(0)
    assert len(hub) == 1

    r = await client.post(
        "/api/v1/events", json={"type": "item-unlocked", "payload": {"id": "x1"}}
    )
    assert r.json()["delivered"] == 1
    await clock.advance(0)

    assert a.cache.is_stale(item_detail_key("x1"))
    assert a.cache.is_stale(item_list_key(None))
    assert not a.cache.is_stale(STATS)
    assert not any(b.cache.is_stale(k) for k in b.cache.keys())


@pytest.mark.asyncio
async def test_settings_change_propagates_to_other_device(engines, client, clock):
    a, b = engines

    r = await client.post(
        "/api/v1/preferences", json={"deviceId": "device_a", "privacyMode": True}
    )
    assert r.status_code == 200
    await clock.advance(0)

    assert b.settings.privacy_mode is True
    assert b.cache.is_stale(PREFERENCES)
    # The writer ignores its own echo
    assert a.settings.privacy_mode is False
    assert not a.cache.is_stale(PREFERENCES)


@pytest.mark.asyncio
async def test_item_delete_through_proxy_invalidates_everyone(engines, client, fake_vault, clock):
    a, b = engines
    fake_vault.items["x1"] = {"id": "x1"}

    r = await client.delete("/api/v1/items/x1")
    assert r.status_code == 200
    await clock.advance(0)

    for engine in (a, b):
        assert engine.cache.is_stale(item_detail_key("x1"))
        assert engine.cache.is_stale(item_list_key(None))
