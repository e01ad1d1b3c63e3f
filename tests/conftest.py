"""Test fixtures — a fresh app, hub and in-memory database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own in-memory SQLite engine (aiosqlite). StaticPool
   keeps the single connection alive, so every session sees the same DB.
2. Each test builds its own app via create_app(), with a ManualClock and
   a Vault API client backed by httpx.MockTransport. The hub lives on
   that app, so no subscriber ever leaks between tests.
3. get_db is overridden to hand out the test session.

Lifespan does not run under ASGITransport, so no background workers
(keepalive, sweeper) start unless a test starts them explicitly.
"""

import asyncio
from typing import Optional

import httpx
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from vaultsync.api.events import stream_events
from vaultsync.clock import ManualClock
from vaultsync.config import Settings
from vaultsync.db.engine import get_db
from vaultsync.db.models import Base
from vaultsync.errors import TransientNetworkError
from vaultsync.events.types import Event
from vaultsync.main import create_app
from vaultsync.realtime.sse import encode_event, encode_handshake
from vaultsync.services.vault_client import VaultClient

TEST_DB_URL = "sqlite+aiosqlite://"


class FakeVault:
    """Records Vault API calls and answers from a small in-memory item table."""

    def __init__(self):
        self.items: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_with: Optional[int] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.method, request.url.path))
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"error": "Vault unavailable"})
        path = request.url.path
        if path.endswith("/health"):
            return httpx.Response(200, json={"status": "ok"})

        parts = [p for p in path.split("/") if p]
        if "items" not in parts:
            return httpx.Response(404, json={"error": "not found"})
        rest = parts[parts.index("items") + 1:]
        item = self.items.get(rest[0]) if rest else None
        if item is None:
            return httpx.Response(404, json={"error": "Item not found"})

        if request.method == "GET":
            return httpx.Response(200, json=item)
        if request.method == "DELETE":
            del self.items[rest[0]]
            return httpx.Response(200, json={"success": True})
        if request.method == "POST" and rest[1:] == ["extend"]:
            if item.get("unlocked"):
                return httpx.Response(409, json={"error": "Item already unlocked"})
            item["decryptAt"] = "2026-01-01T02:00:00Z"
            return httpx.Response(200, json=item)
        return httpx.Response(405)


@pytest_asyncio.fixture()
async def db_engine():
    engine = create_async_engine(
        TEST_DB_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(db_engine):
    """Per-test session on the in-memory database."""
    session = AsyncSession(bind=db_engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()


@pytest_asyncio.fixture()
async def clock():
    return ManualClock()


@pytest_asyncio.fixture()
async def fake_vault():
    return FakeVault()


@pytest_asyncio.fixture()
async def app(db_session, clock, fake_vault):
    vault = VaultClient(
        base_url="http://vault.test/api/v1",
        token="test-token",
        transport=httpx.MockTransport(fake_vault.handler),
    )
    application = create_app(
        Settings(presence_ttl_seconds=300, rate_limit_rpm=1000),
        clock=clock,
        vault=vault,
    )

    async def override_get_db():
        yield db_session

    application.dependency_overrides[get_db] = override_get_db
    yield application
    application.dependency_overrides.clear()
    await vault.aclose()


@pytest_asyncio.fixture()
async def hub(app):
    return app.state.hub


@pytest_asyncio.fixture()
async def client(app):
    """HTTP client talking to the test app in-process."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class FakeSyncApi:
    """Stands in for SyncApi on the client side.

    Without a hub, each stream_lines() call opens a scripted connection
    the test feeds with send()/handshake()/drop(). With a hub, it streams
    from the real /events route function, so server and engine meet
    exactly as they would over HTTP.
    """

    def __init__(self, clock, hub=None, preferences: Optional[dict] = None):
        self.clock = clock
        self.hub = hub
        self.preferences = preferences or {}
        self.saves: list[tuple[float, dict]] = []
        self.save_error: Optional[Exception] = None
        self.heartbeats: list[tuple[str, str]] = []
        self.releases: list[tuple[str, str]] = []
        self.fail_connects = 0
        self.connections: list[asyncio.Queue] = []

    # ─── Stream ───────────────────────────────────────────

    async def stream_lines(self, device_id: str):
        if self.hub is not None:
            response = await stream_events(device_id=device_id, hub=self.hub)
            body = response.body_iterator
            try:
                async for chunk in body:
                    for line in chunk.split("\n")[:-1]:
                        yield line
            finally:
                await body.aclose()
            return

        if self.fail_connects:
            self.fail_connects -= 1
            raise TransientNetworkError("connection refused")
        queue: asyncio.Queue = asyncio.Queue()
        self.connections.append(queue)
        while True:
            line = await queue.get()
            if line is None:
                return
            if isinstance(line, Exception):
                raise line
            yield line

    def send(self, text: str) -> None:
        for line in text.split("\n")[:-1]:
            self.connections[-1].put_nowait(line)

    def handshake(self) -> None:
        self.send(encode_handshake())

    def send_event(self, event_type: str, payload: dict) -> None:
        self.send(encode_event(Event(event_type, payload)))

    def drop(self, error: Optional[Exception] = None) -> None:
        self.connections[-1].put_nowait(error)

    # ─── Requests ─────────────────────────────────────────

    async def fetch_preferences(self, device_id: str) -> dict:
        return dict(self.preferences)

    async def save_preferences(self, device_id: str, snapshot: dict) -> dict:
        if self.save_error is not None:
            raise self.save_error
        self.saves.append((self.clock.monotonic(), snapshot))
        return snapshot

    async def heartbeat(self, device_id: str, item_id: str) -> dict:
        self.heartbeats.append((device_id, item_id))
        return {"deviceId": device_id, "itemId": item_id}

    async def release(self, device_id: str, item_id: str) -> None:
        self.releases.append((device_id, item_id))

    async def list_viewers(self, item_id: str) -> list[dict]:
        return [{"deviceId": d, "itemId": i} for d, i in self.heartbeats if i == item_id]


@pytest_asyncio.fixture()
async def fake_api(clock):
    return FakeSyncApi(clock)


@pytest_asyncio.fixture()
async def make_api(clock):
    """Factory for extra FakeSyncApi instances (e.g. one per simulated device)."""

    def make(hub=None, preferences: Optional[dict] = None) -> FakeSyncApi:
        return FakeSyncApi(clock, hub=hub, preferences=preferences)

    return make
