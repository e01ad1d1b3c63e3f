"""Sync engine — keeps one device's cache and settings in step with the server.

Learn: The engine owns a long-lived subscription to GET /events and a
connection state machine:

    disconnected → connecting → connected → retrying → connecting → ...

Every state change goes through _transition(), which checks
VALID_TRANSITIONS the same way task status changes are checked, so a
bug can't e.g. jump from disconnected straight to connected.

While connected, incoming events turn into cache invalidations:

    settings-updated (other device)  → merge into settings, invalidate ("preferences",)
    item-locked / -unlocked / -deleted → invalidate ("items","detail",id) and ("items",)
    ping / anything else             → ignored

Outgoing: user edits to the SettingsDraft are debounced and written back
as one POST /preferences carrying the full snapshot. Loads and remote
merges never write.

Teardown (stop) is terminal: once stopped, the engine makes no more
connection attempts and touches neither the cache nor the settings.
"""

import asyncio
from contextlib import aclosing
from enum import Enum
from typing import Any, Callable, Optional

import structlog

from vaultsync.client.cache import ITEMS, PREFERENCES, QueryCache, item_detail_key
from vaultsync.client.settings_store import Origin, SettingsDraft
from vaultsync.clock import Clock, SystemClock
from vaultsync.errors import VaultSyncError
from vaultsync.events.types import ITEM_EVENT_TYPES, PING, SETTINGS_UPDATED
from vaultsync.realtime.sse import iter_sse

logger = structlog.get_logger()


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RETRYING = "retrying"


VALID_TRANSITIONS: dict[ConnectionState, set[ConnectionState]] = {
    ConnectionState.DISCONNECTED: {ConnectionState.CONNECTING},
    ConnectionState.CONNECTING: {
        ConnectionState.CONNECTED,
        ConnectionState.RETRYING,
        ConnectionState.DISCONNECTED,
    },
    ConnectionState.CONNECTED: {ConnectionState.RETRYING, ConnectionState.DISCONNECTED},
    ConnectionState.RETRYING: {ConnectionState.CONNECTING, ConnectionState.DISCONNECTED},
}


class InvalidTransitionError(Exception):
    """Raised when a connection state change is not allowed."""
    pass


class Backoff:
    """Exponential reconnect delay: initial * factor**n, capped at max_delay."""

    def __init__(self, initial: float = 1.0, factor: float = 2.0, max_delay: float = 30.0):
        self.initial = initial
        self.factor = factor
        self.max_delay = max_delay
        self.attempts = 0

    def next_delay(self) -> float:
        delay = min(self.initial * self.factor ** self.attempts, self.max_delay)
        if delay < self.max_delay:
            self.attempts += 1
        return delay

    def reset(self) -> None:
        self.attempts = 0


StateListener = Callable[[ConnectionState], None]


class SyncEngine:
    def __init__(
        self,
        api,
        device_id: str,
        *,
        cache: Optional[QueryCache] = None,
        settings: Optional[SettingsDraft] = None,
        clock: Optional[Clock] = None,
        debounce_seconds: float = 1.0,
        backoff: Optional[Backoff] = None,
    ):
        self.api = api
        self.device_id = device_id
        self.cache = cache if cache is not None else QueryCache()
        self.settings = settings if settings is not None else SettingsDraft()
        self.clock = clock if clock is not None else SystemClock()
        self.debounce_seconds = debounce_seconds
        self.backoff = backoff if backoff is not None else Backoff()

        self.connect_attempts = 0
        self.retry_delays: list[float] = []

        self._state = ConnectionState.DISCONNECTED
        self._state_listeners: list[StateListener] = []
        self._started = False
        self._stopped = False
        self._run_task: Optional[asyncio.Task] = None
        self._write_task: Optional[asyncio.Task] = None
        self._writes: set[asyncio.Task] = set()
        self._unsubscribe_settings = self.settings.add_listener(self._on_settings_changed)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def write_pending(self) -> bool:
        return self._write_task is not None and not self._write_task.done()

    def add_state_listener(self, callback: StateListener) -> Callable[[], None]:
        """Register callback(state) for every transition. Returns an unsubscribe function."""
        self._state_listeners.append(callback)
        return lambda: self._state_listeners.remove(callback)

    def _transition(self, new_state: ConnectionState) -> None:
        allowed = VALID_TRANSITIONS[self._state]
        if new_state not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition from '{self._state.value}' to '{new_state.value}'. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )
        old_state = self._state
        self._state = new_state
        logger.info(
            "sync.state_changed",
            device_id=self.device_id,
            from_state=old_state.value,
            to_state=new_state.value,
        )
        for callback in list(self._state_listeners):
            try:
                callback(new_state)
            except Exception:
                logger.exception("sync.listener_failed", to_state=new_state.value)

    # ═══════════════════════════════════════════════════════════
    # Lifecycle
    # ═══════════════════════════════════════════════════════════

    async def start(self, persisted: Optional[dict[str, Any]] = None) -> None:
        """Load persisted settings, then open the event stream.

        `persisted` is whatever the caller already has on hand; when
        omitted, the server copy is fetched. Either way this goes through
        SettingsDraft.load(), which never schedules a write. Calling
        start() twice is a no-op.
        """
        if self._stopped:
            raise RuntimeError("SyncEngine has been stopped")
        if self._started:
            return
        self._started = True

        if persisted is None:
            try:
                persisted = await self.api.fetch_preferences(self.device_id)
            except Exception as e:
                logger.warning(
                    "sync.preferences_load_failed",
                    device_id=self.device_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        if persisted and not self._stopped:
            try:
                self.settings.load(persisted)
            except Exception as e:
                logger.warning("sync.preferences_load_failed", device_id=self.device_id, error=str(e))

        if not self._stopped:
            self._run_task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Terminal teardown. Cancels the stream, any retry wait and every write not yet done."""
        if self._stopped:
            return
        self._stopped = True
        self._unsubscribe_settings()
        if self._state is not ConnectionState.DISCONNECTED:
            self._transition(ConnectionState.DISCONNECTED)

        tasks = [t for t in (self._run_task, *self._writes) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._run_task = None
        self._write_task = None
        logger.info("sync.stopped", device_id=self.device_id, attempts=self.connect_attempts)

    # ─── Stream loop ──────────────────────────────────────

    async def _run(self) -> None:
        while not self._stopped:
            self._transition(ConnectionState.CONNECTING)
            self.connect_attempts += 1
            try:
                await self._consume()
                logger.info("sync.stream_closed", device_id=self.device_id)
            except Exception as e:
                logger.warning(
                    "sync.stream_failed",
                    device_id=self.device_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

            if self._stopped:
                return
            self._transition(ConnectionState.RETRYING)
            delay = self.backoff.next_delay()
            self.retry_delays.append(delay)
            logger.info("sync.retry_scheduled", device_id=self.device_id, delay=delay)
            await self.clock.sleep(delay)

    async def _consume(self) -> None:
        lines = self.api.stream_lines(self.device_id)
        async with aclosing(lines):
            async for sse in iter_sse(lines):
                if self._stopped:
                    return
                if sse.is_handshake:
                    if self._state is ConnectionState.CONNECTING:
                        self._transition(ConnectionState.CONNECTED)
                        self.backoff.reset()
                    continue
                if self._state is not ConnectionState.CONNECTED:
                    continue
                try:
                    payload = sse.json()
                except ValueError:
                    logger.warning("sync.bad_payload", event_type=sse.event)
                    continue
                self.handle_event(sse.event, payload)

    # ═══════════════════════════════════════════════════════════
    # Inbound events
    # ═══════════════════════════════════════════════════════════

    def handle_event(self, event_type: str, payload: Any) -> None:
        """Apply one decoded stream event to the cache / settings."""
        if self._stopped:
            return
        if not isinstance(payload, dict):
            payload = {}

        if event_type == SETTINGS_UPDATED:
            self._on_remote_settings(payload)
        elif event_type in ITEM_EVENT_TYPES:
            item_id = payload.get("id") or payload.get("itemId")
            if item_id:
                self.cache.invalidate(item_detail_key(str(item_id)))
            self.cache.invalidate(ITEMS)
            logger.debug("sync.items_invalidated", event_type=event_type, item_id=item_id)
        elif event_type == PING:
            pass
        else:
            logger.debug("sync.event_ignored", event_type=event_type)

    def _on_remote_settings(self, payload: dict[str, Any]) -> None:
        if payload.get("deviceId") == self.device_id:
            return  # our own write echoed back
        preferences = payload.get("preferences")
        if isinstance(preferences, dict):
            self.settings.apply_remote(preferences)
        self.cache.invalidate(PREFERENCES)
        logger.info("sync.remote_settings_applied", from_device=payload.get("deviceId"))

    # ═══════════════════════════════════════════════════════════
    # Outbound settings (debounced dual-write)
    # ═══════════════════════════════════════════════════════════

    def _on_settings_changed(self, snapshot: dict[str, Any], origin: Origin) -> None:
        if origin != "user" or self._stopped:
            return
        if self.write_pending:
            self._write_task.cancel()
        self._write_task = asyncio.create_task(self._write_after_quiet_period())
        self._writes.add(self._write_task)
        self._write_task.add_done_callback(self._writes.discard)

    async def _write_after_quiet_period(self) -> None:
        await self.clock.sleep(self.debounce_seconds)
        # Detach first: an edit made while the write is in flight schedules a
        # new write instead of cancelling this one. stop() still reaches it
        # through _writes.
        self._write_task = None
        await self._save(self.settings.snapshot())

    async def flush(self) -> bool:
        """Write a pending draft now instead of waiting out the quiet period."""
        if not self.write_pending:
            return False
        self._write_task.cancel()
        self._write_task = None
        await self._save(self.settings.snapshot())
        return True

    async def _save(self, snapshot: dict[str, Any]) -> None:
        try:
            await self.api.save_preferences(self.device_id, snapshot)
            logger.info("sync.preferences_saved", device_id=self.device_id)
        except VaultSyncError as e:
            logger.warning("sync.preferences_save_failed", device_id=self.device_id, error=str(e))
