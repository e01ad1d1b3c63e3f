"""Presence heartbeat driver for one open item.

Learn: While an item is on screen the client says so every `interval`
seconds (POST /sessions). The interval must stay well under the server's
presence TTL, otherwise the viewer flickers out between heartbeats.

Closing the item fires a release (DELETE /sessions) in the background
and returns immediately. The release is best-effort: if it never
arrives, the session simply ages out after one TTL.
"""

import asyncio
from typing import Any, Optional

import structlog

from vaultsync.clock import Clock, SystemClock, wait_for
from vaultsync.errors import NotFound, VaultSyncError

logger = structlog.get_logger()


class ActiveSession:
    def __init__(
        self,
        api,
        device_id: str,
        item_id: str,
        *,
        clock: Optional[Clock] = None,
        interval: float = 120.0,
        release_timeout: float = 5.0,
    ):
        self.api = api
        self.device_id = device_id
        self.item_id = item_id
        self.clock = clock if clock is not None else SystemClock()
        self.interval = interval
        self.release_timeout = release_timeout
        self.heartbeats = 0
        self._task: Optional[asyncio.Task] = None
        self._releases: set[asyncio.Task] = set()

    @property
    def mounted(self) -> bool:
        return self._task is not None

    async def mount(self) -> None:
        """Send the first heartbeat now, then keep beating in the background."""
        if self._task is not None:
            return
        await self._beat()
        self._task = asyncio.create_task(self._loop())

    def unmount(self) -> Optional[asyncio.Task]:
        """Stop beating and release in the background. Never blocks."""
        if self._task is None:
            return None
        self._task.cancel()
        self._task = None

        release = asyncio.create_task(self._release())
        self._releases.add(release)
        release.add_done_callback(self._releases.discard)
        return release

    async def viewers(self, item_id: Optional[str] = None) -> list[dict[str, Any]]:
        """Devices currently viewing `item_id` (default: this session's item)."""
        return await self.api.list_viewers(item_id or self.item_id)

    async def _loop(self) -> None:
        while True:
            await self.clock.sleep(self.interval)
            await self._beat()

    async def _beat(self) -> None:
        try:
            try:
                await self.api.heartbeat(self.device_id, self.item_id)
            except NotFound:
                # Device never registered: fetching preferences creates it
                await self.api.fetch_preferences(self.device_id)
                await self.api.heartbeat(self.device_id, self.item_id)
            self.heartbeats += 1
        except VaultSyncError as e:
            logger.warning(
                "presence.heartbeat_failed",
                device_id=self.device_id,
                item_id=self.item_id,
                error=str(e),
            )

    async def _release(self) -> None:
        try:
            await wait_for(
                self.clock,
                self.api.release(self.device_id, self.item_id),
                self.release_timeout,
            )
            logger.debug("presence.released", device_id=self.device_id, item_id=self.item_id)
        except (asyncio.TimeoutError, VaultSyncError) as e:
            logger.warning(
                "presence.release_failed",
                device_id=self.device_id,
                item_id=self.item_id,
                error=str(e) or type(e).__name__,
            )
