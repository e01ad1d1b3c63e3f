"""Presence sweeper — hard-deletes long-dead sessions in the background.

Learn: Liveness never depends on this worker (reads filter by TTL), so
it can run rarely and fail without consequence. It exists only so the
active_sessions table doesn't grow forever from browsers that closed
without sending their release call.

Each sweep gets its own DB session, like any request would.
"""

from datetime import timedelta
from typing import Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from vaultsync.clock import Clock, SystemClock
from vaultsync.db.engine import async_session_factory
from vaultsync.services.presence import PresenceTracker

logger = structlog.get_logger()


class PresenceSweeper:
    """Periodically purge sessions older than `retention_windows` TTLs.

    Usage:
        sweeper = PresenceSweeper(ttl=timedelta(minutes=5))
        asyncio.create_task(sweeper.run_loop())
    """

    def __init__(
        self,
        ttl: timedelta,
        retention_windows: int = 3,
        interval: float = 600.0,
        clock: Optional[Clock] = None,
        session_factory: Callable[[], AsyncSession] = async_session_factory,
    ):
        self.ttl = ttl
        self.retention = ttl * retention_windows
        self.interval = interval
        self.clock = clock or SystemClock()
        self.session_factory = session_factory
        self._running = False

    async def run_loop(self) -> None:
        self._running = True
        logger.info(
            "presence_sweeper.started",
            interval=self.interval,
            retention_seconds=self.retention.total_seconds(),
        )

        while self._running:
            try:
                await self.sweep_once()
            except Exception:
                logger.exception("presence_sweeper.error")
            await self.clock.sleep(self.interval)

    async def sweep_once(self) -> int:
        async with self.session_factory() as db:
            tracker = PresenceTracker(db, clock=self.clock, ttl=self.ttl)
            purged = await tracker.purge_stale(self.retention)
        if purged:
            logger.info("presence_sweeper.purged", count=purged)
        return purged

    def stop(self) -> None:
        """Signal the worker to stop."""
        self._running = False
        logger.info("presence_sweeper.stopping")
