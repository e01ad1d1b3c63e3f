"""Keepalive worker — periodic `ping` so proxies don't idle out streams.

Learn: Load balancers and reverse proxies close HTTP responses that stay
silent for too long (often 60s). A tiny `ping` every 30s keeps every open
stream warm. Clients filter it out by type; it carries no meaning.

Runs as a background task in the FastAPI lifespan, like the presence
sweeper.
"""

import structlog

from vaultsync.clock import Clock, SystemClock
from vaultsync.events.types import PING
from vaultsync.realtime.hub import BroadcastHub

logger = structlog.get_logger()


class KeepaliveWorker:
    """Publish `ping` on a fixed interval until stopped.

    Usage:
        worker = KeepaliveWorker(hub, interval=30.0)
        asyncio.create_task(worker.run_loop())
    """

    def __init__(
        self,
        hub: BroadcastHub,
        interval: float = 30.0,
        clock: Clock | None = None,
    ):
        self.hub = hub
        self.interval = interval
        self.clock = clock or SystemClock()
        self._running = False

    async def run_loop(self) -> None:
        self._running = True
        logger.info("keepalive.started", interval=self.interval)

        while self._running:
            await self.clock.sleep(self.interval)
            if not self._running:
                break
            self.hub.publish_event(PING, {})

    def stop(self) -> None:
        """Signal the worker to stop."""
        self._running = False
        logger.info("keepalive.stopping")
