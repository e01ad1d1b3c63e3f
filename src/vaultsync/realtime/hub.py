"""Broadcast hub — in-memory connection registry with fan-out.

Learn: Each open /events stream is a Subscriber with its own bounded
asyncio.Queue. publish() walks a snapshot of the registry and does a
non-blocking put_nowait() on every queue, so:

- a slow client only fills its own queue; when full it is dropped
  (DeliveryDrop) instead of stalling everyone else;
- a dead client is pruned on the first failed delivery;
- per-subscriber order is publish order (FIFO queue), there is no
  ordering across subscribers, and nothing is replayed to late joiners.

Fire-and-forget is fine here: every event only says "something changed",
and clients recover truth by re-fetching from the Vault API / preferences.

The hub is created by create_app() and lives on app.state — there is no
module-level instance. It is only touched from the event loop thread.

Known limitation: state is per-process. Running several app instances
needs an external broker (e.g. Redis pub/sub) in front of publish().
"""

import asyncio
import uuid
from typing import Any, AsyncIterator, Optional

import structlog

from vaultsync.errors import DeliveryDrop
from vaultsync.events.types import Event
from vaultsync.realtime.sse import encode_event

logger = structlog.get_logger()

_CLOSE = object()


class Subscriber:
    """One open server→client channel. Owned by the hub."""

    def __init__(self, device_id: Optional[str] = None, max_queue: int = 100):
        self.id = uuid.uuid4().hex
        self.device_id = device_id
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue + 1)
        self._max_queue = max_queue
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def deliver(self, event: Event) -> None:
        """Enqueue without waiting. Raises DeliveryDrop if the channel can't take it."""
        if self._closed:
            raise DeliveryDrop(f"subscriber {self.id} is closed")
        if self._queue.qsize() >= self._max_queue:
            raise DeliveryDrop(f"subscriber {self.id} queue full")
        self._queue.put_nowait(event)

    def close(self) -> None:
        """Discard anything queued and wake the reader so it can exit."""
        if self._closed:
            return
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSE)  # the spare slot is reserved for this

    async def get(self) -> Optional[Event]:
        """Next event in publish order, or None once closed."""
        item = await self._queue.get()
        if item is _CLOSE:
            return None
        return item

    async def frames(self) -> AsyncIterator[str]:
        """Encoded SSE blocks until the channel closes."""
        while True:
            event = await self.get()
            if event is None:
                return
            yield encode_event(event)

    def __repr__(self) -> str:
        return f"<Subscriber {self.id} device={self.device_id} pending={self.pending}>"


class BroadcastHub:
    """Registry of open subscribers plus best-effort fan-out."""

    def __init__(self, max_queue: int = 100):
        self.max_queue = max_queue
        self._subscribers: dict[str, Subscriber] = {}

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, subscriber: Subscriber) -> bool:
        return self._subscribers.get(subscriber.id) is subscriber

    @property
    def subscribers(self) -> list[Subscriber]:
        return list(self._subscribers.values())

    # ─── Registration ─────────────────────────────────────

    def subscribe(self, device_id: Optional[str] = None) -> Subscriber:
        subscriber = Subscriber(device_id=device_id, max_queue=self.max_queue)
        self._subscribers[subscriber.id] = subscriber
        logger.info(
            "hub.subscriber_added",
            subscriber_id=subscriber.id,
            device_id=device_id,
            total=len(self._subscribers),
        )
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        """Remove and close. Safe to call any number of times."""
        removed = self._subscribers.pop(subscriber.id, None)
        subscriber.close()
        if removed is not None:
            logger.info(
                "hub.subscriber_removed",
                subscriber_id=subscriber.id,
                device_id=subscriber.device_id,
                total=len(self._subscribers),
            )

    # ─── Fan-out ──────────────────────────────────────────

    def publish(self, event: Event) -> int:
        """Deliver to every subscriber registered right now. Never raises.

        Returns the number of subscribers the event was queued for.
        """
        delivered = 0
        for subscriber in list(self._subscribers.values()):
            try:
                subscriber.deliver(event)
            except DeliveryDrop as e:
                logger.debug(
                    "hub.delivery_dropped",
                    subscriber_id=subscriber.id,
                    event_type=event.type,
                    reason=str(e),
                )
                self.unsubscribe(subscriber)
            except Exception:
                logger.warning(
                    "hub.delivery_failed",
                    subscriber_id=subscriber.id,
                    event_type=event.type,
                    exc_info=True,
                )
                self.unsubscribe(subscriber)
            else:
                delivered += 1
        return delivered

    def publish_event(self, event_type: str, payload: Any = None) -> int:
        """Build and publish an event. Raises ValueError for unknown types."""
        return self.publish(Event(type=event_type, payload=payload if payload is not None else {}))

    def close(self) -> None:
        """Tear down: close every open channel."""
        for subscriber in list(self._subscribers.values()):
            self.unsubscribe(subscriber)
        logger.info("hub.closed")
