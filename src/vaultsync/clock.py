"""Clock abstraction — every TTL, backoff and debounce reads time from here.

Learn: Components never call datetime.now() or asyncio.sleep() directly.
They take a Clock, so tests can swap in ManualClock and step time
forward deterministically instead of sleeping for real:

    clock = ManualClock()
    engine = SyncEngine(api, clock=clock, ...)
    settings.update(privacy_mode=True)
    await clock.advance(1.0)   # debounce timer fires here, not in 1s of wall time
"""

import asyncio
import heapq
import itertools
import time
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Optional, Protocol, TypeVar

T = TypeVar("T")


class Clock(Protocol):
    def now(self) -> datetime:
        """Current wall-clock time (timezone-aware, UTC)."""
        ...

    def monotonic(self) -> float:
        """Seconds on a monotonic scale, for measuring intervals."""
        ...

    async def sleep(self, seconds: float) -> None:
        """Suspend the calling task for `seconds`."""
        ...


class SystemClock:
    """The real clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(seconds, 0))


async def wait_for(clock: Clock, aw: Awaitable[T], timeout: float) -> T:
    """Like asyncio.wait_for, but the timeout runs on `clock`.

    Raises asyncio.TimeoutError and cancels `aw` if it is not done in time.
    """
    task = asyncio.ensure_future(aw)
    timer = asyncio.ensure_future(clock.sleep(timeout))
    try:
        await asyncio.wait({task, timer}, return_when=asyncio.FIRST_COMPLETED)
        if task.done():
            return task.result()
        raise asyncio.TimeoutError()
    finally:
        timer.cancel()
        task.cancel()


async def _drain(rounds: int = 20) -> None:
    # Let ready tasks run until they park on their next await.
    for _ in range(rounds):
        await asyncio.sleep(0)


class ManualClock:
    """A clock that only moves when told to.

    Sleepers park on futures keyed by their deadline. advance() wakes
    them in deadline order, moving `now` to each deadline in turn, so a
    task that re-arms a timer while being woken sees consistent time.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._start = start or datetime(2026, 1, 1, tzinfo=timezone.utc)
        self._elapsed = 0.0
        self._sleepers: list[tuple[float, int, asyncio.Future]] = []
        self._seq = itertools.count()

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._elapsed)

    def monotonic(self) -> float:
        return self._elapsed

    def set(self, when: datetime) -> None:
        """Jump wall-clock time (forward or backward) without waking sleepers."""
        self._start = when - timedelta(seconds=self._elapsed)

    async def sleep(self, seconds: float) -> None:
        fut = asyncio.get_running_loop().create_future()
        deadline = self._elapsed + max(seconds, 0)
        heapq.heappush(self._sleepers, (deadline, next(self._seq), fut))
        await fut

    @property
    def pending_sleepers(self) -> int:
        return sum(1 for _, _, fut in self._sleepers if not fut.done())

    async def advance(self, seconds: float) -> None:
        """Move time forward by `seconds`, waking every sleeper that comes due."""
        target = self._elapsed + seconds
        while True:
            await _drain()
            while self._sleepers and self._sleepers[0][2].done():
                heapq.heappop(self._sleepers)  # cancelled sleeper
            if not self._sleepers or self._sleepers[0][0] > target:
                break
            deadline, _, fut = heapq.heappop(self._sleepers)
            self._elapsed = max(self._elapsed, deadline)
            fut.set_result(None)
        self._elapsed = target
        await _drain()
