"""Presence tracker — who is looking at which item right now.

Learn: Each open item view sends a heartbeat every couple of minutes.
We upsert one row per (device, item) with last_active_at = now and
answer "who's live?" with a freshness predicate:

    live  ⇔  now - last_active_at <= ttl

Nothing is flagged or expired in place. Stale rows are filtered at read
time (lazy expiry); the sweeper hard-deletes rows that are several TTLs
old purely to keep the table small.

last_active_at only ever moves forward: if two heartbeats race, or the
clock steps back, the later timestamp wins.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from vaultsync.clock import Clock, SystemClock
from vaultsync.db.models import ActiveSession, Device, as_utc
from vaultsync.errors import NotFound

logger = structlog.get_logger()

DEFAULT_TTL = timedelta(minutes=5)


@dataclass(frozen=True)
class PresenceSession:
    """A session as seen from outside: fingerprint instead of the device PK."""

    device_id: str
    item_id: str
    last_active_at: datetime


class PresenceTracker:
    """Liveness records for (device, item) pairs."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Optional[Clock] = None,
        ttl: timedelta = DEFAULT_TTL,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.ttl = ttl

    def is_live(self, last_active_at: datetime, now: Optional[datetime] = None) -> bool:
        now = now or self.clock.now()
        return now - as_utc(last_active_at) <= self.ttl

    # ─── Heartbeat ────────────────────────────────────────

    async def heartbeat(self, device_id: str, item_id: str) -> PresenceSession:
        """Upsert the session with last_active_at = now (never moving backward).

        Raises NotFound if no device is registered for `device_id`.
        """
        device = await self._find_device(device_id)
        if device is None:
            raise NotFound(f"Device {device_id} not found")

        device_pk = device.id  # rollback expires ORM state
        now = self.clock.now()
        try:
            row = await self._touch(device_pk, item_id, now)
        except IntegrityError:
            # Lost an insert race for the same key; the row exists now
            await self.db.rollback()
            row = await self._touch(device_pk, item_id, now)

        logger.debug("presence.heartbeat", device_id=device_id, item_id=item_id)
        return PresenceSession(
            device_id=device_id,
            item_id=item_id,
            last_active_at=as_utc(row.last_active_at),
        )

    async def _touch(self, device_pk: int, item_id: str, now: datetime) -> ActiveSession:
        result = await self.db.execute(
            select(ActiveSession)
            .where(
                ActiveSession.device_id == device_pk,
                ActiveSession.item_id == item_id,
            )
            .with_for_update()
        )
        row = result.scalars().first()
        if row is None:
            row = ActiveSession(device_id=device_pk, item_id=item_id, last_active_at=now)
            self.db.add(row)
        elif now > as_utc(row.last_active_at):
            row.last_active_at = now
        await self.db.commit()
        return row

    # ─── Release ──────────────────────────────────────────

    async def release(self, device_id: str, item_id: str) -> None:
        """Delete the session. Unknown device or session is not an error."""
        device = await self._find_device(device_id)
        if device is None:
            return
        await self.db.execute(
            delete(ActiveSession).where(
                ActiveSession.device_id == device.id,
                ActiveSession.item_id == item_id,
            )
        )
        await self.db.commit()
        logger.debug("presence.released", device_id=device_id, item_id=item_id)

    # ─── Queries ──────────────────────────────────────────

    async def list_live(self, item_id: str) -> list[PresenceSession]:
        """Sessions for `item_id` seen within the TTL window, most recent first."""
        cutoff = self.clock.now() - self.ttl
        result = await self.db.execute(
            select(ActiveSession, Device.fingerprint)
            .join(Device, Device.id == ActiveSession.device_id)
            .where(
                ActiveSession.item_id == item_id,
                ActiveSession.last_active_at >= cutoff,
            )
            .order_by(ActiveSession.last_active_at.desc())
        )
        return [
            PresenceSession(
                device_id=fingerprint,
                item_id=row.item_id,
                last_active_at=as_utc(row.last_active_at),
            )
            for row, fingerprint in result.all()
        ]

    async def live_device_ids(self, item_id: str) -> set[str]:
        return {s.device_id for s in await self.list_live(item_id)}

    # ─── Maintenance ──────────────────────────────────────

    async def purge_stale(self, older_than: Optional[timedelta] = None) -> int:
        """Hard-delete sessions idle for longer than `older_than` (default 3 TTLs).

        Has no observable effect on list_live as long as older_than >= ttl.
        """
        older_than = older_than or self.ttl * 3
        if older_than < self.ttl:
            raise ValueError("older_than must be at least one TTL window")
        cutoff = self.clock.now() - older_than
        result = await self.db.execute(
            delete(ActiveSession).where(ActiveSession.last_active_at < cutoff)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def _find_device(self, fingerprint: str) -> Optional[Device]:
        result = await self.db.execute(
            select(Device).where(Device.fingerprint == fingerprint)
        )
        return result.scalars().first()
