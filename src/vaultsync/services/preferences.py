"""Preferences service — device registry + per-device settings upsert.

Learn: A device is identified on the wire by its fingerprint. The first
GET or POST from an unknown fingerprint creates the device (and a
default preferences row), so a fresh browser never sees a 404 here.
Presence is stricter: heartbeats from unknown devices are rejected
(see PresenceTracker).

Writes are last-writer-wins: the client always sends its full snapshot
after the debounce window, we overwrite whatever fields it sent.
"""

from typing import Any, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from vaultsync.db.models import Device, UserPreferences

logger = structlog.get_logger()


def preferences_to_dict(device: Device, prefs: UserPreferences) -> dict[str, Any]:
    """Flatten a preferences row into the shape PreferencesRead expects."""
    return {
        "device_id": device.fingerprint,
        "default_duration_minutes": prefs.default_duration_minutes,
        "privacy_mode": prefs.privacy_mode,
        "panic_url": prefs.panic_url,
        "panic_shortcut": prefs.panic_shortcut,
        "theme_config": prefs.theme_config,
        "date_time_format": prefs.date_time_format,
        "compact_mode": prefs.compact_mode,
        "sidebar_open": prefs.sidebar_open,
        "confirm_delete": prefs.confirm_delete,
        "confirm_extend": prefs.confirm_extend,
        "auto_refresh_interval": prefs.auto_refresh_interval,
        "cache_ttl_minutes": prefs.cache_ttl_minutes,
        "auto_privacy_delay_minutes": prefs.auto_privacy_delay_minutes,
        "api_url": prefs.api_url,
        "api_token": prefs.api_token,
        "updated_at": prefs.updated_at,
    }


class PreferencesService:
    """Reads and upserts device preferences."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Devices ──────────────────────────────────────────

    async def find_device(self, fingerprint: str) -> Optional[Device]:
        result = await self.db.execute(
            select(Device)
            .where(Device.fingerprint == fingerprint)
            .options(selectinload(Device.preferences))
        )
        return result.scalars().first()

    async def get_or_create_device(
        self, fingerprint: str, name: Optional[str] = None
    ) -> Device:
        """Find a device by fingerprint, creating it (with default prefs) if new."""
        device = await self.find_device(fingerprint)
        if device:
            return device

        device = Device(fingerprint=fingerprint, name=name)
        device.preferences = UserPreferences()
        self.db.add(device)
        try:
            await self.db.commit()
        except IntegrityError:
            # Another request registered the same fingerprint first
            await self.db.rollback()
            device = await self.find_device(fingerprint)
            if device is None:
                raise
            return device

        logger.info("device.created", device_id=fingerprint)
        return await self.find_device(fingerprint)

    # ─── Preferences ──────────────────────────────────────

    async def get_preferences(self, fingerprint: str) -> dict[str, Any]:
        device = await self.get_or_create_device(fingerprint)
        prefs = await self._ensure_preferences(device)
        return preferences_to_dict(device, prefs)

    async def update_preferences(
        self, fingerprint: str, changes: dict[str, Any]
    ) -> dict[str, Any]:
        """Upsert the given fields. Unknown devices are created on the fly."""
        device = await self.get_or_create_device(fingerprint)
        prefs = await self._ensure_preferences(device)

        for field, value in changes.items():
            if hasattr(prefs, field):
                setattr(prefs, field, value)

        await self.db.commit()
        await self.db.refresh(prefs)

        logger.info(
            "preferences.updated",
            device_id=fingerprint,
            fields=sorted(changes),
        )
        return preferences_to_dict(device, prefs)

    async def _ensure_preferences(self, device: Device) -> UserPreferences:
        if device.preferences is not None:
            return device.preferences
        prefs = UserPreferences(device_id=device.id)
        self.db.add(prefs)
        await self.db.commit()
        await self.db.refresh(prefs)
        return prefs
