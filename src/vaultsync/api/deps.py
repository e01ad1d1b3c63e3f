"""Shared FastAPI dependencies.

Learn: The hub, clock and vault client are created once in create_app()
and hung on app.state. Handlers reach them through these dependencies,
never through module globals, so each app (and each test) owns its own.
"""

from datetime import timedelta

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from vaultsync.clock import Clock
from vaultsync.db.engine import get_db
from vaultsync.realtime.hub import BroadcastHub
from vaultsync.services.presence import PresenceTracker
from vaultsync.services.preferences import PreferencesService
from vaultsync.services.vault_client import VaultClient


def get_hub(request: Request) -> BroadcastHub:
    return request.app.state.hub


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_vault(request: Request) -> VaultClient:
    return request.app.state.vault


def get_tracker(
    request: Request,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> PresenceTracker:
    ttl = timedelta(seconds=request.app.state.settings.presence_ttl_seconds)
    return PresenceTracker(db, clock=clock, ttl=ttl)


def get_preferences_service(db: AsyncSession = Depends(get_db)) -> PreferencesService:
    return PreferencesService(db)
