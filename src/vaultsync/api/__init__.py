"""API route aggregation.

All routers registered here get mounted in main.py under /api/v1.
There is no auth layer: the device fingerprint identifies the caller.
"""

from fastapi import APIRouter

from vaultsync.api.events import router as events_router
from vaultsync.api.health import router as health_router
from vaultsync.api.items import router as items_router
from vaultsync.api.preferences import router as preferences_router
from vaultsync.api.sessions import router as sessions_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(events_router, tags=["events"])
api_router.include_router(sessions_router, tags=["presence"])
api_router.include_router(preferences_router, tags=["preferences"])
api_router.include_router(items_router, tags=["items"])
