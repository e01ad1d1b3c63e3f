"""Presence API routes — heartbeat, release, live viewer list.

Learn: An item view POSTs a heartbeat when it mounts and every couple of
minutes after; it DELETEs on unmount. Anyone can GET the live list to
render "N viewers". Release is idempotent so a duplicate unload beacon
is harmless.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from vaultsync.api.deps import get_tracker
from vaultsync.errors import NotFound
from vaultsync.schemas.session import ReleaseResult, SessionHeartbeat, SessionRead
from vaultsync.services.presence import PresenceTracker

router = APIRouter()


@router.post("/sessions", response_model=SessionRead)
async def heartbeat(
    body: SessionHeartbeat,
    tracker: PresenceTracker = Depends(get_tracker),
):
    """Register or refresh an active viewing session."""
    try:
        return await tracker.heartbeat(body.device_id, body.item_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/sessions", response_model=list[SessionRead])
async def list_sessions(
    item_id: Optional[str] = Query(None, alias="itemId"),
    tracker: PresenceTracker = Depends(get_tracker),
):
    """Devices currently viewing an item (heartbeat within the TTL)."""
    if not item_id:
        raise HTTPException(status_code=400, detail="itemId is required")
    return await tracker.list_live(item_id)


@router.delete("/sessions", response_model=ReleaseResult)
async def release(
    device_id: Optional[str] = Query(None, alias="deviceId"),
    item_id: Optional[str] = Query(None, alias="itemId"),
    tracker: PresenceTracker = Depends(get_tracker),
):
    """Remove a session when the viewer navigates away."""
    if not device_id or not item_id:
        raise HTTPException(status_code=400, detail="deviceId and itemId are required")
    await tracker.release(device_id, item_id)
    return {"success": True}
