"""Preferences API — per-device settings, synced across devices.

Learn: The client debounces its writes (one POST per quiet period, full
snapshot). After storing, we broadcast `settings-updated` with the
changed fields; other devices merge them, the writing device recognizes
its own deviceId and ignores the echo.

The Vault API URL and token are stored but never broadcast: every
subscriber sees every event, so credentials stay with their device.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from vaultsync.api.deps import get_hub, get_preferences_service
from vaultsync.events.types import SETTINGS_UPDATED
from vaultsync.realtime.hub import BroadcastHub
from vaultsync.schemas.preferences import (
    DEVICE_LOCAL_FIELDS,
    PreferenceFields,
    PreferencesRead,
    PreferencesUpdate,
)
from vaultsync.services.preferences import PreferencesService

router = APIRouter(prefix="/preferences")


@router.get("", response_model=PreferencesRead)
async def get_preferences(
    device_id: Optional[str] = Query(None, alias="deviceId"),
    svc: PreferencesService = Depends(get_preferences_service),
):
    """Fetch preferences for a device, creating the device with defaults if new."""
    if not device_id:
        raise HTTPException(status_code=400, detail="deviceId is required")
    return await svc.get_preferences(device_id)


@router.post("", response_model=PreferencesRead)
async def update_preferences(
    body: PreferencesUpdate,
    svc: PreferencesService = Depends(get_preferences_service),
    hub: BroadcastHub = Depends(get_hub),
):
    """Upsert preferences. Only provided fields are changed."""
    changes = body.model_dump(exclude_none=True, exclude={"device_id"})
    stored = await svc.update_preferences(body.device_id, changes)

    hub.publish_event(
        SETTINGS_UPDATED,
        {
            "deviceId": body.device_id,
            "preferences": PreferenceFields(**changes).model_dump(
                by_alias=True, exclude_none=True, exclude=set(DEVICE_LOCAL_FIELDS)
            ),
        },
    )
    return stored
