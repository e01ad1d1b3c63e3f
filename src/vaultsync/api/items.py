"""Item mutation proxies — forward to the Vault API, then tell everyone.

Learn: The Vault API has no idea other browsers are open. These routes
are the "caller-side broadcast": do the mutation remotely, and only if
it succeeded publish the matching event so other devices invalidate
their cached copy of the item and the item list.
"""

from fastapi import APIRouter, Depends, HTTPException

from vaultsync.api.deps import get_hub, get_vault
from vaultsync.errors import VaultApiError
from vaultsync.events.types import ITEM_DELETED, ITEM_LOCKED
from vaultsync.realtime.hub import BroadcastHub
from vaultsync.schemas.event import EXTEND_PRESETS_MINUTES, ItemExtend
from vaultsync.services.vault_client import VaultClient

router = APIRouter(prefix="/items")


def _vault_error(e: VaultApiError) -> HTTPException:
    if e.status_code == 404:
        return HTTPException(status_code=404, detail="Item not found")
    if e.status_code == 409:
        return HTTPException(
            status_code=409,
            detail="Concurrent modification detected. Please refresh and try again.",
        )
    return HTTPException(status_code=502, detail=str(e))


@router.delete("/{item_id}")
async def delete_item(
    item_id: str,
    vault: VaultClient = Depends(get_vault),
    hub: BroadcastHub = Depends(get_hub),
):
    try:
        await vault.delete_item(item_id)
    except VaultApiError as e:
        raise _vault_error(e)

    hub.publish_event(ITEM_DELETED, {"id": item_id})
    return {"success": True}


@router.post("/{item_id}/extend")
async def extend_item(
    item_id: str,
    body: ItemExtend,
    vault: VaultClient = Depends(get_vault),
    hub: BroadcastHub = Depends(get_hub),
):
    """Push an item's unlock time further out (re-locks an unlocked item)."""
    if body.minutes not in EXTEND_PRESETS_MINUTES:
        raise HTTPException(
            status_code=400,
            detail="Invalid minutes, must be 1, 10, 60, 360, or 1440",
        )

    try:
        result = await vault.extend_item(item_id, body.minutes)
    except VaultApiError as e:
        raise _vault_error(e)

    decrypt_at = result.get("decryptAt")
    hub.publish_event(ITEM_LOCKED, {"id": item_id, "decryptAt": decrypt_at})
    return {"success": True, "decryptAt": decrypt_at}
