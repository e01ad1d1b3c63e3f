"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and its
dependencies are reachable. The database is required. Redis (rate
limiting) and the Vault API (item proxies) are reported but don't
degrade the status.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from vaultsync import __version__
from vaultsync.api.deps import get_hub, get_vault
from vaultsync.db.engine import get_db
from vaultsync.realtime.hub import BroadcastHub
from vaultsync.services.vault_client import VaultClient

router = APIRouter()


@router.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    hub: BroadcastHub = Depends(get_hub),
    vault: VaultClient = Depends(get_vault),
):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__, "subscribers": len(hub)}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    try:
        from vaultsync.redis_pool import get_redis

        await get_redis().ping()
        checks["redis"] = "ok"
    except Exception as e:
        checks["redis"] = f"unavailable: {e}"

    checks["vault"] = "ok" if await vault.ping() else "unreachable"

    status = "healthy" if checks["database"] == "ok" else "degraded"
    return {"status": status, **checks}
