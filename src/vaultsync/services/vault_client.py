"""Vault API client — the remote service that actually holds locked items.

Learn: We only proxy the mutations that other devices need to hear about
(delete, extend). Everything else about items (create, decrypt, list,
stats) stays between the browser and the Vault API.

Every request carries `Authorization: Bearer <token>`. Non-2xx answers
and transport failures surface as VaultApiError so routes can map them
to 404 / 409 / 502.
"""

from typing import Any, Optional

import httpx
import structlog

from vaultsync.config import settings
from vaultsync.errors import VaultApiError

logger = structlog.get_logger()


class VaultClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.vault_api_url).rstrip("/")
        headers = {"Content-Type": "application/json"}
        token = token if token is not None else settings.vault_api_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout or settings.vault_timeout_seconds,
            transport=transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("vault.request_failed", method=method, path=path, error=str(e))
            raise VaultApiError(f"Vault API unreachable: {e}") from e

        if response.status_code >= 400:
            raise VaultApiError(
                f"Vault API {method} {path} returned {response.status_code}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        return response.json()

    async def extend_item(self, item_id: str, minutes: int) -> dict[str, Any]:
        return await self._request(
            "POST", f"/items/{item_id}/extend", json={"minutes": minutes}
        )

    async def delete_item(self, item_id: str) -> dict[str, Any]:
        return await self._request("DELETE", f"/items/{item_id}")

    async def ping(self) -> bool:
        """Health probe against the Vault API's /health sibling."""
        health_url = self.base_url.rsplit("/", 1)[0] + "/health"
        try:
            response = await self._client.get(health_url)
        except httpx.HTTPError:
            return False
        return response.status_code < 400

    async def aclose(self) -> None:
        await self._client.aclose()
