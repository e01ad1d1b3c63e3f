"""HTTP wrapper the client side talks through.

Learn: One httpx.AsyncClient for everything. Failures are translated
into the error taxonomy at this boundary:

    transport error / 5xx / bad stream status  → TransientNetworkError
    404                                        → NotFound
    400                                        → ValidationError

so the sync engine and presence driver only ever reason about those.
"""

from typing import Any, AsyncIterator, Optional

import httpx

from vaultsync.client.settings_store import to_wire
from vaultsync.errors import NotFound, TransientNetworkError, ValidationError


def _detail(response: httpx.Response) -> str:
    try:
        return str(response.json().get("detail", response.text))
    except ValueError:
        return response.text


class SyncApi:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise TransientNetworkError(f"{method} {path}: {e}") from e

        if response.status_code == 404:
            raise NotFound(_detail(response))
        if response.status_code == 400:
            raise ValidationError(_detail(response))
        if response.status_code >= 400:
            raise TransientNetworkError(
                f"{method} {path} returned {response.status_code}: {_detail(response)}"
            )
        try:
            return response.json()
        except ValueError as e:
            # A proxy or captive portal answering 200 with HTML
            raise TransientNetworkError(f"{method} {path}: response is not JSON") from e

    # ─── Event stream ─────────────────────────────────────

    async def stream_lines(self, device_id: str) -> AsyncIterator[str]:
        """Open GET /events and yield raw SSE lines until the server closes."""
        try:
            async with self._client.stream(
                "GET",
                "/events",
                params={"deviceId": device_id},
                headers={"Accept": "text/event-stream"},
                timeout=httpx.Timeout(self._client.timeout.connect, read=None),
            ) as response:
                if response.status_code != 200:
                    raise TransientNetworkError(
                        f"event stream returned {response.status_code}"
                    )
                async for line in response.aiter_lines():
                    yield line
        except httpx.HTTPError as e:
            raise TransientNetworkError(f"event stream failed: {e}") from e

    # ─── Preferences ──────────────────────────────────────

    async def fetch_preferences(self, device_id: str) -> dict[str, Any]:
        return await self._request("GET", "/preferences", params={"deviceId": device_id})

    async def save_preferences(self, device_id: str, snapshot: dict[str, Any]) -> dict[str, Any]:
        body = to_wire({k: v for k, v in snapshot.items() if v is not None})
        body["deviceId"] = device_id
        return await self._request("POST", "/preferences", json=body)

    # ─── Presence ─────────────────────────────────────────

    async def heartbeat(self, device_id: str, item_id: str) -> dict[str, Any]:
        return await self._request(
            "POST", "/sessions", json={"deviceId": device_id, "itemId": item_id}
        )

    async def release(self, device_id: str, item_id: str) -> None:
        await self._request(
            "DELETE", "/sessions", params={"deviceId": device_id, "itemId": item_id}
        )

    async def list_viewers(self, item_id: str) -> list[dict[str, Any]]:
        return await self._request("GET", "/sessions", params={"itemId": item_id})

    # ─── Broadcast ────────────────────────────────────────

    async def publish(self, event_type: str, payload: Any = None) -> dict[str, Any]:
        return await self._request(
            "POST", "/events", json={"type": event_type, "payload": payload or {}}
        )

    async def aclose(self) -> None:
        await self._client.aclose()
