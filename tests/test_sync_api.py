"""SyncApi tests — HTTP wrapper and its error translation, via httpx.MockTransport."""

import json

import httpx
import pytest

from vaultsync.client.api import SyncApi
from vaultsync.errors import NotFound, TransientNetworkError, ValidationError


def _api(handler) -> SyncApi:
    return SyncApi("http://sync.test/api/v1", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_save_preferences_sends_camel_case_snapshot():
    seen = {}

    def handler(request: httpx.Request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=seen["body"])

    api = _api(handler)
    await api.save_preferences("device_a", {"privacy_mode": True, "api_token": None})
    await api.aclose()

    assert seen["path"] == "/api/v1/preferences"
    assert seen["body"] == {"privacyMode": True, "deviceId": "device_a"}


@pytest.mark.asyncio
async def test_release_uses_query_params():
    seen = {}

    def handler(request: httpx.Request):
        seen["method"] = request.method
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"success": True})

    api = _api(handler)
    await api.release("device_a", "x1")
    await api.aclose()

    assert seen == {"method": "DELETE", "params": {"deviceId": "device_a", "itemId": "x1"}}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, error",
    [(404, NotFound), (400, ValidationError), (500, TransientNetworkError), (503, TransientNetworkError)],
)
async def test_error_translation(status, error):
    api = _api(lambda request: httpx.Response(status, json={"detail": "nope"}))
    with pytest.raises(error):
        await api.heartbeat("device_a", "x1")
    await api.aclose()


@pytest.mark.asyncio
async def test_transport_failure_is_transient():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    api = _api(handler)
    with pytest.raises(TransientNetworkError):
        await api.fetch_preferences("device_a")
    await api.aclose()


@pytest.mark.asyncio
async def test_non_json_success_body_is_transient():
    api = _api(lambda request: httpx.Response(200, text="<html>Sign in to Wi-Fi</html>"))
    with pytest.raises(TransientNetworkError):
        await api.fetch_preferences("device_a")
    await api.aclose()


@pytest.mark.asyncio
async def test_stream_lines_yields_sse_lines():
    body = 'data: {"type":"connected"}\n\nevent: ping\ndata: {}\n\n'

    def handler(request: httpx.Request):
        assert request.url.params["deviceId"] == "device_a"
        return httpx.Response(200, text=body, headers={"Content-Type": "text/event-stream"})

    api = _api(handler)
    lines = [line async for line in api.stream_lines("device_a")]
    await api.aclose()

    assert lines == ['data: {"type":"connected"}', "", "event: ping", "data: {}", ""]


@pytest.mark.asyncio
async def test_stream_bad_status_is_transient():
    api = _api(lambda request: httpx.Response(503))
    with pytest.raises(TransientNetworkError):
        async for _ in api.stream_lines("device_a"):
            pass
    await api.aclose()
