"""Event stream API — SSE endpoint plus caller-side broadcast.

Learn: GET /events is a long-lived text/event-stream response. The
generator below is the whole lifecycle of one Subscriber:

1. subscribe on first iteration and send the `connected` handshake
2. forward every queued event, in publish order
3. unsubscribe in `finally` — runs when the client disconnects (Starlette
   cancels the generator), when the hub drops us, or on shutdown

One stream per browser tab. Events are not filtered by deviceId: every
connected client sees every event; deviceId is recorded for logging.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from vaultsync.api.deps import get_hub
from vaultsync.realtime.hub import BroadcastHub
from vaultsync.realtime.sse import SSE_HEADERS, SSE_MEDIA_TYPE, encode_handshake
from vaultsync.schemas.event import EventPublish, PublishResult

router = APIRouter()


@router.get("/events")
async def stream_events(
    device_id: Optional[str] = Query(None, alias="deviceId"),
    hub: BroadcastHub = Depends(get_hub),
):
    """Open the event stream for one client."""
    if not device_id:
        raise HTTPException(status_code=400, detail="Missing deviceId")

    async def event_stream():
        subscriber = hub.subscribe(device_id=device_id)
        try:
            yield encode_handshake()
            async for frame in subscriber.frames():
                yield frame
        finally:
            hub.unsubscribe(subscriber)

    return StreamingResponse(
        event_stream(),
        media_type=SSE_MEDIA_TYPE,
        headers=SSE_HEADERS,
    )


@router.post("/events", response_model=PublishResult, status_code=202)
async def publish_event(
    body: EventPublish,
    hub: BroadcastHub = Depends(get_hub),
):
    """Broadcast an event to every open stream (e.g. a scheduler announcing an unlock)."""
    delivered = hub.publish_event(body.type, body.payload)
    return {"type": body.type, "delivered": delivered}
