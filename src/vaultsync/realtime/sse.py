"""Server-Sent Events codec — the text/event-stream wire format.

Learn: SSE is line-oriented UTF-8. A message is a block of `field: value`
lines terminated by a blank line:

    event: item-unlocked
    data: {"id":"x1"}
    <blank>

A block without `event:` is an unnamed "message" — we use exactly one of
those, the handshake `data: {"type":"connected"}`, so the client can tell
the stream is live before any real event arrives.

The server side only encodes; the client side (sync engine) only decodes.
"""

import json
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

from vaultsync.events.types import CONNECTED, Event

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # disable proxy buffering (nginx)
}
SSE_MEDIA_TYPE = "text/event-stream"

DEFAULT_EVENT_NAME = "message"


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), default=str)


def encode_event(event: Event) -> str:
    """Encode a typed event as one SSE block."""
    return f"event: {event.type}\ndata: {_dumps(event.payload)}\n\n"


def encode_handshake() -> str:
    """The unnamed message that opens every stream."""
    return f"data: {_dumps({'type': CONNECTED})}\n\n"


# ─── Decoding ─────────────────────────────────────────────


@dataclass(frozen=True)
class ServerSentEvent:
    event: str
    data: str

    def json(self) -> Any:
        return json.loads(self.data) if self.data else None

    @property
    def is_handshake(self) -> bool:
        if self.event != DEFAULT_EVENT_NAME:
            return False
        try:
            body = self.json()
        except ValueError:
            return False
        return isinstance(body, dict) and body.get("type") == CONNECTED


class SseDecoder:
    """Incremental decoder: feed lines, get complete events back."""

    def __init__(self):
        self._event: Optional[str] = None
        self._data: list[str] = []

    def feed(self, line: str) -> Optional[ServerSentEvent]:
        line = line.rstrip("\r\n")
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None  # comment

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        # id / retry / unknown fields are ignored
        return None

    def _dispatch(self) -> Optional[ServerSentEvent]:
        if not self._data and self._event is None:
            return None
        sse = ServerSentEvent(
            event=self._event or DEFAULT_EVENT_NAME,
            data="\n".join(self._data),
        )
        self._event = None
        self._data = []
        return sse


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[ServerSentEvent]:
    """Turn an async stream of text lines into decoded events."""
    decoder = SseDecoder()
    async for line in lines:
        sse = decoder.feed(line)
        if sse is not None:
            yield sse
