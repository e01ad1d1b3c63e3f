"""Event type constants.

Learn: Centralizing event types as constants prevents typos and
makes it easy to discover all event types in the system. The same
strings travel over the wire as the SSE `event:` field.
"""

from dataclasses import dataclass, field
from typing import Any

# ─── Settings ────────────────────────────────────────────

SETTINGS_UPDATED = "settings-updated"

# ─── Item lifecycle (originate at the Vault API) ─────────

ITEM_LOCKED = "item-locked"
ITEM_UNLOCKED = "item-unlocked"
ITEM_DELETED = "item-deleted"

# ─── Transport ───────────────────────────────────────────

PING = "ping"  # keepalive only, never business logic
CONNECTED = "connected"  # handshake, sent once as an unnamed message

EVENT_TYPES: frozenset[str] = frozenset(
    {SETTINGS_UPDATED, ITEM_LOCKED, ITEM_UNLOCKED, ITEM_DELETED, PING}
)

ITEM_EVENT_TYPES: frozenset[str] = frozenset(
    {ITEM_LOCKED, ITEM_UNLOCKED, ITEM_DELETED}
)


@dataclass(frozen=True)
class Event:
    """One broadcast message. Never persisted."""

    type: str
    payload: Any = field(default_factory=dict)

    def __post_init__(self):
        if self.type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type '{self.type}'")
