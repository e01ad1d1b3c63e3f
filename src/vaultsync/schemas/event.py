"""Pydantic schemas for caller-side broadcasts and item mutations."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from vaultsync.events.types import ITEM_DELETED, ITEM_LOCKED, ITEM_UNLOCKED, SETTINGS_UPDATED

# `ping` is reserved for the keepalive worker
PublishableType = Literal[SETTINGS_UPDATED, ITEM_LOCKED, ITEM_UNLOCKED, ITEM_DELETED]

EXTEND_PRESETS_MINUTES = (1, 10, 60, 360, 1440)


class EventPublish(BaseModel):
    type: PublishableType
    payload: Any = Field(default_factory=dict)


class PublishResult(BaseModel):
    type: str
    delivered: int


class ItemExtend(BaseModel):
    minutes: int = Field(..., description="One of 1, 10, 60, 360, 1440")
