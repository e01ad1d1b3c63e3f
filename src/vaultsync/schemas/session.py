"""Pydantic schemas for presence sessions.

Learn: The browser speaks camelCase (`deviceId`, `itemId`, `lastActiveAt`).
alias_generator maps those to snake_case attributes; populate_by_name
lets Python callers use either spelling. FastAPI serializes responses
by alias, so the wire format stays camelCase.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SessionHeartbeat(BaseModel):
    device_id: str = Field(..., min_length=1, max_length=255)
    item_id: str = Field(..., min_length=1, max_length=255)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionRead(BaseModel):
    device_id: str
    item_id: str
    last_active_at: datetime

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ReleaseResult(BaseModel):
    success: bool = True
