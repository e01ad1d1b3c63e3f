"""Pydantic schemas for per-device preferences."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_camel = ConfigDict(alias_generator=to_camel, populate_by_name=True)

# Stored per device but never broadcast: they hold Vault API credentials.
DEVICE_LOCAL_FIELDS = frozenset({"api_url", "api_token"})


class PreferenceFields(BaseModel):
    """Every syncable setting. All optional: a write only touches what it sends."""

    default_duration_minutes: Optional[int] = Field(None, ge=1)
    privacy_mode: Optional[bool] = None
    panic_url: Optional[str] = Field(None, max_length=2048)
    panic_shortcut: Optional[str] = Field(None, max_length=64)
    theme_config: Optional[str] = None  # JSON string, stored verbatim
    date_time_format: Optional[str] = Field(None, max_length=64)
    compact_mode: Optional[bool] = None
    sidebar_open: Optional[bool] = None
    confirm_delete: Optional[bool] = None
    confirm_extend: Optional[bool] = None
    auto_refresh_interval: Optional[int] = Field(None, ge=0)
    cache_ttl_minutes: Optional[int] = Field(None, ge=1)
    auto_privacy_delay_minutes: Optional[int] = Field(None, ge=0)
    api_url: Optional[str] = Field(None, max_length=2048)
    api_token: Optional[str] = Field(None, max_length=512)

    model_config = _camel


class PreferencesUpdate(PreferenceFields):
    device_id: str = Field(..., min_length=1, max_length=255)


class PreferencesRead(BaseModel):
    device_id: str
    default_duration_minutes: int
    privacy_mode: bool
    panic_url: str
    panic_shortcut: str
    theme_config: str
    date_time_format: str
    compact_mode: bool
    sidebar_open: bool
    confirm_delete: bool
    confirm_extend: bool
    auto_refresh_interval: int
    cache_ttl_minutes: int
    auto_privacy_delay_minutes: int
    api_url: Optional[str]
    api_token: Optional[str]
    updated_at: Optional[datetime]

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
