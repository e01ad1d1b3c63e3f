"""Client configuration via VAULTSYNC_CLIENT_* env vars."""

from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings

from vaultsync.client.device import DEFAULT_DEVICE_ID_PATH


class ClientSettings(BaseSettings):
    """Timing knobs for the sync engine and presence driver."""

    api_url: str = "http://localhost:8000/api/v1"
    device_id_path: Path = DEFAULT_DEVICE_ID_PATH
    request_timeout_seconds: float = 10.0

    # Settings dual-write
    debounce_seconds: float = 1.0

    # Presence (must stay below the server's presence TTL)
    heartbeat_interval_seconds: float = 120.0
    release_timeout_seconds: float = 5.0

    # Stream reconnect
    backoff_initial_seconds: float = 1.0
    backoff_factor: float = 2.0
    backoff_max_seconds: float = 30.0

    model_config = {"env_prefix": "VAULTSYNC_CLIENT_"}

    @model_validator(mode="after")
    def validate_backoff(self):
        if self.backoff_initial_seconds <= 0 or self.backoff_factor < 1:
            raise ValueError("backoff must start positive and never shrink")
        if self.backoff_max_seconds < self.backoff_initial_seconds:
            raise ValueError("backoff_max_seconds must be >= backoff_initial_seconds")
        return self
