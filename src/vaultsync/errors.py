"""Error taxonomy for the sync subsystem.

Learn: Services raise these; API routes translate them to HTTP status
codes (400 / 404 / 502). Client-side network failures are absorbed by
the sync engine's retry loop and never reach the UI as errors.
"""

from typing import Optional


class VaultSyncError(Exception):
    """Base class for all vaultsync errors."""


class ValidationError(VaultSyncError):
    """A required field is missing or malformed (HTTP 400)."""


class NotFound(VaultSyncError):
    """Unknown device or item (HTTP 404)."""


class TransientNetworkError(VaultSyncError):
    """Stream or write failure — retried with backoff, never fatal."""


class DeliveryDrop(VaultSyncError):
    """Publishing to a dead or saturated subscriber. Always swallowed."""


class VaultApiError(VaultSyncError):
    """Non-success response from the remote Vault API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
