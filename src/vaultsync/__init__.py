"""vaultsync — real-time sync layer for a time-lock vault.

The broadcast hub, presence tracker and client sync engine that keep
several browsers/devices looking at the same vault in step: item
lock/unlock/delete notifications, "N viewers" presence, and settings
that follow the user across devices.
"""

__version__ = "0.1.0"
