"""Stable per-installation device identity."""

import platform
import uuid
from pathlib import Path
from typing import Optional

DEFAULT_DEVICE_ID_PATH = Path.home() / ".vaultsync" / "device_id"


def get_device_id(path: Optional[Path] = None) -> str:
    """Return this installation's device id, generating one on first use."""
    path = Path(path) if path is not None else DEFAULT_DEVICE_ID_PATH
    try:
        stored = path.read_text().strip()
    except FileNotFoundError:
        stored = ""
    if stored:
        return stored

    device_id = f"device_{uuid.uuid4()}"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(device_id + "\n")
    return device_id


def reset_device_id(path: Optional[Path] = None) -> str:
    """Forget the stored id and mint a fresh one."""
    path = Path(path) if path is not None else DEFAULT_DEVICE_ID_PATH
    path.unlink(missing_ok=True)
    return get_device_id(path)


def get_device_name() -> str:
    return f"{platform.python_implementation()} on {platform.system() or 'Unknown OS'}"
