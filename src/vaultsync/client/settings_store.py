"""Settings draft — the client's authoritative, in-memory settings.

Learn: Every change is applied locally first (optimistic) and listeners
are told where it came from:

    "load"    previously persisted settings read at startup
    "user"    the user changed something
    "remote"  another device's update arrived over the event stream

Only "user" changes are worth uploading. The sync engine keys its
debounced write on that, so loading at startup or merging a remote
update never bounces straight back to the server.
"""

from typing import Any, Callable, Literal, Optional

from pydantic.alias_generators import to_camel, to_snake

from vaultsync.schemas.preferences import DEVICE_LOCAL_FIELDS

Origin = Literal["load", "user", "remote"]
Listener = Callable[[dict[str, Any], Origin], None]

DEFAULT_SETTINGS: dict[str, Any] = {
    "default_duration_minutes": 60,
    "privacy_mode": False,
    "panic_url": "https://google.com",
    "panic_shortcut": "Escape",
    "theme_config": "{}",
    "date_time_format": "yyyy-MM-dd HH:mm",
    "compact_mode": False,
    "sidebar_open": True,
    "confirm_delete": True,
    "confirm_extend": True,
    "auto_refresh_interval": 0,
    "cache_ttl_minutes": 5,
    "auto_privacy_delay_minutes": 0,
    "api_url": None,
    "api_token": None,
}


def from_wire(data: dict[str, Any]) -> dict[str, Any]:
    """camelCase server payload → known snake_case settings fields."""
    out = {}
    for key, value in data.items():
        name = to_snake(key)
        if name in DEFAULT_SETTINGS:
            out[name] = value
    return out


def to_wire(data: dict[str, Any]) -> dict[str, Any]:
    return {to_camel(key): value for key, value in data.items()}


class SettingsDraft:
    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._values: dict[str, Any] = dict(DEFAULT_SETTINGS)
        if initial:
            self._values.update(self._checked(initial))
        self._listeners: list[Listener] = []
        self.loaded = False

    def __getitem__(self, name: str) -> Any:
        return self._values[name]

    def __getattr__(self, name: str) -> Any:
        values = self.__dict__.get("_values")
        if values is not None and name in values:
            return values[name]
        raise AttributeError(name)

    def snapshot(self) -> dict[str, Any]:
        return dict(self._values)

    def add_listener(self, callback: Listener) -> Callable[[], None]:
        """Register callback(snapshot, origin). Returns an unsubscribe function."""
        self._listeners.append(callback)
        return lambda: self._listeners.remove(callback)

    # ─── Mutations ────────────────────────────────────────

    def load(self, persisted: dict[str, Any]) -> None:
        """Adopt previously persisted settings (snake_case or wire format)."""
        self._apply(from_wire(persisted), "load")
        self.loaded = True

    def update(self, **changes: Any) -> None:
        """A user edit. Unknown setting names raise ValueError."""
        self._apply(self._checked(changes), "user")

    def apply_remote(self, preferences: dict[str, Any]) -> None:
        """Merge another device's update (wire format).

        Unknown keys are dropped, and so are the Vault API credentials:
        another device's token is never adopted.
        """
        changes = from_wire(preferences)
        for name in DEVICE_LOCAL_FIELDS:
            changes.pop(name, None)
        self._apply(changes, "remote")

    def reset_to_defaults(self) -> None:
        self._apply(dict(DEFAULT_SETTINGS), "user")

    def _apply(self, changes: dict[str, Any], origin: Origin) -> None:
        changed = {k: v for k, v in changes.items() if self._values.get(k) != v}
        if not changed and origin != "load":
            return
        self._values.update(changed)
        snapshot = self.snapshot()
        for callback in list(self._listeners):
            callback(snapshot, origin)

    @staticmethod
    def _checked(changes: dict[str, Any]) -> dict[str, Any]:
        unknown = set(changes) - set(DEFAULT_SETTINGS)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")
        return dict(changes)
