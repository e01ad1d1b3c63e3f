"""Client-side query cache with hierarchical keys.

Learn: Keys are tuples organized so a prefix invalidates a whole family:

    ("items",)                     every item query
    ("items", "list", filters)     one filtered list
    ("items", "detail", "x1")      one item

invalidate(("items",)) marks both the lists and every detail stale. The
UI (or whoever holds the cache) re-fetches stale entries on next read;
listeners let it react immediately instead.
"""

from dataclasses import dataclass
from typing import Any, Callable, Hashable, Optional

CacheKey = tuple[Hashable, ...]


# ─── Key factories ────────────────────────────────────────

STATS: CacheKey = ("stats",)
PREFERENCES: CacheKey = ("preferences",)
ITEMS: CacheKey = ("items",)


def item_list_key(filters: Optional[Hashable] = None) -> CacheKey:
    return ("items", "list", filters)


def item_detail_key(item_id: str) -> CacheKey:
    return ("items", "detail", item_id)


@dataclass
class CacheEntry:
    data: Any
    stale: bool = False


class QueryCache:
    def __init__(self):
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._listeners: list[Callable[[CacheKey], None]] = []

    def set(self, key: CacheKey, data: Any) -> None:
        self._entries[key] = CacheEntry(data=data)

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def is_stale(self, key: CacheKey) -> bool:
        entry = self._entries.get(key)
        return entry is None or entry.stale

    def add_listener(self, callback: Callable[[CacheKey], None]) -> None:
        """callback(prefix) runs after every invalidate()."""
        self._listeners.append(callback)

    def invalidate(self, prefix: CacheKey) -> int:
        """Mark every entry under `prefix` stale. Returns how many were cached."""
        n = len(prefix)
        count = 0
        for key, entry in self._entries.items():
            if key[:n] == prefix:
                entry.stale = True
                count += 1
        for callback in list(self._listeners):
            callback(prefix)
        return count

    def keys(self) -> list[CacheKey]:
        return list(self._entries)
