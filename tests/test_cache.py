"""Query cache tests — hierarchical prefix invalidation."""

from vaultsync.client.cache import (
    ITEMS,
    PREFERENCES,
    STATS,
    QueryCache,
    item_detail_key,
    item_list_key,
)


def test_missing_key_counts_as_stale():
    assert QueryCache().is_stale(STATS)


def test_prefix_invalidation_covers_the_family():
    cache = QueryCache()
    cache.set(item_list_key(("unlocked",)), [])
    cache.set(item_detail_key("x1"), {})
    cache.set(STATS, {})

    assert cache.invalidate(ITEMS) == 2
    assert cache.is_stale(item_list_key(("unlocked",)))
    assert cache.is_stale(item_detail_key("x1"))
    assert not cache.is_stale(STATS)


def test_exact_key_invalidation():
    cache = QueryCache()
    cache.set(item_detail_key("x1"), {})
    cache.set(item_detail_key("x2"), {})

    cache.invalidate(item_detail_key("x1"))

    assert cache.is_stale(item_detail_key("x1"))
    assert not cache.is_stale(item_detail_key("x2"))


def test_set_refreshes_entry():
    cache = QueryCache()
    cache.set(PREFERENCES, {"a": 1})
    cache.invalidate(PREFERENCES)
    cache.set(PREFERENCES, {"a": 2})
    assert not cache.is_stale(PREFERENCES)
    assert cache.get(PREFERENCES).data == {"a": 2}


def test_listeners_fire_even_when_nothing_cached():
    cache = QueryCache()
    seen = []
    cache.add_listener(seen.append)
    assert cache.invalidate(ITEMS) == 0
    assert seen == [ITEMS]
