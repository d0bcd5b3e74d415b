from datetime import datetime, timedelta

from app.services.cache_service import CacheKey, CacheService, cache_key


def test_cache_key_stringifies_entity_id():
    key = cache_key("user", 42, "permissions")
    assert key == CacheKey("user", "42", "permissions")
    assert key.entity_type == "user"


def test_get_returns_stored_value():
    cache = CacheService(ttl_seconds=60)
    key = cache_key("user", "1", "permissions")
    cache.set(key, {"manage_cases"})

    assert cache.get(key) == {"manage_cases"}
    assert len(cache) == 1


def test_missing_key_returns_none():
    assert CacheService().get(cache_key("user", "nope", "permissions")) is None


def test_expired_entries_are_dropped():
    cache = CacheService(ttl_seconds=60)
    key = cache_key("user", "1", "permissions")
    cache.set(key, "value", ttl=-1)

    assert cache.get(key) is None
    assert len(cache) == 0


def test_invalidate_entity_drops_all_scopes_of_one_entity():
    cache = CacheService()
    cache.set(cache_key("case", "1", "summary"), 1)
    cache.set(cache_key("case", "1", "documents"), 2)
    cache.set(cache_key("case", "2", "summary"), 3)

    cache.invalidate_entity("case", 1)

    assert cache.get(cache_key("case", "1", "summary")) is None
    assert cache.get(cache_key("case", "1", "documents")) is None
    assert cache.get(cache_key("case", "2", "summary")) == 3


def test_invalidate_scope_and_clear():
    cache = CacheService()
    cache.set(cache_key("user", "1", "permissions"), 1)
    cache.set(cache_key("user", "1", "profile"), 2)

    cache.invalidate_scope("permissions")
    assert cache.get(cache_key("user", "1", "permissions")) is None
    assert cache.get(cache_key("user", "1", "profile")) == 2

    cache.clear()
    assert len(cache) == 0


def test_set_uses_default_ttl():
    cache = CacheService(ttl_seconds=5)
    key = cache_key("user", "1", "permissions")
    cache.set(key, "value")

    _, expiry = cache._entries[key]
    assert timedelta(seconds=4) < expiry - datetime.utcnow() <= timedelta(seconds=5)
