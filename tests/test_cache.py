from __future__ import annotations

import pytest

from app.cache import TTLCache


def test_set_then_get_returns_value(clock):
    cache = TTLCache(default_ttl=60, clock=clock)
    cache.set("key1", "value1")
    cache.set("key2", {"nested": "dict"})
    cache.set(("tuple", 1), [1, 2, 3])

    assert cache.get("key1") == "value1"
    assert cache.get("key2") == {"nested": "dict"}
    assert cache.get(("tuple", 1)) == [1, 2, 3]
    assert cache.get("missing") is None


def test_user_profile_expires_after_default_ttl(clock):
    cache = TTLCache(default_ttl=1.0, clock=clock)
    cache.set("user:42", {"name": "Alice"})

    clock.advance(0.5)
    assert cache.get("user:42") == {"name": "Alice"}

    clock.advance(1.0)
    before = cache.size()
    assert cache.get("user:42") is None
    assert cache.size() == before - 1


def test_explicit_ttl_overrides_default(clock):
    cache = TTLCache(default_ttl=100, clock=clock)
    cache.set("short", "v", ttl=5)
    cache.set("long", "v")

    clock.advance(6)
    assert cache.get("short") is None
    assert cache.get("long") == "v"


def test_entry_valid_at_exact_expiry_instant(clock):
    cache = TTLCache(default_ttl=10, clock=clock)
    cache.set("k", "v")

    clock.advance(10)
    assert cache.get("k") == "v"
    assert cache.has("k")

    clock.advance(1e-6)
    assert cache.get("k") is None


def test_zero_ttl_is_valid_until_clock_moves(clock):
    cache = TTLCache(default_ttl=0, clock=clock)
    cache.set("k", "v")
    assert cache.get("k") == "v"

    clock.advance(0.001)
    assert "k" not in cache


def test_has_lazily_evicts_expired_entry(clock):
    cache = TTLCache(default_ttl=1, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2, ttl=10)

    clock.advance(2)
    assert cache.size() == 2
    assert cache.has("a") is False
    assert cache.size() == 1
    assert cache.has("b") is True


def test_has_reports_stored_none(clock):
    cache = TTLCache(default_ttl=1, clock=clock)
    cache.set("empty", None)
    assert cache.has("empty")
    assert cache.get("empty") is None


def test_overwrite_replaces_value_and_expiry(clock):
    cache = TTLCache(default_ttl=5, clock=clock)
    cache.set("k", "v1")
    clock.advance(4)
    cache.set("k", "v2")
    assert cache.size() == 1

    clock.advance(4)
    assert cache.get("k") == "v2"


def test_cleanup_removes_only_expired(clock):
    cache = TTLCache(default_ttl=10, clock=clock)
    cache.set("a", 1, ttl=1)
    cache.set("b", 2)
    cache.set("c", 3, ttl=2)

    clock.advance(5)
    assert cache.size() == 3
    assert cache.live_size() == 1

    removed = cache.cleanup()
    assert removed == 2
    assert cache.size() == 1
    assert cache.get("b") == 2
    assert cache.cleanup() == 0


def test_live_size_does_not_evict(clock):
    cache = TTLCache(default_ttl=1, clock=clock)
    cache.set("a", 1)
    clock.advance(2)
    assert cache.live_size() == 0
    assert len(cache) == 1


def test_clear_and_delete(clock):
    cache = TTLCache(default_ttl=60, clock=clock)
    for i in range(5):
        cache.set(f"key{i}", f"value{i}")

    cache.delete("key0")
    assert cache.get("key0") is None
    assert cache.size() == 4

    cache.clear()
    assert cache.size() == 0
    for i in range(5):
        assert cache.get(f"key{i}") is None


def test_delete_missing_key_is_noop(clock):
    cache = TTLCache(default_ttl=60, clock=clock)
    cache.delete("never-set")
    assert cache.size() == 0


def test_negative_ttl_rejected():
    with pytest.raises(ValueError):
        TTLCache(default_ttl=-1)
    cache = TTLCache(default_ttl=1)
    with pytest.raises(ValueError):
        cache.set("k", "v", ttl=-0.5)


def test_unhashable_key_raises_type_error():
    cache = TTLCache(default_ttl=1)
    with pytest.raises(TypeError):
        cache.set(["not", "hashable"], "v")


def test_nan_ttl_rejected():
    with pytest.raises(ValueError):
        TTLCache(default_ttl=float("nan"))
    cache = TTLCache(default_ttl=1)
    with pytest.raises(ValueError):
        cache.set("k", "v", ttl=float("nan"))
