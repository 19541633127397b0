"""Unit tests for the TTL cache and its coordinate keys."""

from medride.domain.entities import Coordinates
from medride.infrastructure.cache import TTLCache, cache_key


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestCacheKey:
    def test_differences_beyond_sixth_decimal_collide(self):
        a = Coordinates(12.9716001, 77.5946001)
        b = Coordinates(12.9716004, 77.5946003)
        assert cache_key(a) == cache_key(b)

    def test_differences_at_sixth_decimal_differ(self):
        a = Coordinates(12.971601, 77.594601)
        b = Coordinates(12.971602, 77.594601)
        assert cache_key(a) != cache_key(b)

    def test_includes_every_point_in_order(self):
        a = Coordinates(1.0, 2.0)
        b = Coordinates(3.0, 4.0)
        assert cache_key(a, b) == "1.000000,2.000000|3.000000,4.000000"
        assert cache_key(a, b) != cache_key(b, a)


class TestTTLCache:
    def test_hit_within_ttl(self):
        clock = Clock()
        cache = TTLCache(600, clock=clock)
        cache.set("k", "v")
        clock.now = 600.0
        assert cache.get("k") == "v"

    def test_expired_entry_is_never_returned(self):
        clock = Clock()
        cache = TTLCache(600, clock=clock)
        cache.set("k", "v")
        clock.now = 600.001
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_set_refreshes_timestamp(self):
        clock = Clock()
        cache = TTLCache(10, clock=clock)
        cache.set("k", "old")
        clock.now = 8.0
        cache.set("k", "new")
        clock.now = 15.0
        assert cache.get("k") == "new"

    def test_purge_expired(self):
        clock = Clock()
        cache = TTLCache(10, clock=clock)
        cache.set("a", 1)
        clock.now = 5.0
        cache.set("b", 2)
        clock.now = 12.0
        assert cache.purge_expired() == 1
        assert cache.get("b") == 2

    def test_full_cache_drops_oldest(self):
        cache = TTLCache(60, clock=Clock(), max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        assert cache.get("a") is None
        assert cache.get("b") == 2
        assert cache.get("c") == 3
