"""
Tests for the in-process TTL cache
"""

import pytest

from alltown.utils.cache import TTLCache
from conftest import ManualClock


class TestTTLCache:
    def test_returns_value_inside_window(self):
        clock = ManualClock()
        cache = TTLCache(60, clock=clock)
        cache.set("saras", "tenant")
        clock.advance(59.9)
        assert cache.get("saras") == "tenant"
        assert "saras" in cache

    def test_expires_at_window_end(self):
        clock = ManualClock()
        cache = TTLCache(60, clock=clock)
        cache.set("saras", "tenant")
        clock.advance(60)
        assert cache.get("saras") is None
        assert len(cache) == 0

    def test_set_restarts_window(self):
        clock = ManualClock()
        cache = TTLCache(60, clock=clock)
        cache.set("k", 1)
        clock.advance(50)
        cache.set("k", 2)
        clock.advance(50)
        assert cache.get("k") == 2

    def test_missing_key(self):
        assert TTLCache(10).get("nope") is None

    def test_clear(self):
        cache = TTLCache(10)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.clear()
        assert len(cache) == 0
        assert cache.get("a") is None

    def test_max_entries_evicts_oldest(self):
        cache = TTLCache(10, max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        assert cache.get("a") is None
        assert cache.get("b") == 2
        assert cache.get("c") == 3

    def test_tuple_keys(self):
        cache = TTLCache(10)
        cache.set(("subdomain", "saras"), "x")
        assert cache.get(("subdomain", "saras")) == "x"
        assert cache.get(("domain", "saras")) is None

    @pytest.mark.parametrize("ttl", [0, -5])
    def test_rejects_non_positive_ttl(self, ttl):
        with pytest.raises(ValueError):
            TTLCache(ttl)
