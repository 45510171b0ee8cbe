"""Tests for the single-slot TTL cache."""

import pytest

from src.adapters.ttl_cache import TTLCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_returns_value_within_ttl() -> None:
    clock = FakeClock()
    cache = TTLCache(60, clock=clock)
    cache.set({"page": 1})

    clock.now += 59
    assert cache.get() == {"page": 1}
    assert cache.stats() == {"cache_hits": 1, "cache_misses": 0}


def test_expires_after_ttl() -> None:
    clock = FakeClock()
    cache = TTLCache(60, clock=clock)
    cache.set({"page": 1})

    clock.now += 60
    assert cache.get() is None
    assert cache.stats()["cache_misses"] == 1


def test_invalidate_clears_value() -> None:
    cache = TTLCache(60, clock=FakeClock())
    cache.set("cached")
    cache.invalidate()
    assert cache.get() is None


def test_zero_ttl_disables_caching() -> None:
    cache = TTLCache(0, clock=FakeClock())
    cache.set("cached")
    assert cache.get() is None


def test_negative_ttl_rejected() -> None:
    with pytest.raises(ValueError):
        TTLCache(-1)
