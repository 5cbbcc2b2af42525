"""
Tests for ResultCache: TTL expiry with an injected clock, lazy deletion,
and the async compute path.
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

from backend_txshield.analysis_engine.cache import ResultCache


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_hit_within_ttl_returns_same_object():
    clock = FakeClock()
    cache = ResultCache(ttl_sec=300, clock=clock)
    value = object()
    compute = MagicMock(return_value=value)
    assert cache.get_or_compute("k", compute) is value
    clock.now += 299.9
    assert cache.get_or_compute("k", compute) is value
    assert compute.call_count == 1


def test_expired_entry_is_recomputed():
    clock = FakeClock()
    cache = ResultCache(ttl_sec=300, clock=clock)
    compute = MagicMock(side_effect=["first", "second"])
    assert cache.get_or_compute("k", compute) == "first"
    clock.now += 300
    assert cache.get_or_compute("k", compute) == "second"
    assert compute.call_count == 2


def test_expired_entry_deleted_lazily_on_read():
    clock = FakeClock()
    cache = ResultCache(ttl_sec=10, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)
    clock.now += 11
    # no sweeper: both entries still held until read
    assert len(cache) == 2
    assert cache.get("a") is None
    assert len(cache) == 1


def test_distinct_keys_do_not_collide():
    cache = ResultCache(ttl_sec=300, clock=FakeClock())
    cache.set("k1", "v1")
    assert cache.get("k2") is None
    assert cache.get("k1") == "v1"
    cache.clear()
    assert len(cache) == 0


def test_async_get_or_compute():
    clock = FakeClock()
    cache = ResultCache(ttl_sec=300, clock=clock)
    calls = []

    async def compute():
        calls.append(1)
        return {"level": "HIGH"}

    async def run():
        first = await cache.aget_or_compute("k", compute)
        second = await cache.aget_or_compute("k", compute)
        return first, second

    first, second = asyncio.run(run())
    assert first is second
    assert len(calls) == 1
