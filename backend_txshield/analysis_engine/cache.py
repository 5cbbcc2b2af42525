"""
Time-bounded result cache keyed by transaction fingerprint.

Entries expire `ttl_sec` after insertion and are removed lazily on the
next lookup. The clock is injectable for tests.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Awaitable, Callable

from backend_txshield.txshield_logging import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SEC = 300.0


class ResultCache:
    """Thread-safe cache with TTL. Key -> (value, expiry_ts)."""

    def __init__(self, ttl_sec: float = DEFAULT_TTL_SEC, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_sec
        self._clock = clock
        self._store: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    @property
    def ttl_sec(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                logger.debug("cache_miss", key=key)
                return None
            value, expiry = entry
            if self._clock() >= expiry:
                del self._store[key]
                logger.debug("cache_expired", key=key)
                return None
            logger.debug("cache_hit", key=key)
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._store[key] = (value, self._clock() + self._ttl)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def get_or_compute(self, key: str, compute: Callable[[], Any]) -> Any:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = compute()
        self.set(key, value)
        return value

    async def aget_or_compute(self, key: str, compute: Callable[[], Awaitable[Any]]) -> Any:
        """
        Async variant. Two concurrent misses on the same key may both compute;
        the later insert wins, which is harmless since results are equivalent.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        value = await compute()
        self.set(key, value)
        return value
