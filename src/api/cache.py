"""
TTL cache for market data with stale fallback.

Fresh entries live in a cachetools TTLCache; the last good value for every
key is also kept in an LRU store so a failed refresh can fall back to it.
The clock is injectable, which keeps expiry testable without sleeping.
"""

import threading
import time
from typing import Any, Callable, Hashable, Optional

import structlog
from cachetools import LRUCache, TTLCache

logger = structlog.get_logger(__name__)


class MarketDataCache:
    """Thread-safe get-or-fetch cache used by the price clients."""

    def __init__(
        self,
        ttl_seconds: float = 1.0,
        maxsize: int = 512,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Args:
            ttl_seconds: How long a fetched value is served without refetching
            maxsize: Maximum number of keys kept (fresh and stale stores each)
            clock: Monotonic time source in seconds (defaults to time.monotonic)
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._fresh: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_seconds, timer=clock or time.monotonic)
        self._stale: LRUCache = LRUCache(maxsize=maxsize)
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[Any]:
        """Fresh value for key, or None if missing or expired."""
        with self._lock:
            return self._fresh.get(key)

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._fresh[key] = value
            self._stale[key] = value

    def get_or_fetch(self, key: Hashable, fetch: Callable[[], Any]) -> Any:
        """
        Return the cached value or call fetch() to refresh it.

        If fetch() raises and a previous value exists for the key, the stale
        value is returned instead. Without one the error propagates.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        try:
            value = fetch()
        except Exception as e:
            with self._lock:
                stale = self._stale.get(key)
            if stale is None:
                raise
            logger.warning("market_data_stale_fallback", key=str(key), error=str(e))
            return stale

        self.set(key, value)
        return value

    def clear(self) -> None:
        with self._lock:
            self._fresh.clear()
            self._stale.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._fresh)
