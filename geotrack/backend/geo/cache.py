"""
geo/cache.py

IP-keyed LRU cache for geolocation results with a time-to-live.

Results for one IP are expected to be stable, so concurrent writers for the
same key simply race (last writer wins).  Entries older than ttl_seconds
are treated as misses and dropped on access.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from typing import Callable

from .models import GeoInfo

logger = logging.getLogger(__name__)


class GeoCache:
    """
    LRU + TTL cache for GeoInfo objects.

    Thread safety: a single lock guards the OrderedDict so the pipeline can
    read from any thread while resolver tasks write from the event loop.
    """

    def __init__(
        self,
        maxsize: int = 5_000,
        ttl_seconds: float = 3_600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache: OrderedDict[str, tuple[float, GeoInfo]] = OrderedDict()
        self._lock = threading.Lock()
        self._clock = clock
        self.maxsize = maxsize
        self.ttl_seconds = ttl_seconds
        self.hits = 0
        self.misses = 0

    def get(self, ip: str) -> GeoInfo | None:
        """Return a fresh cached result or None on miss / expiry."""
        with self._lock:
            entry = self._cache.get(ip)
            if entry is None:
                self.misses += 1
                return None
            stored_at, info = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._cache[ip]
                self.misses += 1
                logger.debug("Cache EXPIRED ip=%s", ip)
                return None
            self._cache.move_to_end(ip)
            self.hits += 1
            return info

    def put(self, ip: str, info: GeoInfo) -> None:
        """Store a result, evicting the LRU entry if at capacity."""
        with self._lock:
            self._cache[ip] = (self._clock(), info)
            self._cache.move_to_end(ip)
            if len(self._cache) > self.maxsize:
                evicted_ip, _ = self._cache.popitem(last=False)
                logger.debug("Cache evicted LRU ip=%s", evicted_ip)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
