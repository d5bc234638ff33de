"""
geo/resolver.py

Async IP → location resolver with caching, bounded retry and backend
fallback.

Responsibilities:
  - Answer from the TTL cache whenever possible (no I/O)
  - Otherwise GET each backend in turn, at most `attempts` times each with
    a fixed backoff between attempts
  - Fall back to the 'unknown' sentinel when every backend fails
  - Never block classification: prefetch() schedules a task and delivers
    the result through a callback

Late results:
    close() bumps a generation counter and cancels in-flight tasks.  A
    callback registered under an older generation is never invoked.

Usage:
    resolver = GeoResolver(use_multiple_apis=True)
    info = resolver.get_cached("8.8.8.8")      # None on miss
    resolver.prefetch("8.8.8.8", on_result=print)
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Callable, Sequence

import httpx

from ..addresses import is_private_address
from ..errors import ResolverUnavailable
from ..metrics import METRICS
from .backends import DEFAULT_BACKENDS, GeoBackend
from .cache import GeoCache
from .models import SOURCE_LOCAL, GeoInfo

logger = logging.getLogger(__name__)


class GeoResolver:
    """
    Args:
        backends:          Ordered backend chain (default ip-api.com, ipapi.co).
        use_multiple_apis: False limits the chain to the first backend.
        attempts:          Tries per backend.
        backoff_seconds:   Fixed sleep between tries on the same backend.
        timeout_seconds:   Per-request HTTP timeout.
        cache:             Shared GeoCache (a fresh one by default).
        transport:         Optional httpx transport (tests use MockTransport).
    """

    def __init__(
        self,
        backends: Sequence[GeoBackend] = DEFAULT_BACKENDS,
        use_multiple_apis: bool = True,
        attempts: int = 2,
        backoff_seconds: float = 1.0,
        timeout_seconds: float = 5.0,
        cache: GeoCache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.backends = list(backends)
        self.use_multiple_apis = use_multiple_apis
        self.attempts = max(1, attempts)
        self.backoff_seconds = backoff_seconds
        self.timeout_seconds = timeout_seconds
        self.cache = cache if cache is not None else GeoCache()
        self._transport = transport
        self._inflight: dict[str, asyncio.Task] = {}
        self._generation = 0
        self.stats: dict[str, int] = {
            "requests": 0,
            "request_errors": 0,
            "resolved": 0,
            "unavailable": 0,
            "late_results_discarded": 0,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_cached(self, ip: str) -> GeoInfo | None:
        """Non-blocking lookup. Private addresses answer immediately."""
        if is_private_address(ip):
            return GeoInfo.unknown(ip, source=SOURCE_LOCAL)
        info = self.cache.get(ip)
        if info is not None:
            METRICS.geo_cache_hits.inc()
        return info

    async def lookup(self, ip: str) -> GeoInfo:
        """
        Resolve *ip*, going to the network on a cache miss.

        Never raises — returns the 'unknown' sentinel when every backend fails.
        """
        cached = self.get_cached(ip)
        if cached is not None:
            return cached

        METRICS.geo_lookups.inc()
        try:
            info = await self._query_backends(ip)
            self.stats["resolved"] += 1
        except ResolverUnavailable as exc:
            METRICS.geo_failures.inc()
            self.stats["unavailable"] += 1
            logger.warning("%s — continuing without geographic signal", exc.message)
            info = GeoInfo.unknown(ip)

        self.cache.put(ip, info)
        return info

    def prefetch(
        self,
        ip: str,
        on_result: Callable[[GeoInfo], None] | None = None,
    ) -> asyncio.Task | None:
        """
        Schedule a background lookup for *ip* and return its task.

        Concurrent prefetches for one IP share a single task.  Returns None
        when called outside a running event loop.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop — geo prefetch for %s skipped", ip)
            return None

        task = self._inflight.get(ip)
        if task is None:
            task = loop.create_task(self.lookup(ip), name=f"geo:{ip}")
            self._inflight[ip] = task
            task.add_done_callback(lambda _t, key=ip: self._inflight.pop(key, None))

        if on_result is not None:
            task.add_done_callback(partial(self._deliver, on_result, self._generation))
        return task

    def reconfigure(self, use_multiple_apis: bool) -> None:
        self.use_multiple_apis = use_multiple_apis

    async def close(self) -> None:
        """Abandon in-flight lookups; their results will be discarded."""
        self._generation += 1
        tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()
        logger.debug("GeoResolver closed — %d in-flight lookup(s) cancelled", len(tasks))

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _chain(self) -> list[GeoBackend]:
        return self.backends if self.use_multiple_apis else self.backends[:1]

    async def _query_backends(self, ip: str) -> GeoInfo:
        chain = self._chain()
        async with httpx.AsyncClient(
            timeout=self.timeout_seconds,
            transport=self._transport,
        ) as client:
            for backend in chain:
                for attempt in range(1, self.attempts + 1):
                    info = await self._query_once(client, backend, ip, attempt)
                    if info is not None:
                        return info
                    if attempt < self.attempts:
                        await asyncio.sleep(self.backoff_seconds)

        raise ResolverUnavailable(
            "geo_unavailable",
            f"all geolocation backends failed for {ip}",
            {"ip": ip, "backends": [b.name for b in chain]},
        )

    async def _query_once(
        self,
        client: httpx.AsyncClient,
        backend: GeoBackend,
        ip: str,
        attempt: int,
    ) -> GeoInfo | None:
        self.stats["requests"] += 1
        try:
            resp = await client.get(backend.url_for(ip))
            resp.raise_for_status()
            data = resp.json()
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            info = backend.parse(ip, data)
        except (httpx.HTTPError, ValueError, TypeError) as exc:
            self.stats["request_errors"] += 1
            logger.info("Geo lookup via %s failed for %s (attempt %d): %s", backend.name, ip, attempt, exc)
            return None
        if info is None:
            logger.info("Geo lookup via %s returned no answer for %s (attempt %d)", backend.name, ip, attempt)
        return info

    def _deliver(
        self,
        on_result: Callable[[GeoInfo], None],
        generation: int,
        task: asyncio.Task,
    ) -> None:
        if task.cancelled() or generation != self._generation:
            self.stats["late_results_discarded"] += 1
            logger.debug("Discarding stale geo result (generation %d != %d)", generation, self._generation)
            return
        if task.exception() is not None:
            logger.error("Geo lookup task failed: %s", task.exception())
            return
        try:
            on_result(task.result())
        except Exception as exc:
            logger.exception("Geo result callback raised: %s", exc)
