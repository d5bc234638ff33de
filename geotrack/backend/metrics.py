"""
backend/metrics.py

Lightweight thread-safe counters for the classification pipeline.
No external dependencies — uses Python's threading.Lock.

Usage:
    from geotrack.backend.metrics import METRICS
    METRICS.events_received.inc()
    print(METRICS.as_dict())
"""

import threading


class Counter:
    """A thread-safe integer counter."""

    __slots__ = ("_value", "_lock")

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    def inc(self, amount: int = 1) -> None:
        with self._lock:
            self._value += amount

    def reset(self) -> None:
        with self._lock:
            self._value = 0

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def __repr__(self) -> str:  # pragma: no cover
        return f"Counter({self._value})"


class Metrics:
    """Singleton holding all pipeline counters."""

    def __init__(self) -> None:
        # --- Ingest ---
        self.events_received: Counter = Counter()
        self.events_invalid: Counter = Counter()
        """Events rejected as malformed (InvalidEvent)."""

        self.events_dropped: Counter = Counter()
        """Events discarded because the inbound queue was full."""

        # --- Classification ---
        self.events_classified: Counter = Counter()
        self.anomalies_detected: Counter = Counter()
        self.handler_errors: Counter = Counter()
        """Unexpected exceptions while handling a single event."""

        # --- Ledger ---
        self.ledger_appends: Counter = Counter()
        self.ledger_failures: Counter = Counter()

        # --- Geo resolver ---
        self.geo_lookups: Counter = Counter()
        self.geo_cache_hits: Counter = Counter()
        self.geo_failures: Counter = Counter()
        """Lookups where every backend failed (ResolverUnavailable)."""

    def as_dict(self) -> dict:
        """Return all counters as a plain dict (safe for JSON serialisation)."""
        return {
            name: attr.value
            for name, attr in vars(self).items()
            if isinstance(attr, Counter)
        }

    def reset_all(self) -> None:
        """Reset every counter to zero (useful in tests)."""
        for attr in vars(self).values():
            if isinstance(attr, Counter):
                attr.reset()


# Module-level singleton: import from here everywhere
METRICS = Metrics()
