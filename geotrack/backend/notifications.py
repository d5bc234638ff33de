"""
backend/notifications.py

NotificationBus — in-process publish/subscribe fan-out for pipeline results.

Kinds:
    OBSERVATION     — every classified connection
    ANOMALY_ALERT   — anomalous connections (only with real-time alerts on)
    LEDGER_UPDATED  — the audit ledger gained a block
    AUDIT_DEGRADED  — an anomaly could not be written to the ledger

Publishing never blocks and never fails the publisher: zero subscribers is
fine, a subscriber that raises is logged and skipped.  Coroutine
subscribers are scheduled on the running event loop.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable

if TYPE_CHECKING:
    from .ledger.models import AuditBlock
    from .models import ClassifiedConnection

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    OBSERVATION = "observation"
    ANOMALY_ALERT = "anomaly_alert"
    LEDGER_UPDATED = "ledger_updated"
    AUDIT_DEGRADED = "audit_degraded"


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    record: "ClassifiedConnection | None" = None
    blocks: "tuple[AuditBlock, ...]" = ()
    error: dict[str, Any] | None = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"type": self.kind.value, "timestamp": self.timestamp}
        if self.record is not None:
            d["connection"] = self.record.to_dict()
        if self.blocks:
            d["blocks"] = [b.to_dict() for b in self.blocks]
        if self.error is not None:
            d["error"] = self.error
        return d


Subscriber = Callable[[Notification], Any]


class NotificationBus:
    """Zero-or-more subscribers per notification kind."""

    def __init__(self) -> None:
        self._subscribers: list[tuple[Subscriber, frozenset[NotificationKind] | None]] = []
        self._lock = threading.Lock()
        self.stats: dict[str, int] = {"published": 0, "delivered": 0, "subscriber_errors": 0}

    def subscribe(
        self,
        callback: Subscriber,
        kinds: Iterable[NotificationKind] | None = None,
    ) -> Callable[[], None]:
        """
        Register *callback* for *kinds* (all kinds when None).

        Returns a function that unsubscribes it.
        """
        entry = (callback, frozenset(kinds) if kinds is not None else None)
        with self._lock:
            self._subscribers.append(entry)

        def _unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return _unsubscribe

    def publish(self, notification: Notification) -> int:
        """Deliver to every matching subscriber; returns the delivery count."""
        self.stats["published"] += 1
        with self._lock:
            targets = [cb for cb, kinds in self._subscribers if kinds is None or notification.kind in kinds]

        delivered = 0
        for callback in targets:
            try:
                result = callback(notification)
                if inspect.isawaitable(result):
                    self._schedule(result)
                delivered += 1
            except Exception as exc:
                self.stats["subscriber_errors"] += 1
                logger.warning("Subscriber %r failed on %s: %s", callback, notification.kind.value, exc)

        self.stats["delivered"] += delivered
        return delivered

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    @staticmethod
    def _schedule(awaitable) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop — async subscriber skipped")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        loop.create_task(awaitable)
