"""
tests/test_notifications.py

Tests for notifications.py — NotificationBus fan-out, kind filtering and
subscriber isolation.
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from geotrack.backend.notifications import Notification, NotificationBus, NotificationKind


def note(kind=NotificationKind.OBSERVATION, **kw) -> Notification:
    return Notification(kind, **kw)


class TestPublish:

    def test_no_subscribers_is_fine(self):
        bus = NotificationBus()
        assert bus.publish(note()) == 0
        assert bus.stats["published"] == 1

    def test_all_kinds_subscriber(self):
        bus = NotificationBus()
        received = []
        bus.subscribe(received.append)
        bus.publish(note(NotificationKind.OBSERVATION))
        bus.publish(note(NotificationKind.LEDGER_UPDATED))
        assert [n.kind for n in received] == [NotificationKind.OBSERVATION, NotificationKind.LEDGER_UPDATED]

    def test_kind_filter(self):
        bus = NotificationBus()
        alerts = []
        bus.subscribe(alerts.append, kinds=[NotificationKind.ANOMALY_ALERT])
        bus.publish(note(NotificationKind.OBSERVATION))
        bus.publish(note(NotificationKind.ANOMALY_ALERT))
        assert [n.kind for n in alerts] == [NotificationKind.ANOMALY_ALERT]

    def test_failing_subscriber_is_isolated(self):
        bus = NotificationBus()
        received = []
        bus.subscribe(MagicMock(side_effect=RuntimeError("closed")))
        bus.subscribe(received.append)
        assert bus.publish(note()) == 1
        assert len(received) == 1
        assert bus.stats["subscriber_errors"] == 1

    def test_unsubscribe(self):
        bus = NotificationBus()
        received = []
        unsubscribe = bus.subscribe(received.append)
        unsubscribe()
        unsubscribe()
        bus.publish(note())
        assert received == []
        assert bus.subscriber_count() == 0


class TestAsyncSubscribers:

    @pytest.mark.asyncio
    async def test_coroutine_subscriber_is_scheduled(self):
        bus = NotificationBus()
        received = []

        async def on_note(n):
            received.append(n.kind)

        bus.subscribe(on_note)
        bus.publish(note())
        await asyncio.sleep(0)
        assert received == [NotificationKind.OBSERVATION]

    def test_coroutine_subscriber_without_loop_is_skipped(self):
        bus = NotificationBus()
        received = []

        async def on_note(n):
            received.append(n)

        bus.subscribe(on_note)
        bus.publish(note())
        assert received == []


class TestToDict:

    def test_error_notification(self):
        d = note(NotificationKind.AUDIT_DEGRADED, error={"code": "ledger_append_failed"}).to_dict()
        assert d["type"] == "audit_degraded"
        assert d["error"]["code"] == "ledger_append_failed"
        assert "connection" not in d
