"""
api/ws_manager.py

WebSocketManager — manages active WebSocket connections across named channels.

Channels:
    "observations" — every classified connection
    "alerts"       — anomaly alerts and audit-degraded warnings
    "ledger"       — the retained chain after each append

attach(bus) bridges a NotificationBus onto these channels.

Thread safety: designed to be called exclusively from asyncio coroutines.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from typing import Callable

from fastapi import WebSocket

from ..notifications import Notification, NotificationBus, NotificationKind

logger = logging.getLogger(__name__)

CHANNEL_FOR_KIND: dict[NotificationKind, str] = {
    NotificationKind.OBSERVATION: "observations",
    NotificationKind.ANOMALY_ALERT: "alerts",
    NotificationKind.AUDIT_DEGRADED: "alerts",
    NotificationKind.LEDGER_UPDATED: "ledger",
}


class WebSocketManager:
    """Manages a set of named broadcast channels, each with N WebSocket clients."""

    def __init__(self) -> None:
        self._channels: dict[str, set[WebSocket]] = defaultdict(set)

    async def connect(self, websocket: WebSocket, channel: str) -> None:
        """Accept a new WebSocket and register it on the given channel."""
        await websocket.accept()
        self._channels[channel].add(websocket)
        logger.debug("WS connected — channel=%r total=%d", channel, len(self._channels[channel]))

    async def disconnect(self, websocket: WebSocket, channel: str) -> None:
        """Remove a WebSocket from its channel (no-op if not present)."""
        self._channels[channel].discard(websocket)
        logger.debug("WS disconnected — channel=%r remaining=%d", channel, len(self._channels[channel]))

    async def broadcast(self, channel: str, message: dict) -> None:
        """
        Send JSON-encoded *message* to all connections on *channel*.

        Connections that error during send are dropped.
        """
        if not self._channels[channel]:
            return

        payload = json.dumps(message, default=str)
        dead: list[WebSocket] = []

        for ws in list(self._channels[channel]):
            try:
                await ws.send_text(payload)
            except Exception as exc:
                logger.debug("WS send failed (channel=%r): %s — removing", channel, exc)
                dead.append(ws)

        for ws in dead:
            self._channels[channel].discard(ws)

    async def on_notification(self, notification: Notification) -> None:
        channel = CHANNEL_FOR_KIND.get(notification.kind)
        if channel is None:
            return
        await self.broadcast(channel, notification.to_dict())

    def attach(self, bus: NotificationBus) -> Callable[[], None]:
        """Forward every bus notification to its channel; returns the unsubscribe hook."""
        return bus.subscribe(self.on_notification)

    def connection_count(self, channel: str) -> int:
        return len(self._channels[channel])

    def all_counts(self) -> dict[str, int]:
        return {ch: len(conns) for ch, conns in self._channels.items()}


# Global singleton: imported by main.py and api/main.py
ws_manager = WebSocketManager()
