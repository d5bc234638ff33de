"""
backend/queues.py

The inbound event queue and the ring-buffer safe_put() helper used by the
ingest API to enqueue without blocking.

event_queue holds ConnectionEvents between the HTTP ingest route and the
single classification consumer (ClassificationPipeline.run).  When it is
full the *oldest* event is dropped rather than blocking the producer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .metrics import METRICS

logger = logging.getLogger(__name__)


# Lazily initialised so tests can create fresh queues without import side effects.
# Call init_queue() once at startup (done inside main.py).

event_queue: asyncio.Queue | None = None


def init_queue(size: int = 1_000) -> asyncio.Queue:
    """
    Create the inbound event queue and return it.
    Must be called from within a running asyncio event loop.
    """
    global event_queue
    event_queue = asyncio.Queue(maxsize=size)
    logger.info("Event queue initialised — size=%d", size)
    return event_queue


def safe_put(queue: asyncio.Queue, item: Any) -> bool:
    """
    Non-blocking enqueue with ring-buffer drop semantics.

    If the queue is full, the oldest item is discarded to make room and
    METRICS.events_dropped is incremented.

    Returns:
        True  — item was enqueued.
        False — item was lost (queue refilled between drop and put).
    """
    if queue.full():
        try:
            queue.get_nowait()
            queue.task_done()
            METRICS.events_dropped.inc()
            logger.warning(
                "Event queue full (%d/%d) — oldest event dropped",
                queue.qsize(),
                queue.maxsize,
            )
        except asyncio.QueueEmpty:
            pass

    try:
        queue.put_nowait(item)
        return True
    except asyncio.QueueFull:
        METRICS.events_dropped.inc()
        logger.error("safe_put: queue still full after drop — event lost")
        return False
