from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import NoReturn

import uvicorn

from .api.main import create_app, set_event_queue, set_pipeline
from .api.ws_manager import ws_manager
from .config import DetectionConfig, Settings, settings
from .engine import AnomalyClassifier, RiskScorer, default_signals
from .geo import GeoCache, GeoResolver
from .ledger import HashChainLedger
from .metrics import METRICS
from .notifications import Notification, NotificationKind
from .pipeline import ClassificationPipeline
from .queues import init_queue
from .storage import Database, StateRepository
from .tracking import DomainConnectionTracker

logger = logging.getLogger("geotrack.main")

_ANSI_ALERT = "\033[93m"
_ANSI_RESET = "\033[0m"


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def build_pipeline(s: Settings = settings, repo: StateRepository | None = None) -> ClassificationPipeline:
    """Construct every component from *s*, resuming persisted state from *repo*."""
    config = DetectionConfig.from_settings(s)
    ledger = None
    tracker = DomainConnectionTracker(
        window_seconds=s.WINDOW_SECONDS,
        unexpected_min_connections=s.UNEXPECTED_IP_MIN_CONNECTIONS,
        max_domains=s.MAX_TRACKED_DOMAINS,
    )

    if repo is not None:
        persisted = repo.load_settings()
        if persisted is not None:
            config = DetectionConfig.model_validate(persisted)
            logger.info("Restored detection settings from storage")
        ledger = repo.load_ledger(capacity=s.LEDGER_CAPACITY)
        tracker_state = repo.load_tracker()
        if tracker_state:
            tracker.restore(tracker_state)

    resolver = GeoResolver(
        use_multiple_apis=config.use_multiple_apis,
        attempts=s.GEO_RETRY_ATTEMPTS,
        backoff_seconds=s.GEO_RETRY_BACKOFF_SECONDS,
        timeout_seconds=s.GEO_TIMEOUT_SECONDS,
        cache=GeoCache(maxsize=s.GEO_CACHE_SIZE, ttl_seconds=s.GEO_CACHE_TTL_SECONDS),
    )

    return ClassificationPipeline(
        config=config,
        tracker=tracker,
        scorer=RiskScorer(
            config,
            default_signals(
                unexpected_min_connections=s.UNEXPECTED_IP_MIN_CONNECTIONS,
                suspicious_set_threshold=s.SUSPICIOUS_SET_THRESHOLD,
            ),
        ),
        classifier=AnomalyClassifier(config),
        ledger=ledger if ledger is not None else HashChainLedger(capacity=s.LEDGER_CAPACITY),
        resolver=resolver,
        history_size=s.HISTORY_SIZE,
    )


def persist_state(pipeline: ClassificationPipeline, repo: StateRepository) -> bool:
    """Save ledger, tracker and settings. Returns True when all three were written."""
    results = [
        repo.save_ledger(pipeline.ledger),
        repo.save_tracker(pipeline.export_tracker()),
        repo.save_settings(pipeline.config),
    ]
    return all(results)


def _print_alert(notification: Notification) -> None:
    if notification.record is None:
        return
    d = notification.record.to_dict()
    print(
        f"\n{_ANSI_ALERT}[ANOMALY] {d['domain']} → {d['ip']} "
        f"score={d['score']:.2f}{_ANSI_RESET}\n"
        f"  {'; '.join(d['factors'])}\n",
        flush=True,
    )


# ---------------------------------------------------------------------------
# Background tasks
# ---------------------------------------------------------------------------

async def persistence_loop(
    pipeline: ClassificationPipeline,
    repo: StateRepository,
    shutdown_event: asyncio.Event,
    interval: float = 30.0,
) -> None:
    while not shutdown_event.is_set():
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
        except asyncio.CancelledError:
            break
        persist_state(pipeline, repo)
        logger.info("METRICS %s pipeline=%s", METRICS.as_dict(), pipeline.stats)


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

async def run(host: str, port: int, db_path: str) -> None:
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    queue = init_queue(size=settings.EVENT_QUEUE_SIZE)

    def _signal_handler(_signum, _frame) -> None:
        logger.info("Shutdown signal received")
        loop.call_soon_threadsafe(shutdown_event.set)

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    db = Database(db_path)
    db.init_schema()
    repo = StateRepository(db)

    pipeline = build_pipeline(settings, repo)
    if not pipeline.verify_ledger():
        logger.error("Audit ledger failed verification at startup")

    set_pipeline(pipeline)
    set_event_queue(queue)
    ws_manager.attach(pipeline.bus)
    pipeline.bus.subscribe(_print_alert, kinds=[NotificationKind.ANOMALY_ALERT])

    app = create_app()
    uv_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="warning",
        loop="none",
    )
    uv_server = uvicorn.Server(uv_config)

    tasks = [
        asyncio.create_task(pipeline.run(queue, shutdown_event), name="classifier"),
        asyncio.create_task(
            persistence_loop(pipeline, repo, shutdown_event, settings.PERSIST_INTERVAL_SECONDS),
            name="persistence",
        ),
        asyncio.create_task(uv_server.serve(), name="api"),
    ]

    logger.info(
        "GeoTrack — API=http://%s:%d  db=%r  threshold=%.2f  ledger=%d block(s)",
        host, port, db_path, pipeline.config.prediction_threshold, len(pipeline.ledger),
    )

    await shutdown_event.wait()

    uv_server.should_exit = True
    for t in tasks[:-1]:
        t.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    await pipeline.close()
    persist_state(pipeline, repo)
    db.close()
    logger.info("Final stats — pipeline=%s metrics=%s", pipeline.stats, METRICS.as_dict())
    logger.info("GeoTrack stopped cleanly")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="GeoTrack connection risk classifier")
    parser.add_argument("--host", default=settings.API_HOST)
    parser.add_argument("--port", type=int, default=settings.API_PORT)
    parser.add_argument("--db", default=settings.DB_PATH, dest="db_path")
    parser.add_argument(
        "--log-level", default=settings.LOG_LEVEL.upper(),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser.parse_args()


def main() -> NoReturn:
    args = _parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    if not 0 < args.port < 65536:
        print(f"ERROR: invalid --port: {args.port}", file=sys.stderr)
        sys.exit(1)

    asyncio.run(run(host=args.host, port=args.port, db_path=args.db_path))
    sys.exit(0)


if __name__ == "__main__":
    main()
