"""
backend/pipeline.py

ClassificationPipeline — orchestrates one connection event end to end:

    validate → tracker.observe → geo cache → predictor
             → scorer.score → classifier.finalize → history
             → (anomaly) ledger.append → notifications

Concurrency:
    handle() holds a threading.Lock while it mutates tracker state, the
    history and the ledger tip, so callers on any thread are serialised.
    Notifications are published after the lock is released so subscribers
    may freely read history() / ledger_blocks().

Resilience:
    InvalidEvent drops one event.  LedgerAppendFailure degrades the audit
    trail for one anomaly (AUDIT_DEGRADED).  A failed manual audit() also
    publishes AUDIT_DEGRADED, then re-raises to its caller.  Any other
    exception while handling one event is logged and counted; the next
    event is unaffected.
"""

from __future__ import annotations

import asyncio
import logging
import math
import threading
from collections import deque
from functools import partial

from .config import DetectionConfig
from .engine import AnomalyClassifier, BasePredictor, RiskAssessment, RiskScorer, default_signals
from .errors import InvalidEvent, LedgerAppendFailure
from .geo import GeoInfo, GeoResolver
from .ledger import AuditBlock, HashChainLedger
from .metrics import METRICS
from .models import ClassifiedConnection, ConnectionEvent
from .notifications import Notification, NotificationBus, NotificationKind
from .tracking import DomainConnectionTracker, is_malformed

logger = logging.getLogger(__name__)

FACTOR_DETECTION_DISABLED = "Anomaly detection disabled"

AUDIT_MANUAL = "manual"

_HISTORY_SIZE_DEFAULT = 100


class ClassificationPipeline:
    """
    Args:
        config:      Live detection options (DetectionConfig()).
        tracker:     Per-domain window state.
        scorer:      Additive risk scorer.
        classifier:  Final threshold / override decision.
        ledger:      Audit chain for anomalous events.
        resolver:    Optional geo resolver; without one no geographic signal.
        predictor:   Optional external model.
        bus:         Notification bus (a private one by default).
        history_size: Rolling display history length.
    """

    def __init__(
        self,
        config: DetectionConfig | None = None,
        tracker: DomainConnectionTracker | None = None,
        scorer: RiskScorer | None = None,
        classifier: AnomalyClassifier | None = None,
        ledger: HashChainLedger | None = None,
        resolver: GeoResolver | None = None,
        predictor: BasePredictor | None = None,
        bus: NotificationBus | None = None,
        history_size: int = _HISTORY_SIZE_DEFAULT,
    ) -> None:
        self.config = config or DetectionConfig()
        self.tracker = tracker or DomainConnectionTracker()
        self.scorer = scorer or RiskScorer(self.config, default_signals())
        self.classifier = classifier or AnomalyClassifier(self.config)
        self.ledger = ledger if ledger is not None else HashChainLedger()
        self.resolver = resolver
        self.predictor = predictor
        self.bus = bus or NotificationBus()

        self._history: deque[ClassifiedConnection] = deque(maxlen=history_size)
        self._lock = threading.Lock()
        self.blocked_ips: set[str] = set()
        self.stats: dict[str, int] = {
            "handled": 0,
            "anomalies": 0,
            "audit_degraded": 0,
            "geo_updates": 0,
            "manual_audits": 0,
        }

        # scorer/classifier may have been built with another config
        self.scorer.reconfigure(self.config)
        self.classifier.reconfigure(self.config)

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def handle(self, event: ConnectionEvent) -> ClassifiedConnection | None:
        """
        Classify one event.

        Returns the ClassifiedConnection, or None when the event was
        dropped (invalid) or handling failed unexpectedly.
        """
        METRICS.events_received.inc()
        try:
            return self._handle(event)
        except InvalidEvent as exc:
            METRICS.events_invalid.inc()
            logger.info("Dropping invalid event: %s", exc.message)
        except Exception as exc:
            METRICS.handler_errors.inc()
            logger.exception("Unhandled error while classifying %r: %s", event, exc)
        return None

    def _handle(self, event: ConnectionEvent) -> ClassifiedConnection:
        if is_malformed(event.ip) or is_malformed(event.domain):
            raise InvalidEvent(
                "invalid_event",
                f"empty or placeholder ip/domain ({event.ip!r}, {event.domain!r})",
                {"ip": event.ip, "domain": event.domain},
            )

        audit_error: LedgerAppendFailure | None = None
        blocks: tuple[AuditBlock, ...] = ()

        with self._lock:
            config = self.config
            snapshot = self.tracker.observe(event.domain, event.ip, now=event.timestamp)
            if snapshot.skip:
                raise InvalidEvent("invalid_event", "tracker rejected observation", event.to_dict())

            geo = self._cached_geo(event.ip)

            if config.enable_anomaly_detection:
                ml_prediction = self._safe_predict(event, snapshot)
                assessment = self.classifier.finalize(self.scorer.score(snapshot, geo, ml_prediction))
            else:
                assessment = RiskAssessment(score=0.0, factors=(FACTOR_DETECTION_DISABLED,))

            record = ClassifiedConnection(event=event, assessment=assessment, snapshot=snapshot, geo=geo)
            self._history.append(record)
            self.stats["handled"] += 1
            METRICS.events_classified.inc()

            if record.is_anomaly:
                self.stats["anomalies"] += 1
                METRICS.anomalies_detected.inc()
                logger.warning(
                    "Anomaly: %s → %s score=%.2f factors=%s",
                    event.domain, event.ip, assessment.score, list(assessment.factors),
                )
                try:
                    self.ledger.append(record.to_dict())
                    METRICS.ledger_appends.inc()
                    blocks = self.ledger.snapshot()
                except LedgerAppendFailure as exc:
                    METRICS.ledger_failures.inc()
                    self.stats["audit_degraded"] += 1
                    audit_error = exc
                    logger.error("Audit trail degraded — %s", exc.message)

                if config.enable_ip_blocking and event.ip not in self.blocked_ips:
                    self.blocked_ips.add(event.ip)
                    logger.warning("IP blocking enabled — would block %s (not enforced)", event.ip)

        if geo is None and self.resolver is not None:
            self.resolver.prefetch(event.ip, on_result=partial(self._apply_geo, record))

        self._publish(record, config, blocks, audit_error)
        return record

    def _publish(
        self,
        record: ClassifiedConnection,
        config: DetectionConfig,
        blocks: tuple[AuditBlock, ...],
        audit_error: LedgerAppendFailure | None,
    ) -> None:
        if record.is_anomaly:
            if audit_error is not None:
                self.bus.publish(Notification(
                    NotificationKind.AUDIT_DEGRADED, record=record, error=audit_error.to_dict(),
                ))
            else:
                self.bus.publish(Notification(NotificationKind.LEDGER_UPDATED, blocks=blocks))
            if config.enable_real_time_alerts:
                self.bus.publish(Notification(NotificationKind.ANOMALY_ALERT, record=record))
        self.bus.publish(Notification(NotificationKind.OBSERVATION, record=record))

    def _cached_geo(self, ip: str) -> GeoInfo | None:
        if self.resolver is None:
            return None
        return self.resolver.get_cached(ip)

    def _safe_predict(self, event: ConnectionEvent, snapshot) -> float | None:
        if self.predictor is None:
            return None
        try:
            value = self.predictor.predict(event, snapshot)
        except Exception as exc:
            logger.warning("Predictor %r failed: %s — scoring without it", self.predictor, exc)
            return None
        if value is None:
            return None
        try:
            value = float(value)
        except (TypeError, ValueError):
            logger.warning("Predictor %r returned non-numeric %r", self.predictor, value)
            return None
        return value if math.isfinite(value) else None

    def _apply_geo(self, record: ClassifiedConnection, info: GeoInfo) -> None:
        """Late geo result: refresh the display record if still in history."""
        with self._lock:
            for i, entry in enumerate(self._history):
                if entry is record:
                    self._history[i] = entry.with_geo(info)
                    self.stats["geo_updates"] += 1
                    return
        logger.debug("Geo result for %s arrived after its record left history", info.ip)

    # ------------------------------------------------------------------
    # Manual audit + per-tab display state
    # ------------------------------------------------------------------

    def find_record(self, classified_at: float) -> ClassifiedConnection | None:
        """History entry classified at *classified_at*, newest first."""
        with self._lock:
            for record in reversed(self._history):
                if record.classified_at == classified_at:
                    return record
        return None

    def audit(self, record: ClassifiedConnection) -> AuditBlock:
        """
        Append *record* to the ledger on user request, whatever its score.

        Raises:
            LedgerAppendFailure: the append failed; AUDIT_DEGRADED is published.
        """
        payload = dict(record.to_dict(), audit=AUDIT_MANUAL)
        audit_error: LedgerAppendFailure | None = None

        with self._lock:
            try:
                block = self.ledger.append(payload)
                METRICS.ledger_appends.inc()
                self.stats["manual_audits"] += 1
                blocks = self.ledger.snapshot()
            except LedgerAppendFailure as exc:
                METRICS.ledger_failures.inc()
                self.stats["audit_degraded"] += 1
                audit_error = exc
                logger.error("Manual audit failed for %s: %s", record.event.domain, exc.message)

        if audit_error is not None:
            self.bus.publish(Notification(
                NotificationKind.AUDIT_DEGRADED, record=record, error=audit_error.to_dict(),
            ))
            raise audit_error

        logger.info("Manually audited %s → %s", record.event.domain, record.event.ip)
        self.bus.publish(Notification(NotificationKind.LEDGER_UPDATED, blocks=blocks))
        return block

    def forget_tab(self, tab_id: int) -> int:
        """Drop every history entry recorded for *tab_id*. Returns how many."""
        with self._lock:
            kept = [r for r in self._history if r.event.tab_id != tab_id]
            removed = len(self._history) - len(kept)
            self._history.clear()
            self._history.extend(kept)
        if removed:
            logger.debug("Forgot %d history record(s) for tab %d", removed, tab_id)
        return removed

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def reconfigure(self, **changes) -> DetectionConfig:
        """
        Apply *changes* to the live DetectionConfig.

        Raises pydantic.ValidationError for unknown keys or bad values;
        nothing changes in that case.
        """
        with self._lock:
            new_config = self.config.updated(**changes)
            self.scorer.reconfigure(new_config)
            self.classifier.reconfigure(new_config)
            if self.resolver is not None:
                self.resolver.reconfigure(new_config.use_multiple_apis)
            self.config = new_config
        logger.info("Detection config updated: %s", sorted(changes))
        return new_config

    # ------------------------------------------------------------------
    # Read-only queries (copies)
    # ------------------------------------------------------------------

    def history(self) -> list[ClassifiedConnection]:
        with self._lock:
            return list(self._history)

    def ledger_blocks(self) -> tuple[AuditBlock, ...]:
        return self.ledger.snapshot()

    def verify_ledger(self) -> bool:
        return self.ledger.verify()

    def export_tracker(self) -> dict[str, dict]:
        with self._lock:
            return self.tracker.export_state()

    def summary(self) -> dict:
        with self._lock:
            return {
                "pipeline": dict(self.stats),
                "tracker": dict(self.tracker.stats),
                "domains_tracked": self.tracker.domain_count,
                "history_size": len(self._history),
                "ledger_blocks": len(self.ledger),
                "ledger": dict(self.ledger.stats),
                "blocked_ips": sorted(self.blocked_ips),
                "geo": dict(self.resolver.stats) if self.resolver else {},
                "notifications": dict(self.bus.stats),
            }

    # ------------------------------------------------------------------
    # Service loop
    # ------------------------------------------------------------------

    async def run(self, queue: asyncio.Queue, shutdown_event: asyncio.Event) -> None:
        """Single consumer: pull ConnectionEvents from *queue* until shutdown."""
        logger.info("Classification consumer started")
        while not shutdown_event.is_set():
            try:
                event: ConnectionEvent = await asyncio.wait_for(queue.get(), timeout=0.5)
                queue.task_done()
                self.handle(event)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break
        logger.info("Classification consumer exiting")

    async def close(self) -> None:
        if self.resolver is not None:
            await self.resolver.close()
        logger.info("Pipeline closed — stats=%s", self.stats)
