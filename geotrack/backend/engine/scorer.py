"""
engine/scorer.py

RiskScorer — combines every signal into one score in [0.0, 1.0].

Scoring:
  1. Signals run in a fixed order (see default_signals()); factor order in
     the result follows that order exactly.
  2. Contributions are summed, raised to the highest escalation floor of any
     signal that fired, then clamped to [0, 1].
  3. is_anomaly = score >= prediction_threshold OR a signal set `override`.

The scorer is pure given its inputs and current DetectionConfig: the same
(snapshot, geo, ml_prediction) always yields the same RiskAssessment.
"""

from __future__ import annotations

import logging
import time

from ..config import DetectionConfig
from ..geo.models import GeoInfo
from ..tracking.models import TrackerSnapshot
from .models import RiskAssessment, SignalResult
from .signals.base import BaseSignal, ScoringContext
from .signals.domain_name import DomainNameSignal
from .signals.geography import GeographySignal
from .signals.ip_pattern import IpPatternSignal
from .signals.prediction import PredictionSignal
from .signals.volume import SuspiciousSetSignal, UnexpectedVolumeSignal

logger = logging.getLogger(__name__)

_SIGNAL_BUDGET_MS = 5.0


def default_signals(
    unexpected_min_connections: int = 10,
    suspicious_set_threshold: int = 5,
) -> list[BaseSignal]:
    """The standard signal chain, in evaluation order."""
    return [
        UnexpectedVolumeSignal(min_connections=unexpected_min_connections),
        SuspiciousSetSignal(max_suspicious=suspicious_set_threshold),
        GeographySignal(),
        DomainNameSignal(),
        IpPatternSignal(),
        PredictionSignal(),
    ]


class RiskScorer:
    def __init__(
        self,
        config: DetectionConfig | None = None,
        signals: list[BaseSignal] | None = None,
    ) -> None:
        self.config = config or DetectionConfig()
        chain = signals if signals is not None else default_signals()
        self.signals: list[BaseSignal] = [s for s in chain if s.enabled]
        logger.info(
            "RiskScorer loaded %d signal(s): %s | threshold=%.2f",
            len(self.signals),
            [s.name for s in self.signals],
            self.config.prediction_threshold,
        )

    def reconfigure(self, config: DetectionConfig) -> None:
        self.config = config

    def score(
        self,
        snapshot: TrackerSnapshot,
        geo: GeoInfo | None = None,
        ml_prediction: float | None = None,
    ) -> RiskAssessment:
        ctx = ScoringContext(
            snapshot=snapshot,
            config=self.config,
            geo=geo,
            ml_prediction=ml_prediction,
        )

        total = 0.0
        floor = 0.0
        override = False
        factors: list[str] = []

        for signal in self.signals:
            result = self._safe_evaluate(signal, ctx)
            total += result.contribution
            factors.extend(result.factors)
            if result.fired:
                floor = max(floor, result.floor)
            override = override or result.override

        # round() keeps sums like 0.4 + 0.3 from drifting across the threshold
        score = round(min(1.0, max(0.0, total, floor)), 6)
        is_anomaly = score >= self.config.prediction_threshold or override

        return RiskAssessment(
            score=score,
            factors=tuple(factors),
            is_anomaly=is_anomaly,
            ml_prediction=ml_prediction,
            ml_override=override,
        )

    def _safe_evaluate(self, signal: BaseSignal, ctx: ScoringContext) -> SignalResult:
        t0 = time.monotonic()
        try:
            result = signal.evaluate(ctx)
        except Exception as exc:
            logger.exception("Signal %r raised an unhandled exception: %s", signal.name, exc)
            result = SignalResult.empty()
        elapsed_ms = (time.monotonic() - t0) * 1000
        if elapsed_ms > _SIGNAL_BUDGET_MS:
            logger.warning("Signal %r took %.1fms", signal.name, elapsed_ms)
        return result
