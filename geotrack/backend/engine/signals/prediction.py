"""
engine/signals/prediction.py

Optional external model score.

The prediction never adds to the additive score.  Its magnitude is always
reported as a factor, and a prediction above the configured ml_threshold
overrides the final decision to anomalous on its own.
"""

from __future__ import annotations

import logging
import math

from ..models import SignalResult
from .base import BaseSignal, ScoringContext

logger = logging.getLogger(__name__)

FACTOR_ML_FLAGGED = "ML model flagged connection"


class PredictionSignal(BaseSignal):

    name = "ml_prediction"

    def evaluate(self, ctx: ScoringContext) -> SignalResult:
        p = ctx.ml_prediction
        if p is None:
            return SignalResult.empty()
        if not math.isfinite(p):
            logger.warning("Ignoring non-finite ML prediction %r", p)
            return SignalResult.empty()

        p = min(max(p, 0.0), 1.0)
        factors = [f"ML prediction: {p:.2f}"]
        override = p > ctx.config.ml_threshold
        if override:
            factors.append(FACTOR_ML_FLAGGED)
        return SignalResult(factors=tuple(factors), override=override)
