"""
engine/classifier.py

AnomalyClassifier — final decision step after RiskScorer.

Re-applies the live prediction threshold (it can change between scoring and
classification via reconfigure()), keeps the ML override and removes
duplicate factors while preserving evaluation order.
"""

from __future__ import annotations

import logging

from ..config import DetectionConfig
from .models import RiskAssessment

logger = logging.getLogger(__name__)


class AnomalyClassifier:
    def __init__(self, config: DetectionConfig | None = None) -> None:
        self.threshold = (config or DetectionConfig()).prediction_threshold

    def reconfigure(self, config: DetectionConfig) -> None:
        if config.prediction_threshold != self.threshold:
            logger.info(
                "Anomaly threshold changed %.2f → %.2f",
                self.threshold,
                config.prediction_threshold,
            )
        self.threshold = config.prediction_threshold

    def finalize(self, assessment: RiskAssessment) -> RiskAssessment:
        factors = tuple(dict.fromkeys(assessment.factors))
        is_anomaly = assessment.score >= self.threshold or assessment.ml_override
        return assessment.with_decision(is_anomaly, factors)
