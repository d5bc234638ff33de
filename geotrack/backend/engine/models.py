"""
engine/models.py

Data models for the scoring engine.

SignalResult   — returned by every signal's evaluate() call
RiskAssessment — combined score + ordered factors + anomaly decision
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace


# ---------------------------------------------------------------------------
# SignalResult: lightweight return value from every signal.evaluate() call
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class SignalResult:
    """
    Return value of BaseSignal.evaluate().

    Signals must NEVER raise — catch internally and return `SignalResult.empty()`.
    """

    contribution: float = 0.0
    """Additive score increment (summed across signals, then clamped)."""

    factors: tuple[str, ...] = ()
    """Human-readable reasons, in the order the signal checked them."""

    floor: float = 0.0
    """Minimum final score once this signal fires (escalation)."""

    override: bool = False
    """True forces is_anomaly regardless of the additive score."""

    @classmethod
    def empty(cls) -> "SignalResult":
        return cls()

    @property
    def fired(self) -> bool:
        return bool(self.factors) or self.contribution > 0 or self.override

    def __repr__(self) -> str:
        return (
            f"SignalResult(+{self.contribution:.2f} floor={self.floor:.2f} "
            f"override={self.override} factors={list(self.factors)!r})"
        )


# ---------------------------------------------------------------------------
# RiskAssessment: output of RiskScorer / AnomalyClassifier
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RiskAssessment:
    """
    Result of scoring one connection.

    Ephemeral: recomputed for every event, never stored by identity.
    """

    score: float
    """Combined risk in [0.0, 1.0]."""

    factors: tuple[str, ...] = field(default_factory=tuple)
    """Reasons in signal evaluation order."""

    is_anomaly: bool = False

    ml_prediction: float | None = None
    """Raw external model score when one was supplied."""

    ml_override: bool = False
    """True when the external model alone pushed the decision to anomalous."""

    def with_decision(self, is_anomaly: bool, factors: tuple[str, ...] | None = None) -> "RiskAssessment":
        return replace(
            self,
            is_anomaly=is_anomaly,
            factors=self.factors if factors is None else factors,
        )

    def to_dict(self) -> dict:
        return {
            "score": round(self.score, 4),
            "factors": list(self.factors),
            "is_anomaly": self.is_anomaly,
            "ml_prediction": self.ml_prediction,
            "ml_override": self.ml_override,
        }

    def __repr__(self) -> str:
        return (
            f"RiskAssessment(score={self.score:.2f} anomaly={self.is_anomaly} "
            f"factors={list(self.factors)!r})"
        )
