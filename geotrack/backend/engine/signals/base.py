"""
engine/signals/base.py

Abstract base class that all risk signals must implement.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from ...config import DetectionConfig
from ...geo.models import GeoInfo
from ...tracking.models import TrackerSnapshot
from ..models import SignalResult


@dataclass(frozen=True, slots=True)
class ScoringContext:
    """Everything a signal may look at for one connection."""

    snapshot: TrackerSnapshot
    config: DetectionConfig
    geo: GeoInfo | None = None
    ml_prediction: float | None = None


class BaseSignal(ABC):
    """
    Contract that every risk signal must satisfy.

    Class-level attributes:
        name    — unique snake_case identifier used in logs
        enabled — False to leave the signal out of the scorer

    The evaluate() method MUST:
        - Never raise an exception (RiskScorer also guards against it)
        - Be pure: same context → same result, including factor order
        - Not perform I/O
    """

    name: str = ""
    enabled: bool = True

    @abstractmethod
    def evaluate(self, ctx: ScoringContext) -> SignalResult:
        """Inspect *ctx* and return this signal's contribution."""
        ...

    def __repr__(self) -> str:
        return f"<Signal:{self.name} enabled={self.enabled}>"
