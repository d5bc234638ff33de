"""
engine/signals/volume.py

Connection-volume signals derived from DomainConnectionTracker state.

UnexpectedVolumeSignal — a busy domain talks to an IP it has no reason to
                         (not first party, not in the expected set).
SuspiciousSetSignal    — many distinct suspicious IPs in one window;
                         escalates the final score to at least 0.9.
"""

from __future__ import annotations

from ..models import SignalResult
from .base import BaseSignal, ScoringContext

FACTOR_UNEXPECTED_IPS = "Multiple unexpected IPs"
FACTOR_SUSPICIOUS_CONNECTIONS = "High number of suspicious connections"


class UnexpectedVolumeSignal(BaseSignal):
    """Non-first-party IP on a domain with more than N connections."""

    name = "unexpected_volume"

    min_connections: int = 10
    weight: float = 0.4

    def __init__(self, min_connections: int | None = None) -> None:
        if min_connections is not None:
            self.min_connections = min_connections

    def evaluate(self, ctx: ScoringContext) -> SignalResult:
        snap = ctx.snapshot
        if (
            not snap.is_first_party
            and snap.connection_count > self.min_connections
            and not snap.is_known_expected
        ):
            return SignalResult(contribution=self.weight, factors=(FACTOR_UNEXPECTED_IPS,))
        return SignalResult.empty()


class SuspiciousSetSignal(BaseSignal):
    """Too many suspicious IPs collected for one domain."""

    name = "suspicious_set"

    max_suspicious: int = 5
    weight: float = 0.1
    escalation_floor: float = 0.9

    def __init__(self, max_suspicious: int | None = None) -> None:
        if max_suspicious is not None:
            self.max_suspicious = max_suspicious

    def evaluate(self, ctx: ScoringContext) -> SignalResult:
        if ctx.snapshot.suspicious_count > self.max_suspicious:
            return SignalResult(
                contribution=self.weight,
                factors=(FACTOR_SUSPICIOUS_CONNECTIONS,),
                floor=self.escalation_floor,
            )
        return SignalResult.empty()
