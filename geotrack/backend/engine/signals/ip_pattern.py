"""
engine/signals/ip_pattern.py

Address-pattern risk.

  - Any dotted-quad octet above 250 → +0.3 (broadcast-like / unusual ranges)
  - Private, loopback or link-local addresses are annotated but add nothing
"""

from __future__ import annotations

from ...addresses import is_private_address
from ..models import SignalResult
from .base import BaseSignal, ScoringContext

FACTOR_UNUSUAL_OCTET = "Unusual IP octet pattern"
FACTOR_PRIVATE = "Private/Local IP"


class IpPatternSignal(BaseSignal):

    name = "ip_pattern"

    max_octet: int = 250
    octet_weight: float = 0.3

    def evaluate(self, ctx: ScoringContext) -> SignalResult:
        ip = ctx.snapshot.ip
        contribution = 0.0
        factors: list[str] = []

        parts = ip.split(".")
        if len(parts) == 4 and all(p.isdigit() for p in parts):
            if any(int(p) > self.max_octet for p in parts):
                contribution += self.octet_weight
                factors.append(FACTOR_UNUSUAL_OCTET)

        if is_private_address(ip):
            factors.append(FACTOR_PRIVATE)

        return SignalResult(contribution=contribution, factors=tuple(factors))
