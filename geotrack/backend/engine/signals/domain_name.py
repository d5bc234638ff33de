"""
engine/signals/domain_name.py

Domain-string heuristics: throwaway TLDs, very long names, digit-heavy
names and random-looking hex runs (typical of generated domains).

Checks, in factor order:
    suspicious TLD suffix      +0.3
    length > 50                +0.2   (else length > 30  +0.1)
    more than 5 digits         +0.1
    8+ consecutive hex chars   +0.2
"""

from __future__ import annotations

import re

from ..models import SignalResult
from .base import BaseSignal, ScoringContext

_HEX_RUN = re.compile(r"[0-9a-f]{8}", re.IGNORECASE)


class DomainNameSignal(BaseSignal):

    name = "domain_name"

    tld_weight: float = 0.3
    long_length: int = 30
    long_weight: float = 0.1
    very_long_length: int = 50
    very_long_weight: float = 0.2
    max_digits: int = 5
    digits_weight: float = 0.1
    hex_weight: float = 0.2

    def evaluate(self, ctx: ScoringContext) -> SignalResult:
        domain = ctx.snapshot.domain.lower()
        if not domain:
            return SignalResult.empty()

        contribution = 0.0
        factors: list[str] = []

        for tld in ctx.config.suspicious_tlds:
            if domain.endswith(tld):
                contribution += self.tld_weight
                factors.append(f"Suspicious TLD: {tld}")
                break

        if len(domain) > self.very_long_length:
            contribution += self.very_long_weight
            factors.append("Very long domain name")
        elif len(domain) > self.long_length:
            contribution += self.long_weight
            factors.append("Long domain name")

        if sum(ch.isdigit() for ch in domain) > self.max_digits:
            contribution += self.digits_weight
            factors.append("Numeric-heavy domain name")

        if _HEX_RUN.search(domain):
            contribution += self.hex_weight
            factors.append("Random-looking domain pattern")

        return SignalResult(contribution=contribution, factors=tuple(factors))
