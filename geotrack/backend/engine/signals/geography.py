"""
engine/signals/geography.py

Country-based risk. Only fires when the resolver produced a real answer;
the 'fallback' and 'local' sentinels carry no geographic signal.

High-risk membership is checked first; the safe-list check only runs for
countries that are not high risk, so at most one of the two fires.
"""

from __future__ import annotations

from ..models import SignalResult
from .base import BaseSignal, ScoringContext


class GeographySignal(BaseSignal):

    name = "geography"

    high_risk_weight: float = 0.4
    unlisted_weight: float = 0.2

    def evaluate(self, ctx: ScoringContext) -> SignalResult:
        geo = ctx.geo
        if geo is None or not geo.is_known:
            return SignalResult.empty()

        country = geo.country.strip()
        needle = country.casefold()

        if needle in {c.casefold() for c in ctx.config.high_risk_countries}:
            return SignalResult(
                contribution=self.high_risk_weight,
                factors=(f"High-risk country: {country}",),
            )
        if needle not in {c.casefold() for c in ctx.config.safe_countries}:
            return SignalResult(
                contribution=self.unlisted_weight,
                factors=(f"Country not in safe list: {country}",),
            )
        return SignalResult.empty()
