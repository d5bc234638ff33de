"""
tests/test_scorer.py

Tests for engine/scorer.py and the individual signals.
Snapshots and GeoInfo are built directly; no tracker or network needed
except in the end-to-end scenarios at the bottom.
"""

from __future__ import annotations

import math

import pytest

from geotrack.backend.config import DetectionConfig
from geotrack.backend.engine import RiskScorer, SignalResult, default_signals
from geotrack.backend.engine.signals.base import BaseSignal, ScoringContext
from geotrack.backend.geo.models import SOURCE_FALLBACK, SOURCE_LOCAL, GeoInfo
from geotrack.backend.tracking import DomainConnectionTracker, TrackerSnapshot


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def snap(
    domain="example.com",
    ip="93.184.216.34",
    connection_count=1,
    suspicious_count=0,
    is_first_party=False,
    is_known_expected=False,
) -> TrackerSnapshot:
    return TrackerSnapshot(
        domain=domain,
        ip=ip,
        is_first_party=is_first_party,
        connection_count=connection_count,
        suspicious_count=suspicious_count,
        is_known_expected=is_known_expected,
    )


def geo(country, ip="93.184.216.34", source="ip-api.com") -> GeoInfo:
    return GeoInfo(ip=ip, city="Somewhere", country=country, source=source)


@pytest.fixture
def scorer():
    return RiskScorer(DetectionConfig(), default_signals())


class ExplodingSignal(BaseSignal):
    name = "exploding"

    def evaluate(self, ctx: ScoringContext) -> SignalResult:
        raise RuntimeError("boom")


# ---------------------------------------------------------------------------
# Baseline
# ---------------------------------------------------------------------------

class TestBaseline:

    def test_clean_connection_scores_zero(self, scorer):
        a = scorer.score(snap())
        assert a.score == 0.0
        assert a.factors == ()
        assert a.is_anomaly is False

    def test_scoring_is_pure(self, scorer):
        s = snap(domain="example.tk", connection_count=11)
        g = geo("Brazil")
        assert scorer.score(s, g, 0.2) == scorer.score(s, g, 0.2)

    def test_score_is_clamped_to_one(self, scorer):
        a = scorer.score(
            snap(domain="deadbeef1234567.tk", ip="1.2.3.255", connection_count=11, suspicious_count=6),
            geo("Russia", ip="1.2.3.255"),
        )
        assert a.score == 1.0
        assert a.is_anomaly is True

    def test_exact_factor_order(self, scorer):
        a = scorer.score(
            snap(domain="example.tk", ip="9.9.9.9", connection_count=11),
            geo("Russia", ip="9.9.9.9"),
        )
        assert a.factors == (
            "Multiple unexpected IPs",
            "High-risk country: Russia",
            "Suspicious TLD: .tk",
        )

    def test_failing_signal_is_isolated(self):
        s = RiskScorer(DetectionConfig(), [ExplodingSignal(), *default_signals()])
        a = s.score(snap(domain="example.tk"))
        assert a.score == pytest.approx(0.3)
        assert a.factors == ("Suspicious TLD: .tk",)


# ---------------------------------------------------------------------------
# Volume signals
# ---------------------------------------------------------------------------

class TestVolumeSignals:

    def test_unexpected_ip_after_ten_connections(self, scorer):
        a = scorer.score(snap(connection_count=11))
        assert a.score == pytest.approx(0.4)
        assert a.factors == ("Multiple unexpected IPs",)

    def test_ten_connections_is_not_enough(self, scorer):
        assert scorer.score(snap(connection_count=10)).score == 0.0

    def test_first_party_is_never_unexpected(self, scorer):
        assert scorer.score(snap(connection_count=50, is_first_party=True)).factors == ()

    def test_expected_ip_is_never_unexpected(self, scorer):
        assert scorer.score(snap(connection_count=50, is_known_expected=True)).factors == ()

    def test_suspicious_set_escalates_to_floor(self, scorer):
        a = scorer.score(snap(connection_count=11, suspicious_count=6))
        assert a.score == pytest.approx(0.9)
        assert a.factors == ("Multiple unexpected IPs", "High number of suspicious connections")
        assert a.is_anomaly is True

    def test_suspicious_set_at_threshold_does_not_fire(self, scorer):
        a = scorer.score(snap(connection_count=11, suspicious_count=5))
        assert "High number of suspicious connections" not in a.factors

    def test_custom_thresholds(self):
        s = RiskScorer(DetectionConfig(), default_signals(unexpected_min_connections=2))
        assert s.score(snap(connection_count=3)).factors == ("Multiple unexpected IPs",)


# ---------------------------------------------------------------------------
# Geography
# ---------------------------------------------------------------------------

class TestGeography:

    def test_high_risk_country(self, scorer):
        a = scorer.score(snap(), geo("Russia"))
        assert a.score == pytest.approx(0.4)
        assert a.factors == ("High-risk country: Russia",)

    def test_country_match_is_case_insensitive(self, scorer):
        assert scorer.score(snap(), geo("north korea")).factors == ("High-risk country: north korea",)

    def test_unlisted_country(self, scorer):
        a = scorer.score(snap(), geo("Brazil"))
        assert a.score == pytest.approx(0.2)
        assert a.factors == ("Country not in safe list: Brazil",)

    def test_safe_country(self, scorer):
        assert scorer.score(snap(), geo("Germany")).factors == ()

    @pytest.mark.parametrize("source", [SOURCE_FALLBACK, SOURCE_LOCAL])
    def test_sentinels_carry_no_signal(self, scorer, source):
        assert scorer.score(snap(), GeoInfo.unknown("93.184.216.34", source=source)).factors == ()

    def test_reconfigured_lists_apply(self, scorer):
        scorer.reconfigure(DetectionConfig(high_risk_countries=["Brazil"]))
        assert scorer.score(snap(), geo("Brazil")).factors == ("High-risk country: Brazil",)


# ---------------------------------------------------------------------------
# Domain name
# ---------------------------------------------------------------------------

class TestDomainName:

    def test_suspicious_tld(self, scorer):
        a = scorer.score(snap(domain="example.tk"))
        assert a.score == pytest.approx(0.3)
        assert a.factors == ("Suspicious TLD: .tk",)

    def test_long_domain(self, scorer):
        a = scorer.score(snap(domain="z" * 40 + ".com"))
        assert a.factors == ("Long domain name",)
        assert a.score == pytest.approx(0.1)

    def test_very_long_domain(self, scorer):
        a = scorer.score(snap(domain="z" * 60 + ".com"))
        assert a.factors == ("Very long domain name",)
        assert a.score == pytest.approx(0.2)

    def test_numeric_heavy_domain(self, scorer):
        assert scorer.score(snap(domain="shop123456.com")).factors == ("Numeric-heavy domain name",)

    def test_random_looking_domain(self, scorer):
        a = scorer.score(snap(domain="deadbeef.com"))
        assert a.factors == ("Random-looking domain pattern",)
        assert a.score == pytest.approx(0.2)


# ---------------------------------------------------------------------------
# IP pattern
# ---------------------------------------------------------------------------

class TestIpPattern:

    def test_unusual_octet(self, scorer):
        a = scorer.score(snap(ip="1.2.3.255"))
        assert a.factors == ("Unusual IP octet pattern",)
        assert a.score == pytest.approx(0.3)

    def test_octet_250_is_fine(self, scorer):
        assert scorer.score(snap(ip="1.2.3.250")).factors == ()

    @pytest.mark.parametrize("ip", ["192.168.1.5", "10.0.0.1", "127.0.0.1", "::1"])
    def test_private_address_annotated_without_score(self, scorer, ip):
        a = scorer.score(snap(ip=ip))
        assert a.factors == ("Private/Local IP",)
        assert a.score == 0.0


# ---------------------------------------------------------------------------
# ML prediction
# ---------------------------------------------------------------------------

class TestPrediction:

    def test_high_prediction_overrides(self, scorer):
        a = scorer.score(snap(), ml_prediction=0.9)
        assert a.score == 0.0
        assert a.is_anomaly is True
        assert a.ml_override is True
        assert a.factors == ("ML prediction: 0.90", "ML model flagged connection")

    def test_prediction_at_threshold_does_not_override(self, scorer):
        a = scorer.score(snap(), ml_prediction=0.75)
        assert a.is_anomaly is False
        assert a.factors == ("ML prediction: 0.75",)

    def test_non_finite_prediction_ignored(self, scorer):
        a = scorer.score(snap(), ml_prediction=math.nan)
        assert a.factors == ()
        assert a.is_anomaly is False

    def test_out_of_range_prediction_clamped(self, scorer):
        assert scorer.score(snap(), ml_prediction=7.0).factors[0] == "ML prediction: 1.00"


# ---------------------------------------------------------------------------
# Threshold
# ---------------------------------------------------------------------------

class TestThreshold:

    def test_score_equal_to_threshold_is_anomaly(self):
        s = RiskScorer(DetectionConfig(prediction_threshold=0.7))
        a = s.score(snap(domain="example.tk", ip="1.2.3.4", connection_count=11))
        assert a.score == 0.7
        assert a.is_anomaly is True

    def test_below_default_threshold(self, scorer):
        a = scorer.score(snap(domain="example.tk", connection_count=11))
        assert a.score == 0.7
        assert a.is_anomaly is False


# ---------------------------------------------------------------------------
# End-to-end scenarios (tracker → scorer)
# ---------------------------------------------------------------------------

class TestScenarios:

    def test_eleven_connections_plus_high_risk_country(self, scorer):
        tracker = DomainConnectionTracker()
        for i in range(11):
            s = tracker.observe("example.com", "9.9.9.9", now=100.0 + i)

        base = scorer.score(s)
        assert base.factors == ("Multiple unexpected IPs",)
        assert base.is_anomaly is False

        a = scorer.score(s, geo("Russia", ip="9.9.9.9"))
        assert "Multiple unexpected IPs" in a.factors
        assert a.score >= 0.75
        assert a.is_anomaly is True

    def test_private_first_party_connection(self, scorer):
        tracker = DomainConnectionTracker()
        s = tracker.observe("192.168.1.5", "192.168.1.5", now=1.0)
        assert s.is_first_party is True
        a = scorer.score(s)
        assert a.is_anomaly is False
        assert "Private/Local IP" in a.factors
        assert a.score == 0.0
