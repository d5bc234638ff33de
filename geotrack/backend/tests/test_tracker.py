"""
tests/test_tracker.py

Tests for tracking/tracker.py — per-domain windows, first-party heuristic,
suspicious IP collection and LRU eviction.
All timestamps are injected; no sleeping.
"""

from __future__ import annotations

import math

import pytest

from geotrack.backend.tracking import DomainConnectionTracker, is_first_party, is_malformed
from geotrack.backend.tracking.tracker import registrable_label


@pytest.fixture
def tracker():
    return DomainConnectionTracker(window_seconds=300, unexpected_min_connections=10)


def observe_n(tracker, n, domain="example.com", ip="9.9.9.9", start=1000.0, step=1.0):
    snap = None
    for i in range(n):
        snap = tracker.observe(domain, ip, now=start + i * step)
    return snap


# ---------------------------------------------------------------------------
# First-party heuristic
# ---------------------------------------------------------------------------

class TestFirstParty:

    def test_ip_literal_domain_matches_same_ip(self):
        assert is_first_party("192.168.1.5", "192.168.1.5") is True

    def test_ip_literal_domain_rejects_other_ip(self):
        assert is_first_party("192.168.1.5", "192.168.1.6") is False

    def test_embedded_dotted_address(self):
        assert is_first_party("1.2.3.4.nip.io", "1.2.3.4") is True

    def test_embedded_dashed_address(self):
        assert is_first_party("10-0-0-1.sslip.io", "10.0.0.1") is True

    def test_registrable_label_inside_ipv6_text(self):
        assert is_first_party("cafe.com", "2001:db8::cafe") is True

    def test_unrelated_ip_is_not_first_party(self):
        assert is_first_party("example.com", "9.9.9.9") is False

    def test_registrable_label(self):
        assert registrable_label("www.example.co") == "example"
        assert registrable_label("localhost") == "localhost"
        assert registrable_label("") == ""


class TestMalformed:

    @pytest.mark.parametrize("value", [None, "", "  ", "undefined", "null", "None"])
    def test_placeholders_are_malformed(self, value):
        assert is_malformed(value) is True

    def test_real_value_is_not_malformed(self):
        assert is_malformed("example.com") is False


# ---------------------------------------------------------------------------
# observe()
# ---------------------------------------------------------------------------

class TestObserve:

    def test_counter_equals_observations_in_window(self, tracker):
        snap = observe_n(tracker, 7)
        assert snap.connection_count == 7
        assert tracker.get_state("example.com").connection_count == 7

    def test_domain_key_is_case_insensitive(self, tracker):
        tracker.observe("Example.COM", "9.9.9.9", now=1.0)
        snap = tracker.observe("example.com", "9.9.9.9", now=2.0)
        assert snap.connection_count == 2
        assert tracker.domain_count == 1

    def test_first_ten_connections_are_not_suspicious(self, tracker):
        snap = observe_n(tracker, 10)
        assert snap.suspicious_count == 0

    def test_eleventh_unexpected_connection_is_suspicious(self, tracker):
        snap = observe_n(tracker, 11)
        assert snap.suspicious_count == 1
        assert "9.9.9.9" in tracker.get_state("example.com").suspicious_ips

    def test_first_party_ip_never_suspicious(self, tracker):
        snap = observe_n(tracker, 25, domain="10-0-0-1.sslip.io", ip="10.0.0.1")
        state = tracker.get_state("10-0-0-1.sslip.io")
        assert snap.is_first_party is True
        assert snap.is_known_expected is True
        assert state.suspicious_ips == set()
        assert state.expected_ips == {"10.0.0.1"}

    def test_malformed_input_is_skipped_without_state(self, tracker):
        snap = tracker.observe("undefined", "1.2.3.4", now=1.0)
        assert snap.skip is True
        assert tracker.domain_count == 0
        assert tracker.stats["skipped"] == 1

    def test_get_state_returns_copy(self, tracker):
        observe_n(tracker, 11)
        state = tracker.get_state("example.com")
        state.suspicious_ips.clear()
        assert tracker.get_state("example.com").suspicious_ips == {"9.9.9.9"}

    def test_get_state_unknown_domain(self, tracker):
        assert tracker.get_state("nope.example") is None


# ---------------------------------------------------------------------------
# Window semantics
# ---------------------------------------------------------------------------

class TestWindow:

    def test_window_resets_after_silence(self, tracker):
        observe_n(tracker, 11, start=0.0)
        snap = tracker.observe("example.com", "9.9.9.9", now=10.0 + 301)
        assert snap.connection_count == 1
        assert snap.suspicious_count == 0
        assert tracker.stats["window_resets"] == 1

    def test_exactly_window_seconds_does_not_reset(self, tracker):
        tracker.observe("example.com", "9.9.9.9", now=0.0)
        snap = tracker.observe("example.com", "9.9.9.9", now=300.0)
        assert snap.connection_count == 2

    def test_window_slides_with_activity(self, tracker):
        tracker.observe("example.com", "9.9.9.9", now=0.0)
        tracker.observe("example.com", "9.9.9.9", now=200.0)
        snap = tracker.observe("example.com", "9.9.9.9", now=450.0)
        assert snap.connection_count == 3

    def test_out_of_order_timestamp_does_not_rewind_window(self, tracker):
        for _ in range(9):
            tracker.observe("example.com", "9.9.9.9", now=1400.0)
        tracker.observe("example.com", "9.9.9.9", now=1000.0)
        snap = tracker.observe("example.com", "9.9.9.9", now=1350.0)
        assert snap.connection_count == 11
        assert tracker.get_state("example.com").window_start == 1400.0
        assert tracker.stats["window_resets"] == 0

    def test_non_finite_timestamp_uses_wall_clock(self, tracker):
        tracker.observe("example.com", "9.9.9.9", now=float("nan"))
        state = tracker.get_state("example.com")
        assert math.isfinite(state.window_start)

        snap = tracker.observe("example.com", "9.9.9.9", now=state.window_start + 301)
        assert snap.connection_count == 1

    def test_domains_have_independent_windows(self, tracker):
        observe_n(tracker, 5, domain="a.example")
        snap = tracker.observe("b.example", "9.9.9.9", now=1000.0)
        assert snap.connection_count == 1


# ---------------------------------------------------------------------------
# Eviction + persistence
# ---------------------------------------------------------------------------

class TestEviction:

    def test_oldest_domain_evicted_over_cap(self):
        t = DomainConnectionTracker(max_domains=2)
        t.observe("a.example", "1.1.1.1", now=1.0)
        t.observe("b.example", "1.1.1.1", now=2.0)
        t.observe("c.example", "1.1.1.1", now=3.0)
        assert t.get_state("a.example") is None
        assert t.domain_count == 2
        assert t.stats["domains_evicted"] == 1

    def test_recently_seen_domain_survives(self):
        t = DomainConnectionTracker(max_domains=2)
        t.observe("a.example", "1.1.1.1", now=1.0)
        t.observe("b.example", "1.1.1.1", now=2.0)
        t.observe("a.example", "1.1.1.1", now=3.0)
        t.observe("c.example", "1.1.1.1", now=4.0)
        assert t.get_state("a.example") is not None
        assert t.get_state("b.example") is None


class TestPersistence:

    def test_export_and_restore(self, tracker):
        observe_n(tracker, 11)
        fresh = DomainConnectionTracker()
        assert fresh.restore(tracker.export_state()) == 1
        state = fresh.get_state("example.com")
        assert state.connection_count == 11
        assert state.suspicious_ips == {"9.9.9.9"}

    def test_restore_skips_unreadable_entries(self, tracker):
        restored = tracker.restore({
            "bad.example": {"connection_count": 3},
            "good.example": {"window_start": 5.0, "connection_count": 2},
        })
        assert restored == 1
        assert tracker.get_state("good.example").connection_count == 2

    def test_clear(self, tracker):
        observe_n(tracker, 3)
        tracker.clear()
        assert tracker.domain_count == 0
