"""
tracking/models.py

Data models for per-domain connection tracking.

DomainState     — mutable per-domain window (owned by DomainConnectionTracker)
TrackerSnapshot — immutable view returned by every observe() call
"""

from __future__ import annotations

from dataclasses import dataclass, field


# ---------------------------------------------------------------------------
# DomainState: per-domain rolling window
# ---------------------------------------------------------------------------

@dataclass
class DomainState:
    """
    Connection statistics for one domain inside the current window.

    Mutated exclusively by DomainConnectionTracker.  `window_start` is
    refreshed on every observed connection, so the window closes after
    WINDOW_SECONDS of silence for the domain.
    """

    window_start: float
    expected_ips: set[str] = field(default_factory=set)
    suspicious_ips: set[str] = field(default_factory=set)
    connection_count: int = 0

    def reset(self, now: float) -> None:
        self.expected_ips.clear()
        self.suspicious_ips.clear()
        self.connection_count = 0
        self.window_start = now

    def to_dict(self) -> dict:
        return {
            "window_start": self.window_start,
            "expected_ips": sorted(self.expected_ips),
            "suspicious_ips": sorted(self.suspicious_ips),
            "connection_count": self.connection_count,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "DomainState":
        return cls(
            window_start=float(d["window_start"]),
            expected_ips=set(d.get("expected_ips", [])),
            suspicious_ips=set(d.get("suspicious_ips", [])),
            connection_count=int(d.get("connection_count", 0)),
        )

    def __repr__(self) -> str:
        return (
            f"DomainState(conns={self.connection_count} "
            f"expected={len(self.expected_ips)} "
            f"suspicious={len(self.suspicious_ips)})"
        )


# ---------------------------------------------------------------------------
# TrackerSnapshot: what the scorer sees
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class TrackerSnapshot:
    """Point-in-time view of one domain's window after an observation."""

    domain: str
    ip: str
    is_first_party: bool = False
    connection_count: int = 0
    suspicious_count: int = 0
    is_known_expected: bool = False
    skip: bool = False
    """True when the input was malformed and classification must be skipped."""

    @classmethod
    def skipped(cls, domain: str, ip: str) -> "TrackerSnapshot":
        return cls(domain=domain or "", ip=ip or "", skip=True)

    def to_dict(self) -> dict:
        return {
            "domain": self.domain,
            "ip": self.ip,
            "is_first_party": self.is_first_party,
            "connection_count": self.connection_count,
            "suspicious_count": self.suspicious_count,
            "is_known_expected": self.is_known_expected,
        }
