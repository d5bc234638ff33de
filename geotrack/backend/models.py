"""
backend/models.py

Shared dataclasses for every stage of the pipeline.
Defining the inter-stage contracts here lets the tracker, scorer, ledger
and API be developed against a stable interface.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace


# ---------------------------------------------------------------------------
# Stage 1: Ingest output
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ConnectionEvent:
    """One observed outbound connection."""

    ip: str
    """True origin address (forwarding-revealed when headers expose one)."""

    domain: str
    """Hostname of the page that triggered the connection."""

    tab_id: int = -1
    """Browser tab id, -1 for requests not tied to a tab."""

    timestamp: float = field(default_factory=time.time)
    """Unix epoch seconds."""

    reroute_target: str | None = None
    """Directly observed address when a forwarding header revealed another."""

    def to_dict(self) -> dict:
        return {
            "ip": self.ip,
            "domain": self.domain,
            "tab_id": self.tab_id,
            "timestamp": self.timestamp,
            "reroute_target": self.reroute_target,
        }


# ---------------------------------------------------------------------------
# Stage 2/3: Tracking + scoring models (canonical classes live in sub-packages)
# ---------------------------------------------------------------------------

from .engine.models import RiskAssessment  # noqa: E402
from .geo.models import GeoInfo  # noqa: E402
from .tracking.models import TrackerSnapshot  # noqa: E402


# ---------------------------------------------------------------------------
# Stage 4: Pipeline output (history entry + ledger payload)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClassifiedConnection:
    """A connection event together with its final assessment."""

    event: ConnectionEvent
    assessment: RiskAssessment
    snapshot: TrackerSnapshot
    geo: GeoInfo | None = None
    classified_at: float = field(default_factory=time.time)

    @property
    def is_anomaly(self) -> bool:
        return self.assessment.is_anomaly

    def with_geo(self, geo: GeoInfo) -> "ClassifiedConnection":
        return replace(self, geo=geo)

    def to_dict(self) -> dict:
        """Flat, JSON-serializable record — also used as the ledger payload."""
        d = self.event.to_dict()
        d.update(self.assessment.to_dict())
        d["connection_count"] = self.snapshot.connection_count
        d["is_first_party"] = self.snapshot.is_first_party
        d["city"] = self.geo.city if self.geo else None
        d["country"] = self.geo.country if self.geo else None
        d["geo_source"] = self.geo.source if self.geo else None
        d["classified_at"] = self.classified_at
        return d
