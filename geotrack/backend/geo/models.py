"""
geo/models.py

Data models for the geolocation layer.
"""

from __future__ import annotations

from dataclasses import dataclass

UNKNOWN = "Unknown"

SOURCE_FALLBACK = "fallback"
"""Sentinel source: every backend failed."""

SOURCE_LOCAL = "local"
"""Sentinel source: private / loopback address, never sent to a backend."""


@dataclass(frozen=True, slots=True)
class GeoInfo:
    """
    Coarse location metadata for one IP.

    All fields are plain strings — safe to serialise to JSON and store in
    the audit ledger without further processing.
    """

    ip: str
    city: str = UNKNOWN
    country: str = UNKNOWN
    source: str = SOURCE_FALLBACK
    """Backend that produced the answer, e.g. 'ip-api.com' or 'ipapi.co'."""

    @classmethod
    def unknown(cls, ip: str, source: str = SOURCE_FALLBACK) -> "GeoInfo":
        return cls(ip=ip, source=source)

    @property
    def is_known(self) -> bool:
        """False for sentinels — those carry no geographic signal."""
        return self.source not in (SOURCE_FALLBACK, SOURCE_LOCAL) and self.country != UNKNOWN

    def to_dict(self) -> dict:
        return {
            "ip": self.ip,
            "city": self.city,
            "country": self.country,
            "source": self.source,
        }
