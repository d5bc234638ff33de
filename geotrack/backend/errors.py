"""
backend/errors.py

Exception taxonomy for the classification pipeline.

All exceptions carry a short machine-readable code, a message and an
optional details dict so they can be logged and broadcast as JSON.

Chain verification failures are deliberately NOT an exception:
HashChainLedger.verify() returns a bool and callers decide the policy.
"""

from __future__ import annotations

from typing import Any


class GeoTrackError(Exception):
    """Base exception for all GeoTrack errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to a JSON-serializable dict."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class InvalidEvent(GeoTrackError):
    """Malformed connection event (empty / placeholder ip or domain)."""


class ResolverUnavailable(GeoTrackError):
    """Every geolocation backend failed for an IP."""


class LedgerAppendFailure(GeoTrackError):
    """A payload could not be serialized or hashed into the audit ledger."""
