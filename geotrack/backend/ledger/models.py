"""
ledger/models.py

AuditBlock — one immutable entry in the hash-chained audit ledger.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

GENESIS_PREVIOUS_HASH = "0"
GENESIS_PAYLOAD: dict[str, Any] = {
    "type": "genesis",
    "message": "GeoTrack audit ledger genesis block",
}


@dataclass(frozen=True)
class AuditBlock:
    """
    hash = sha256(canonical_json(payload) + previous_hash)

    The timestamp is informational and is not covered by the hash.
    """

    timestamp: float
    payload: dict[str, Any] = field(default_factory=dict)
    previous_hash: str = GENESIS_PREVIOUS_HASH
    hash: str = ""

    @property
    def is_genesis(self) -> bool:
        return self.payload.get("type") == GENESIS_PAYLOAD["type"]

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "payload": copy.deepcopy(self.payload),
            "previous_hash": self.previous_hash,
            "hash": self.hash,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "AuditBlock":
        return cls(
            timestamp=float(d["timestamp"]),
            payload=dict(d["payload"]),
            previous_hash=str(d["previous_hash"]),
            hash=str(d["hash"]),
        )

    def __repr__(self) -> str:
        kind = "genesis" if self.is_genesis else self.payload.get("type", "event")
        return f"AuditBlock({kind} hash={self.hash[:12]} prev={self.previous_hash[:12]})"
