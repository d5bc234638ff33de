"""
ledger/chain.py

HashChainLedger — append-only, capacity-bounded, SHA-256 hash chain.

Hashing:
    hash = sha256( canonical_json(payload) + previous_hash ).hexdigest()
    canonical_json = json.dumps(sort_keys=True, separators=(",", ":"),
                                ensure_ascii=False, allow_nan=False)

Retention:
    Once more than `capacity` blocks exist the oldest are dropped.  The
    oldest retained block then points at a hash that is no longer present,
    so verification always runs "from the oldest retained block forward":
    every block's own hash is recomputed, and linkage is checked for every
    block after the first.

Thread safety: append() / genesis() / snapshot() hold an internal
threading.Lock, so concurrent appends are serialised and the tip never forks.
"""

from __future__ import annotations

import copy
import hashlib
import json
import logging
import threading
import time
from dataclasses import replace
from typing import Any, Callable, Iterable, Sequence

from ..errors import LedgerAppendFailure
from .models import GENESIS_PAYLOAD, GENESIS_PREVIOUS_HASH, AuditBlock

logger = logging.getLogger(__name__)

_CAPACITY_DEFAULT = 100


def canonical_json(payload: Any) -> str:
    """Deterministic serialization. Raises TypeError/ValueError on bad input."""
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def compute_hash(payload: Any, previous_hash: str) -> str:
    data = (canonical_json(payload) + previous_hash).encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def verify_chain(blocks: Sequence[AuditBlock]) -> bool:
    """
    Return True if *blocks* form an intact chain.

    Fails closed: any mismatch or malformed block returns False, never raises.
    An empty sequence is trivially valid.
    """
    try:
        for i, block in enumerate(blocks):
            if compute_hash(block.payload, block.previous_hash) != block.hash:
                logger.warning("Ledger verification failed: block %d hash mismatch", i)
                return False
            if i > 0 and block.previous_hash != blocks[i - 1].hash:
                logger.warning("Ledger verification failed: block %d linkage broken", i)
                return False
    except Exception as exc:
        logger.warning("Ledger verification failed: unreadable block (%s)", exc)
        return False
    return True


class HashChainLedger:
    """
    Tamper-evident log of anomalous events.

    Args:
        capacity: Maximum blocks retained (oldest dropped first).
        blocks:   Previously persisted blocks to resume from.  When omitted
                  (or empty) a genesis block is created.
        clock:    Source of block timestamps (injectable for tests).
    """

    def __init__(
        self,
        capacity: int = _CAPACITY_DEFAULT,
        blocks: Iterable[AuditBlock] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._clock = clock
        self._lock = threading.Lock()
        self._blocks: list[AuditBlock] = list(blocks or [])[-capacity:]
        self.stats: dict[str, int] = {
            "appends": 0,
            "append_failures": 0,
            "blocks_truncated": 0,
        }
        self.genesis()
        logger.debug("HashChainLedger initialised — capacity=%d blocks=%d", capacity, len(self._blocks))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def genesis(self) -> AuditBlock:
        """
        Create the genesis block if the ledger is empty.

        Idempotent: on a non-empty ledger nothing changes and the oldest
        retained block is returned.
        """
        with self._lock:
            if not self._blocks:
                block = AuditBlock(
                    timestamp=self._clock(),
                    payload=copy.deepcopy(GENESIS_PAYLOAD),
                    previous_hash=GENESIS_PREVIOUS_HASH,
                    hash=compute_hash(GENESIS_PAYLOAD, GENESIS_PREVIOUS_HASH),
                )
                self._blocks.append(block)
                logger.info("Ledger genesis block created hash=%s", block.hash[:12])
            return self._blocks[0]

    def append(self, payload: dict[str, Any]) -> AuditBlock:
        """
        Chain *payload* onto the tip and return the new block.

        Raises:
            LedgerAppendFailure: payload cannot be serialized / hashed.
                                 The ledger is left unchanged.
        """
        with self._lock:
            previous_hash = self._blocks[-1].hash
            try:
                frozen_payload = copy.deepcopy(payload)
                block_hash = compute_hash(frozen_payload, previous_hash)
            except Exception as exc:
                self.stats["append_failures"] += 1
                raise LedgerAppendFailure(
                    "ledger_append_failed",
                    f"could not hash payload: {exc}",
                    {"previous_hash": previous_hash},
                ) from exc

            block = AuditBlock(
                timestamp=self._clock(),
                payload=frozen_payload,
                previous_hash=previous_hash,
                hash=block_hash,
            )
            self._blocks.append(block)
            self.stats["appends"] += 1

            overflow = len(self._blocks) - self.capacity
            if overflow > 0:
                del self._blocks[:overflow]
                self.stats["blocks_truncated"] += overflow
                logger.debug("Ledger truncated %d oldest block(s)", overflow)

        logger.debug("Ledger append hash=%s prev=%s", block.hash[:12], previous_hash[:12])
        return block

    def verify(self, blocks: Sequence[AuditBlock] | None = None) -> bool:
        """Verify *blocks*, or the ledger's own retained chain when None."""
        return verify_chain(self.snapshot() if blocks is None else blocks)

    def snapshot(self) -> tuple[AuditBlock, ...]:
        """Read-only copy of the retained chain, oldest first."""
        with self._lock:
            return tuple(replace(b, payload=copy.deepcopy(b.payload)) for b in self._blocks)

    @property
    def tip(self) -> AuditBlock:
        with self._lock:
            return self._blocks[-1]

    def to_list(self) -> list[dict]:
        """Serializable form for persistence."""
        return [b.to_dict() for b in self.snapshot()]

    @classmethod
    def from_list(cls, data: list[dict], capacity: int = _CAPACITY_DEFAULT) -> "HashChainLedger":
        """
        Rebuild a ledger from to_list() output.

        A chain that fails verification is still loaded (it is evidence);
        the failure is logged so the operator can act on it.
        """
        blocks = [AuditBlock.from_dict(d) for d in data]
        if blocks and not verify_chain(blocks):
            logger.error("Restored ledger FAILED verification — chain may have been tampered with")
        return cls(capacity=capacity, blocks=blocks)

    def __len__(self) -> int:
        with self._lock:
            return len(self._blocks)
