"""
storage/repository.py

StateRepository — save / restore the service's durable state:

    ledger   — serialized audit chain (list of blocks)
    tracker  — per-domain window state
    settings — the live DetectionConfig

Write failures are logged and never propagate: persistence must not be able
to interrupt classification.  Read failures return None so the caller falls
back to fresh state.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from typing import Any

from pydantic import ValidationError

from ..config import DetectionConfig
from ..ledger import HashChainLedger
from .database import Database

logger = logging.getLogger(__name__)

KEY_LEDGER = "ledger"
KEY_TRACKER = "tracker"
KEY_SETTINGS = "settings"


class StateRepository:
    def __init__(self, db: Database) -> None:
        self._db = db

    # ==================================================================
    # Write methods
    # ==================================================================

    def save_ledger(self, ledger: HashChainLedger) -> bool:
        return self._put(KEY_LEDGER, ledger.to_list())

    def save_tracker(self, state: dict[str, dict]) -> bool:
        return self._put(KEY_TRACKER, state)

    def save_settings(self, config: DetectionConfig) -> bool:
        return self._put(KEY_SETTINGS, config.model_dump())

    # ==================================================================
    # Read methods
    # ==================================================================

    def load_ledger(self, capacity: int) -> HashChainLedger | None:
        data = self._get(KEY_LEDGER)
        if not isinstance(data, list):
            return None
        try:
            ledger = HashChainLedger.from_list(data, capacity=capacity)
        except (KeyError, TypeError, ValueError) as exc:
            logger.error("Persisted ledger is unreadable, starting a new chain: %s", exc)
            return None
        logger.info("Restored ledger with %d block(s)", len(ledger))
        return ledger

    def load_tracker(self) -> dict[str, dict] | None:
        data = self._get(KEY_TRACKER)
        return data if isinstance(data, dict) else None

    def load_settings(self) -> dict[str, Any] | None:
        """Persisted DetectionConfig fields, validated; None when absent or invalid."""
        data = self._get(KEY_SETTINGS)
        if not isinstance(data, dict):
            return None
        try:
            return DetectionConfig.model_validate(data).model_dump()
        except ValidationError as exc:
            logger.warning("Ignoring invalid persisted settings: %s", exc)
            return None

    def keys(self) -> list[str]:
        rows = self._db.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        return [r["key"] for r in rows]

    # ==================================================================
    # Internals
    # ==================================================================

    def _put(self, key: str, value: Any) -> bool:
        try:
            blob = json.dumps(value, allow_nan=False)
        except (TypeError, ValueError) as exc:
            logger.error("State %r is not JSON-serializable: %s", key, exc)
            return False
        try:
            with self._db.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                                   updated_at = excluded.updated_at
                    """,
                    (key, blob, time.time()),
                )
        except sqlite3.Error as exc:
            logger.error("Saving state %r failed: %s", key, exc)
            return False
        return True

    def _get(self, key: str) -> Any:
        try:
            row = self._db.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            logger.error("Loading state %r failed: %s", key, exc)
            return None
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except ValueError as exc:
            logger.error("Persisted state %r is corrupt: %s", key, exc)
            return None
