"""
storage/database.py

SQLite connection and schema initialisation for persisted GeoTrack state.

Design decisions:
  - WAL journal mode for concurrent readers + one writer without blocking.
  - check_same_thread=False: the periodic persistence task and shutdown
    hook run on the event loop thread; all writes go through
    StateRepository, which serialises them.
  - busy_timeout=5000ms: spin-wait instead of raising SQLITE_BUSY.
  - State is a small set of JSON blobs (ledger, tracker, settings), so a
    single key/value table is enough.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import time
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)

_CURRENT_SCHEMA_VERSION = 1


class Database:
    """
    Thin wrapper around a sqlite3 connection.

    Usage:
        db = Database("data/geotrack.db")
        db.init_schema()
        repo = StateRepository(db)
        db.close()
    """

    def __init__(self, db_path: str = "data/geotrack.db") -> None:
        self.db_path = db_path
        if db_path != ":memory:":
            os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._configure()
        logger.info("Database opened — path=%r", db_path)

    def _configure(self) -> None:
        cur = self.conn.cursor()
        cur.execute("PRAGMA journal_mode=WAL")
        cur.execute("PRAGMA busy_timeout=5000")
        cur.execute("PRAGMA synchronous=NORMAL")
        self.conn.commit()

    def init_schema(self) -> None:
        """Create all tables if they don't already exist."""
        cur = self.conn.cursor()
        cur.executescript("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key        TEXT PRIMARY KEY,
                value      TEXT NOT NULL,
                updated_at REAL NOT NULL
            );

            CREATE TABLE IF NOT EXISTS schema_version (
                version    INTEGER PRIMARY KEY,
                applied_at REAL NOT NULL
            );
        """)
        cur.execute(
            "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
            (_CURRENT_SCHEMA_VERSION, time.time()),
        )
        self.conn.commit()
        logger.info("Schema initialised (version=%d)", _CURRENT_SCHEMA_VERSION)

    def schema_version(self) -> int:
        row = self.conn.execute("SELECT MAX(version) AS v FROM schema_version").fetchone()
        return int(row["v"] or 0)

    def close(self) -> None:
        """Flush and close the SQLite connection."""
        try:
            self.conn.commit()
            self.conn.close()
            logger.info("Database closed — path=%r", self.db_path)
        except sqlite3.Error as exc:
            logger.warning("Error closing database: %s", exc)

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        """Execute a single parameterized statement."""
        return self.conn.execute(sql, params)

    def commit(self) -> None:
        self.conn.commit()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit when the block exits cleanly, roll back when it raises."""
        try:
            yield self.conn
        except BaseException:
            self.conn.rollback()
            raise
        else:
            self.conn.commit()
