"""SQLite database management for the recovery log.

Owns the connection, the schema, and schema migrations. Daily entries are
keyed by ISO date, so saving the same date twice replaces the earlier entry.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
-- One row per calendar day; raw metrics encrypted, score/level in clear
CREATE TABLE IF NOT EXISTS daily_metrics (
    entry_date    TEXT PRIMARY KEY,
    metrics_enc   TEXT NOT NULL,
    crps_score    INTEGER,
    crps_enc      TEXT,
    risk_level    INTEGER,
    is_historical INTEGER NOT NULL DEFAULT 0,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);

-- Single-row patient profile (demographics, surgery date)
CREATE TABLE IF NOT EXISTS patient_profile (
    id          INTEGER PRIMARY KEY CHECK (id = 1),
    profile_enc TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_daily_crps ON daily_metrics(crps_score);
"""

# ---------------------------------------------------------------------------
# V2: recorded heart-rate sessions
# ---------------------------------------------------------------------------

_SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS hr_sessions (
    id               TEXT PRIMARY KEY,
    entry_date       TEXT NOT NULL,
    started_at       TEXT NOT NULL,
    duration_seconds REAL NOT NULL DEFAULT 0,
    summary_enc      TEXT NOT NULL,
    created_at       TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_hr_sessions_date ON hr_sessions(entry_date);
"""


class DatabaseError(Exception):
    """Raised when database operations fail."""


class RecoveryDatabase:
    """SQLite manager for the recovery log.

    ``":memory:"`` gives a throwaway database for tests::

        with RecoveryDatabase(":memory:") as db:
            db.connection.execute("SELECT COUNT(*) FROM daily_metrics")
    """

    def __init__(self, db_path: str = ":memory:") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def connection(self) -> sqlite3.Connection:
        """The open connection.

        Raises:
            DatabaseError: If :meth:`initialize` has not been called.
        """
        if self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Open the connection and bring the schema up to date. Idempotent."""
        if self._conn is not None:
            return

        if self._db_path == ":memory:":
            target = ":memory:"
        else:
            db_file = Path(self._db_path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_file)

        try:
            self._conn = sqlite3.connect(target)
        except sqlite3.Error as exc:
            raise DatabaseError(f"Cannot open database {self._db_path}: {exc}") from exc

        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._ensure_schema()
        logger.info("Recovery database initialized: %s", self._db_path)

    def _ensure_schema(self) -> None:
        conn = self.connection
        conn.executescript(_SCHEMA_V1)
        current_version = self.get_schema_version()

        if current_version < 2:
            conn.executescript(_SCHEMA_V2)
            logger.info("Applied schema migration V2: hr_sessions table")

        if current_version < SCHEMA_VERSION:
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            conn.commit()
            logger.info("Schema updated from version %d to %d", current_version, SCHEMA_VERSION)

    def get_schema_version(self) -> int:
        row = self.connection.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row[0] is not None else 0

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Recovery database closed")

    def __enter__(self) -> RecoveryDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()
