"""Recovery log repository: encrypted CRUD over daily entries and profile.

Mediates between :mod:`crp.core.storage.models` rows and SQLite, using
:class:`PayloadCipher` for everything that identifies the patient's health
state. Entries are keyed by ISO date; saving a date again overwrites it
(last write wins).
"""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from crp.core.storage.database import RecoveryDatabase
from crp.core.storage.encryption import EncryptionError, PayloadCipher
from crp.core.storage.models import DailyEntry, StoredHRSession

logger = logging.getLogger(__name__)

# (table, key column, encrypted columns)
_ENCRYPTED_COLUMNS = (
    ("daily_metrics", "entry_date", ("metrics_enc", "crps_enc")),
    ("patient_profile", "id", ("profile_enc",)),
    ("hr_sessions", "id", ("summary_enc",)),
)


class RepositoryError(Exception):
    """Raised when repository operations fail."""


def validate_entry_date(entry_date: str) -> str:
    """Return ``entry_date`` normalized to ``YYYY-MM-DD``.

    Raises:
        RepositoryError: If it is not an ISO calendar date.
    """
    try:
        return dt.date.fromisoformat(str(entry_date).strip()).isoformat()
    except ValueError as exc:
        raise RepositoryError(f"Invalid date {entry_date!r}: expected YYYY-MM-DD") from exc


class RecoveryRepository:
    """CRUD repository for the encrypted recovery log.

    Usage::

        db = RecoveryDatabase(":memory:")
        db.initialize()
        repo = RecoveryRepository(db, PayloadCipher(key))
        repo.save_entry(DailyEntry(entry_date="2025-01-15", metrics={"restingHR": 64}))
    """

    def __init__(self, database: RecoveryDatabase, cipher: PayloadCipher) -> None:
        self._db = database
        self._cipher = cipher

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()

    # ------------------------------------------------------------------
    # Daily entries
    # ------------------------------------------------------------------

    def save_entry(self, entry: DailyEntry) -> DailyEntry:
        """Insert or replace the entry for ``entry.entry_date``.

        ``created_at`` of an existing row is preserved; ``updated_at`` is
        always refreshed.

        Returns:
            The entry as stored (normalized date and timestamps).
        """
        entry_date = validate_entry_date(entry.entry_date)
        now = self._now_iso()
        conn = self._db.connection
        conn.execute(
            """INSERT INTO daily_metrics (
                entry_date, metrics_enc, crps_score, crps_enc, risk_level,
                is_historical, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(entry_date) DO UPDATE SET
                metrics_enc = excluded.metrics_enc,
                crps_score = excluded.crps_score,
                crps_enc = excluded.crps_enc,
                risk_level = excluded.risk_level,
                is_historical = excluded.is_historical,
                updated_at = excluded.updated_at""",
            (
                entry_date,
                self._cipher.encrypt(entry.metrics or {}),
                entry.crps_score,
                self._cipher.encrypt(entry.crps),
                entry.risk_level,
                int(entry.is_historical),
                entry.created_at or now,
                now,
            ),
        )
        conn.commit()
        logger.info("Saved entry %s (crps=%s, risk=%s)", entry_date, entry.crps_score, entry.risk_level)
        stored = self.get_entry(entry_date)
        if stored is None:
            raise RepositoryError(f"Entry {entry_date} vanished after save")
        return stored

    def update_scores(
        self,
        entry_date: str,
        *,
        crps: dict[str, Any] | None,
        crps_score: int | None,
        risk_level: int | None,
    ) -> bool:
        """Replace only the derived scores of an existing entry."""
        entry_date = validate_entry_date(entry_date)
        cursor = self._db.connection.execute(
            """UPDATE daily_metrics
               SET crps_enc = ?, crps_score = ?, risk_level = ?, updated_at = ?
               WHERE entry_date = ?""",
            (self._cipher.encrypt(crps), crps_score, risk_level, self._now_iso(), entry_date),
        )
        self._db.connection.commit()
        return cursor.rowcount > 0

    def get_entry(self, entry_date: str) -> DailyEntry | None:
        entry_date = validate_entry_date(entry_date)
        row = self._db.connection.execute(
            "SELECT * FROM daily_metrics WHERE entry_date = ?", (entry_date,)
        ).fetchone()
        return self._row_to_entry(row) if row is not None else None

    def get_entries(
        self,
        *,
        since: str | None = None,
        until: str | None = None,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[DailyEntry]:
        """Query entries by inclusive date range.

        Returns:
            Decrypted entries ordered by date (ascending unless
            ``newest_first``).
        """
        conditions: list[str] = []
        params: list[Any] = []
        if since:
            conditions.append("entry_date >= ?")
            params.append(validate_entry_date(since))
        if until:
            conditions.append("entry_date <= ?")
            params.append(validate_entry_date(until))

        query = "SELECT * FROM daily_metrics"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY entry_date " + ("DESC" if newest_first else "ASC")
        if limit is not None:
            query += " LIMIT ?"
            params.append(int(limit))

        rows = self._db.connection.execute(query, params).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def get_prior_entry_with(self, entry_date: str, metric: str) -> DailyEntry | None:
        """Most recent entry strictly before ``entry_date`` that recorded ``metric``.

        The metric payload is encrypted, so candidates are decrypted
        newest-first until one has the field.
        """
        entry_date = validate_entry_date(entry_date)
        rows = self._db.connection.execute(
            "SELECT * FROM daily_metrics WHERE entry_date < ? ORDER BY entry_date DESC",
            (entry_date,),
        )
        for row in rows:
            entry = self._row_to_entry(row)
            if entry.metrics.get(metric) is not None:
                return entry
        return None

    def list_dates(self) -> list[str]:
        rows = self._db.connection.execute(
            "SELECT entry_date FROM daily_metrics ORDER BY entry_date"
        ).fetchall()
        return [row[0] for row in rows]

    def count_entries(self) -> int:
        row = self._db.connection.execute("SELECT COUNT(*) FROM daily_metrics").fetchone()
        return row[0]

    def get_score_history(self, *, limit: int = 90) -> list[tuple[str, int]]:
        """``(date, crps_score)`` pairs from the clear column, oldest first."""
        rows = self._db.connection.execute(
            """SELECT entry_date, crps_score FROM (
                   SELECT entry_date, crps_score FROM daily_metrics
                   WHERE crps_score IS NOT NULL
                   ORDER BY entry_date DESC LIMIT ?
               ) ORDER BY entry_date ASC""",
            (limit,),
        ).fetchall()
        return [(row[0], row[1]) for row in rows]

    def delete_entry(self, entry_date: str) -> bool:
        """Delete one day and its heart-rate sessions.

        Returns:
            True if an entry existed.
        """
        entry_date = validate_entry_date(entry_date)
        conn = self._db.connection
        cursor = conn.execute("DELETE FROM daily_metrics WHERE entry_date = ?", (entry_date,))
        conn.execute("DELETE FROM hr_sessions WHERE entry_date = ?", (entry_date,))
        conn.commit()
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted entry %s", entry_date)
        return deleted

    # ------------------------------------------------------------------
    # Patient profile
    # ------------------------------------------------------------------

    def save_profile(self, profile: dict[str, Any]) -> None:
        conn = self._db.connection
        conn.execute(
            """INSERT INTO patient_profile (id, profile_enc, updated_at) VALUES (1, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   profile_enc = excluded.profile_enc,
                   updated_at = excluded.updated_at""",
            (self._cipher.encrypt(profile), self._now_iso()),
        )
        conn.commit()
        logger.info("Saved patient profile")

    def get_profile(self) -> dict[str, Any]:
        """Stored profile, or an empty dict when none was saved."""
        row = self._db.connection.execute(
            "SELECT profile_enc FROM patient_profile WHERE id = 1"
        ).fetchone()
        if row is None:
            return {}
        return self._cipher.decrypt(row["profile_enc"]) or {}

    # ------------------------------------------------------------------
    # Heart-rate sessions
    # ------------------------------------------------------------------

    def save_hr_session(
        self,
        entry_date: str,
        summary: dict[str, Any],
        *,
        started_at: str | None = None,
    ) -> str:
        entry_date = validate_entry_date(entry_date)
        session_id = str(uuid.uuid4())
        conn = self._db.connection
        conn.execute(
            """INSERT INTO hr_sessions (id, entry_date, started_at, duration_seconds, summary_enc)
               VALUES (?, ?, ?, ?, ?)""",
            (
                session_id,
                entry_date,
                started_at or self._now_iso(),
                float(summary.get("duration_seconds") or 0.0),
                self._cipher.encrypt(summary),
            ),
        )
        conn.commit()
        logger.info("Saved heart-rate session %s for %s", session_id, entry_date)
        return session_id

    def get_hr_sessions(self, entry_date: str) -> list[StoredHRSession]:
        entry_date = validate_entry_date(entry_date)
        rows = self._db.connection.execute(
            "SELECT * FROM hr_sessions WHERE entry_date = ? ORDER BY started_at",
            (entry_date,),
        ).fetchall()
        return [
            StoredHRSession(
                id=row["id"],
                entry_date=row["entry_date"],
                started_at=row["started_at"],
                duration_seconds=row["duration_seconds"],
                summary=self._cipher.decrypt(row["summary_enc"]) or {},
                created_at=row["created_at"],
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def delete_all_data(self) -> int:
        """Delete every entry, session and the profile.

        Returns:
            Number of daily entries removed.
        """
        conn = self._db.connection
        count = self.count_entries()
        conn.execute("DELETE FROM hr_sessions")
        conn.execute("DELETE FROM daily_metrics")
        conn.execute("DELETE FROM patient_profile")
        conn.commit()
        logger.warning("Deleted ALL recovery data: %d entries removed", count)
        return count

    # ------------------------------------------------------------------
    # Key rotation
    # ------------------------------------------------------------------

    def reencrypt_all(self) -> int:
        """Re-encrypt every stored payload under the active key.

        Run after prepending a new key to ENCRYPTION_KEY; once it returns,
        the older keys can be removed from the configuration.

        Returns:
            Number of rows rewritten.
        """
        conn = self._db.connection
        rewritten = 0
        try:
            for table, key_column, columns in _ENCRYPTED_COLUMNS:
                rows = conn.execute(
                    f"SELECT {key_column}, {', '.join(columns)} FROM {table}"
                ).fetchall()
                for row in rows:
                    conn.execute(
                        f"UPDATE {table} SET {', '.join(f'{c} = ?' for c in columns)} "
                        f"WHERE {key_column} = ?",
                        (*(self._cipher.rotate(row[c]) for c in columns), row[key_column]),
                    )
                    rewritten += 1
        except EncryptionError:
            conn.rollback()
            raise
        conn.commit()
        logger.info("Re-encrypted %d stored rows under the active key", rewritten)
        return rewritten

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _row_to_entry(self, row: Any) -> DailyEntry:
        return DailyEntry(
            entry_date=row["entry_date"],
            metrics=self._cipher.decrypt(row["metrics_enc"]) or {},
            crps=self._cipher.decrypt(row["crps_enc"]),
            crps_score=row["crps_score"],
            risk_level=row["risk_level"],
            is_historical=bool(row["is_historical"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
