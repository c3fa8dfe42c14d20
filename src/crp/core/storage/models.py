"""Row types returned by the recovery repository."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class DailyEntry:
    """One calendar day of recorded metrics with its derived scores.

    ``metrics`` and ``crps`` are decrypted on read; ``crps_score`` and
    ``risk_level`` mirror the clear columns used for ordering.
    """

    entry_date: str                     # ISO 8601 date, primary key
    metrics: dict[str, Any] = field(default_factory=dict)
    crps: dict[str, Any] | None = None  # ScoreBreakdown.to_dict()
    crps_score: int | None = None
    risk_level: int | None = None
    is_historical: bool = False         # imported rather than entered that day
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.entry_date,
            "metrics": dict(self.metrics),
            "crps": self.crps,
            "crps_score": self.crps_score,
            "risk_level": self.risk_level,
            "is_historical": self.is_historical,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class StoredHRSession:
    """A recorded heart-rate session summary attached to a date."""

    id: str
    entry_date: str
    started_at: str
    duration_seconds: float
    summary: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.entry_date,
            "started_at": self.started_at,
            "duration_seconds": self.duration_seconds,
            "summary": dict(self.summary),
            "created_at": self.created_at,
        }
