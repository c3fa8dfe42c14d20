"""The save workflow for daily recovery entries.

Saving a day runs, in order:

1. alias normalization (``spo2`` -> ``oxygenSat``), text fields kept as-is
2. absolute-range validation; any out-of-range field blocks the save
3. composite clinical alerts, with weight gain measured against the most
   recent earlier entry that recorded a weight
4. if alerts fired and the caller has not acknowledged them, nothing is
   written and the result is ``pending_confirmation``
5. CRPS (current demographics) and risk level are computed and the entry is
   upserted by date

Changing demographics re-scores every stored entry so historical CRPS
values always reflect the current profile.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from crp.core.storage.models import DailyEntry
from crp.core.storage.repository import RecoveryRepository, validate_entry_date
from crp.domains.recovery.domain_logic.clinical_alerts import (
    evaluate_clinical_alerts,
    has_urgent_alerts,
    summarize_alerts,
)
from crp.domains.recovery.domain_logic.crps_calculator import calculate_crps_for
from crp.domains.recovery.domain_logic.field_validation import ensure_valid_metrics
from crp.domains.recovery.domain_logic.hrv_pipeline import HRSessionSummary
from crp.domains.recovery.domain_logic.recovery_models import (
    AlertEvent,
    Demographics,
    MetricSet,
    ScoreBreakdown,
    coerce_numeric_metrics,
    normalize_metrics,
)
from crp.domains.recovery.domain_logic.risk_stratifier import assess_risk

logger = logging.getLogger(__name__)


@dataclass
class SaveResult:
    """Outcome of :meth:`RecoveryLog.save`."""

    status: str                                    # 'saved' | 'pending_confirmation'
    entry_date: str
    alerts: list[AlertEvent] = field(default_factory=list)
    crps: ScoreBreakdown | None = None
    risk_level: int | None = None

    @property
    def saved(self) -> bool:
        return self.status == "saved"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status,
            "date": self.entry_date,
            "alerts": [alert.to_dict() for alert in self.alerts],
            "has_urgent_alerts": has_urgent_alerts(self.alerts),
        }
        if self.alerts:
            data["alert_summary"] = summarize_alerts(self.alerts)
        if self.crps is not None:
            data["crps"] = self.crps.to_dict()
        data["risk_level"] = self.risk_level
        return data


class RecoveryLog:
    """Validated, scored persistence of daily metric sets.

    Usage::

        log = RecoveryLog(repository)
        result = log.save("2025-01-15", {"restingHR": 64, "chestPain": 0})
        if result.status == "pending_confirmation":
            result = log.save("2025-01-15", metrics, acknowledge_alerts=True)
    """

    def __init__(self, repository: RecoveryRepository) -> None:
        self._repo = repository

    @property
    def repository(self) -> RecoveryRepository:
        return self._repo

    # ------------------------------------------------------------------
    # Demographics / profile
    # ------------------------------------------------------------------

    def get_profile(self) -> dict[str, Any]:
        return self._repo.get_profile()

    def get_demographics(self) -> Demographics:
        return Demographics.from_profile(self._repo.get_profile())

    def set_demographics(self, **changes: Any) -> tuple[Demographics, int]:
        """Merge ``changes`` into the stored profile and re-score all entries.

        Keys other than age/sex/height/weight (e.g. ``surgery_date``) are
        stored on the profile unchanged. ``None`` values leave the stored
        field as it was.

        Returns:
            ``(demographics, rescored_entry_count)``
        """
        profile = dict(self._repo.get_profile())
        profile.update({k: v for k, v in changes.items() if v is not None})
        self._repo.save_profile(profile)

        demographics = Demographics.from_profile(profile)
        rescored = self.recalculate_all(demographics)
        logger.info("Demographics updated; re-scored %d entries", rescored)
        return demographics, rescored

    def recalculate_all(self, demographics: Demographics | None = None) -> int:
        """Recompute CRPS and risk for every stored entry."""
        demographics = demographics or self.get_demographics()
        count = 0
        for entry in self._repo.get_entries():
            crps = calculate_crps_for(entry.metrics, demographics)
            risk = assess_risk(entry.metrics)
            self._repo.update_scores(
                entry.entry_date,
                crps=crps.to_dict(),
                crps_score=crps.total,
                risk_level=risk.level,
            )
            count += 1
        return count

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def save(
        self,
        entry_date: str,
        metrics: Mapping[str, Any],
        *,
        acknowledge_alerts: bool = False,
        is_historical: bool = False,
    ) -> SaveResult:
        """Validate, alert-check, score and persist one day's metrics.

        Raises:
            InputRangeError: If any field is outside its absolute range.
            RepositoryError: If ``entry_date`` is not an ISO date.
        """
        entry_date = validate_entry_date(entry_date)
        normalized: MetricSet = normalize_metrics(metrics)
        ensure_valid_metrics(normalized)
        # Blank, non-numeric and NaN values validate as "not entered"; drop them.
        normalized = coerce_numeric_metrics(normalized)

        prior = self._repo.get_prior_entry_with(entry_date, "weight")
        alerts = evaluate_clinical_alerts(normalized, prior.metrics if prior else None)

        if alerts and not acknowledge_alerts:
            logger.info("Save of %s held for confirmation: %d alert(s)", entry_date, len(alerts))
            return SaveResult(status="pending_confirmation", entry_date=entry_date, alerts=alerts)

        crps = calculate_crps_for(normalized, self.get_demographics())
        risk = assess_risk(normalized)
        self._repo.save_entry(DailyEntry(
            entry_date=entry_date,
            metrics=dict(normalized),
            crps=crps.to_dict(),
            crps_score=crps.total,
            risk_level=risk.level,
            is_historical=is_historical,
        ))
        return SaveResult(
            status="saved",
            entry_date=entry_date,
            alerts=alerts,
            crps=crps,
            risk_level=risk.level,
        )

    def get_entry(self, entry_date: str) -> DailyEntry | None:
        return self._repo.get_entry(entry_date)

    def delete_entry(self, entry_date: str) -> bool:
        return self._repo.delete_entry(entry_date)

    # ------------------------------------------------------------------
    # Heart-rate sessions
    # ------------------------------------------------------------------

    def record_hr_session(
        self,
        entry_date: str,
        summary: HRSessionSummary,
        *,
        apply_to_entry: bool = True,
    ) -> tuple[str, SaveResult | None]:
        """Store a session summary and optionally fold its metrics into the day.

        Session-derived fields (restingHR, maxHR, hrRecovery and, with enough
        RR intervals, sdnn/rmssd/pnn50) replace any values already recorded
        for that date. Alerts on the merged set are reported, not blocking.

        Returns:
            ``(session_id, save_result_or_None)``
        """
        result: SaveResult | None = None
        derived = summary.to_metrics() if apply_to_entry else {}
        if derived:
            existing = self._repo.get_entry(entry_date)
            merged = dict(existing.metrics) if existing else {}
            merged.update(derived)
            result = self.save(
                entry_date,
                merged,
                acknowledge_alerts=True,
                is_historical=existing.is_historical if existing else False,
            )

        session_id = self._repo.save_hr_session(entry_date, summary.to_dict())
        return session_id, result
