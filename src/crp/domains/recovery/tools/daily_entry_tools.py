"""MCP tools for the daily recovery log.

Entries are saved through :class:`RecoveryLog`, which validates ranges,
raises clinical alerts and scores the day before writing. A save that
triggers alerts is held until it is repeated with ``acknowledge_alerts``.
"""

from __future__ import annotations

import json
import logging
from datetime import date
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from crp.core.storage.repository import RepositoryError
from crp.domains.recovery.domain_logic.field_validation import InputRangeError
from crp.domains.recovery.domain_logic.hrv_pipeline import summarize_session

if TYPE_CHECKING:
    from crp.domains.recovery.domain_logic.recovery_log import RecoveryLog

logger = logging.getLogger(__name__)


def _today() -> str:
    return date.today().isoformat()


def register_daily_entry_tools(
    mcp: FastMCP,
    recovery_log: RecoveryLog,
) -> None:
    """Register daily entry and profile tools on the MCP server."""

    @mcp.tool
    async def save_daily_metrics(
        ctx: Context,
        metrics: dict[str, Any],
        entry_date: str = "",
        acknowledge_alerts: bool = False,
        is_historical: bool = False,
    ) -> str:
        """Save one day's recovery metrics (replaces any entry for that date).

        Out-of-range values are rejected. If the values raise clinical alerts
        the save is held with status 'pending_confirmation'; review the alerts
        and call again with acknowledge_alerts=true to store the entry.

        Args:
            metrics: Metrics keyed by camelCase name (restingHR, bpSystolic,
                vo2Max, walkDistance, chestPain, notes, ...).
            entry_date: ISO date (default today).
            acknowledge_alerts: Confirm saving despite clinical alerts.
            is_historical: Mark as back-filled rather than entered that day.
        """
        target = entry_date or _today()
        try:
            result = recovery_log.save(
                target,
                metrics,
                acknowledge_alerts=acknowledge_alerts,
                is_historical=is_historical,
            )
        except InputRangeError as exc:
            return json.dumps({
                "status": "error",
                "date": target,
                "message": str(exc),
                "errors": exc.errors,
            })
        except RepositoryError as exc:
            return json.dumps({"status": "error", "date": target, "message": str(exc)})

        return json.dumps(result.to_dict())

    @mcp.tool
    async def get_daily_metrics(
        ctx: Context,
        entry_date: str = "",
    ) -> str:
        """Get the stored metrics, CRPS breakdown and risk level for a date.

        Args:
            entry_date: ISO date (default today).
        """
        target = entry_date or _today()
        try:
            entry = recovery_log.get_entry(target)
        except RepositoryError as exc:
            return json.dumps({"status": "error", "message": str(exc)})

        if entry is None:
            return json.dumps({"status": "not_found", "date": target})
        sessions = [s.to_dict() for s in recovery_log.repository.get_hr_sessions(target)]
        return json.dumps({"status": "ok", **entry.to_dict(), "hr_sessions": sessions})

    @mcp.tool
    async def list_daily_metrics(
        ctx: Context,
        since: str = "",
        until: str = "",
        limit: int = 30,
    ) -> str:
        """List stored days (newest first) with their CRPS and risk level.

        Args:
            since: Inclusive ISO start date.
            until: Inclusive ISO end date.
            limit: Maximum number of days (default 30).
        """
        try:
            entries = recovery_log.repository.get_entries(
                since=since or None,
                until=until or None,
                limit=limit,
                newest_first=True,
            )
        except RepositoryError as exc:
            return json.dumps({"status": "error", "message": str(exc)})

        return json.dumps({
            "status": "ok",
            "count": len(entries),
            "entries": [
                {
                    "date": e.entry_date,
                    "crps_score": e.crps_score,
                    "interpretation": (e.crps or {}).get("interpretation"),
                    "risk_level": e.risk_level,
                    "metric_count": len(e.metrics),
                    "is_historical": e.is_historical,
                }
                for e in entries
            ],
        })

    @mcp.tool
    async def delete_daily_metrics(
        ctx: Context,
        entry_date: str,
    ) -> str:
        """Permanently delete the entry (and heart-rate sessions) for a date.

        Args:
            entry_date: ISO date of the entry to delete.
        """
        try:
            deleted = recovery_log.delete_entry(entry_date)
        except RepositoryError as exc:
            return json.dumps({"status": "error", "message": str(exc)})

        if not deleted:
            return json.dumps({
                "status": "not_found",
                "date": entry_date,
                "message": "No entry found for that date.",
            })
        return json.dumps({"status": "deleted", "date": entry_date})

    @mcp.tool
    async def record_heart_rate_session(
        ctx: Context,
        heart_rates: list[float],
        rr_intervals: list[float] | None = None,
        duration_seconds: float = 0.0,
        entry_date: str = "",
        apply_to_entry: bool = True,
    ) -> str:
        """Store a heart-rate session and fold its metrics into the day's entry.

        The session sets restingHR, maxHR and hrRecovery and, with at least
        10 RR intervals, sdnn/rmssd/pnn50 on the entry for that date.

        Args:
            heart_rates: HR samples in bpm, in recording order.
            rr_intervals: RR intervals in ms.
            duration_seconds: Recording length.
            entry_date: ISO date (default today).
            apply_to_entry: Update the day's metrics from the session.
        """
        target = entry_date or _today()
        summary = summarize_session(heart_rates, rr_intervals or [], duration_seconds)
        if summary.sample_count == 0:
            return json.dumps({"status": "error", "message": "No valid heart-rate samples."})

        try:
            session_id, result = recovery_log.record_hr_session(
                target, summary, apply_to_entry=apply_to_entry,
            )
        except InputRangeError as exc:
            return json.dumps({"status": "error", "message": str(exc), "errors": exc.errors})
        except RepositoryError as exc:
            return json.dumps({"status": "error", "message": str(exc)})

        return json.dumps({
            "status": "saved",
            "session_id": session_id,
            "date": target,
            "summary": summary.to_dict(),
            "entry": result.to_dict() if result is not None else None,
        })

    @mcp.tool
    async def set_patient_demographics(
        ctx: Context,
        age: int | None = None,
        sex: str | None = None,
        height: float | None = None,
        weight: float | None = None,
        surgery_date: str | None = None,
    ) -> str:
        """Update the patient profile and re-score every stored day.

        Omitted fields keep their stored values.

        Args:
            age: Age in years.
            sex: 'male' or 'female'.
            height: Height in cm.
            weight: Baseline weight in kg.
            surgery_date: ISO date of surgery.
        """
        if sex is not None and sex.strip().lower() not in ("male", "female"):
            return json.dumps({"status": "error", "message": "sex must be 'male' or 'female'"})
        if surgery_date:
            try:
                date.fromisoformat(surgery_date)
            except ValueError:
                return json.dumps({"status": "error", "message": f"Invalid surgery_date {surgery_date!r}"})

        demographics, rescored = recovery_log.set_demographics(
            age=age,
            sex=sex.strip().lower() if sex else None,
            height=height,
            weight=weight,
            surgery_date=surgery_date or None,
        )
        return json.dumps({
            "status": "saved",
            "demographics": demographics.to_dict(),
            "surgery_date": recovery_log.get_profile().get("surgery_date"),
            "entries_rescored": rescored,
        })

    @mcp.tool
    async def get_patient_demographics(ctx: Context) -> str:
        """Get the demographics used for scoring (defaults fill unset fields)."""
        profile = recovery_log.get_profile()
        return json.dumps({
            "status": "ok",
            "demographics": recovery_log.get_demographics().to_dict(),
            "surgery_date": profile.get("surgery_date"),
            "stored_fields": sorted(profile),
        })

    @mcp.tool
    async def delete_all_recovery_data(
        ctx: Context,
        confirm: str = "",
    ) -> str:
        """Permanently delete ALL stored entries, sessions and the profile.

        Args:
            confirm: Must be exactly 'DELETE_ALL' to proceed.
        """
        if confirm != "DELETE_ALL":
            return json.dumps({
                "status": "cancelled",
                "message": (
                    "To delete all recovery data, call this tool with "
                    "confirm='DELETE_ALL'. This action cannot be undone."
                ),
            })

        count = recovery_log.repository.delete_all_data()
        return json.dumps({
            "status": "all_deleted",
            "entries_deleted": count,
            "message": "All recovery data has been permanently deleted.",
        })
