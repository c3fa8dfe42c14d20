"""MCP tools for stateless recovery scoring and signal processing.

These tools work on the metrics passed in and need no storage: CRPS, risk
stratification, field validation, clinical alerts, HRV, heart-rate session
summaries and the recovery timeline.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable

from fastmcp import Context, FastMCP

from crp.domains.recovery.domain_logic.clinical_alerts import (
    evaluate_clinical_alerts,
    has_urgent_alerts,
    summarize_alerts,
)
from crp.domains.recovery.domain_logic.crps_calculator import calculate_crps
from crp.domains.recovery.domain_logic.field_validation import (
    validate_blood_pressure,
    validate_field,
    validate_metric_set,
)
from crp.domains.recovery.domain_logic.heart_rate_stream import (
    HeartRateMonitor,
    HeartRateParseError,
    parse_heart_rate_measurement,
)
from crp.domains.recovery.domain_logic.hrv_pipeline import compute_hrv, summarize_session
from crp.domains.recovery.domain_logic.recovery_models import Demographics
from crp.domains.recovery.domain_logic.recovery_timeline import (
    DEFAULT_BASELINE_VO2,
    expected_vo2_curve,
    protocol_for_week,
    recovery_phase,
)
from crp.domains.recovery.domain_logic.risk_stratifier import assess_risk, compare_to_population

logger = logging.getLogger(__name__)


def register_recovery_scoring_tools(
    mcp: FastMCP,
    *,
    profile_source: Callable[[], dict[str, Any]] | None = None,
    default_surgery_date: str = "",
    hr_window_size: int = 120,
    hr_queue_size: int = 256,
) -> None:
    """Register the stateless scoring tools on the MCP server.

    Args:
        profile_source: Returns the stored patient profile; used to fill in
            demographics and surgery date the caller leaves out.
        default_surgery_date: Configured fallback surgery date.
        hr_window_size: Rolling window length for heart-rate replay.
        hr_queue_size: Queue bound for heart-rate replay.
    """

    def _profile() -> dict[str, Any]:
        return profile_source() if profile_source is not None else {}

    @mcp.tool
    async def calculate_recovery_score(
        ctx: Context,
        metrics: dict[str, Any],
        age: int | None = None,
        sex: str | None = None,
        height: float | None = None,
        weight: float | None = None,
    ) -> str:
        """Calculate the Cardiac Recovery Probability Score (0-100) for one day.

        Args:
            metrics: Day's metrics keyed by camelCase name (e.g. restingHR,
                vo2Max, walkDistance, chestPain). 'spo2' is accepted for oxygenSat.
            age: Age in years (defaults to the stored profile, then 50).
            sex: 'male' or 'female' (defaults to the stored profile, then female).
            height: Height in cm (defaults to the stored profile, then 170).
            weight: Weight in kg for the 6-minute walk prediction.
        """
        stored = Demographics.from_profile(_profile())
        breakdown = calculate_crps(
            metrics,
            age if age is not None else stored.age,
            height if height is not None else stored.height,
            sex if sex is not None else stored.sex,
            weight=weight if weight is not None else stored.weight,
        )
        return json.dumps({"status": "ok", **breakdown.to_dict()})

    @mcp.tool
    async def assess_cardiac_risk(
        ctx: Context,
        metrics: dict[str, Any],
    ) -> str:
        """Stratify cardiovascular risk (1 Low .. 5 High) and compare to population norms.

        A metric set with none of the contributing metrics returns level null
        ("No Data"), never level 1.

        Args:
            metrics: Day's metrics keyed by camelCase name.
        """
        assessment = assess_risk(metrics)
        return json.dumps({
            "status": "ok" if assessment.level is not None else "no_data",
            "risk": assessment.to_dict(),
            "population": compare_to_population(metrics),
        })

    @mcp.tool
    async def validate_metric(
        ctx: Context,
        field: str = "",
        value: Any = None,
        metrics: dict[str, Any] | None = None,
        bp_systolic: float | None = None,
        bp_diastolic: float | None = None,
    ) -> str:
        """Validate metric input against clinical ranges.

        Pass a single ``field``/``value``, a whole ``metrics`` dict, or a
        systolic/diastolic pair. Levels: none, good, warning, critical, error.
        Only 'error' blocks saving.
        """
        results: dict[str, Any] = {}
        if field:
            results[field] = validate_field(field, value).to_dict()
        if metrics:
            results.update({name: r.to_dict() for name, r in validate_metric_set(metrics).items()})
        if bp_systolic is not None and bp_diastolic is not None:
            results["bloodPressure"] = validate_blood_pressure(bp_systolic, bp_diastolic).to_dict()

        if not results:
            return json.dumps({"status": "error", "message": "Provide field/value, metrics, or a BP pair."})
        return json.dumps({
            "status": "ok",
            "valid": all(r["valid"] for r in results.values()),
            "results": results,
        })

    @mcp.tool
    async def check_clinical_alerts(
        ctx: Context,
        metrics: dict[str, Any],
        prior_weight: float | None = None,
    ) -> str:
        """Check a day's metrics for urgent and warning clinical alerts.

        Args:
            metrics: Day's metrics keyed by camelCase name.
            prior_weight: Most recent earlier weight (kg) for the rapid
                weight-gain check; skipped when omitted.
        """
        prior = {"weight": prior_weight} if prior_weight is not None else None
        alerts = evaluate_clinical_alerts(metrics, prior)
        return json.dumps({
            "status": "ok",
            "alert_count": len(alerts),
            "has_urgent_alerts": has_urgent_alerts(alerts),
            "summary": summarize_alerts(alerts),
            "alerts": [alert.to_dict() for alert in alerts],
        })

    @mcp.tool
    async def compute_hrv_metrics(
        ctx: Context,
        rr_intervals: list[float],
    ) -> str:
        """Compute SDNN, RMSSD and pNN50 from RR intervals in milliseconds.

        Fewer than 10 intervals still returns the defined values, flagged
        status 'insufficient_data'.
        """
        return json.dumps(compute_hrv(rr_intervals).to_dict())

    @mcp.tool
    async def summarize_heart_rate_session(
        ctx: Context,
        heart_rates: list[float] | None = None,
        rr_intervals: list[float] | None = None,
        packets_hex: list[str] | None = None,
        duration_seconds: float = 0.0,
    ) -> str:
        """Summarize a recorded heart-rate session.

        Provide either raw samples (``heart_rates`` in bpm and optional
        ``rr_intervals`` in ms) or BLE Heart Rate Measurement packets as hex
        strings, which are replayed in order through the live monitor.
        The ``metrics`` field of the result can be saved with the day's entry.
        """
        if packets_hex:
            try:
                payloads = [bytes.fromhex(packet) for packet in packets_hex]
                for payload in payloads:
                    parse_heart_rate_measurement(payload)
            except (ValueError, HeartRateParseError) as exc:
                return json.dumps({"status": "error", "message": f"Bad heart-rate packet: {exc}"})

            summary, live = await _replay_packets(
                payloads, duration_seconds, window_size=hr_window_size, queue_size=hr_queue_size,
            )
            return json.dumps({"status": "ok", "source": "ble", "live": live, **summary.to_dict()})

        if not heart_rates:
            return json.dumps({"status": "error", "message": "Provide heart_rates or packets_hex."})

        summary = summarize_session(heart_rates, rr_intervals or [], duration_seconds)
        return json.dumps({"status": "ok", "source": "samples", **summary.to_dict()})

    @mcp.tool
    async def recovery_phase_info(
        ctx: Context,
        surgery_date: str = "",
        on_date: str = "",
        baseline_vo2: float | None = None,
    ) -> str:
        """Where the patient is on the recovery timeline, with weekly guidance.

        Args:
            surgery_date: ISO date of surgery (defaults to the stored profile,
                then the configured SURGERY_DATE).
            on_date: ISO date to evaluate (default today).
            baseline_vo2: Early post-op VO2max to anchor the expected curve.
        """
        surgery = surgery_date or str(_profile().get("surgery_date") or "") or default_surgery_date
        if not surgery:
            return json.dumps({
                "status": "error",
                "message": "No surgery date known. Pass surgery_date or set it on the profile.",
            })
        try:
            phase = recovery_phase(surgery, on_date or None)
        except ValueError as exc:
            return json.dumps({"status": "error", "message": f"Invalid date: {exc}"})

        protocol = protocol_for_week(phase.week + 1) if phase.day is not None else None
        baseline = baseline_vo2 if baseline_vo2 is not None else DEFAULT_BASELINE_VO2
        return json.dumps({
            "status": "ok",
            "surgery_date": surgery,
            **phase.to_dict(),
            "protocol": protocol.to_dict() if protocol else None,
            "expected_vo2_curve": expected_vo2_curve(baseline),
        })


async def _replay_packets(
    payloads: list[bytes],
    duration_seconds: float,
    *,
    window_size: int,
    queue_size: int,
):
    """Feed recorded packets through a HeartRateMonitor session."""
    ticks = iter((0.0, float(duration_seconds)))
    monitor = HeartRateMonitor(
        window_size=window_size,
        queue_size=queue_size,
        clock=lambda: next(ticks, float(duration_seconds)),
    )
    consumer = asyncio.create_task(monitor.run())
    try:
        await monitor.start_session()
        for payload in payloads:
            await monitor.publish_raw(payload)
        await monitor.join()
        live = monitor.live_status()
        summary = await monitor.stop_session()
    finally:
        consumer.cancel()
        try:
            await consumer
        except asyncio.CancelledError:
            pass
    return summary, live
