"""Composite clinical alerts raised when a day's metrics are saved.

Alerts are independent of the per-field validation ladders: they decide
whether a save needs explicit acknowledgement, not whether a value is
acceptable input. URGENT alerts mean "contact a clinician now", WARNING
alerts mean "review before saving".
"""

from __future__ import annotations

import logging
import operator
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from crp.domains.recovery.domain_logic.bands import as_number
from crp.domains.recovery.domain_logic.recovery_models import (
    AlertEvent,
    AlertSeverity,
    normalize_metrics,
)

logger = logging.getLogger(__name__)

WEIGHT_GAIN_THRESHOLD_KG = 2.0


@dataclass(frozen=True)
class AlertRule:
    metric: str
    label: str
    compare: Callable[[float, float], bool]
    threshold: float
    severity: AlertSeverity
    action: str
    display: str = "{value:g}"


ALERT_RULES: tuple[AlertRule, ...] = (
    AlertRule(
        "chestPain", "Chest Pain", operator.gt, 3, "URGENT",
        "Contact your physician IMMEDIATELY. Do not wait.",
        display="{value:g}/10",
    ),
    AlertRule(
        "oxygenSat", "Oxygen Saturation", operator.lt, 90, "URGENT",
        "Dangerously low oxygen - seek immediate medical attention",
        display="{value:g}%",
    ),
    AlertRule(
        "ejectionFraction", "Ejection Fraction", operator.lt, 30, "URGENT",
        "Severely reduced heart function - notify cardiologist",
        display="{value:g}%",
    ),
    AlertRule(
        "bpSystolic", "Blood Pressure (Systolic)", operator.gt, 180, "URGENT",
        "Hypertensive crisis - seek emergency care",
        display="{value:g} mmHg",
    ),
    AlertRule(
        "restingHR", "Resting Heart Rate", operator.gt, 100, "WARNING",
        "Elevated heart rate - monitor closely and discuss with provider",
        display="{value:g} bpm",
    ),
    AlertRule(
        "dyspnea", "Shortness of Breath", operator.gt, 7, "WARNING",
        "Severe breathing difficulty - contact medical team",
        display="{value:g}/10",
    ),
    AlertRule(
        "edema", "Swelling (Edema)", operator.ge, 3, "WARNING",
        "Significant fluid retention - may indicate heart failure",
        display="{value:g}/4",
    ),
)


def evaluate_clinical_alerts(
    metrics: Mapping[str, Any],
    prior_day_metrics: Mapping[str, Any] | None = None,
) -> list[AlertEvent]:
    """Evaluate every composite alert rule against one day's metrics.

    Args:
        metrics: The day's metric set (``spo2`` is accepted for
            ``oxygenSat``).
        prior_day_metrics: Metrics of the most recent earlier entry that
            recorded a weight; the weight-gain rule is skipped without one.

    Returns:
        Alerts in rule order; URGENT rules are listed first.
    """
    metrics = normalize_metrics(metrics)
    alerts: list[AlertEvent] = []

    for rule in ALERT_RULES:
        value = as_number(metrics.get(rule.metric))
        if value is None or not rule.compare(value, rule.threshold):
            continue
        alerts.append(AlertEvent(
            severity=rule.severity,
            metric=rule.metric,
            label=rule.label,
            value=value,
            display_value=rule.display.format(value=value),
            action=rule.action,
        ))

    gain = weight_gain(metrics, prior_day_metrics)
    if gain is not None and gain > WEIGHT_GAIN_THRESHOLD_KG:
        alerts.append(AlertEvent(
            severity="WARNING",
            metric="weight",
            label="Weight Gain",
            value=round(gain, 1),
            display_value=f"+{gain:.1f} kg",
            action="Rapid weight gain may indicate fluid retention",
        ))

    if alerts:
        logger.debug("Clinical alerts raised: %s", [a.metric for a in alerts])
    return alerts


def weight_gain(
    metrics: Mapping[str, Any],
    prior_day_metrics: Mapping[str, Any] | None,
) -> float | None:
    """Weight change in kg since the prior entry, or None when unknown."""
    if not prior_day_metrics:
        return None
    current = as_number(metrics.get("weight"))
    previous = as_number(prior_day_metrics.get("weight"))
    if current is None or not previous:
        return None
    return current - previous


def has_urgent_alerts(alerts: list[AlertEvent]) -> bool:
    return any(alert.severity == "URGENT" for alert in alerts)


def summarize_alerts(alerts: list[AlertEvent]) -> str:
    """One-line headline shown when a save needs confirmation."""
    if not alerts:
        return ""
    urgent = sum(1 for alert in alerts if alert.severity == "URGENT")
    if urgent:
        noun = "ALERT" if urgent == 1 else "ALERTS"
        return f"{urgent} URGENT {noun} detected. Immediate medical attention may be required."
    warnings = len(alerts)
    noun = "WARNING" if warnings == 1 else "WARNINGS"
    return f"{warnings} {noun} detected. Please review these values carefully."
