"""Longitudinal trends over the stored recovery log.

Direction labels account for whether a metric improves upward (VO2max,
walk distance) or downward (resting HR, blood pressure, symptom scores), so
"improving" always means clinically better.
"""

from __future__ import annotations

import datetime as dt
import logging
import statistics
from typing import Any

from crp.core.storage.repository import RecoveryRepository
from crp.domains.recovery.domain_logic.bands import as_number
from crp.domains.recovery.domain_logic.recovery_models import METRIC_UNITS, NUMERIC_METRICS
from crp.domains.recovery.domain_logic.risk_stratifier import RISK_LEVEL_LABELS, assess_risk

logger = logging.getLogger(__name__)

LOWER_IS_BETTER = frozenset({
    "restingHR",
    "bpSystolic",
    "bpDiastolic",
    "respRate",
    "dyspnea",
    "chestPain",
    "fatigue",
    "edema",
})

# Metrics where neither direction is inherently better
NEUTRAL_METRICS = frozenset({"weight", "maxHR", "qrsDuration", "rrInterval"})

# Fractional change below which a trend is "stable"
STABLE_TOLERANCE = 0.03

WEEKLY_COMPARISON_METRICS: tuple[tuple[str, str], ...] = (
    ("vo2Max", "VO2 Max"),
    ("restingHR", "Resting HR"),
    ("hrRecovery", "HR Recovery"),
    ("sdnn", "SDNN (HRV)"),
    ("rmssd", "RMSSD (HRV)"),
    ("walkDistance", "6MWD"),
    ("mets", "METs"),
    ("ejectionFraction", "Ejection Fraction"),
    ("oxygenSat", "Oxygen Saturation"),
    ("bpSystolic", "Systolic BP"),
    ("bpDiastolic", "Diastolic BP"),
    ("qualityOfLife", "Quality of Life"),
)


def _direction(recent: float, older: float, *, higher_is_better: bool | None) -> str:
    """Classify the move from ``older`` to ``recent``."""
    scale = abs(older) if older else 1.0
    change = (recent - older) / scale
    if abs(change) <= STABLE_TOLERANCE:
        return "stable"
    if higher_is_better is None:
        return "increasing" if change > 0 else "decreasing"
    better = change > 0 if higher_is_better else change < 0
    return "improving" if better else "declining"


def _series_direction(values: list[float], *, higher_is_better: bool | None) -> str:
    """Compare the older half with the newer half (values oldest first)."""
    if len(values) < 2:
        return "insufficient_data"
    if len(values) >= 4:
        mid = len(values) // 2
        older = statistics.mean(values[:mid])
        recent = statistics.mean(values[mid:])
    else:
        older, recent = values[0], values[-1]
    return _direction(recent, older, higher_is_better=higher_is_better)


def higher_is_better(metric: str) -> bool | None:
    if metric in NEUTRAL_METRICS:
        return None
    return metric not in LOWER_IS_BETTER


class RecoveryTrendAnalyzer:
    """Computes metric, CRPS and risk trends from the recovery log.

    Usage::

        analyzer = RecoveryTrendAnalyzer(repository)
        analyzer.metric_trend("vo2Max", days=30)
        analyzer.risk_timeline()
    """

    def __init__(self, repository: RecoveryRepository) -> None:
        self._repo = repository

    @property
    def repository(self) -> RecoveryRepository:
        return self._repo

    def _entries(self, days: int | None, until: str | None = None):
        since = None
        if days is not None:
            anchor = dt.date.fromisoformat(until) if until else dt.date.today()
            since = (anchor - dt.timedelta(days=days)).isoformat()
        return self._repo.get_entries(since=since, until=until)

    def metric_trend(
        self,
        metric: str,
        *,
        days: int | None = 90,
        until: str | None = None,
    ) -> dict[str, Any]:
        """Trend statistics for one numeric metric.

        Returns:
            Dict with current, previous, mean, median, min, max, change,
            direction and the ``(date, value)`` points, or
            ``status="no_data"`` when the metric was never recorded.
        """
        if metric not in NUMERIC_METRICS:
            raise ValueError(f"Unknown metric {metric!r}")

        points: list[tuple[str, float]] = []
        for entry in self._entries(days, until):
            value = as_number(entry.metrics.get(metric))
            if value is not None:
                points.append((entry.entry_date, value))

        if not points:
            return {"metric": metric, "data_points": 0, "status": "no_data"}

        values = [v for _, v in points]
        current = values[-1]
        previous = values[-2] if len(values) > 1 else None

        return {
            "metric": metric,
            "unit": METRIC_UNITS.get(metric, ""),
            "current": current,
            "previous": previous,
            "change": round(current - previous, 2) if previous is not None else None,
            "mean": round(statistics.mean(values), 2),
            "median": round(statistics.median(values), 2),
            "min": min(values),
            "max": max(values),
            "direction": _series_direction(values, higher_is_better=higher_is_better(metric)),
            "higher_is_better": higher_is_better(metric),
            "points": [{"date": d, "value": v} for d, v in points],
            "data_points": len(values),
        }

    def crps_trend(self, *, limit: int = 90) -> dict[str, Any]:
        """Trend of the stored CRPS totals (oldest first)."""
        history = self._repo.get_score_history(limit=limit)
        if not history:
            return {"data_points": 0, "status": "no_data"}

        values = [float(score) for _, score in history]
        best_date, best = max(history, key=lambda item: item[1])
        return {
            "current": history[-1][1],
            "first": history[0][1],
            "best": best,
            "best_date": best_date,
            "mean": round(statistics.mean(values), 1),
            "direction": _series_direction(values, higher_is_better=True),
            "points": [{"date": d, "score": s} for d, s in history],
            "data_points": len(history),
        }

    def risk_timeline(self, *, days: int | None = None, until: str | None = None) -> list[dict[str, Any]]:
        """Risk level per stored date, recomputed from the stored metrics.

        Each date is evaluated on its own; dates without contributing
        metrics report ``level=None``.
        """
        timeline = []
        for entry in self._entries(days, until):
            risk = assess_risk(entry.metrics)
            timeline.append({
                "date": entry.entry_date,
                "level": risk.level,
                "label": risk.label,
                "score": risk.score,
            })
        return timeline

    def weekly_improvements(self, *, until: str | None = None) -> list[dict[str, Any]]:
        """Metrics whose last-7-day average beat the previous 7 days.

        The window is anchored on the latest recorded date (or ``until``).
        Sorted by percentage change, largest first.
        """
        entries = self._repo.get_entries(until=until)
        if len(entries) < 2:
            return []

        latest = dt.date.fromisoformat(entries[-1].entry_date)
        week_ago = latest - dt.timedelta(days=7)
        two_weeks_ago = latest - dt.timedelta(days=14)

        current_week = [e for e in entries if dt.date.fromisoformat(e.entry_date) >= week_ago]
        previous_week = [
            e for e in entries
            if two_weeks_ago <= dt.date.fromisoformat(e.entry_date) < week_ago
        ]
        if not current_week or not previous_week:
            return []

        improvements = []
        for metric, name in WEEKLY_COMPARISON_METRICS:
            now_values = [v for v in (as_number(e.metrics.get(metric)) for e in current_week) if v is not None]
            before_values = [v for v in (as_number(e.metrics.get(metric)) for e in previous_week) if v is not None]
            if not now_values or not before_values:
                continue

            now_avg = statistics.mean(now_values)
            before_avg = statistics.mean(before_values)
            diff = now_avg - before_avg
            improved = diff > 0 if higher_is_better(metric) else diff < 0
            if not improved or before_avg == 0:
                continue
            improvements.append({
                "metric": metric,
                "name": name,
                "previous_average": round(before_avg, 1),
                "current_average": round(now_avg, 1),
                "change": round(diff, 1),
                "percent_change": round(abs(diff / before_avg) * 100, 1),
            })

        improvements.sort(key=lambda item: item["percent_change"], reverse=True)
        return improvements

    def get_log_summary(self) -> dict[str, Any]:
        count = self._repo.count_entries()
        if count == 0:
            return {"entries_available": 0, "status": "no_history"}
        dates = self._repo.list_dates()
        latest = self._repo.get_entry(dates[-1])
        return {
            "entries_available": count,
            "first_date": dates[0],
            "latest_date": dates[-1],
            "latest_crps": latest.crps_score if latest else None,
            "latest_risk": RISK_LEVEL_LABELS.get(latest.risk_level) if latest and latest.risk_level else None,
        }
