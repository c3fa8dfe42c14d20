"""Five-level cardiovascular risk stratification from a day's metrics.

Each contributing metric is scored independently against an absolute
threshold ladder; the summed score maps to an ordinal level:

    1 Low · 2 Below Average · 3 Average · 4 Above Average · 5 High

A date with none of the contributing metrics has no level (``None``), which
is distinct from level 1: "no data" is not "low risk". Dates are evaluated
independently, with no smoothing or hysteresis across a series.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from crp.domains.recovery.domain_logic.bands import Ladder, as_number, band_lookup
from crp.domains.recovery.domain_logic.recovery_models import normalize_metrics

# ---------------------------------------------------------------------------
# Contributing metrics, in evaluation order
# ---------------------------------------------------------------------------

RISK_LADDERS: dict[str, Ladder] = {
    "vo2Max": Ladder("<", ((12, 4), (16, 3), (20, 2), (24, 1))),
    "hrRecovery": Ladder("<", ((10, 4), (14, 3), (18, 2), (22, 1))),
    # Weighted heaviest: severely reduced EF alone reaches "Average"
    "ejectionFraction": Ladder("<", ((30, 5), (35, 4), (40, 3), (50, 2), (55, 1))),
    "restingHR": Ladder(">", ((100, 4), (90, 3), (80, 2), (70, 1))),
    "walkDistance": Ladder("<", ((250, 4), (350, 3), (400, 2), (450, 1))),
    "chestPain": Ladder(">", ((5, 3), (3, 2))),
    "dyspnea": Ladder(">", ((6, 3), (4, 2))),
}

RISK_LEVEL_LADDER = Ladder(">=", ((10, 5), (7, 4), (4, 3), (2, 2)), default=1)

RISK_LEVEL_LABELS = {
    1: "Low",
    2: "Below Average",
    3: "Average",
    4: "Above Average",
    5: "High",
}


@dataclass(frozen=True)
class RiskAssessment:
    """Risk score, level and per-metric contributions for one date."""

    score: int
    level: int | None
    contributions: dict[str, int] = field(default_factory=dict)

    @property
    def label(self) -> str:
        if self.level is None:
            return "No Data"
        return RISK_LEVEL_LABELS[self.level]

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "level": self.level,
            "label": self.label,
            "contributions": dict(self.contributions),
        }


def assess_risk(metrics: Mapping[str, Any]) -> RiskAssessment:
    """Score every contributing metric present and map the sum to a level."""
    metrics = normalize_metrics(metrics)
    contributions: dict[str, int] = {}

    for name, ladder in RISK_LADDERS.items():
        value = as_number(metrics.get(name))
        if value is None:
            continue
        contributions[name] = int(band_lookup(value, ladder))

    if not contributions:
        return RiskAssessment(score=0, level=None)

    score = sum(contributions.values())
    level = int(band_lookup(score, RISK_LEVEL_LADDER))
    return RiskAssessment(score=score, level=level, contributions=contributions)


def risk_level(metrics: Mapping[str, Any]) -> int | None:
    """Return the 1-5 risk level for a metric set, or None without data."""
    return assess_risk(metrics).level


def risk_by_date(
    entries: Mapping[str, Mapping[str, Any]] | Iterable[tuple[str, Mapping[str, Any]]],
) -> list[tuple[str, int | None]]:
    """Evaluate risk independently per date, ordered by ISO date.

    Args:
        entries: ``{date: metrics}`` or an iterable of ``(date, metrics)``.

    Returns:
        ``[(date, level_or_None), ...]`` sorted ascending by date.
    """
    items = entries.items() if isinstance(entries, Mapping) else entries
    return [(date, risk_level(metrics)) for date, metrics in sorted(items, key=lambda kv: kv[0])]


# ---------------------------------------------------------------------------
# Population comparison (VO2max against cardiac-patient norms)
# ---------------------------------------------------------------------------

VO2_NORMS = {
    "poor": 14.0,
    "fair": 20.0,
    "good": 24.0,
    "excellent": 28.0,
}

_POPULATION_RISK_LADDERS: dict[str, Ladder] = {
    "vo2Max": Ladder("<", ((14, 3), (20, 2), (24, 1))),
    "hrRecovery": Ladder("<", ((12, 3), (18, 2), (22, 1))),
    "ejectionFraction": Ladder("<", ((30, 3), (40, 2), (50, 1))),
    "restingHR": Ladder(">", ((90, 2), (80, 1))),
}

_POPULATION_RISK_LEVELS = Ladder(">=", ((6, "HIGH"), (3, "MODERATE")), default="LOW")


def vo2_percentile(vo2: float) -> float:
    """Piecewise-linear percentile of a VO2max value against the norms."""
    poor, fair, good, excellent = (
        VO2_NORMS["poor"], VO2_NORMS["fair"], VO2_NORMS["good"], VO2_NORMS["excellent"],
    )
    if vo2 >= excellent:
        return 90 + min(10.0, (vo2 - excellent) / 2)
    if vo2 >= good:
        return 75 + (vo2 - good) / (excellent - good) * 15
    if vo2 >= fair:
        return 50 + (vo2 - fair) / (good - fair) * 25
    if vo2 >= poor:
        return 25 + (vo2 - poor) / (fair - poor) * 25
    return max(0.0, vo2 / poor * 25)


def compare_to_population(metrics: Mapping[str, Any]) -> dict[str, Any]:
    """Compare the latest metrics to cardiac-rehab population norms."""
    metrics = normalize_metrics(metrics)
    vo2 = as_number(metrics.get("vo2Max"))

    percentile: float | None = None
    position = "No data"
    if vo2 is not None and vo2 > 0:
        percentile = vo2_percentile(vo2)
        if percentile >= 75:
            position = "Excellent"
        elif percentile >= 50:
            position = "Above Average"
        elif percentile >= 25:
            position = "Average"
        else:
            position = "Below Average"

    score = 0
    for name, ladder in _POPULATION_RISK_LADDERS.items():
        value = as_number(metrics.get(name))
        if value is not None and value > 0:
            score += int(band_lookup(value, ladder))

    return {
        "vo2_max": vo2,
        "percentile": round(percentile, 1) if percentile is not None else None,
        "position": position,
        "risk_level": band_lookup(score, _POPULATION_RISK_LEVELS),
        "risk_score": score,
        "population_average_vo2": VO2_NORMS["fair"],
        "good_threshold_vo2": VO2_NORMS["good"],
    }
