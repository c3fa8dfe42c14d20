"""Cardiac Recovery Probability Score (CRPS).

Converts one day's metric set plus patient demographics into a 0-100 score
built from five weighted categories:

    Functional capacity   (35)  METs (age-adjusted), 6-minute walk, VO2max
    Cardiovascular health (25)  SDNN, HR recovery, resting HR, ejection fraction
    Symptom burden        (20)  dyspnea, chest pain, fatigue, edema (inverted)
    Quality of life       (15)  self-reported QoL, sleep quality
    Risk modifiers        (±5)  blood pressure control, SpO2

The raw sum is scaled by an age-stratification multiplier and banded into an
interpretation. Metrics absent from the input are skipped, never zero-filled.
All computation is deterministic: no clock, no randomness.
"""

from __future__ import annotations

from typing import Any, Mapping

from crp.domains.recovery.domain_logic.bands import (
    Ladder,
    as_number,
    band_lookup,
    round_half_up,
    u_shaped_lookup,
)
from crp.domains.recovery.domain_logic.recovery_models import (
    DEFAULT_AGE,
    DEFAULT_HEIGHT_CM,
    DEFAULT_SEX,
    DEFAULT_WEIGHT_KG,
    Demographics,
    MetricDetail,
    ScoreBreakdown,
    normalize_metrics,
)

# ---------------------------------------------------------------------------
# Category maxima
# ---------------------------------------------------------------------------

FUNCTIONAL_CAPACITY_MAX = 35
CARDIOVASCULAR_HEALTH_MAX = 25
SYMPTOM_BURDEN_MAX = 20
QUALITY_OF_LIFE_MAX = 15
RISK_MODIFIER_RANGE = (-5, 5)

# ---------------------------------------------------------------------------
# Ladders
# ---------------------------------------------------------------------------

# Functional capacity: percentage of expected/predicted values
METS_PCT_LADDER = Ladder(">=", ((110, 15), (100, 13), (90, 11), (80, 9), (70, 7), (60, 5), (50, 3)))
WALK_PCT_LADDER = Ladder(">=", ((80, 15), (70, 12), (60, 9), (50, 6), (40, 3)))
VO2MAX_LADDER = Ladder(">=", ((28, 5), (24, 4), (20, 3), (16, 2), (12, 1)))

# Cardiovascular health
SDNN_LADDER = Ladder(">=", ((50, 8), (40, 6), (35, 5), (30, 4), (25, 3), (20, 2)))
HR_RECOVERY_LADDER = Ladder(">=", ((25, 7), (20, 6), (18, 5), (15, 4), (13, 2), (12, 1)))
RESTING_HR_LOWER_LADDER = Ladder(">=", ((50, 5),))
RESTING_HR_UPPER_LADDER = Ladder("<=", ((60, 5), (70, 4), (80, 3), (90, 2), (100, 1)))
EJECTION_FRACTION_LADDER = Ladder(">=", ((55, 5), (50, 4), (45, 3), (40, 2), (35, 1)))

# Symptom burden (0-10 self-report, edema 0-4): zero symptoms score highest
DYSPNEA_LADDER = Ladder("<=", ((0, 6), (2, 5), (4, 4), (6, 3), (8, 1)))
CHEST_PAIN_LADDER = Ladder("<=", ((0, 6), (1, 5), (2, 4), (4, 2), (7, 1)))
FATIGUE_LADDER = Ladder("<=", ((1, 4), (3, 3), (5, 2), (8, 1)))
EDEMA_LADDER = Ladder("<=", ((0, 4), (1, 3), (2, 2), (3, 1)))

# Quality of life
QUALITY_OF_LIFE_LADDER = Ladder(">=", ((90, 10), (80, 8), (70, 6), (60, 4), (50, 2)))
SLEEP_QUALITY_LADDER = Ladder(">=", ((9, 5), (7, 4), (5, 3), (3, 2), (1, 1)))

# Risk modifiers
SPO2_LADDER = Ladder(">=", ((98, 2), (95, 1), (92, 0)), default=-2)

# Blood pressure: both systolic and diastolic must sit under the band limits
BP_CONTROL_BANDS: tuple[tuple[float, float, int], ...] = (
    (120, 80, 3),
    (130, 85, 2),
    (140, 90, 1),
    (160, 100, 0),
)
BP_UNCONTROLLED_SCORE = -3

# Age stratification (deliberately stepped, not interpolated)
AGE_MULTIPLIER_LADDER = Ladder(">=", ((75, 1.12), (65, 1.08), (50, 1.00)), default=1.05)

# ---------------------------------------------------------------------------
# Interpretation bands: (lower bound, label, probability, color code, color name)
# ---------------------------------------------------------------------------

INTERPRETATION_BANDS: tuple[tuple[int, str, str, str, str], ...] = (
    (90, "SUPERIOR RECOVERY", "95-100% probability of full recovery", "#22c55e", "excellent"),
    (80, "EXCELLENT RECOVERY", "85-94% probability of full recovery", "#22c55e", "excellent"),
    (70, "VERY GOOD RECOVERY", "75-84% probability of full recovery", "#3b82f6", "better-than-average"),
    (60, "GOOD RECOVERY", "65-74% probability of full recovery", "#3b82f6", "better-than-average"),
    (50, "FAIR RECOVERY", "50-64% probability of full recovery", "#fbbf24", "average"),
    (40, "BELOW AVERAGE RECOVERY", "35-49% probability of full recovery", "#f97316", "below-average"),
    (30, "POOR RECOVERY", "20-34% probability of full recovery", "#ef4444", "poor"),
    (0, "HIGH RISK", "0-19% probability - Emergency evaluation required", "#ef4444", "critical"),
)


# ---------------------------------------------------------------------------
# Reference equations
# ---------------------------------------------------------------------------

def expected_mets(age: float) -> float:
    """Age-adjusted expected peak METs."""
    return 18.0 - 0.15 * age


def predicted_walk_distance(height: float, age: float, weight: float, sex: str) -> float:
    """Enright & Sherrill six-minute walk reference distance (m)."""
    if sex == "male":
        return 7.57 * height - 5.02 * age - 1.76 * weight - 309
    return 2.11 * height - 5.78 * age - 2.29 * weight + 667


def age_multiplier(age: float) -> float:
    return float(band_lookup(age, AGE_MULTIPLIER_LADDER))


def interpret_total(total: int) -> tuple[str, str, str, str]:
    """Return (interpretation, probability, color code, color name) for a total."""
    for lower, label, probability, color_code, color_name in INTERPRETATION_BANDS:
        if total >= lower:
            return label, probability, color_code, color_name
    # Only reachable for negative totals, which calculate_crps clamps away
    _, label, probability, color_code, color_name = INTERPRETATION_BANDS[-1]
    return label, probability, color_code, color_name


def _safe_percentage(actual: float, reference: float) -> float:
    """actual / reference * 100, or 0 when the reference is not positive."""
    if reference <= 0:
        return 0.0
    return actual / reference * 100


# ---------------------------------------------------------------------------
# Category scorers: each returns (subtotal, details)
# ---------------------------------------------------------------------------

def score_functional_capacity(
    metrics: Mapping[str, Any], *, age: float, height: float, sex: str, weight: float
) -> tuple[int, dict[str, MetricDetail]]:
    subtotal = 0
    details: dict[str, MetricDetail] = {}

    mets = as_number(metrics.get("mets"))
    if mets is not None:
        expected = expected_mets(age)
        pct = _safe_percentage(mets, expected)
        score = int(band_lookup(pct, METS_PCT_LADDER))
        subtotal += score
        details["mets"] = MetricDetail(score=score, value=mets, reference=expected, percentage=pct)

    walk = as_number(metrics.get("walkDistance"))
    if walk is not None:
        body_weight = as_number(metrics.get("weight")) or weight
        predicted = predicted_walk_distance(height, age, body_weight, sex)
        pct = _safe_percentage(walk, predicted)
        score = int(band_lookup(pct, WALK_PCT_LADDER))
        subtotal += score
        details["walkDistance"] = MetricDetail(score=score, value=walk, reference=predicted, percentage=pct)

    vo2 = as_number(metrics.get("vo2Max"))
    if vo2 is not None:
        score = int(band_lookup(vo2, VO2MAX_LADDER))
        subtotal += score
        details["vo2Max"] = MetricDetail(score=score, value=vo2)

    return subtotal, details


def score_cardiovascular_health(metrics: Mapping[str, Any]) -> tuple[int, dict[str, MetricDetail]]:
    subtotal = 0
    details: dict[str, MetricDetail] = {}

    for name, ladder in (
        ("sdnn", SDNN_LADDER),
        ("hrRecovery", HR_RECOVERY_LADDER),
        ("ejectionFraction", EJECTION_FRACTION_LADDER),
    ):
        value = as_number(metrics.get(name))
        if value is None:
            continue
        score = int(band_lookup(value, ladder))
        subtotal += score
        details[name] = MetricDetail(score=score, value=value)

    rhr = as_number(metrics.get("restingHR"))
    if rhr is not None:
        score = int(u_shaped_lookup(rhr, RESTING_HR_LOWER_LADDER, RESTING_HR_UPPER_LADDER))
        subtotal += score
        details["restingHR"] = MetricDetail(score=score, value=rhr)

    return subtotal, details


def score_symptom_burden(metrics: Mapping[str, Any]) -> tuple[int, dict[str, MetricDetail]]:
    subtotal = 0
    details: dict[str, MetricDetail] = {}

    for name, ladder in (
        ("dyspnea", DYSPNEA_LADDER),
        ("chestPain", CHEST_PAIN_LADDER),
        ("fatigue", FATIGUE_LADDER),
        ("edema", EDEMA_LADDER),
    ):
        value = as_number(metrics.get(name))
        if value is None:
            continue
        score = int(band_lookup(value, ladder))
        subtotal += score
        details[name] = MetricDetail(score=score, value=value)

    return subtotal, details


def score_quality_of_life(metrics: Mapping[str, Any]) -> tuple[int, dict[str, MetricDetail]]:
    subtotal = 0
    details: dict[str, MetricDetail] = {}

    for name, ladder in (
        ("qualityOfLife", QUALITY_OF_LIFE_LADDER),
        ("sleepQuality", SLEEP_QUALITY_LADDER),
    ):
        value = as_number(metrics.get(name))
        if value is None:
            continue
        score = int(band_lookup(value, ladder))
        subtotal += score
        details[name] = MetricDetail(score=score, value=value)

    return subtotal, details


def blood_pressure_score(systolic: float, diastolic: float) -> int:
    """Joint systolic/diastolic control score (+3 .. -3)."""
    for sys_limit, dia_limit, score in BP_CONTROL_BANDS:
        if systolic < sys_limit and diastolic < dia_limit:
            return score
    return BP_UNCONTROLLED_SCORE


def score_risk_modifiers(metrics: Mapping[str, Any]) -> tuple[int, dict[str, MetricDetail]]:
    subtotal = 0
    details: dict[str, MetricDetail] = {}

    systolic = as_number(metrics.get("bpSystolic"))
    diastolic = as_number(metrics.get("bpDiastolic"))
    if systolic is not None and diastolic is not None:
        score = blood_pressure_score(systolic, diastolic)
        subtotal += score
        details["bloodPressure"] = MetricDetail(score=score, value=f"{systolic:g}/{diastolic:g}")

    spo2 = as_number(metrics.get("oxygenSat"))
    if spo2 is not None:
        score = int(band_lookup(spo2, SPO2_LADDER))
        subtotal += score
        details["oxygenSat"] = MetricDetail(score=score, value=spo2)

    return subtotal, details


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def calculate_crps(
    metrics: Mapping[str, Any],
    age: float | None = DEFAULT_AGE,
    height: float | None = DEFAULT_HEIGHT_CM,
    sex: str | None = DEFAULT_SEX,
    *,
    weight: float | None = None,
) -> ScoreBreakdown:
    """Compute the Cardiac Recovery Probability Score for one day's metrics.

    Args:
        metrics: The day's MetricSet (camelCase vocabulary; ``spo2`` is
            accepted as an alias of ``oxygenSat``).
        age: Patient age in years. ``None`` falls back to the default.
        height: Height in cm, used by the 6-minute walk prediction.
        sex: 'male' or 'female'; selects the 6-minute walk equation.
        weight: Body weight in kg for the 6-minute walk prediction when the
            metric set carries no ``weight`` of its own.

    Returns:
        An immutable ScoreBreakdown. Never raises for absent metrics.
    """
    metrics = normalize_metrics(metrics)
    age = age if age is not None else DEFAULT_AGE
    height = height if height is not None else DEFAULT_HEIGHT_CM
    sex = sex if sex in ("male", "female") else DEFAULT_SEX
    weight = weight if weight is not None and weight > 0 else DEFAULT_WEIGHT_KG

    functional, functional_details = score_functional_capacity(
        metrics, age=age, height=height, sex=sex, weight=weight
    )
    cardiovascular, cardiovascular_details = score_cardiovascular_health(metrics)
    symptoms, symptom_details = score_symptom_burden(metrics)
    quality, quality_details = score_quality_of_life(metrics)
    modifiers, modifier_details = score_risk_modifiers(metrics)

    raw_total = functional + cardiovascular + symptoms + quality + modifiers
    multiplier = age_multiplier(age)
    total = max(0, min(100, round_half_up(raw_total * multiplier)))
    interpretation, probability, color_code, color_name = interpret_total(total)

    return ScoreBreakdown(
        functional_capacity=functional,
        cardiovascular_health=cardiovascular,
        symptom_burden=symptoms,
        quality_of_life=quality,
        risk_modifiers=modifiers,
        raw_total=raw_total,
        age_multiplier=multiplier,
        total=total,
        interpretation=interpretation,
        probability=probability,
        color_code=color_code,
        color_name=color_name,
        details={
            **functional_details,
            **cardiovascular_details,
            **symptom_details,
            **quality_details,
            **modifier_details,
        },
    )


def calculate_crps_for(metrics: Mapping[str, Any], demographics: Demographics) -> ScoreBreakdown:
    """Compute CRPS using a Demographics record."""
    return calculate_crps(
        metrics,
        demographics.age,
        demographics.height,
        demographics.sex,
        weight=demographics.weight,
    )
