"""Recovery metric vocabulary, patient demographics, and result types."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal, Mapping, Union

from crp.domains.recovery.domain_logic.bands import as_number

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Metric vocabulary (shared by validation, alerts, CRPS and risk)
# ---------------------------------------------------------------------------

NUMERIC_METRICS = (
    "restingHR",
    "maxHR",
    "hrRecovery",
    "bpSystolic",
    "bpDiastolic",
    "vo2Max",
    "mets",
    "walkDistance",
    "sdnn",
    "rmssd",
    "pnn50",
    "ejectionFraction",
    "oxygenSat",
    "respRate",
    "weight",
    "dyspnea",
    "chestPain",
    "fatigue",
    "edema",
    "qualityOfLife",
    "sleepQuality",
    "qrsDuration",
    "rrInterval",
)

TEXT_METRICS = ("ecgRhythm", "stressLevel", "notes")

# Alternate field names accepted on input -> canonical vocabulary name
METRIC_ALIASES = {
    "spo2": "oxygenSat",
}

METRIC_UNITS = {
    "restingHR": "bpm",
    "maxHR": "bpm",
    "hrRecovery": "bpm",
    "bpSystolic": "mmHg",
    "bpDiastolic": "mmHg",
    "vo2Max": "ml/kg/min",
    "mets": "METs",
    "walkDistance": "m",
    "sdnn": "ms",
    "rmssd": "ms",
    "pnn50": "%",
    "ejectionFraction": "%",
    "oxygenSat": "%",
    "respRate": "/min",
    "weight": "kg",
    "qrsDuration": "ms",
    "rrInterval": "ms",
}

MetricValue = Union[float, int, str]
MetricSet = dict[str, MetricValue]


def normalize_metrics(metrics: Mapping[str, Any] | None) -> MetricSet:
    """Return a copy of ``metrics`` with aliases folded into canonical names.

    ``None`` values are dropped (a metric is either present or absent). When
    both an alias and its canonical field are present the alias value wins
    (``spo2`` over ``oxygenSat``).
    """
    metrics = metrics or {}
    normalized: MetricSet = {}
    for key, value in metrics.items():
        if value is None:
            continue
        canonical = METRIC_ALIASES.get(key, key)
        if canonical == key and any(
            metrics.get(alias) is not None
            for alias, target in METRIC_ALIASES.items()
            if target == key
        ):
            continue
        normalized[canonical] = value
    return normalized


def coerce_numeric_metrics(metrics: Mapping[str, Any]) -> MetricSet:
    """Keep only storable values: numeric fields must be finite numbers.

    Numeric strings become numbers; anything else on a numeric field
    (non-numeric text, NaN, infinity) is dropped as not measured. Text
    fields pass through unchanged.
    """
    coerced: MetricSet = {}
    for name, value in metrics.items():
        if name in TEXT_METRICS:
            coerced[name] = value
            continue
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if math.isfinite(value):
                coerced[name] = value
            else:
                logger.debug("Dropping non-finite %s", name)
            continue
        if name not in NUMERIC_METRICS:
            coerced[name] = value
            continue
        number = as_number(value)
        if number is None:
            logger.debug("Dropping non-numeric %s=%r", name, value)
            continue
        coerced[name] = int(number) if number.is_integer() else number
    return coerced


# ---------------------------------------------------------------------------
# Demographics
# ---------------------------------------------------------------------------

Sex = Literal["male", "female"]

DEFAULT_AGE = 50
DEFAULT_SEX: Sex = "female"
DEFAULT_HEIGHT_CM = 170.0
DEFAULT_WEIGHT_KG = 70.0


@dataclass(frozen=True)
class Demographics:
    """Patient demographics used for age/sex-adjusted scoring."""

    age: int = DEFAULT_AGE
    sex: Sex = DEFAULT_SEX
    height: float = DEFAULT_HEIGHT_CM   # cm
    weight: float = DEFAULT_WEIGHT_KG   # kg

    @classmethod
    def from_profile(cls, profile: Mapping[str, Any] | None) -> Demographics:
        """Build demographics from a stored profile, defaulting unset fields."""
        profile = profile or {}

        age = _positive(profile.get("age"), cast=int)
        height = _positive(profile.get("height"), cast=float)
        weight = _positive(profile.get("weight"), cast=float)

        sex = str(profile.get("sex") or "").strip().lower()
        if sex not in ("male", "female"):
            if sex:
                logger.debug("Unrecognised sex %r in profile; using default", sex)
            sex = DEFAULT_SEX

        return cls(
            age=age if age is not None else DEFAULT_AGE,
            sex=sex,  # type: ignore[arg-type]
            height=height if height is not None else DEFAULT_HEIGHT_CM,
            weight=weight if weight is not None else DEFAULT_WEIGHT_KG,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"age": self.age, "sex": self.sex, "height": self.height, "weight": self.weight}


def _positive(value: Any, *, cast) -> Any:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = cast(float(value))
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MetricDetail:
    """How a single metric contributed to a score."""

    score: float
    value: Any
    reference: float | None = None     # expected METs, predicted 6MW distance
    percentage: float | None = None    # value / reference * 100

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"score": self.score, "value": self.value}
        if self.reference is not None:
            data["reference"] = round(self.reference, 1)
        if self.percentage is not None:
            data["percentage"] = round(self.percentage)
        return data


@dataclass(frozen=True)
class ScoreBreakdown:
    """Cardiac Recovery Probability Score with its category breakdown.

    Snapshot semantics: never mutated after construction. ``details`` is a
    read-only mapping.
    """

    functional_capacity: int      # 0-35
    cardiovascular_health: int    # 0-25
    symptom_burden: int           # 0-20
    quality_of_life: int          # 0-15
    risk_modifiers: int           # -5..+5
    raw_total: int
    age_multiplier: float
    total: int                    # 0-100
    interpretation: str
    probability: str
    color_code: str
    color_name: str
    details: Mapping[str, MetricDetail] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))

    def to_dict(self) -> dict[str, Any]:
        """Render the persisted (camelCase) snapshot shape."""
        return {
            "total": self.total,
            "rawTotal": self.raw_total,
            "ageMultiplier": self.age_multiplier,
            "functionalCapacity": self.functional_capacity,
            "cardiovascularHealth": self.cardiovascular_health,
            "symptomBurden": self.symptom_burden,
            "qualityOfLife": self.quality_of_life,
            "riskModifiers": self.risk_modifiers,
            "interpretation": self.interpretation,
            "probability": self.probability,
            "colorCode": self.color_code,
            "colorName": self.color_name,
            "details": {name: detail.to_dict() for name, detail in self.details.items()},
        }


ValidationLevel = Literal["none", "good", "warning", "critical", "error"]


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one field value."""

    valid: bool
    level: ValidationLevel
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"valid": self.valid, "level": self.level}
        if self.message:
            data["message"] = self.message
        return data


AlertSeverity = Literal["URGENT", "WARNING"]


@dataclass(frozen=True)
class AlertEvent:
    """A composite clinical alert raised for one day's metrics."""

    severity: AlertSeverity
    metric: str           # vocabulary key, e.g. 'chestPain'
    label: str            # display name, e.g. 'Chest Pain'
    value: float
    display_value: str    # e.g. '4/10', '88%'
    action: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity,
            "metric": self.metric,
            "label": self.label,
            "value": self.value,
            "display_value": self.display_value,
            "action": self.action,
        }
