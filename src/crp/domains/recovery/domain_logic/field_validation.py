"""Per-field validation rules for recovery metric entry.

Each known metric has an absolute ``[min, max]`` range plus optional warning
and critical bounds. Validation classifies one raw input value:

    none      nothing entered (empty or non-numeric)
    error     outside the absolute range; blocks acceptance of the field
    critical  inside the range but beyond a critical bound
    warning   beyond a warning bound
    good      everything else

These ladders gate *input correctness*. The composite alerts in
``clinical_alerts`` gate *save confirmation* and use their own thresholds.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping

from crp.domains.recovery.domain_logic.recovery_models import (
    METRIC_ALIASES,
    ValidationResult,
    normalize_metrics,
)


class InputRangeError(ValueError):
    """Raised when one or more fields fall outside their absolute range."""

    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors = dict(errors)
        fields = ", ".join(sorted(self.errors))
        super().__init__(f"Invalid values for: {fields}")


@dataclass(frozen=True)
class Bounds:
    min: float | None = None
    max: float | None = None


@dataclass(frozen=True)
class ValidationRule:
    min: float
    max: float
    unit: str = ""
    warning: Bounds | None = None
    critical: Bounds | None = None


VALIDATION_RULES: dict[str, ValidationRule] = {
    "restingHR": ValidationRule(30, 220, "bpm", warning=Bounds(40, 100), critical=Bounds(max=120)),
    "bpSystolic": ValidationRule(60, 250, "mmHg", warning=Bounds(90, 160), critical=Bounds(max=180)),
    "bpDiastolic": ValidationRule(40, 150, "mmHg", warning=Bounds(60, 100), critical=Bounds(max=110)),
    "vo2Max": ValidationRule(5, 80, "ml/kg/min", warning=Bounds(min=14), critical=Bounds(min=10)),
    "maxHR": ValidationRule(60, 220, "bpm", warning=Bounds(min=100)),
    "hrRecovery": ValidationRule(0, 100, "bpm", warning=Bounds(min=12)),
    "sdnn": ValidationRule(0, 200, "ms", warning=Bounds(min=20)),
    "rmssd": ValidationRule(0, 200, "ms", warning=Bounds(min=20)),
    "pnn50": ValidationRule(0, 100, "%", warning=Bounds(min=5)),
    "walkDistance": ValidationRule(0, 1000, "m", warning=Bounds(min=300)),
    "mets": ValidationRule(0, 20, "METs", warning=Bounds(min=5)),
    "ejectionFraction": ValidationRule(10, 90, "%", warning=Bounds(min=40), critical=Bounds(min=30)),
    "oxygenSat": ValidationRule(70, 100, "%", warning=Bounds(min=93), critical=Bounds(min=90)),
    "respRate": ValidationRule(5, 60, "/min", warning=Bounds(12, 25), critical=Bounds(max=30)),
    "weight": ValidationRule(30, 300, "kg"),
    "dyspnea": ValidationRule(0, 10, warning=Bounds(max=5), critical=Bounds(max=7)),
    "chestPain": ValidationRule(0, 10, warning=Bounds(max=2), critical=Bounds(max=3)),
    "fatigue": ValidationRule(0, 10, warning=Bounds(max=6)),
    "edema": ValidationRule(0, 4, warning=Bounds(max=2), critical=Bounds(max=3)),
    "qualityOfLife": ValidationRule(0, 100, warning=Bounds(min=50)),
    "sleepQuality": ValidationRule(0, 10, warning=Bounds(min=6)),
}

_NOT_ENTERED = ValidationResult(valid=True, level="none")


def _parse(raw_value: Any) -> float | None:
    """Parse a raw input value; None means "not entered"."""
    if raw_value is None or isinstance(raw_value, bool):
        return None
    if isinstance(raw_value, str):
        raw_value = raw_value.strip()
        if not raw_value:
            return None
    try:
        number = float(raw_value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def _fmt(value: float) -> str:
    return f"{value:g}"


def validate_field(field_name: str, raw_value: Any) -> ValidationResult:
    """Classify one raw input value against its field's rule."""
    rule = VALIDATION_RULES.get(METRIC_ALIASES.get(field_name, field_name))
    value = _parse(raw_value)
    if value is None or rule is None:
        return _NOT_ENTERED

    unit = f" {rule.unit}" if rule.unit else ""

    if value < rule.min or value > rule.max:
        return ValidationResult(
            valid=False,
            level="error",
            message=f"Invalid range: must be {_fmt(rule.min)}-{_fmt(rule.max)}{unit}",
        )

    critical = rule.critical
    if critical is not None:
        if critical.min is not None and value < critical.min:
            return ValidationResult(valid=True, level="critical", message=_critical_message(field_name, "low"))
        if critical.max is not None and value > critical.max:
            return ValidationResult(valid=True, level="critical", message=_critical_message(field_name, "high"))

    warning = rule.warning
    if warning is not None:
        if warning.min is not None and value < warning.min:
            return ValidationResult(
                valid=True,
                level="warning",
                message=f"Below recommended range ({_fmt(warning.min)}+{unit})",
            )
        if warning.max is not None and value > warning.max:
            return ValidationResult(
                valid=True,
                level="warning",
                message=f"Above recommended range (<{_fmt(warning.max)}{unit})",
            )

    return ValidationResult(valid=True, level="good")


def _critical_message(field_name: str, direction: str) -> str:
    if field_name == "chestPain":
        return "CRITICAL: Contact physician immediately"
    return f"CRITICAL: Dangerously {direction} - seek medical attention"


def validate_metric_set(metrics: Mapping[str, Any]) -> dict[str, ValidationResult]:
    """Validate every field of a metric set that has a rule."""
    return {
        name: validate_field(name, value)
        for name, value in normalize_metrics(metrics).items()
        if name in VALIDATION_RULES
    }


def ensure_valid_metrics(metrics: Mapping[str, Any]) -> None:
    """Raise InputRangeError if any field is outside its absolute range."""
    errors = {
        name: result.message or "Invalid value"
        for name, result in validate_metric_set(metrics).items()
        if not result.valid
    }
    if errors:
        raise InputRangeError(errors)


def validate_blood_pressure(systolic: Any, diastolic: Any) -> ValidationResult:
    """Validate a systolic/diastolic pair; systolic must exceed diastolic."""
    sys_result = validate_field("bpSystolic", systolic)
    if not sys_result.valid:
        return sys_result
    dia_result = validate_field("bpDiastolic", diastolic)
    if not dia_result.valid:
        return dia_result

    sys_value, dia_value = _parse(systolic), _parse(diastolic)
    if sys_value is None or dia_value is None:
        return _NOT_ENTERED
    if sys_value <= dia_value:
        return ValidationResult(
            valid=False,
            level="error",
            message="Systolic BP must be higher than Diastolic BP",
        )

    # Report the more severe of the two single-field levels
    severity = ("good", "warning", "critical")
    return max(sys_result, dia_result, key=lambda r: severity.index(r.level))


def check_rule_table(rules: Mapping[str, ValidationRule] = VALIDATION_RULES) -> list[str]:
    """Return a list of rule-construction problems (empty when consistent).

    A critical bound must lie strictly inside ``[min, max]`` and at or beyond
    the matching warning bound; otherwise a value could be classified as
    critical before it is ever a warning, or never be reachable at all.
    """
    problems: list[str] = []
    for name, rule in rules.items():
        if not rule.min < rule.max:
            problems.append(f"{name}: min {rule.min} is not below max {rule.max}")
        for label, bounds in (("warning", rule.warning), ("critical", rule.critical)):
            if bounds is None:
                continue
            for side in ("min", "max"):
                bound = getattr(bounds, side)
                if bound is not None and not rule.min < bound < rule.max:
                    problems.append(f"{name}: {label}.{side}={bound} outside ({rule.min}, {rule.max})")

        critical, warning = rule.critical, rule.warning
        if critical is None or warning is None:
            continue
        if critical.min is not None and warning.min is not None and critical.min > warning.min:
            problems.append(f"{name}: critical.min {critical.min} above warning.min {warning.min}")
        if critical.max is not None and warning.max is not None and critical.max < warning.max:
            problems.append(f"{name}: critical.max {critical.max} below warning.max {warning.max}")
    return problems
