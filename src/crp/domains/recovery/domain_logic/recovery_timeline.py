"""Post-operative recovery timeline: phase, weekly protocol, VO2 trajectory."""

from __future__ import annotations

import datetime as dt
from dataclasses import asdict, dataclass
from typing import Any, Iterable, Mapping

from crp.domains.recovery.domain_logic.bands import as_number

# (first day after surgery the phase applies to, label); day 0 is surgery day
RECOVERY_PHASES: tuple[tuple[int, str], ...] = (
    (84, "Phase 5: Return to Function"),
    (56, "Phase 4: Advanced Training"),
    (28, "Phase 3: Progressive Training"),
    (14, "Phase 2: Early Mobilization"),
    (0, "Phase 1: Hospital/Early"),
)
PRE_SURGERY = "Pre-Surgery"

DEFAULT_BASELINE_VO2 = 12.0   # typical post-cardiac-surgery baseline
DEFAULT_TARGET_VO2 = 28.0
CURVE_EXPONENT = 0.6
BASELINE_WINDOW_DAYS = 14


def _as_date(value: dt.date | str) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    return dt.date.fromisoformat(str(value))


@dataclass(frozen=True)
class RecoveryPhase:
    days_since_surgery: int
    day: int | None        # 1-based recovery day, None before surgery
    week: int              # completed weeks post-op, 0 before surgery
    phase: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def recovery_phase(surgery_date: dt.date | str, on_date: dt.date | str | None = None) -> RecoveryPhase:
    """Locate ``on_date`` (default today) on the recovery timeline."""
    surgery = _as_date(surgery_date)
    current = _as_date(on_date) if on_date is not None else dt.date.today()
    days = (current - surgery).days

    if days < 0:
        return RecoveryPhase(days_since_surgery=days, day=None, week=0, phase=PRE_SURGERY)

    phase = next(label for start, label in RECOVERY_PHASES if days >= start)
    return RecoveryPhase(days_since_surgery=days, day=days + 1, week=days // 7, phase=phase)


# ---------------------------------------------------------------------------
# Week-by-week exercise protocol
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProtocolWeek:
    week: int
    phase: str
    title: str
    mets: str
    duration: str
    frequency: str
    rpe: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


_PROTOCOL: tuple[tuple[str, str, str, str, str, str], ...] = (
    ("Early Recovery", "Gentle Movement", "1-2 METs", "5-10 minutes", "2-3 times daily", "6-11 (Very light to light)"),
    ("Early Recovery", "Building Endurance", "2-3 METs", "10-15 minutes", "2-3 times daily", "11-13 (Light to somewhat hard)"),
    ("Early Recovery", "Expanding Activity", "2-3 METs", "15-20 minutes", "2-3 times daily", "11-13 (Light to somewhat hard)"),
    ("Progressive Recovery", "Increasing Intensity", "3-4 METs", "20-30 minutes", "3-5 times per week", "12-14 (Somewhat hard)"),
    ("Progressive Recovery", "Building Strength", "4-5 METs", "30 minutes", "3-5 times per week", "13-15 (Somewhat hard to hard)"),
    ("Progressive Recovery", "Milestone Week", "4-6 METs", "30-40 minutes", "4-5 times per week", "13-15 (Somewhat hard to hard)"),
    ("Advanced Recovery", "Advancing Exercise", "5-7 METs", "40 minutes", "4-5 times per week", "14-16 (Hard)"),
    ("Advanced Recovery", "Establishing Routine", "5-7 METs", "40-45 minutes", "5 times per week", "14-16 (Hard)"),
    ("Advanced Recovery", "Optimizing Fitness", "6-8 METs", "45 minutes", "5-6 times per week", "15-17 (Hard to very hard)"),
    ("Maintenance", "Performance Building", "6-9 METs", "45-60 minutes", "5-6 times per week", "15-18 (Hard to very hard)"),
    ("Maintenance", "Peak Performance", "7-10 METs", "60 minutes", "5-6 times per week", "16-18 (Very hard)"),
    ("Maintenance", "Full Recovery Milestone", "7-10+ METs", "60+ minutes", "5-7 times per week", "12-18 (Variable based on activity)"),
)

_MAINTENANCE = ("Long-term Maintenance", "Ongoing Maintenance", "5-10+ METs", "45-60+ minutes",
                "5-7 times per week", "12-17 (Moderate to hard)")


def protocol_for_week(recovery_week: int) -> ProtocolWeek | None:
    """Exercise guidance for a 1-based recovery week; weeks past 12 get maintenance."""
    if recovery_week < 1:
        return None
    row = _PROTOCOL[recovery_week - 1] if recovery_week <= len(_PROTOCOL) else _MAINTENANCE
    phase, title, mets, duration, frequency, rpe = row
    return ProtocolWeek(
        week=recovery_week,
        phase=phase,
        title=f"Week {recovery_week}: {title}",
        mets=mets,
        duration=duration,
        frequency=frequency,
        rpe=rpe,
    )


# ---------------------------------------------------------------------------
# Expected VO2max trajectory
# ---------------------------------------------------------------------------

def expected_vo2_curve(
    baseline: float = DEFAULT_BASELINE_VO2,
    target: float = DEFAULT_TARGET_VO2,
    weeks: int = 12,
) -> list[float]:
    """Week-by-week expected VO2max, fast early gains flattening toward target.

    ``progress = (week / weeks) ** 0.6`` for week 0..weeks-1.
    """
    if weeks < 1:
        return []
    return [
        round(baseline + (target - baseline) * (week / weeks) ** CURVE_EXPONENT, 1)
        for week in range(weeks)
    ]


def baseline_vo2(
    entries: Iterable[tuple[str, Mapping[str, Any]]],
    surgery_date: dt.date | str,
) -> float | None:
    """First VO2max recorded within two weeks after surgery, if any."""
    surgery = _as_date(surgery_date)
    cutoff = surgery + dt.timedelta(days=BASELINE_WINDOW_DAYS)
    for entry_date, metrics in sorted(entries, key=lambda kv: kv[0]):
        day = _as_date(entry_date)
        if not surgery <= day <= cutoff:
            continue
        vo2 = as_number(metrics.get("vo2Max"))
        if vo2 is not None:
            return vo2
    return None


def personalized_vo2_curve(
    entries: Iterable[tuple[str, Mapping[str, Any]]],
    surgery_date: dt.date | str | None,
    target: float = DEFAULT_TARGET_VO2,
) -> dict[str, Any]:
    """Expected curve anchored on the patient's own early VO2max when known."""
    measured = baseline_vo2(entries, surgery_date) if surgery_date else None
    baseline = measured if measured is not None else DEFAULT_BASELINE_VO2
    return {
        "curve": expected_vo2_curve(baseline, target),
        "baseline": baseline,
        "target": target,
        "is_personalized": measured is not None,
    }
