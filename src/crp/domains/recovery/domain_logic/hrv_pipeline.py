"""Heart-rate variability from RR intervals, plus rolling heart-rate stats.

All RR intervals are in milliseconds. HRV is always recomputed from the
full session buffer, never incrementally; a session with fewer than
``HRV_MIN_INTERVALS`` intervals still gets the values that are defined but
is flagged ``insufficient_data``.
"""

from __future__ import annotations

import math
import statistics
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from crp.domains.recovery.domain_logic.bands import as_number, round_half_up

HRV_MIN_INTERVALS = 10
PNN50_THRESHOLD_MS = 50.0

RHYTHM_SAMPLE_SIZE = 10
RHYTHM_IRREGULAR_DEVIATION = 10.0
HR_RECOVERY_TAIL = 5

DEFAULT_WINDOW_SIZE = 120


# ---------------------------------------------------------------------------
# HRV
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HRVResult:
    """Time-domain HRV metrics for one RR series."""

    sdnn: float | None
    rmssd: float | None
    pnn50: float | None
    count: int
    sufficient: bool

    @property
    def status(self) -> str:
        return "ok" if self.sufficient else "insufficient_data"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "sdnn": _round_or_none(self.sdnn, 1),
            "rmssd": _round_or_none(self.rmssd, 1),
            "pnn50": _round_or_none(self.pnn50, 1),
            "count": self.count,
            "sufficient": self.sufficient,
        }


def _round_or_none(value: float | None, digits: int) -> float | None:
    return round(value, digits) if value is not None else None


def compute_hrv(rr_intervals: Iterable[float]) -> HRVResult:
    """Compute SDNN, RMSSD and pNN50 from RR intervals in ms.

    SDNN is the population standard deviation. RMSSD and pNN50 are taken
    over successive differences, so both are None for fewer than two
    intervals; SDNN is None for an empty series.
    """
    rr = [value for value in (as_number(v) for v in rr_intervals) if value is not None]
    count = len(rr)
    sufficient = count >= HRV_MIN_INTERVALS

    if count == 0:
        return HRVResult(sdnn=None, rmssd=None, pnn50=None, count=0, sufficient=False)

    sdnn = statistics.pstdev(rr) if count > 1 else 0.0
    if count < 2:
        return HRVResult(sdnn=sdnn, rmssd=None, pnn50=None, count=count, sufficient=sufficient)

    diffs = [nxt - prev for prev, nxt in zip(rr, rr[1:])]
    rmssd = math.sqrt(sum(d * d for d in diffs) / len(diffs))
    nn50 = sum(1 for d in diffs if abs(d) > PNN50_THRESHOLD_MS)
    pnn50 = 100.0 * nn50 / len(diffs)

    return HRVResult(sdnn=sdnn, rmssd=rmssd, pnn50=pnn50, count=count, sufficient=sufficient)


class RRIntervalBuffer:
    """Append-only RR buffer for one recording session."""

    def __init__(self) -> None:
        self._intervals: list[float] = []

    def __len__(self) -> int:
        return len(self._intervals)

    def append(self, rr_ms: float) -> None:
        self._intervals.append(float(rr_ms))

    def extend(self, rr_values: Iterable[float]) -> None:
        for rr_ms in rr_values:
            self.append(rr_ms)

    def reset(self) -> None:
        self._intervals.clear()

    def snapshot(self) -> list[float]:
        return list(self._intervals)

    def hrv(self) -> HRVResult:
        return compute_hrv(self._intervals)


# ---------------------------------------------------------------------------
# Rolling heart-rate window
# ---------------------------------------------------------------------------

HR_ZONES: tuple[tuple[str, float], ...] = (
    ("resting", 60),
    ("light", 100),
    ("moderate", 140),
)
HR_TOP_ZONE = "high"


def heart_rate_zone(bpm: float) -> str:
    for name, upper in HR_ZONES:
        if bpm < upper:
            return name
    return HR_TOP_ZONE


class HeartRateWindow:
    """Bounded window of the most recent heart-rate samples (bpm)."""

    def __init__(self, maxlen: int = DEFAULT_WINDOW_SIZE) -> None:
        if maxlen < 1:
            raise ValueError("maxlen must be at least 1")
        self._samples: deque[float] = deque(maxlen=maxlen)

    def __len__(self) -> int:
        return len(self._samples)

    @property
    def maxlen(self) -> int:
        return self._samples.maxlen or 0

    def append(self, bpm: float) -> None:
        self._samples.append(float(bpm))

    def clear(self) -> None:
        self._samples.clear()

    def samples(self) -> list[float]:
        return list(self._samples)

    def stats(self) -> dict[str, Any]:
        if not self._samples:
            return {"count": 0, "min": None, "max": None, "mean": None}
        return {
            "count": len(self._samples),
            "min": min(self._samples),
            "max": max(self._samples),
            "mean": round(statistics.fmean(self._samples), 1),
        }

    def zone_distribution(self) -> dict[str, float]:
        """Percentage of window samples in each heart-rate zone."""
        names = [name for name, _ in HR_ZONES] + [HR_TOP_ZONE]
        counts = dict.fromkeys(names, 0)
        for bpm in self._samples:
            counts[heart_rate_zone(bpm)] += 1
        total = len(self._samples)
        if total == 0:
            return dict.fromkeys(names, 0.0)
        return {name: round(100.0 * n / total, 1) for name, n in counts.items()}

    def classify_rhythm(self) -> str:
        """Coarse rhythm label from the last few samples.

        Irregularity is the mean absolute deviation from the mean; it is
        checked before rate so an erratic series is never labelled by its
        average alone.
        """
        if len(self._samples) < RHYTHM_SAMPLE_SIZE:
            return "Analyzing"
        recent = list(self._samples)[-RHYTHM_SAMPLE_SIZE:]
        mean = statistics.fmean(recent)
        deviation = statistics.fmean(abs(bpm - mean) for bpm in recent)

        if deviation > RHYTHM_IRREGULAR_DEVIATION:
            return "Irregular"
        if mean > 100:
            return "Tachycardia"
        if mean < 60:
            return "Bradycardia"
        return "Normal Sinus"


# ---------------------------------------------------------------------------
# Session summary
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HRSessionSummary:
    """Aggregate of one heart-rate recording session."""

    duration_seconds: float
    sample_count: int
    avg_hr: float | None
    min_hr: float | None
    max_hr: float | None
    hr_recovery: int | None
    hrv: HRVResult
    rhythm: str = "Analyzing"
    zones: dict[str, float] = field(default_factory=dict)

    def to_metrics(self) -> dict[str, float | int]:
        """Metric-set fields this session can fill in for the day's entry."""
        metrics: dict[str, float | int] = {}
        if self.avg_hr is not None:
            metrics["restingHR"] = round_half_up(self.avg_hr)
        if self.max_hr is not None:
            metrics["maxHR"] = round_half_up(self.max_hr)
        if self.hr_recovery is not None:
            metrics["hrRecovery"] = self.hr_recovery
        if self.hrv.sufficient:
            metrics["sdnn"] = round_half_up(self.hrv.sdnn or 0.0)
            metrics["rmssd"] = round_half_up(self.hrv.rmssd or 0.0)
            metrics["pnn50"] = round(self.hrv.pnn50 or 0.0, 1)
        return metrics

    def to_dict(self) -> dict[str, Any]:
        return {
            "duration_seconds": round(self.duration_seconds, 1),
            "sample_count": self.sample_count,
            "avg_hr": _round_or_none(self.avg_hr, 1),
            "min_hr": self.min_hr,
            "max_hr": self.max_hr,
            "hr_recovery": self.hr_recovery,
            "rhythm": self.rhythm,
            "zones": dict(self.zones),
            "hrv": self.hrv.to_dict(),
            "metrics": self.to_metrics(),
        }


def summarize_session(
    heart_rates: Sequence[float],
    rr_intervals: Sequence[float] = (),
    duration_seconds: float = 0.0,
) -> HRSessionSummary:
    """Summarize a finished session from its HR samples and RR intervals.

    HR recovery is the peak minus the rounded mean of the final samples,
    approximating the drop after peak effort.
    """
    hr = [value for value in (as_number(v) for v in heart_rates) if value is not None and value > 0]
    hrv = compute_hrv(rr_intervals)

    window = HeartRateWindow(maxlen=max(len(hr), 1))
    for bpm in hr:
        window.append(bpm)

    if not hr:
        return HRSessionSummary(
            duration_seconds=duration_seconds,
            sample_count=0,
            avg_hr=None,
            min_hr=None,
            max_hr=None,
            hr_recovery=None,
            hrv=hrv,
            zones=window.zone_distribution(),
        )

    peak = max(hr)
    tail = hr[-HR_RECOVERY_TAIL:]
    recovery = int(round_half_up(peak) - round_half_up(statistics.fmean(tail)))

    return HRSessionSummary(
        duration_seconds=duration_seconds,
        sample_count=len(hr),
        avg_hr=statistics.fmean(hr),
        min_hr=min(hr),
        max_hr=peak,
        hr_recovery=max(0, recovery),
        hrv=hrv,
        rhythm=window.classify_rhythm(),
        zones=window.zone_distribution(),
    )
