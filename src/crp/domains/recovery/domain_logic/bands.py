"""Threshold ladders and the single band-lookup routine used by every scorer.

A ladder is an ordered list of ``(bound, score)`` steps plus a comparison and
a default. Evaluation walks the steps in order and returns the score of the
first step whose bound the value satisfies, or the default when none match::

    METS_LADDER = Ladder(">=", ((110, 15), (100, 13), (90, 11)), default=0)
    band_lookup(104.0, METS_LADDER)  # -> 13

Step order is checked at construction so that first-match evaluation is
always the "tightest" band: ``>=``/``>`` ladders must have strictly
descending bounds, ``<=``/``<`` ladders strictly ascending ones.
"""

from __future__ import annotations

import math
import operator
from dataclasses import dataclass
from typing import Callable, Literal, Union

Comparison = Literal[">=", ">", "<=", "<"]
Score = Union[int, float, str]

_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    ">=": operator.ge,
    ">": operator.gt,
    "<=": operator.le,
    "<": operator.lt,
}


class LadderError(ValueError):
    """Raised when a ladder table is malformed."""


@dataclass(frozen=True)
class Ladder:
    """An ordered threshold table evaluated by :func:`band_lookup`."""

    comparison: Comparison
    steps: tuple[tuple[float, Score], ...]
    default: Score = 0

    def __post_init__(self) -> None:
        if self.comparison not in _OPERATORS:
            raise LadderError(f"Unknown comparison: {self.comparison!r}")
        if not self.steps:
            raise LadderError("Ladder needs at least one step")

        bounds = [bound for bound, _ in self.steps]
        descending = self.comparison in (">=", ">")
        for prev, nxt in zip(bounds, bounds[1:]):
            if descending and not nxt < prev:
                raise LadderError(f"Bounds must be strictly descending for {self.comparison!r}: {bounds}")
            if not descending and not nxt > prev:
                raise LadderError(f"Bounds must be strictly ascending for {self.comparison!r}: {bounds}")

    @property
    def max_score(self) -> Score:
        return max([score for _, score in self.steps] + [self.default])

    @property
    def min_score(self) -> Score:
        return min([score for _, score in self.steps] + [self.default])


def band_lookup(value: float, ladder: Ladder) -> Score:
    """Return the score of the first ladder step ``value`` satisfies."""
    compare = _OPERATORS[ladder.comparison]
    for bound, score in ladder.steps:
        if compare(value, bound):
            return score
    return ladder.default


def u_shaped_lookup(value: float, lower: Ladder, upper: Ladder) -> Score:
    """Score a value whose optimum sits in the middle of its range.

    ``lower`` penalizes values below the optimum, ``upper`` values above it;
    the result is the smaller of the two so the score can only drop when
    moving away from the optimum in either direction.
    """
    return min(band_lookup(value, lower), band_lookup(value, upper))


def as_number(value) -> float | None:
    """Return ``value`` as a finite float, or None when it isn't one.

    Booleans and non-numeric strings are treated as "not measured".
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (7.5 -> 8)."""
    return int(math.floor(value + 0.5))
