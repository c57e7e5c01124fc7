"""Completion tolerance bands around a planned quantity."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from .records import to_quantity

MIN_TOLERANCE = 50
MAX_TOLERANCE = 2000

# (exclusive upper bound of planned quantity, tolerance percentage)
TOLERANCE_TIERS = (
    (Decimal("1000"), Decimal("0.10")),
    (Decimal("5000"), Decimal("0.075")),
    (Decimal("10000"), Decimal("0.05")),
)
TOP_TIER_PERCENT = Decimal("0.03")


class CompletionState(str, Enum):
    INCOMPLETE = "incomplete"
    WITHIN_RANGE = "within_range"
    OVER_LIMIT = "over_limit"


@dataclass(frozen=True)
class ToleranceBand:
    lower: int
    upper: int

    def completion_threshold(self, planned_qty: float) -> float:
        return max(0, planned_qty - self.lower)

    def completion_threshold_upper(self, planned_qty: float) -> float:
        return planned_qty + self.upper


def _tier_percent(planned: Decimal) -> Decimal:
    for bound, percent in TOLERANCE_TIERS:
        if planned < bound:
            return percent
    return TOP_TIER_PERCENT


def tolerance_band(planned_qty: float) -> ToleranceBand:
    """Return the absolute slack allowed either side of ``planned_qty``.

    The percentage shrinks as the order grows; the result is rounded half up
    and clamped to ``[MIN_TOLERANCE, MAX_TOLERANCE]``.  Non-numeric or
    non-finite input is treated as zero.
    """

    planned = Decimal(str(to_quantity(planned_qty)))
    raw = (planned * _tier_percent(planned)).to_integral_value(rounding=ROUND_HALF_UP)
    tolerance = max(MIN_TOLERANCE, min(int(raw), MAX_TOLERANCE))
    return ToleranceBand(lower=tolerance, upper=tolerance)


thresholds = tolerance_band


def completion_state(produced: float, completion_threshold: float, completion_threshold_upper: float) -> CompletionState:
    if produced < completion_threshold:
        return CompletionState.INCOMPLETE
    if produced > completion_threshold_upper:
        return CompletionState.OVER_LIMIT
    return CompletionState.WITHIN_RANGE


__all__ = [
    "CompletionState",
    "MAX_TOLERANCE",
    "MIN_TOLERANCE",
    "ToleranceBand",
    "completion_state",
    "thresholds",
    "tolerance_band",
]
