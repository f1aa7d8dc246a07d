"""Numeric helpers shared by the aggregation code."""

from __future__ import annotations

import math
from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal


def average(values: Sequence[float]) -> float:
    """Arithmetic mean; 0 for an empty sequence."""
    if not values:
        return 0
    return sum(values) / len(values)


def median(values: Sequence[float]) -> float:
    """Median of a sorted copy; mean of the two central values for even lengths."""
    if not values:
        return 0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def round_half_up(value: float, places: int = 0) -> float:
    """Round ``value`` with ties away from zero.

    Uses the exact binary value of the float, so ``1.005`` rounds to
    ``1.0`` at two places. Non-finite input yields 0.
    """
    if not math.isfinite(value):
        return 0.0
    exponent = Decimal(1).scaleb(-places)
    return float(Decimal(value).quantize(exponent, rounding=ROUND_HALF_UP))
