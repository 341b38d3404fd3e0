# ABOUTME: Small numeric helpers shared by the trend, risk, and cohort engines.
# ABOUTME: Implements least-squares trend fitting, direction thresholds, and rank statistics.

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .schemas import TrendDirection

TREND_SLOPE_THRESHOLD = 0.1


@dataclass(frozen=True)
class LinearFit:
    slope: float
    intercept: float
    confidence: float  # R^2 clamped to [0, 1]


def fit_linear_trend(values: Sequence[float], x: Optional[Sequence[float]] = None) -> LinearFit:
    """
    Ordinary least squares fit of `values` against `x` (defaults to 0..n-1).

    Fewer than two points, or no spread in `x`, yields a flat fit with zero
    confidence. A constant series fits perfectly and reports confidence 1.
    """

    y = np.asarray(values, dtype=float)
    n = y.shape[0]
    if n < 2:
        return LinearFit(slope=0.0, intercept=float(y[0]) if n else 0.0, confidence=0.0)

    xs = np.arange(n, dtype=float) if x is None else np.asarray(x, dtype=float)
    sum_x = xs.sum()
    sum_y = y.sum()
    denominator = n * np.dot(xs, xs) - sum_x * sum_x
    if denominator == 0:
        return LinearFit(slope=0.0, intercept=float(sum_y / n), confidence=0.0)

    slope = (n * np.dot(xs, y) - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n

    ss_res = float(np.sum((y - (slope * xs + intercept)) ** 2))
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    r_squared = 1.0 if ss_tot == 0 else 1.0 - ss_res / ss_tot

    return LinearFit(slope=float(slope), intercept=float(intercept), confidence=float(np.clip(r_squared, 0.0, 1.0)))


def direction_for_slope(slope: float, threshold: float = TREND_SLOPE_THRESHOLD) -> TrendDirection:
    if slope > threshold:
        return TrendDirection.IMPROVING
    if slope < -threshold:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


def median(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.median(np.asarray(values, dtype=float)))


def percentile_rank(value: float, population: Sequence[float]) -> int:
    """Percentile rank counting ties as half below: (below + 0.5 * equal) / n * 100."""

    if len(population) == 0:
        return 0
    arr = np.asarray(population, dtype=float)
    below = int(np.sum(arr < value))
    equal = int(np.sum(arr == value))
    return int(round_half_up((below + 0.5 * equal) / arr.shape[0] * 100))


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves upward (0.5 -> 1, 2.5 -> 3) instead of to even."""

    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
