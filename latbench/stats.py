"""Descriptive statistics, bootstrap error estimates and linear regression."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

Number = Union[int, float]

BOOTSTRAP_COUNT = 200


def _all_ints(values: Sequence[Number]) -> bool:
    return all(isinstance(v, int) for v in values)


def _int_div(a: int, b: int) -> int:
    """Integer division that truncates toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


def median(values: Sequence[Number]) -> Number:
    """Median of the values; 0 for an empty sequence.

    Integer input gives an integer median (the mean of the two middle
    values is truncated toward zero).
    """
    ordered = sorted(values)
    size = len(ordered)
    if size == 0:
        return 0
    mid = size // 2
    if size % 2:
        return ordered[mid]
    low, high = ordered[mid - 1], ordered[mid]
    if isinstance(low, int) and isinstance(high, int):
        return _int_div(low + high, 2)
    return (low + high) / 2.0


def mean(values: Sequence[Number]) -> Number:
    """Arithmetic mean; integer input gives a truncated integer mean."""
    if not values:
        raise ValueError("mean of an empty sequence")
    total = sum(values)
    if _all_ints(values):
        return _int_div(total, len(values))
    return total / float(len(values))


def minimum(values: Sequence[Number]) -> Number:
    """Smallest value."""
    if not values:
        raise ValueError("minimum of an empty sequence")
    return min(values)


def maximum(values: Sequence[Number]) -> Number:
    """Largest value."""
    if not values:
        raise ValueError("maximum of an empty sequence")
    return max(values)


def variance(values: Sequence[Number]) -> float:
    """Sample variance with an n - 1 denominator."""
    if len(values) < 2:
        raise ValueError("variance needs at least two values")
    centre = mean(values)
    total = sum(float((v - centre) * (v - centre)) for v in values)
    return total / float(len(values) - 1)


def moment(order: int, values: Sequence[Number]) -> float:
    """Central moment of the given order (orders below 1 act as 1)."""
    if not values:
        raise ValueError("moment of an empty sequence")
    centre = mean(values)
    power = max(order, 1)
    total = sum(float(v - centre) ** power for v in values)
    return total / float(len(values))


def stderr(values: Sequence[Number]) -> float:
    """Standard deviation of the sample."""
    return math.sqrt(variance(values))


def skew(values: Sequence[Number]) -> float:
    """Third central moment over the cube of the standard deviation."""
    sigma = stderr(values)
    if sigma == 0.0:
        raise ValueError("skew is undefined for zero variance")
    return moment(3, values) / (sigma * sigma * sigma)


def kurtosis(values: Sequence[Number]) -> float:
    """Excess kurtosis: fourth moment over squared variance, minus 3."""
    var = variance(values)
    if var == 0.0:
        raise ValueError("kurtosis is undefined for zero variance")
    return moment(4, values) / (var * var) - 3


def bootstrap_stderr(
    values: Sequence[Number],
    statistic: Callable[[Sequence[Number]], Number],
    rng: Optional[random.Random] = None,
) -> float:
    """Bootstrap estimate of the standard error of ``statistic``."""
    if not values:
        raise ValueError("bootstrap of an empty sequence")
    rng = rng if rng is not None else random.Random()
    size = len(values)
    estimates = [
        float(statistic(rng.choices(values, k=size))) for _ in range(BOOTSTRAP_COUNT)
    ]
    centre = sum(estimates) / float(BOOTSTRAP_COUNT)
    spread = sum((s - centre) * (s - centre) for s in estimates)
    return math.sqrt(spread / float(BOOTSTRAP_COUNT - 1))


@dataclass(frozen=True)
class Regression:
    """Fit of y = a + b*x with error estimates and chi-square."""

    a: float
    b: float
    sig_a: float
    sig_b: float
    chi2: float


def regression(
    x: Sequence[float],
    y: Sequence[float],
    sig: Optional[Sequence[float]] = None,
) -> Regression:
    """Weighted least-squares line through (x, y).

    ``sig`` gives the standard deviation of each y; without it every
    point has unit weight and the coefficient errors are scaled by the
    goodness of fit.
    """
    n = len(x)
    if len(y) != n or (sig is not None and len(sig) != n):
        raise ValueError("x, y and sig must have the same length")
    if n < 2:
        raise ValueError("regression needs at least two points")
    if sig is None and n < 3:
        raise ValueError("unweighted regression needs at least three points")

    sigmas = list(sig) if sig is not None else [1.0] * n

    s_total = sx = sy = 0.0
    for xi, yi, si in zip(x, y, sigmas):
        weight = 1.0 / (si * si)
        s_total += weight
        sx += weight * xi
        sy += weight * yi

    sx_s = sx / s_total
    stt = 0.0
    b = 0.0
    for xi, yi, si in zip(x, y, sigmas):
        t_i = (xi - sx_s) / si
        stt += t_i * t_i
        b += t_i * yi / si
    if stt == 0.0:
        raise ValueError("all x values are equal")

    b /= stt
    a = (sy - b * sx) / s_total
    sig_a = math.sqrt((1.0 + (sx * sx) / (s_total * stt)) / s_total)
    sig_b = math.sqrt(1.0 / stt)

    chi2 = 0.0
    for xi, yi, si in zip(x, y, sigmas):
        merit = (yi - (a + b * xi)) / si
        chi2 += merit * merit

    if sig is None:
        scale = math.sqrt(chi2 / (n - 2))
        sig_a *= scale
        sig_b *= scale

    return Regression(a=a, b=b, sig_a=sig_a, sig_b=sig_b, chi2=chi2)