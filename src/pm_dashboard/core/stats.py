"""Small numeric helpers shared by the analytics modules."""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime, timezone


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (``round(2.5) == 3``)."""
    return math.floor(value + 0.5)


def percentage(part: float, whole: float) -> int:
    """``round(100 * part / whole)``, 0 when *whole* is 0."""
    if not whole:
        return 0
    return round_half_up(100 * part / whole)


def mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def std_dev(values: Sequence[float]) -> float:
    """Population standard deviation."""
    if not values:
        return 0.0
    avg = mean(values)
    return math.sqrt(sum((v - avg) ** 2 for v in values) / len(values))


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Standard deviation as a percentage of the mean; 0 when the mean is 0."""
    avg = mean(values)
    if avg == 0:
        return 0.0
    return std_dev(values) / avg * 100


def linear_slope(values: Sequence[float]) -> float:
    """Least-squares slope of *values* against their index."""
    n = len(values)
    if n < 2:
        return 0.0
    sum_x = n * (n - 1) / 2
    sum_y = sum(values)
    sum_xy = sum(i * v for i, v in enumerate(values))
    sum_x2 = sum(i * i for i in range(n))
    denom = n * sum_x2 - sum_x * sum_x
    if denom == 0:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denom


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from *start* to *end*, rounded up."""
    return math.ceil(abs((end - start).total_seconds()) / 86400)
