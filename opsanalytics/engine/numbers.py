"""
Numeric helpers shared by the aggregators.

Zero-length reductions return None rather than 0, and no helper ever lets a
division by zero surface as NaN, infinity or an exception.
"""

import math
from collections.abc import Iterable
from typing import Optional


def average(values: Iterable[float]) -> Optional[float]:
    """Arithmetic mean, or None for an empty sequence."""
    items = list(values)
    if not items:
        return None
    return sum(items) / len(items)


def safe_ratio(numerator: float, denominator: float) -> Optional[float]:
    """numerator / denominator, or None when the denominator is zero."""
    if not denominator:
        return None
    result = numerator / denominator
    return result if math.isfinite(result) else None


def period_change(first: float, second: float) -> float:
    """
    Relative change from ``first`` to ``second``.

    When ``first`` is zero the change is 1.0 if ``second`` is positive and
    0.0 otherwise.
    """
    if first == 0:
        return 1.0 if second > 0 else 0.0
    return (second - first) / first


def round_money(value: float) -> float:
    return round(value, 2)


def round_ratio(value: Optional[float]) -> Optional[float]:
    return round(value, 4) if value is not None else None


def round_duration(value: Optional[float]) -> Optional[float]:
    return round(value, 2) if value is not None else None
