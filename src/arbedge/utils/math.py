"""
Numeric helpers for score calculations.

Scores are published as integers in [0, 100] and must round the way the
dashboards expect (half up), not Python's banker's rounding.
"""

import math


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    """
    Constrain a value to ``[low, high]``.

    NaN collapses to ``low``.

    Example:
        >>> clamp(150.0)
        100.0
        >>> clamp(-3.0)
        0.0
    """
    if math.isnan(value):
        return low
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer, ties going up.

    Example:
        >>> round_half_up(62.5)
        63
        >>> round_half_up(62.4)
        62
    """
    return math.floor(value + 0.5)
