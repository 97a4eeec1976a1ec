"""
outliers.py — Interquartile-range outlier rule shared by the moving-average
and regression paths.
"""

import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

IQR_FACTOR = 1.5
MIN_POINTS = 4


def to_number(value) -> float:
    """Coerce a raw value to float; anything non-numeric counts as 0."""
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(v) or math.isinf(v) else v


def iqr_bounds(values: Sequence, factor: float = IQR_FACTOR) -> Optional[Tuple[float, float]]:
    """
    (lower, upper) bounds from positional quartiles of the sorted values.
    Q1 = sorted[floor(n/4)], Q3 = sorted[floor(3n/4)]; no interpolation.
    None when there are fewer than MIN_POINTS values.
    """
    if len(values) < MIN_POINTS:
        return None
    ordered = np.sort(np.array([to_number(v) for v in values], dtype=float))
    n = len(ordered)
    q1 = ordered[int(math.floor(n * 0.25))]
    q3 = ordered[int(math.floor(n * 0.75))]
    iqr = q3 - q1
    return float(q1 - factor * iqr), float(q3 + factor * iqr)


def find_outliers(values: Sequence, factor: float = IQR_FACTOR) -> List[int]:
    """Indices of values lying strictly outside the IQR bounds."""
    bounds = iqr_bounds(values, factor)
    if bounds is None:
        return []
    lower, upper = bounds
    return [i for i, v in enumerate(values) if not (lower <= to_number(v) <= upper)]
