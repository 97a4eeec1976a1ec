"""
moving_average.py — Trailing moving average with outlier flags.

The window at index i covers series[max(0, i - window + 1) .. i]; the first
points therefore average over fewer values. Outlier flags come from the IQR
rule on the raw values and do not depend on the window.
"""

import logging
from dataclasses import replace
from typing import List, Optional

import pandas as pd

from analyzer.models import Granularity, Metric, PeriodBucket, metric_value
from analyzer.outliers import find_outliers, to_number
from analyzer.regression import guess_granularity, with_rates

logger = logging.getLogger(__name__)

MIN_MEANINGFUL_POINTS = 3


def trailing_mean(values: List[float], window_size: int) -> List[float]:
    """Left-clamped trailing mean; the window is capped at len(values)."""
    if not values:
        return []
    window = min(window_size, len(values))
    series = pd.Series([to_number(v) for v in values], dtype=float)
    return [float(v) for v in series.rolling(window=window, min_periods=1).mean()]


def moving_average(
    series: List[PeriodBucket],
    window_size: int,
    metric: Metric,
    relative: bool = False,
    granularity: Optional[Granularity] = None,
) -> List[PeriodBucket]:
    """
    Copy of the series with moving_average and is_outlier filled in.
    With relative=True the average runs over events per school day and the
    returned buckets carry those rates.
    A window smaller than 2 returns the input unchanged.
    """
    if window_size < 2 or not series:
        return series

    if relative:
        series = with_rates(series, metric, granularity or guess_granularity(series))
    values = [to_number(metric_value(b, metric, relative)) for b in series]
    averages = trailing_mean(values, window_size)
    outliers = set(find_outliers(values))

    return [
        replace(b, moving_average=avg, is_outlier=i in outliers)
        for i, (b, avg) in enumerate(zip(series, averages))
    ]


def prepare_moving_average_series(
    series: List[PeriodBucket],
    window_size: int,
    metric: Metric,
    relative: bool = False,
    granularity: Optional[Granularity] = None,
) -> List[PeriodBucket]:
    """Chart-ready variant: [] when the series is too short to be meaningful."""
    if len(series) < MIN_MEANINGFUL_POINTS:
        logger.debug("Moving average skipped: only %d points", len(series))
        return []
    return moving_average(series, window_size, metric, relative, granularity)
