"""
regression.py — Least-squares trend line over a period series.

Steps:
- Optional conversion to events per school day
- IQR outlier flags, optionally excluded from the fit
- Normal equations on the design matrix [1, x] with x = 0..n-1
- R², a slope p-value and a textual trend label
- A one-step forecast point when R² > 0.2
"""

import logging
from dataclasses import replace
from datetime import date, timedelta
from typing import List, Optional, Tuple

import numpy as np
from scipy import stats as sp_stats

from analyzer.dates import days_in_month
from analyzer.models import (
    Granularity,
    Metric,
    PeriodBucket,
    RegressionOptions,
    RegressionResult,
    metric_value,
)
from analyzer.outliers import find_outliers, to_number
from analyzer.periods import MONTH_VARIANTS, normalize_label, sort_buckets

logger = logging.getLogger(__name__)

# Average school days per calendar month (holidays included)
SCHOOL_DAYS_PER_MONTH = {
    1: 19, 2: 17, 3: 20, 4: 14, 5: 17, 6: 16,
    7: 17, 8: 0, 9: 15, 10: 18, 11: 19, 12: 15,
}

PREDICTION_MIN_R2 = 0.2
STABLE_SLOPE = 0.01
FORECAST_LABEL = "Forecast"
# Year used only to place a bare week number into a month
_REFERENCE_YEAR = 2023


# ── School-day normalization ────────────────────────────────────────

def _infer_month(bucket: PeriodBucket) -> Optional[int]:
    if bucket.period_start is not None:
        # Thursday decides which month a week belongs to
        if bucket.label.startswith("KW"):
            return (bucket.period_start + timedelta(days=3)).month
        return bucket.period_start.month
    label = normalize_label(bucket.label)
    if label.startswith("KW"):
        week = min(int(label.split()[1]), 52)
        return date.fromisocalendar(_REFERENCE_YEAR, week, 4).month
    name = label.split(" ")[0].rstrip(".").lower()
    return MONTH_VARIANTS.get(name)


def school_days(bucket: PeriodBucket, granularity: Granularity) -> float:
    """Estimated school days covered by one bucket."""
    month = _infer_month(bucket)
    if month is None:
        return 0.0
    if granularity == Granularity.DAILY:
        return 1.0 if SCHOOL_DAYS_PER_MONTH[month] else 0.0
    monthly = SCHOOL_DAYS_PER_MONTH[month]
    if granularity == Granularity.MONTHLY:
        return float(monthly)
    year = bucket.period_start.year if bucket.period_start else _REFERENCE_YEAR
    weeks_in_month = days_in_month(year, month) / 7
    return monthly / weeks_in_month


def with_rates(series: List[PeriodBucket], metric: Metric, granularity: Granularity) -> List[PeriodBucket]:
    result = []
    for b in series:
        days = school_days(b, granularity)
        raw = to_number(metric_value(b, metric))
        rate = raw / days if days > 0 else 0.0
        result.append(replace(b, rate=rate))
    return result


def guess_granularity(series: List[PeriodBucket]) -> Granularity:
    label = normalize_label(series[0].label) if series else ""
    if label.startswith("KW"):
        return Granularity.WEEKLY
    if label.split(" ")[0].rstrip(".").lower() in MONTH_VARIANTS:
        return Granularity.MONTHLY
    return Granularity.DAILY


# ── Trend description ───────────────────────────────────────────────

def trend_label(slope: float, r_squared: float) -> str:
    """Direction, strength and reliability of a fitted slope."""
    if r_squared < 0.1:
        return "no clear trend (low correlation)"
    if abs(slope) < STABLE_SLOPE:
        return "stable"

    direction = "ascending" if slope > 0 else "descending"
    magnitude = abs(slope)
    if magnitude > 1.0:
        strength = "very strong"
    elif magnitude > 0.5:
        strength = "strong"
    elif magnitude > 0.2:
        strength = "moderate"
    else:
        strength = "slight"

    if r_squared > 0.7:
        reliability = "highly reliable"
    elif r_squared > 0.5:
        reliability = "reliable"
    elif r_squared > 0.3:
        reliability = "moderately reliable"
    else:
        reliability = "weakly reliable"
    return f"{strength} {direction} ({reliability})"


def _slope_p_value(x: np.ndarray, y: np.ndarray, slope: float, intercept: float) -> Optional[float]:
    n = len(x)
    if n <= 2:
        return None
    residuals = y - (intercept + slope * x)
    sxx = float(np.sum((x - x.mean()) ** 2))
    if sxx == 0:
        return None
    se = np.sqrt(float(np.sum(residuals ** 2)) / (n - 2) / sxx)
    if se == 0:
        return 0.0
    t_stat = slope / se
    return float(2 * sp_stats.t.sf(abs(t_stat), n - 2))


# ── Regression ──────────────────────────────────────────────────────

def fit_line(x: np.ndarray, y: np.ndarray) -> Tuple[float, float, float]:
    """(slope, intercept, r_squared) via beta = (XᵀX)⁻¹Xᵀy."""
    X = np.column_stack([np.ones(len(x)), x])
    beta = np.linalg.inv(X.T @ X) @ X.T @ y
    intercept, slope = float(beta[0]), float(beta[1])
    predictions = X @ beta
    rss = float(np.sum((y - predictions) ** 2))
    tss = float(np.sum((y - y.mean()) ** 2))
    r_squared = 1.0 - rss / tss if tss > 0 else 1.0
    return slope, intercept, max(0.0, min(1.0, r_squared))


def regress(
    series: List[PeriodBucket],
    metric: Metric,
    options: RegressionOptions = RegressionOptions(),
    granularity: Optional[Granularity] = None,
) -> Tuple[List[PeriodBucket], RegressionResult]:
    """
    Fit a trend line to the metric of a period series.
    Returns the annotated series (plus a forecast point when the fit allows)
    and the RegressionResult. Never raises for malformed values.
    """
    ordered = sort_buckets(b for b in series if not b.is_prediction)
    if not ordered:
        return [], RegressionResult(trend="no data available")

    if options.use_relative_values:
        ordered = with_rates(ordered, metric, granularity or guess_granularity(ordered))
    values = [to_number(metric_value(b, metric, options.use_relative_values)) for b in ordered]
    n = len(values)

    if n < 2:
        return ordered, RegressionResult(trend="unknown (too few data points)")

    outliers = find_outliers(values)
    used = [i for i in range(n) if not (options.exclude_outliers and i in outliers)]
    if len(used) < 2:
        annotated = [replace(b, is_outlier=i in outliers) for i, b in enumerate(ordered)]
        return annotated, RegressionResult(
            trend="unknown (too few data points after outlier removal)",
            outlier_indices=outliers,
        )

    x = np.array(used, dtype=float)
    y = np.array([values[i] for i in used], dtype=float)

    if np.all(y == y[0]):
        slope, intercept, r_squared = 0.0, float(y[0]), 1.0
        trend = "constant"
        p_value = None
    else:
        try:
            slope, intercept, r_squared = fit_line(x, y)
        except np.linalg.LinAlgError:
            logger.warning("Singular normal matrix for %d points", len(used))
            return ordered, RegressionResult(trend="unknown (singular system)", outlier_indices=outliers)
        trend = trend_label(slope, r_squared)
        p_value = _slope_p_value(x, y, slope, intercept)

    annotated = [
        replace(b, is_outlier=i in outliers, regression_line=intercept + slope * i)
        for i, b in enumerate(ordered)
    ]

    prediction = None
    if r_squared > PREDICTION_MIN_R2:
        prediction = intercept + slope * n
        last = annotated[-1]
        annotated.append(PeriodBucket(
            label=FORECAST_LABEL,
            sort_key=last.sort_key + 1,
            regression_line=prediction,
            is_prediction=True,
        ))

    logger.debug("Regression on %d points: slope=%.4f r2=%.3f", len(used), slope, r_squared)
    return annotated, RegressionResult(
        slope=slope,
        intercept=intercept,
        r_squared=r_squared,
        trend=trend,
        prediction=prediction,
        outlier_indices=outliers,
        p_value=p_value,
    )
