"""
periods.py — Groups classified entries into daily, weekly or monthly buckets.

Weekly buckets use ISO week numbers ("KW n"), monthly buckets use German
short month names ("Sept. 2024"). Every bucket carries a school-year sort
key so that September sorts before the following January.
"""

import logging
import re
from datetime import date, timedelta
from typing import Iterable, List, Optional

import pandas as pd

from analyzer.dates import (
    day_label,
    day_sort_key,
    format_date_range,
    iso_week,
    iso_week_year,
    monday_of,
    month_end,
    month_label,
    month_sort_key,
    week_label,
    week_sort_key,
)
from analyzer.models import Category, ClassifiedEntry, ExcuseOutcome, Granularity, PeriodBucket

logger = logging.getLogger(__name__)

# Spellings seen in exports and locale output, lowercased without dots
MONTH_VARIANTS = {
    "jan": 1, "januar": 1, "jän": 1,
    "feb": 2, "februar": 2,
    "mär": 3, "märz": 3, "mrz": 3, "mar": 3,
    "apr": 4, "april": 4,
    "mai": 5, "may": 5,
    "jun": 6, "juni": 6,
    "jul": 7, "juli": 7,
    "aug": 8, "august": 8,
    "sep": 9, "sept": 9, "september": 9,
    "okt": 10, "oct": 10, "oktober": 10,
    "nov": 11, "november": 11,
    "dez": 12, "dec": 12, "dezember": 12,
}

_WEEK_RE = re.compile(r"^\s*kw\s*0*(\d+)\s*$", re.IGNORECASE)
_MONTH_RE = re.compile(r"^\s*([^\s\d.]+)\.?\s+(\d{4})\s*$")


def normalize_label(label: str) -> str:
    """Canonical form of a period label ('KW 05' -> 'KW 5', 'Sep 2024' -> 'Sept. 2024')."""
    m = _WEEK_RE.match(label)
    if m:
        return week_label(int(m.group(1)))
    m = _MONTH_RE.match(label)
    if m:
        month = MONTH_VARIANTS.get(m.group(1).lower())
        if month:
            return month_label(month, int(m.group(2)))
    return label.strip()


def _clamp(start: date, end: date, range_start: Optional[date], range_end: Optional[date]):
    if range_start is not None and start < range_start:
        start = range_start
    if range_end is not None and end > range_end:
        end = range_end
    return start, end


def bucket_for(
    period_start: date,
    granularity: Granularity,
    range_start: Optional[date] = None,
    range_end: Optional[date] = None,
) -> PeriodBucket:
    """An empty bucket for the period starting at period_start."""
    if granularity == Granularity.WEEKLY:
        week = iso_week(period_start)
        first, last = _clamp(period_start, period_start + timedelta(days=4), range_start, range_end)
        return PeriodBucket(
            label=week_label(week),
            sort_key=week_sort_key(week),
            period_start=period_start,
            date_range=format_date_range(first, last),
        )
    if granularity == Granularity.MONTHLY:
        first, last = _clamp(period_start, month_end(period_start), range_start, range_end)
        return PeriodBucket(
            label=month_label(period_start.month, period_start.year),
            sort_key=month_sort_key(period_start.month),
            period_start=period_start,
            date_range=format_date_range(first, last),
        )
    return PeriodBucket(
        label=day_label(period_start),
        sort_key=day_sort_key(period_start),
        period_start=period_start,
        date_range=format_date_range(period_start, period_start),
    )


def period_start_of(d: date, granularity: Granularity) -> date:
    if granularity == Granularity.WEEKLY:
        return monday_of(d)
    if granularity == Granularity.MONTHLY:
        return d.replace(day=1)
    return d


def sort_buckets(buckets: Iterable[PeriodBucket]) -> List[PeriodBucket]:
    return sorted(buckets, key=lambda b: (b.sort_key, b.period_start or date.min))


# ── Grouping ────────────────────────────────────────────────────────

def group_by_period(
    entries: Iterable[ClassifiedEntry],
    granularity: Granularity,
    range_start: Optional[date] = None,
    range_end: Optional[date] = None,
) -> List[PeriodBucket]:
    """One bucket per period that has at least one entry inside the range."""
    granularity = Granularity(granularity)
    rows = [
        {"date": e.date, "category": e.category.value, "outcome": e.outcome.value}
        for e in entries
        if e.outcome is not None
        and (range_start is None or e.date >= range_start)
        and (range_end is None or e.date <= range_end)
    ]
    if not rows:
        return []

    df = pd.DataFrame(rows)
    if granularity == Granularity.WEEKLY:
        # Group by (ISO year, week) so week 1 of two different years stays apart
        df["group"] = df["date"].map(lambda d: f"{iso_week_year(d)}-{iso_week(d):02d}")
    else:
        df["group"] = df["date"].map(lambda d: period_start_of(d, granularity))

    buckets: List[PeriodBucket] = []
    for _, gdf in df.groupby("group", sort=False):
        start = period_start_of(gdf["date"].iloc[0], granularity)
        bucket = bucket_for(start, granularity, range_start, range_end)

        tardy = gdf[gdf["category"] == Category.TARDINESS.value]
        absent = gdf[gdf["category"] == Category.ABSENCE.value]
        bucket.tardiness = int(len(tardy))
        bucket.tardiness_unexcused = int((tardy["outcome"] == ExcuseOutcome.UNEXCUSED.value).sum())
        bucket.absence_excused = int((absent["outcome"] == ExcuseOutcome.EXCUSED.value).sum())
        bucket.absence_unexcused = int((absent["outcome"] == ExcuseOutcome.UNEXCUSED.value).sum())
        bucket.absence_pending = int((absent["outcome"] == ExcuseOutcome.PENDING.value).sum())
        bucket.absence_total = int(len(absent))
        buckets.append(bucket)

    logger.debug("Grouped %d entries into %d %s buckets", len(df), len(buckets), granularity.value)
    return sort_buckets(buckets)
