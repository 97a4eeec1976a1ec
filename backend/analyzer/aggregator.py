"""
aggregator.py — Per-student counters over classified entries.

Computes, for every student seen in the data:
- {tardiness, absence} × {excused, unexcused, pending} inside the selected range
- School year to date: unexcused tardiness, unexcused absence, total absence
- Trailing N completed weeks: unexcused tardiness and absence, also per week

Everything is recomputed from scratch on each call.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from analyzer.classifier import DEFAULT_DEADLINE_DAYS, DEFAULT_LESSON_END_TIMES, classify_all
from analyzer.dates import last_n_weeks, school_year_for
from analyzer.models import (
    AggregationOptions,
    AttendanceRecord,
    Category,
    ClassifiedEntry,
    ExcuseOutcome,
    StudentPeriodStats,
)

logger = logging.getLogger(__name__)

DEFAULT_TRAILING_WEEKS = 4


def _in_range(d: date, start: Optional[date], end: Optional[date]) -> bool:
    if start is not None and d < start:
        return False
    if end is not None and d > end:
        return False
    return True


# ── Aggregation ─────────────────────────────────────────────────────

def aggregate(
    entries: Iterable[ClassifiedEntry],
    range_start: Optional[date],
    range_end: Optional[date],
    today: date,
    trailing_weeks: int = DEFAULT_TRAILING_WEEKS,
) -> Dict[str, StudentPeriodStats]:
    """
    Fold classified entries into StudentPeriodStats keyed by student.
    A missing range bound means the range is open on that side.
    """
    school_year = school_year_for(today)
    weeks = last_n_weeks(trailing_weeks, today)
    stats: Dict[str, StudentPeriodStats] = {}

    for entry in entries:
        s = stats.get(entry.student)
        if s is None:
            s = StudentPeriodStats(
                student=entry.student,
                class_name=entry.class_name,
                weekly_tardiness=[0] * len(weeks),
                weekly_absence=[0] * len(weeks),
            )
            stats[entry.student] = s
        if not s.class_name and entry.class_name:
            s.class_name = entry.class_name

        is_tardiness = entry.category == Category.TARDINESS
        unexcused = entry.outcome == ExcuseOutcome.UNEXCUSED

        if entry.outcome is not None and _in_range(entry.date, range_start, range_end):
            if is_tardiness:
                s.tardiness[entry.outcome.value] += 1
                s.tardiness_details.append(entry)
            else:
                s.absence[entry.outcome.value] += 1
                s.absence_details.append(entry)

        if school_year.start <= entry.date <= school_year.end:
            if is_tardiness:
                if unexcused:
                    s.year_tardiness_unexcused += 1
            else:
                s.year_absence_total += 1
                if unexcused:
                    s.year_absence_unexcused += 1

        if unexcused:
            for i, week in enumerate(weeks):
                if week.start <= entry.date <= week.end:
                    if is_tardiness:
                        s.trailing_tardiness_unexcused += 1
                        s.weekly_tardiness[i] += 1
                    else:
                        s.trailing_absence_unexcused += 1
                        s.weekly_absence[i] += 1
                    break

    for s in stats.values():
        s.tardiness_details.sort(key=lambda e: e.date)
        s.absence_details.sort(key=lambda e: e.date)

    logger.debug("Aggregated %d students", len(stats))
    return stats


def process_records(
    records: Iterable[AttendanceRecord],
    options: AggregationOptions,
    now,
    today: Optional[date] = None,
    trailing_weeks: int = DEFAULT_TRAILING_WEEKS,
    deadline_days: int = DEFAULT_DEADLINE_DAYS,
    lesson_end_times: Sequence[str] = DEFAULT_LESSON_END_TIMES,
) -> Tuple[Dict[str, StudentPeriodStats], List[ClassifiedEntry]]:
    """Classify and aggregate in one pass; returns (stats, entries)."""
    if today is None:
        today = now.date() if isinstance(now, datetime) else now
    entries = classify_all(records, now, deadline_days, lesson_end_times)
    stats = aggregate(entries, options.range_start, options.range_end, today, trailing_weeks)
    return stats, entries


# ── Summaries & export rows ─────────────────────────────────────────

def summarize_by_class(stats: Dict[str, StudentPeriodStats]) -> Dict[str, Dict[str, Any]]:
    """Totals and student counts per class."""
    classes: Dict[str, Dict[str, Any]] = {}
    for s in stats.values():
        c = classes.setdefault(s.class_name, {
            "class": s.class_name,
            "students": 0,
            "tardiness": 0,
            "tardiness_unexcused": 0,
            "absence": 0,
            "absence_unexcused": 0,
        })
        c["students"] += 1
        c["tardiness"] += s.total_tardiness
        c["tardiness_unexcused"] += s.tardiness[ExcuseOutcome.UNEXCUSED.value]
        c["absence"] += s.total_absence
        c["absence_unexcused"] += s.absence[ExcuseOutcome.UNEXCUSED.value]
    return dict(sorted(classes.items()))


def sorted_students(stats: Dict[str, StudentPeriodStats]) -> List[StudentPeriodStats]:
    """Stable export order: surname, then given name."""
    return sorted(
        stats.values(),
        key=lambda s: (s.surname.casefold(), s.given_name.casefold()),
    )


def to_rows(stats: Dict[str, StudentPeriodStats]) -> List[Dict[str, Any]]:
    rows = []
    for s in sorted_students(stats):
        rows.append({
            "surname": s.surname,
            "given_name": s.given_name,
            "class": s.class_name,
            "tardiness_excused": s.tardiness["excused"],
            "tardiness_unexcused": s.tardiness["unexcused"],
            "tardiness_pending": s.tardiness["pending"],
            "absence_excused": s.absence["excused"],
            "absence_unexcused": s.absence["unexcused"],
            "absence_pending": s.absence["pending"],
            "year_tardiness_unexcused": s.year_tardiness_unexcused,
            "year_absence_unexcused": s.year_absence_unexcused,
            "year_absence_total": s.year_absence_total,
            "trailing_tardiness_unexcused": s.trailing_tardiness_unexcused,
            "trailing_absence_unexcused": s.trailing_absence_unexcused,
        })
    return rows


def to_dataframe(stats: Dict[str, StudentPeriodStats]) -> pd.DataFrame:
    return pd.DataFrame(to_rows(stats))
