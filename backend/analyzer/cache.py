"""
cache.py — System-wide totals used for "average per class / per student" curves.

The totals must describe the whole dataset, not the current selection, so
they are captured once from the all-classes series and reused for every
filtered view. Call reset() whenever a new dataset is loaded; stale totals
would mix two uploads silently.
"""

import logging
import threading
from typing import Any, Dict, List

from analyzer.models import PeriodBucket, StudentPeriodStats

logger = logging.getLogger(__name__)

AVERAGED_FIELDS = ("tardiness", "absence_total", "absence_excused", "absence_unexcused")


def _totals(series: List[PeriodBucket]) -> Dict[str, Dict[str, float]]:
    return {b.label: {f: float(getattr(b, f)) for f in AVERAGED_FIELDS} for b in series}


class AnalyticsCache:
    """Per-label totals of all classes and all students, guarded by one lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._class_totals: Dict[str, Dict[str, float]] = {}
        self._student_totals: Dict[str, Dict[str, float]] = {}

    def reset(self) -> None:
        with self._lock:
            self._class_totals = {}
            self._student_totals = {}
        logger.info("Analytics cache reset")

    @property
    def has_class_totals(self) -> bool:
        with self._lock:
            return bool(self._class_totals)

    @property
    def has_student_totals(self) -> bool:
        with self._lock:
            return bool(self._student_totals)

    def update_all_classes(self, series: List[PeriodBucket]) -> None:
        totals = _totals(series)
        with self._lock:
            self._class_totals = totals
        logger.debug("Cached all-classes totals for %d periods", len(totals))

    def update_all_students(self, series: List[PeriodBucket]) -> None:
        totals = _totals(series)
        with self._lock:
            self._student_totals = totals
        logger.debug("Cached all-students totals for %d periods", len(totals))

    # ── Averages ────────────────────────────────────────────────────

    def _averages(self, series, cached, count: int, count_key: str) -> List[Dict[str, Any]]:
        rows = []
        for b in series:
            if cached:
                source = cached.get(b.label, {})
                totals = {f: source.get(f, 0.0) for f in AVERAGED_FIELDS}
            else:
                totals = {f: float(getattr(b, f)) for f in AVERAGED_FIELDS}
            row: Dict[str, Any] = {"label": b.label, count_key: count}
            for f in AVERAGED_FIELDS:
                row[f"{f}_avg"] = totals[f] / count
            rows.append(row)
        return rows

    def with_class_averages(
        self,
        series: List[PeriodBucket],
        stats: Dict[str, StudentPeriodStats],
    ) -> List[Dict[str, Any]]:
        """
        Average per class for each period: cached all-classes total / class count.
        Without cached totals the given series stands in for them.
        """
        class_count = len({s.class_name for s in stats.values() if s.class_name})
        if class_count == 0:
            return []
        with self._lock:
            cached = dict(self._class_totals)
        return self._averages(series, cached, class_count, "class_count")

    def with_student_averages(
        self,
        series: List[PeriodBucket],
        stats: Dict[str, StudentPeriodStats],
    ) -> List[Dict[str, Any]]:
        """Average per student for each period, same rules as with_class_averages."""
        student_count = len(stats)
        if student_count == 0:
            return []
        with self._lock:
            cached = dict(self._student_totals)
        return self._averages(series, cached, student_count, "student_count")


def should_show_averages(selected_classes: List[str], selected_students: List[str]) -> bool:
    """Average curves make sense for class selections without individual students."""
    return len(selected_classes) > 0 and len(selected_students) == 0
