"""
Tests for analyzer/patterns.py — thresholds, breakdowns, critical students.
"""

import os
import sys
from datetime import date

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from analyzer.models import Category, ClassifiedEntry, ExcuseOutcome, StudentPeriodStats
from analyzer.patterns import (
    absence_type_breakdown,
    class_average,
    deterioration,
    find_critical_students,
    has_excessive_week,
    late_threshold,
    max_weekly,
    school_days_in_weeks,
    unexcused_rate,
    weekday_breakdown,
)


def student(name, cls, tardy=0, absent=0, **kwargs):
    s = StudentPeriodStats(student=name, class_name=cls, **kwargs)
    s.tardiness["unexcused"] = tardy
    s.absence["unexcused"] = absent
    return s


class TestThresholds:
    """Small helper rules."""

    def test_late_threshold(self):
        assert late_threshold(4) == 5
        assert late_threshold(3.5) == 5
        assert late_threshold(3) == 3
        assert late_threshold(1.5) == 3
        assert late_threshold(1) == 2

    def test_school_days(self):
        assert school_days_in_weeks(4) == 20

    def test_deterioration(self):
        result = deterioration({"tardiness": 3, "absence": 2}, {"tardiness": 2, "absence": 2})
        assert result["tardiness_change"] == pytest.approx(50)
        assert result["tardiness_deteriorated"]
        assert not result["absence_deteriorated"]

    def test_deterioration_from_zero(self):
        result = deterioration({"tardiness": 1, "absence": 0}, {"tardiness": 0, "absence": 0})
        assert result["tardiness_change"] == 100
        assert result["absence_change"] == 0

    def test_weekly_helpers(self):
        assert has_excessive_week([1, 4, 0])
        assert not has_excessive_week([3, 3, 3])
        assert max_weekly([2, 5, 1]) == 5
        assert max_weekly([]) == 0

    def test_unexcused_rate(self):
        assert unexcused_rate(0, 0) == 0
        assert unexcused_rate(1, 4) == pytest.approx(25)

    def test_class_average(self):
        stats = {
            "A, A": student("A, A", "7a", tardy=4, absent=2),
            "B, B": student("B, B", "7a", tardy=2),
            "C, C": student("C, C", "8b", tardy=9),
        }
        assert class_average(stats, "7a") == {"tardiness_avg": 3, "absence_avg": 1}
        assert class_average(stats, "9z") == {"tardiness_avg": 0, "absence_avg": 0}


class TestBreakdowns:
    """Dashboard figures."""

    def test_weekday_breakdown(self):
        entries = [
            ClassifiedEntry("A, A", "7a", date(2024, 9, 16), Category.TARDINESS, ExcuseOutcome.UNEXCUSED),
            ClassifiedEntry("A, A", "7a", date(2024, 9, 23), Category.TARDINESS, ExcuseOutcome.EXCUSED),
            ClassifiedEntry("A, A", "7a", date(2024, 9, 18), Category.ABSENCE, ExcuseOutcome.PENDING),
        ]
        days = weekday_breakdown(entries)
        assert [d["weekday"] for d in days] == ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]
        assert days[0] == {"weekday": "Monday", "tardiness": 2, "absence": 0, "total": 2}
        assert days[2]["absence"] == 1
        assert days[4]["total"] == 0

    def test_weekday_breakdown_empty(self):
        assert all(d["total"] == 0 for d in weekday_breakdown([]))

    def test_absence_type_breakdown(self):
        a = student("A, A", "7a", tardy=2, absent=1)
        a.absence["excused"] = 3
        b = student("B, B", "7a")
        b.tardiness["pending"] = 1
        result = absence_type_breakdown({"A, A": a, "B, B": b})
        assert result["absence"] == {"excused": 3, "unexcused": 1, "pending": 0}
        assert result["total"] == {"excused": 3, "unexcused": 3, "pending": 1}


class TestCriticalStudents:
    """Weighted factors and levels."""

    @pytest.fixture
    def stats(self):
        critical = student(
            "Müller, Anna", "7a", tardy=6,
            trailing_tardiness_unexcused=6,
            weekly_tardiness=[1, 4, 1, 0],
            year_absence_unexcused=3,
            year_absence_total=4,
        )
        fine = student("Schmidt, Ben", "7a")
        return {critical.student: critical, fine.student: fine}

    def test_high_level(self, stats):
        result = find_critical_students(stats, 4)
        assert result["summary"]["total"] == 1
        anna = result["students"][0]
        assert anna["student"] == "Müller, Anna"
        assert anna["score"] == 85
        assert anna["level"] == "High"
        assert all(f["triggered"] for f in anna["factors"])
        assert result["summary"]["late_threshold"] == 5
        assert result["summary"]["school_days"] == 20

    def test_deterioration_factor(self, stats):
        before = {"Müller, Anna": student("Müller, Anna", "7a", tardy=2)}
        result = find_critical_students(stats, 4, previous=before)
        anna = result["students"][0]
        assert anna["score"] == 100
        assert any(f["factor"] == "Deterioration" and f["triggered"] for f in anna["factors"])

    def test_no_critical_students(self):
        stats = {"Schmidt, Ben": student("Schmidt, Ben", "7a")}
        result = find_critical_students(stats, 4)
        assert result["students"] == []
        assert result["summary"]["total"] == 0
