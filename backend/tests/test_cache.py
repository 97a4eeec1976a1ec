"""
Tests for analyzer/cache.py — system-wide averages and the reset lifecycle.
"""

import os
import sys
import threading

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from analyzer.cache import AnalyticsCache, should_show_averages
from analyzer.models import PeriodBucket, StudentPeriodStats


@pytest.fixture
def stats():
    return {
        "A, One": StudentPeriodStats(student="A, One", class_name="7a"),
        "B, Two": StudentPeriodStats(student="B, Two", class_name="7a"),
        "C, Three": StudentPeriodStats(student="C, Three", class_name="8b"),
        "D, Four": StudentPeriodStats(student="D, Four", class_name="8b"),
    }


@pytest.fixture
def all_classes():
    return [
        PeriodBucket(label="KW 38", sort_key=138, tardiness=8, absence_total=4, absence_unexcused=2),
        PeriodBucket(label="KW 39", sort_key=139, tardiness=6, absence_total=2),
    ]


@pytest.fixture
def one_class():
    return [
        PeriodBucket(label="KW 38", sort_key=138, tardiness=2, absence_total=1),
        PeriodBucket(label="KW 39", sort_key=139, tardiness=1, absence_total=0),
    ]


class TestClassAverages:
    """Average per class uses the cached all-classes totals."""

    def test_uses_cached_totals(self, stats, all_classes, one_class):
        cache = AnalyticsCache()
        cache.update_all_classes(all_classes)
        rows = cache.with_class_averages(one_class, stats)
        assert rows[0]["tardiness_avg"] == pytest.approx(4)
        assert rows[0]["absence_total_avg"] == pytest.approx(2)
        assert rows[0]["absence_unexcused_avg"] == pytest.approx(1)
        assert rows[1]["tardiness_avg"] == pytest.approx(3)
        assert rows[0]["class_count"] == 2

    def test_falls_back_to_current_series(self, stats, one_class):
        rows = AnalyticsCache().with_class_averages(one_class, stats)
        assert rows[0]["tardiness_avg"] == pytest.approx(1)

    def test_unknown_label_is_zero(self, stats, all_classes):
        cache = AnalyticsCache()
        cache.update_all_classes(all_classes)
        rows = cache.with_class_averages([PeriodBucket(label="KW 45", sort_key=145, tardiness=9)], stats)
        assert rows[0]["tardiness_avg"] == 0

    def test_no_classes(self, one_class):
        assert AnalyticsCache().with_class_averages(one_class, {}) == []


class TestStudentAverages:
    """Average per student."""

    def test_uses_student_count(self, stats, all_classes, one_class):
        cache = AnalyticsCache()
        cache.update_all_students(all_classes)
        rows = cache.with_student_averages(one_class, stats)
        assert rows[0]["tardiness_avg"] == pytest.approx(2)
        assert rows[0]["student_count"] == 4


class TestReset:
    """Reset clears both caches."""

    def test_reset(self, stats, all_classes, one_class):
        cache = AnalyticsCache()
        cache.update_all_classes(all_classes)
        cache.update_all_students(all_classes)
        assert cache.has_class_totals and cache.has_student_totals
        cache.reset()
        assert not cache.has_class_totals
        assert not cache.has_student_totals
        rows = cache.with_class_averages(one_class, stats)
        assert rows[0]["tardiness_avg"] == pytest.approx(1)

    def test_concurrent_updates(self, all_classes):
        cache = AnalyticsCache()

        def work():
            for _ in range(50):
                cache.update_all_classes(all_classes)
                cache.reset()

        threads = [threading.Thread(target=work) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert not cache.has_class_totals


class TestShouldShowAverages:
    def test_rules(self):
        assert should_show_averages(["7a"], [])
        assert not should_show_averages([], [])
        assert not should_show_averages(["7a"], ["A, One"])
