"""
Tests for analyzer/dates.py — parsing, ISO weeks, school year, trailing weeks, sort keys.
"""

import os
import sys
from datetime import date, datetime

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from analyzer.dates import (
    day_sort_key,
    format_date_range,
    iso_week,
    iso_week_year,
    last_completed_friday,
    last_n_weeks,
    month_label,
    month_sort_key,
    parse_date,
    parse_time_to_minutes,
    school_year_for,
    week_sort_key,
)


class TestParsing:
    """Tests for date and time parsing."""

    def test_german_date(self):
        assert parse_date("03.09.2024") == date(2024, 9, 3)

    def test_iso_date(self):
        assert parse_date("2024-09-03") == date(2024, 9, 3)

    def test_datetime_value(self):
        assert parse_date(datetime(2024, 9, 3, 8, 0)) == date(2024, 9, 3)

    def test_garbage_returns_none(self):
        assert parse_date("not a date") is None
        assert parse_date("") is None
        assert parse_date(None) is None

    def test_time_to_minutes(self):
        assert parse_time_to_minutes("08:15") == 495
        assert parse_time_to_minutes("16:50:00") == 1010

    def test_bad_time(self):
        assert parse_time_to_minutes("later") is None
        assert parse_time_to_minutes("25:00") is None


class TestIsoWeek:
    """Thursday-anchored week numbers."""

    def test_mid_year(self):
        assert iso_week(date(2024, 9, 16)) == 38

    def test_year_end_belongs_to_next_year(self):
        assert iso_week(date(2024, 12, 30)) == 1
        assert iso_week_year(date(2024, 12, 30)) == 2025

    def test_week_53(self):
        assert iso_week(date(2021, 1, 3)) == 53
        assert iso_week_year(date(2021, 1, 3)) == 2020

    def test_matches_isocalendar(self):
        d = date(2025, 3, 1)
        for i in range(400):
            current = date.fromordinal(d.toordinal() + i)
            assert iso_week(current) == current.isocalendar()[1]


class TestSchoolYear:
    """School year bounds."""

    def test_autumn_date(self):
        sy = school_year_for(date(2024, 10, 15))
        assert sy.start == date(2024, 9, 9)
        assert sy.end == date(2025, 8, 1)
        assert (sy.start_year, sy.end_year) == (2024, 2025)

    def test_spring_date_uses_previous_year(self):
        sy = school_year_for(date(2025, 3, 1))
        assert sy.start == date(2024, 9, 9)

    def test_september_first_is_monday(self):
        sy = school_year_for(date(2025, 9, 20))
        assert sy.start == date(2025, 9, 8)

    def test_start_is_monday_end_is_friday(self):
        for year in range(2020, 2030):
            sy = school_year_for(date(year, 11, 1))
            assert sy.start.weekday() == 0
            assert sy.end.weekday() == 4
            assert sy.end >= date(year + 1, 7, 31)


class TestTrailingWeeks:
    """Weeks anchored on the last completed Friday."""

    def test_midweek_excludes_current_week(self):
        assert last_completed_friday(date(2024, 10, 16)) == date(2024, 10, 11)

    def test_friday_excludes_current_week(self):
        assert last_completed_friday(date(2024, 10, 18)) == date(2024, 10, 11)

    def test_weekend_uses_this_friday(self):
        assert last_completed_friday(date(2024, 10, 19)) == date(2024, 10, 18)
        assert last_completed_friday(date(2024, 10, 20)) == date(2024, 10, 18)

    def test_last_two_weeks(self):
        weeks = last_n_weeks(2, date(2024, 10, 16))
        assert [(w.start, w.end) for w in weeks] == [
            (date(2024, 9, 30), date(2024, 10, 4)),
            (date(2024, 10, 7), date(2024, 10, 11)),
        ]
        assert weeks[-1].week == 41
        assert weeks[-1].year == 2024

    def test_zero_weeks(self):
        assert last_n_weeks(0, date(2024, 10, 16)) == []


class TestSortKeys:
    """School-year order across the calendar year boundary."""

    def test_week_keys(self):
        assert week_sort_key(35) == 35
        assert week_sort_key(38) == 138
        assert week_sort_key(3) == 203

    def test_week_order_wraps(self):
        weeks = [3, 50, 20, 38]
        assert sorted(weeks, key=week_sort_key) == [38, 50, 3, 20]

    def test_month_keys(self):
        assert month_sort_key(9) == 1
        assert month_sort_key(12) == 4
        assert month_sort_key(1) == 5
        assert month_sort_key(8) == 12

    def test_day_keys(self):
        assert day_sort_key(date(2024, 12, 31)) < day_sort_key(date(2025, 1, 1))

    def test_labels(self):
        assert month_label(9, 2024) == "Sept. 2024"
        assert month_label(3, 2025) == "März 2025"
        assert format_date_range(date(2024, 9, 16), date(2024, 9, 20)) == "16.09. - 20.09.2024"
