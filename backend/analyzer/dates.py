"""
dates.py — Calendar arithmetic for the school year.

Covers:
- Parsing of DD.MM.YYYY dates and HH:MM clock times
- ISO week numbers via the Thursday rule
- School-year bounds (second Monday of September to the Friday on/after 31 July)
- The trailing Monday–Friday weeks anchored on the last completed Friday
- Sort keys that keep September–July in chronological order
"""

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

import pandas as pd

from analyzer.models import SchoolYear, Week

logger = logging.getLogger(__name__)

GERMAN_SHORT_MONTHS = [
    "Jan.", "Feb.", "März", "Apr.", "Mai", "Juni",
    "Juli", "Aug.", "Sept.", "Okt.", "Nov.", "Dez.",
]


# ── Parsing ─────────────────────────────────────────────────────────

def parse_date(value) -> Optional[date]:
    """
    Parse a spreadsheet date cell.
    Accepts DD.MM.YYYY, ISO YYYY-MM-DD and date/datetime/Timestamp values.
    Returns None when the value cannot be read.
    """
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text or text.lower() == "nan":
        return None
    # Spreadsheet exports sometimes append a time part
    text = text.split(" ")[0]
    for fmt in ("%d.%m.%Y", "%Y-%m-%d", "%d.%m.%y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    logger.debug("Unparsable date %r", value)
    return None


def parse_time_to_minutes(value) -> Optional[int]:
    """'HH:MM' (or 'HH:MM:SS') to minutes after midnight."""
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() == "nan":
        return None
    parts = text.split(":")
    if len(parts) < 2:
        return None
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        return None
    return hours * 60 + minutes


def to_datetime(now) -> datetime:
    """Plain dates are taken to mean noon of that day."""
    if isinstance(now, datetime):
        return now
    return datetime.combine(now, datetime.min.time()) + timedelta(hours=12)


# ── Weeks ───────────────────────────────────────────────────────────

def _thursday_of(d: date) -> date:
    return d + timedelta(days=3 - d.weekday())


def iso_week(d: date) -> int:
    """Week number: shift to the Thursday of the week, count weeks from that Thursday's 1 January."""
    thursday = _thursday_of(d)
    jan_first = date(thursday.year, 1, 1)
    return (thursday - jan_first).days // 7 + 1


def iso_week_year(d: date) -> int:
    return _thursday_of(d).year


def monday_of(d: date) -> date:
    return d - timedelta(days=d.weekday())


def last_completed_friday(today: date) -> date:
    """
    Friday of the most recent full school week.
    Saturday and Sunday close the current week; Monday to Friday fall back
    to the previous week's Friday.
    """
    weekday = today.weekday()
    if weekday == 5:
        return today - timedelta(days=1)
    if weekday == 6:
        return today - timedelta(days=2)
    return today - timedelta(days=weekday + 3)


def last_n_weeks(n: int, today: date) -> List[Week]:
    """The n most recent completed Monday–Friday weeks, oldest first."""
    friday = last_completed_friday(today)
    weeks: List[Week] = []
    for i in range(max(n, 0)):
        end = friday - timedelta(days=7 * i)
        start = end - timedelta(days=4)
        weeks.insert(0, Week(start=start, end=end, week=iso_week(start), year=iso_week_year(start)))
    return weeks


# ── School year ─────────────────────────────────────────────────────

def second_monday_of_september(year: int) -> date:
    first = date(year, 9, 1)
    first_monday = first + timedelta(days=(7 - first.weekday()) % 7)
    return first_monday + timedelta(days=7)


def friday_on_or_after(d: date) -> date:
    return d + timedelta(days=(4 - d.weekday()) % 7)


def school_year_for(today: date) -> SchoolYear:
    """The school year that contains (or most recently started before) today."""
    start_year = today.year if today.month >= 9 else today.year - 1
    return SchoolYear(
        start=second_monday_of_september(start_year),
        end=friday_on_or_after(date(start_year + 1, 7, 31)),
        start_year=start_year,
        end_year=start_year + 1,
    )


# ── Sort keys ───────────────────────────────────────────────────────

def week_sort_key(week: int) -> int:
    """Weeks 35–36 first, then 37+ (offset 100), then 1–34 (offset 200)."""
    if week in (35, 36):
        return week
    if week >= 37:
        return week + 100
    return week + 200


def month_sort_key(month: int) -> int:
    """September = 1 … August = 12."""
    return (month - 9) % 12 + 1


def day_sort_key(d: date) -> int:
    return month_sort_key(d.month) * 100 + d.day


# ── Labels ──────────────────────────────────────────────────────────

def week_label(week: int) -> str:
    return f"KW {week}"


def month_label(month: int, year: int) -> str:
    return f"{GERMAN_SHORT_MONTHS[month - 1]} {year}"


def day_label(d: date) -> str:
    return d.strftime("%d.%m.")


def format_date_range(start: date, end: date) -> str:
    """'dd.mm. - dd.mm.yyyy' for tooltips."""
    return f"{start.strftime('%d.%m.')} - {end.strftime('%d.%m.%Y')}"


def month_end(d: date) -> date:
    if d.month == 12:
        return date(d.year, 12, 31)
    return date(d.year, d.month + 1, 1) - timedelta(days=1)


def days_in_month(year: int, month: int) -> int:
    return month_end(date(year, month, 1)).day
