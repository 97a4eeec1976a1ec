"""
classifier.py — Turns raw attendance records into classified entries.

Each record yields one entry per calendar day it covers. Single-day records
are tardiness or absence depending on the reason and the end time; spans are
always absences. The excuse outcome is decided against a rolling deadline
measured from "now", so the same record may move from pending to unexcused
between two calls.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from analyzer.dates import to_datetime
from analyzer.models import AttendanceRecord, Category, ClassifiedEntry, ExcuseOutcome

logger = logging.getLogger(__name__)

EXCUSED_STATUSES = {"entsch.", "attest", "attest amtsarzt"}
UNEXCUSED_STATUSES = {"nicht entsch.", "nicht akzep."}
ERRONEOUS_MARKER = "fehleintrag"
TARDINESS_REASON = "verspätung"

DEFAULT_DEADLINE_DAYS = 7
DEFAULT_LESSON_END_TIMES = ("16:50",)


# ── Helpers ─────────────────────────────────────────────────────────

def _clean(value) -> str:
    if value is None:
        return ""
    text = str(value).strip()
    return "" if text.lower() == "nan" else text


def _normalize_time(value: str) -> str:
    """'7:05' and '07:05:00' both become '07:05'."""
    parts = value.split(":")
    if len(parts) < 2:
        return value
    try:
        return f"{int(parts[0]):02d}:{int(parts[1]):02d}"
    except ValueError:
        return value


def is_erroneous(record: AttendanceRecord) -> bool:
    return ERRONEOUS_MARKER in _clean(record.note).lower()


def excuse_outcome(
    status: str,
    entry_date: date,
    now,
    deadline_days: int = DEFAULT_DEADLINE_DAYS,
) -> Optional[ExcuseOutcome]:
    """
    Map a status string to an outcome.
    Empty status is unexcused once now lies past entry date + deadline_days,
    pending before that. Unknown statuses return None.
    """
    key = _clean(status).lower()
    if key in EXCUSED_STATUSES:
        return ExcuseOutcome.EXCUSED
    if key in UNEXCUSED_STATUSES:
        return ExcuseOutcome.UNEXCUSED
    if key:
        return None
    deadline = datetime.combine(entry_date, datetime.min.time()) + timedelta(days=deadline_days)
    if to_datetime(now) > deadline:
        return ExcuseOutcome.UNEXCUSED
    return ExcuseOutcome.PENDING


def single_day_category(
    record: AttendanceRecord,
    lesson_end_times: Sequence[str] = DEFAULT_LESSON_END_TIMES,
) -> Category:
    reason = _clean(record.absence_reason)
    if reason.lower() == TARDINESS_REASON:
        return Category.TARDINESS
    if reason:
        return Category.ABSENCE
    end_time = _clean(record.end_time)
    if not end_time:
        return Category.ABSENCE
    standard_ends = {_normalize_time(t) for t in lesson_end_times}
    if _normalize_time(end_time) in standard_ends:
        return Category.ABSENCE
    return Category.TARDINESS


# ── Classification ──────────────────────────────────────────────────

def classify(
    record: AttendanceRecord,
    now,
    deadline_days: int = DEFAULT_DEADLINE_DAYS,
    lesson_end_times: Sequence[str] = DEFAULT_LESSON_END_TIMES,
) -> List[ClassifiedEntry]:
    """
    Classify one record into zero or more entries.
    Returns [] for records that must not be counted.
    An unknown status still yields entries, with outcome None.
    """
    surname = _clean(record.surname)
    given_name = _clean(record.given_name)
    if not surname or not given_name or record.start_date is None:
        logger.debug("Skipping record without name or start date: %r", record)
        return []
    if is_erroneous(record):
        logger.debug("Skipping erroneous entry for %s", record.student)
        return []

    start = record.start_date
    end = record.end_date or start
    if end < start:
        logger.warning(
            "End date %s before start date %s for %s; treating as single day",
            end, start, record.student,
        )
        end = start

    status = _clean(record.status)
    if status and excuse_outcome(status, start, now, deadline_days) is None:
        logger.debug("Unknown status %r for %s; kept without outcome", status, record.student)
    common = dict(
        student=f"{surname}, {given_name}",
        class_name=_clean(record.class_name),
        begin_time=_clean(record.begin_time),
        end_time=_clean(record.end_time),
        reason=_clean(record.absence_reason),
        note=_clean(record.note),
        status=status,
    )

    if end != start:
        days = [start + timedelta(days=i) for i in range((end - start).days + 1)]
        category = Category.ABSENCE
    else:
        days = [start]
        category = single_day_category(record, lesson_end_times)

    entries: List[ClassifiedEntry] = []
    for day in days:
        outcome = excuse_outcome(status, day, now, deadline_days)
        entries.append(ClassifiedEntry(date=day, category=category, outcome=outcome, **common))
    return entries


def classify_all(
    records: Iterable[AttendanceRecord],
    now,
    deadline_days: int = DEFAULT_DEADLINE_DAYS,
    lesson_end_times: Sequence[str] = DEFAULT_LESSON_END_TIMES,
) -> List[ClassifiedEntry]:
    entries: List[ClassifiedEntry] = []
    skipped = 0
    for record in records:
        classified = classify(record, now, deadline_days, lesson_end_times)
        if not classified:
            skipped += 1
        entries.extend(classified)
    if skipped:
        logger.info("Classified %d entries, skipped %d records", len(entries), skipped)
    return entries
