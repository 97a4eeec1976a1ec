"""
Tests for analyzer/classifier.py — category, excuse outcome, spans, dropped records.
"""

import os
import sys
from datetime import date, datetime

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from analyzer.classifier import classify, classify_all, excuse_outcome
from analyzer.models import AttendanceRecord, Category, ExcuseOutcome

NOW = datetime(2024, 9, 20, 10, 0)


def make_record(**kwargs) -> AttendanceRecord:
    defaults = dict(
        surname="Müller",
        given_name="Anna",
        class_name="7a",
        start_date=date(2024, 9, 16),
        end_date=None,
        begin_time="07:45",
        end_time="08:10",
        status="nicht entsch.",
        absence_reason="",
        note="",
    )
    defaults.update(kwargs)
    return AttendanceRecord(**defaults)


class TestMultiDaySpans:
    """Records covering several calendar days."""

    def test_three_day_span(self):
        record = make_record(
            start_date=date(2024, 9, 1), end_date=date(2024, 9, 3), absence_reason="Verspätung",
        )
        entries = classify(record, NOW)
        assert len(entries) == 3
        assert [e.date for e in entries] == [date(2024, 9, 1), date(2024, 9, 2), date(2024, 9, 3)]
        assert all(e.category == Category.ABSENCE for e in entries)

    def test_each_day_has_own_deadline(self):
        record = make_record(
            start_date=date(2024, 9, 10), end_date=date(2024, 9, 14), status="",
        )
        outcomes = [e.outcome for e in classify(record, datetime(2024, 9, 20, 12, 0))]
        assert outcomes == [ExcuseOutcome.UNEXCUSED] * 4 + [ExcuseOutcome.PENDING]

    def test_reversed_span_is_single_day(self):
        record = make_record(start_date=date(2024, 9, 5), end_date=date(2024, 9, 3))
        entries = classify(record, NOW)
        assert len(entries) == 1
        assert entries[0].date == date(2024, 9, 5)


class TestDeadline:
    """Empty status becomes unexcused once the excuse deadline has passed."""

    def test_exactly_seven_days_is_unexcused(self):
        record = make_record(start_date=date(2024, 9, 13), status="")
        assert classify(record, NOW)[0].outcome == ExcuseOutcome.UNEXCUSED

    def test_six_days_is_pending(self):
        record = make_record(start_date=date(2024, 9, 14), status="")
        assert classify(record, NOW)[0].outcome == ExcuseOutcome.PENDING

    def test_outcome_changes_as_time_passes(self):
        record = make_record(start_date=date(2024, 9, 10), status="")
        before = classify(record, date(2024, 9, 15))
        after = classify(record, date(2024, 9, 25))
        assert before[0].outcome == ExcuseOutcome.PENDING
        assert after[0].outcome == ExcuseOutcome.UNEXCUSED

    def test_custom_deadline(self):
        record = make_record(start_date=date(2024, 9, 17), status="")
        assert classify(record, NOW, deadline_days=2)[0].outcome == ExcuseOutcome.UNEXCUSED

    def test_explicit_statuses(self):
        d = date(2024, 9, 19)
        assert excuse_outcome("entsch.", d, NOW) == ExcuseOutcome.EXCUSED
        assert excuse_outcome("Attest", d, NOW) == ExcuseOutcome.EXCUSED
        assert excuse_outcome("Attest Amtsarzt", d, NOW) == ExcuseOutcome.EXCUSED
        assert excuse_outcome(" ENTSCH. ", d, NOW) == ExcuseOutcome.EXCUSED
        assert excuse_outcome("nicht entsch.", d, NOW) == ExcuseOutcome.UNEXCUSED
        assert excuse_outcome("nicht akzep.", d, NOW) == ExcuseOutcome.UNEXCUSED

    def test_unknown_status_keeps_entry_without_outcome(self):
        assert excuse_outcome("in Bearbeitung", date(2024, 9, 19), NOW) is None
        entries = classify(make_record(status="in Bearbeitung"), NOW)
        assert len(entries) == 1
        assert entries[0].outcome is None
        assert entries[0].status == "in Bearbeitung"


class TestCategory:
    """Tardiness versus absence for single-day records."""

    def test_tardiness_reason(self):
        record = make_record(absence_reason="Verspätung", end_time="16:50")
        assert classify(record, NOW)[0].category == Category.TARDINESS

    def test_other_reason_is_absence(self):
        record = make_record(absence_reason="Krankheit")
        assert classify(record, NOW)[0].category == Category.ABSENCE

    def test_no_reason_early_end_is_tardiness(self):
        assert classify(make_record(end_time="08:10"), NOW)[0].category == Category.TARDINESS

    def test_no_reason_lesson_end_is_absence(self):
        assert classify(make_record(end_time="16:50"), NOW)[0].category == Category.ABSENCE

    def test_no_reason_no_end_time_is_absence(self):
        assert classify(make_record(end_time=""), NOW)[0].category == Category.ABSENCE

    def test_configured_lesson_end_times(self):
        record = make_record(end_time="15:20")
        assert classify(record, NOW)[0].category == Category.TARDINESS
        assert classify(record, NOW, lesson_end_times=("15:20", "16:50"))[0].category == Category.ABSENCE


class TestDroppedRecords:
    """Records that are never counted."""

    def test_erroneous_marker(self):
        assert classify(make_record(note="FEHLEINTRAG doppelt"), NOW) == []

    def test_missing_name(self):
        assert classify(make_record(surname=""), NOW) == []
        assert classify(make_record(given_name=""), NOW) == []

    def test_missing_start_date(self):
        assert classify(make_record(start_date=None), NOW) == []

    def test_classify_all_skips_bad_rows(self):
        records = [make_record(), make_record(surname=""), make_record(note="Fehleintrag")]
        assert len(classify_all(records, NOW)) == 1


class TestDeterminism:
    """Same record and same "now" give the same entries."""

    def test_idempotent(self):
        record = make_record(start_date=date(2024, 9, 9), end_date=date(2024, 9, 12), status="")
        assert classify(record, NOW) == classify(record, NOW)

    def test_student_key(self):
        entry = classify(make_record(), NOW)[0]
        assert entry.student == "Müller, Anna"
        assert entry.class_name == "7a"
