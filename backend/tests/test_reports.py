"""
Tests for analyzer/report_builder.py — Excel/CSV/PDF generation completes without errors.
"""

import os
import sys
from datetime import datetime

import pandas as pd
import pytest
from openpyxl import load_workbook

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from analyzer.aggregator import process_records, to_rows
from analyzer.insights import generate_all_insights
from analyzer.models import AggregationOptions, Granularity, Metric, RegressionOptions
from analyzer.moving_average import moving_average
from analyzer.parser import load_records
from analyzer.periods import group_by_period
from analyzer.regression import regress
from analyzer.report_builder import export_csv, generate_excel_export, generate_trend_report_pdf

SAMPLE_CSV = os.path.join(os.path.dirname(__file__), "..", "sample_data", "sample_attendance.csv")
SCHOOL_NAME = "Test School"
NOW = datetime(2024, 10, 31, 12, 0)


@pytest.fixture
def analytics():
    """Run the whole pipeline on the sample export."""
    stats, entries = process_records(load_records(SAMPLE_CSV), AggregationOptions(), NOW)
    series = group_by_period(entries, Granularity.WEEKLY)
    series = moving_average(series, 3, Metric.TARDINESS)
    annotated, result = regress(series, Metric.TARDINESS, RegressionOptions())
    return {
        "rows": to_rows(stats),
        "series": annotated,
        "regression": result,
        "insights": generate_all_insights(stats, entries, tardiness_trend=result),
    }


class TestExcelExport:
    """Workbook layout."""

    def test_sheets(self, analytics, tmp_path):
        path = tmp_path / "export.xlsx"
        generate_excel_export(str(path), analytics["rows"], SCHOOL_NAME)
        wb = load_workbook(path)
        assert wb.sheetnames == ["All Students", "7a", "8b"]
        ws = wb["All Students"]
        assert ws["A1"].value == "Surname"
        assert ws.max_row == 5
        assert ws["A2"].value == "Becker"
        assert ws.freeze_panes == "A2"

    def test_per_class_rows(self, analytics, tmp_path):
        path = tmp_path / "export.xlsx"
        generate_excel_export(str(path), analytics["rows"], SCHOOL_NAME)
        ws = load_workbook(path)["7a"]
        assert [ws.cell(row=r, column=1).value for r in range(2, ws.max_row + 1)] == ["Müller", "Schmidt"]

    def test_empty_rows(self, tmp_path):
        path = tmp_path / "empty.xlsx"
        generate_excel_export(str(path), [], SCHOOL_NAME)
        assert load_workbook(path).sheetnames == ["All Students"]


class TestCsvExport:
    def test_csv(self, analytics, tmp_path):
        path = tmp_path / "export.csv"
        export_csv(str(path), analytics["rows"])
        df = pd.read_csv(path, sep=";", encoding="utf-8-sig")
        assert list(df["Surname"]) == ["Becker", "Müller", "Schmidt", "Weber"]
        assert "School year absence total" in df.columns


class TestTrendReportPdf:
    def test_pdf_written(self, analytics, tmp_path):
        path = tmp_path / "trend.pdf"
        generate_trend_report_pdf(
            str(path), SCHOOL_NAME, analytics["series"], analytics["regression"],
            Metric.TARDINESS, insights=analytics["insights"],
        )
        assert path.exists()
        assert path.read_bytes()[:4] == b"%PDF"

    def test_pdf_with_empty_series(self, tmp_path):
        path = tmp_path / "empty.pdf"
        _, result = regress([], Metric.ABSENCE)
        generate_trend_report_pdf(str(path), SCHOOL_NAME, [], result, Metric.ABSENCE)
        assert path.stat().st_size > 0
