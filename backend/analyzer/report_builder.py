"""
report_builder.py — Excel, CSV and PDF exports of attendance statistics.

Generates:
- Excel Export  (one sheet for all students, one per class, styled header)
- CSV Export    (flattened student rows)
- Trend Report PDF (trend chart with moving average and regression line,
  period table, regression summary, insights)

All PDFs are A4 with a school name / date footer.
"""

import io
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import matplotlib
matplotlib.use("Agg")  # Non-interactive backend
import matplotlib.pyplot as plt
import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm, mm
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from analyzer.models import Metric, PeriodBucket, RegressionResult, metric_value

logger = logging.getLogger(__name__)


# ── Colour palette ──────────────────────────────────────────────────

BRAND_DARK = colors.HexColor("#1a1a2e")
BRAND_ACCENT = colors.HexColor("#0f3460")
LIGHT_GREY = colors.HexColor("#f5f5f5")
OUTLIER_RED = colors.HexColor("#fadbd8")
WHITE = colors.white

MPL_PALETTE = ["#0f3460", "#e94560", "#2ecc71", "#f39c12", "#9b59b6", "#1abc9c"]

COLUMN_TITLES = {
    "surname": "Surname",
    "given_name": "Given name",
    "class": "Class",
    "tardiness_excused": "Tardiness excused",
    "tardiness_unexcused": "Tardiness unexcused",
    "tardiness_pending": "Tardiness pending",
    "absence_excused": "Absence excused",
    "absence_unexcused": "Absence unexcused",
    "absence_pending": "Absence pending",
    "year_tardiness_unexcused": "School year tardiness unexcused",
    "year_absence_unexcused": "School year absence unexcused",
    "year_absence_total": "School year absence total",
    "trailing_tardiness_unexcused": "Recent weeks tardiness unexcused",
    "trailing_absence_unexcused": "Recent weeks absence unexcused",
}


# ── Helpers ─────────────────────────────────────────────────────────

def _footer(canvas, doc, school_name: str):
    """Draw school name and date in the page footer."""
    canvas.saveState()
    canvas.setFont("Helvetica", 8)
    canvas.setFillColor(colors.grey)
    canvas.drawString(2 * cm, 1.2 * cm, f"{school_name} | Generated {datetime.now().strftime('%d.%m.%Y, %H:%M')}")
    canvas.drawRightString(A4[0] - 2 * cm, 1.2 * cm, f"Page {doc.page}")
    canvas.restoreState()


def _chart_to_image(fig, width=16 * cm, height=8 * cm) -> Image:
    """Convert a matplotlib figure to a ReportLab Image."""
    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=150, bbox_inches="tight")
    plt.close(fig)
    buf.seek(0)
    return Image(buf, width=width, height=height)


def _styles():
    ss = getSampleStyleSheet()
    return {
        "title": ParagraphStyle(
            "CustomTitle", parent=ss["Title"],
            fontSize=22, leading=28, textColor=BRAND_DARK, spaceAfter=4 * mm,
        ),
        "heading": ParagraphStyle(
            "CustomHeading", parent=ss["Heading2"],
            fontSize=14, leading=18, textColor=BRAND_DARK,
            spaceBefore=6 * mm, spaceAfter=3 * mm,
        ),
        "body": ParagraphStyle(
            "CustomBody", parent=ss["Normal"],
            fontSize=10, leading=14, spaceAfter=3 * mm,
        ),
        "small": ParagraphStyle(
            "CustomSmall", parent=ss["Normal"],
            fontSize=8, leading=10, textColor=colors.grey,
        ),
    }


def _make_table(data: List[List], col_widths=None, highlight_rows: Optional[List[int]] = None):
    """Styled table; highlight_rows are data row numbers (1-based) to tint."""
    style_cmds = [
        ("BACKGROUND", (0, 0), (-1, 0), BRAND_DARK),
        ("TEXTCOLOR", (0, 0), (-1, 0), WHITE),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, 0), 9),
        ("FONTSIZE", (0, 1), (-1, -1), 8),
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cccccc")),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [WHITE, LIGHT_GREY]),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]
    for row_idx in highlight_rows or []:
        style_cmds.append(("BACKGROUND", (0, row_idx), (-1, row_idx), OUTLIER_RED))
    t = Table(data, colWidths=col_widths, repeatRows=1)
    t.setStyle(TableStyle(style_cmds))
    return t


def _fmt(value: Optional[float], digits: int = 2) -> str:
    return "" if value is None else f"{value:.{digits}f}"


# ── Charts ──────────────────────────────────────────────────────────

def _trend_chart(series: List[PeriodBucket], metric: Metric, relative: bool = False) -> Optional[Image]:
    """Raw values, moving average, regression line and forecast point."""
    if not series:
        return None

    labels = [b.label for b in series]
    x = list(range(len(series)))
    raw = [metric_value(b, metric, relative) for b in series]

    fig, ax = plt.subplots(figsize=(9, 4))
    real_x = [i for i, v in zip(x, raw) if v is not None]
    real_y = [v for v in raw if v is not None]
    ax.bar(real_x, real_y, color=MPL_PALETTE[0], alpha=0.6, label=metric.value.capitalize())

    outliers = [(i, v) for i, (b, v) in enumerate(zip(series, raw)) if b.is_outlier and v is not None]
    if outliers:
        ax.scatter([i for i, _ in outliers], [v for _, v in outliers],
                   color=MPL_PALETTE[1], zorder=3, label="Outlier")

    ma = [(i, b.moving_average) for i, b in enumerate(series) if b.moving_average is not None]
    if ma:
        ax.plot([i for i, _ in ma], [v for _, v in ma], color=MPL_PALETTE[3], linewidth=2, label="Moving average")

    line = [(i, b.regression_line) for i, b in enumerate(series) if b.regression_line is not None]
    if line:
        ax.plot([i for i, _ in line], [v for _, v in line], color=MPL_PALETTE[2],
                linestyle="--", linewidth=1.5, label="Trend")

    forecast = [(i, b.regression_line) for i, b in enumerate(series) if b.is_prediction]
    if forecast:
        ax.scatter([i for i, _ in forecast], [v for _, v in forecast], marker="D",
                   color=MPL_PALETTE[4], zorder=4, label="Forecast")

    ax.set_xticks(x)
    ax.set_xticklabels(labels, rotation=45, ha="right", fontsize=7)
    ax.set_ylabel("Per school day" if relative else "Count", fontsize=10)
    ax.set_title(f"{metric.value.capitalize()} over time", fontsize=12, fontweight="bold", pad=12)
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    ax.legend(fontsize=7, frameon=False)
    fig.tight_layout()
    return _chart_to_image(fig)


# ── Exports ─────────────────────────────────────────────────────────

def export_csv(output_path: str, rows: List[Dict[str, Any]]):
    """Write flattened student rows as a ';'-separated CSV."""
    df = pd.DataFrame(rows, columns=list(COLUMN_TITLES))
    df.rename(columns=COLUMN_TITLES).to_csv(output_path, sep=";", index=False, encoding="utf-8-sig")
    logger.info("Wrote CSV export %s (%d rows)", output_path, len(df))


def generate_excel_export(output_path: str, rows: List[Dict[str, Any]], school_name: str):
    """Styled workbook: all students on the first sheet, then one sheet per class."""
    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color="1a1a2e", end_color="1a1a2e", fill_type="solid")
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )
    columns = list(COLUMN_TITLES)

    def _fill_sheet(ws, sheet_rows):
        ws.append([COLUMN_TITLES[c] for c in columns])
        for row in sheet_rows:
            ws.append([row.get(c) for c in columns])

        for cell in ws[1]:
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center", wrap_text=True)
            cell.border = thin_border
        for row in ws.iter_rows(min_row=2, max_row=ws.max_row):
            for cell in row:
                cell.border = thin_border
                if cell.column > 3:
                    cell.alignment = Alignment(horizontal="center")

        ws.freeze_panes = "A2"
        for col_cells in ws.columns:
            max_len = max(len(str(cell.value or "")) for cell in col_cells)
            ws.column_dimensions[col_cells[0].column_letter].width = min(max_len + 4, 30)

    wb = Workbook()
    ws_all = wb.active
    ws_all.title = "All Students"
    ws_all.sheet_properties.tabColor = "1a1a2e"
    _fill_sheet(ws_all, rows)

    tab_colors = ["0f3460", "e94560", "2ecc71", "f39c12", "9b59b6", "1abc9c"]
    classes = sorted({r.get("class") or "" for r in rows})
    for i, cls in enumerate(c for c in classes if c):
        # Sheet titles are limited to 31 characters and no '/'
        ws = wb.create_sheet(title=str(cls).replace("/", "-")[:28])
        ws.sheet_properties.tabColor = tab_colors[i % len(tab_colors)]
        _fill_sheet(ws, [r for r in rows if r.get("class") == cls])

    wb.properties.creator = school_name
    wb.save(output_path)
    logger.info("Wrote Excel export %s (%d rows)", output_path, len(rows))


def generate_trend_report_pdf(
    output_path: str,
    school_name: str,
    series: List[PeriodBucket],
    regression: RegressionResult,
    metric: Metric,
    relative: bool = False,
    insights: Optional[Dict[str, Any]] = None,
):
    """One-document trend report for a single metric."""
    st = _styles()
    story = []

    story.append(Paragraph(school_name, st["title"]))
    story.append(Paragraph(f"Attendance trend report: {metric.value}", st["heading"]))
    story.append(Paragraph(datetime.now().strftime("%d.%m.%Y"), st["body"]))

    chart = _trend_chart(series, metric, relative)
    if chart:
        story.append(chart)
        story.append(Spacer(1, 4 * mm))

    story.append(Paragraph("Regression", st["heading"]))
    summary = [
        ["Metric", "Value"],
        ["Trend", regression.trend],
        ["Slope", _fmt(regression.slope, 3)],
        ["Intercept", _fmt(regression.intercept, 3)],
        ["R²", _fmt(regression.r_squared, 3)],
        ["p-value", _fmt(regression.p_value, 4) or "n/a"],
        ["Forecast", _fmt(regression.prediction) or "n/a"],
        ["Outliers", str(len(regression.outlier_indices))],
    ]
    story.append(_make_table(summary, col_widths=[6 * cm, 8 * cm]))

    story.append(Paragraph("Periods", st["heading"]))
    table = [["Period", "Dates", "Value", "Moving avg.", "Trend"]]
    highlight = []
    for b in series:
        value = metric_value(b, metric, relative)
        table.append([b.label, b.date_range, _fmt(value), _fmt(b.moving_average), _fmt(b.regression_line)])
        if b.is_outlier:
            highlight.append(len(table) - 1)
    story.append(_make_table(table, col_widths=[2.5 * cm, 5 * cm, 2.5 * cm, 3 * cm, 3 * cm], highlight_rows=highlight))

    if insights and insights.get("insights"):
        story.append(Paragraph("Insights", st["heading"]))
        if insights.get("executive_summary"):
            story.append(Paragraph(insights["executive_summary"], st["body"]))
        for ins in insights["insights"][:10]:
            story.append(Paragraph(f"<b>{ins['title']}</b>: {ins['narrative']}", st["small"]))

    doc = SimpleDocTemplate(
        output_path,
        pagesize=A4,
        leftMargin=2 * cm,
        rightMargin=2 * cm,
        topMargin=2 * cm,
        bottomMargin=2.5 * cm,
    )
    doc.build(
        story,
        onFirstPage=lambda c, d: _footer(c, d, school_name),
        onLaterPages=lambda c, d: _footer(c, d, school_name),
    )
    logger.info("Wrote trend report %s", output_path)
