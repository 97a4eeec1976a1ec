"""
insights.py — Rule-based attendance insights.

Each rule produces an insight dict with: id, category, severity, title,
narrative, supporting_data, recommendation.

Categories: excuses, weekday, trend, critical.
Severity levels: info, warning, critical.
"""

from typing import Any, Dict, List, Optional

from analyzer.models import ClassifiedEntry, RegressionResult, StudentPeriodStats
from analyzer.patterns import (
    absence_type_breakdown,
    find_critical_students,
    unexcused_rate,
    weekday_breakdown,
)

SEVERITY_ORDER = {"critical": 0, "warning": 1, "info": 2}


# ── Narratives ──────────────────────────────────────────────────────

def narrate_excuse_rate(rate: float, excused: int, total: int) -> str:
    return (
        f"{rate:.1f}% of all recorded absences and late arrivals ({excused} of {total}) "
        f"are excused."
    )


def narrate_weekday_peak(weekday: str, share: float, count: int) -> str:
    return (
        f"{weekday} accounts for {share:.0f}% of all incidents ({count}), "
        f"well above the 20% an even spread across the week would give."
    )


def narrate_trend(metric: str, result: RegressionResult) -> str:
    text = (
        f"The {metric} series shows a {result.trend} trend "
        f"(slope {result.slope:+.2f} per period, R² = {result.r_squared:.2f})."
    )
    if result.prediction is not None:
        text += f" The next period is forecast at {result.prediction:.1f}."
    return text


def generate_executive_summary(insights: List[Dict[str, Any]]) -> str:
    """Combine insights into a short summary paragraph."""
    if not insights:
        return "No significant insights were generated from the available data."
    critical = [i for i in insights if i.get("severity") == "critical"]
    warnings = [i for i in insights if i.get("severity") == "warning"]
    parts = [f"The analysis identified {len(insights)} insight(s)."]
    if critical:
        parts.append("Critical: " + "; ".join(i["title"] for i in critical[:3]) + ".")
    if warnings:
        parts.append("Needs attention: " + "; ".join(i["title"] for i in warnings[:3]) + ".")
    return " ".join(parts)


# ── Rules ───────────────────────────────────────────────────────────

def _excuse_insights(stats: Dict[str, StudentPeriodStats]) -> List[Dict[str, Any]]:
    totals = absence_type_breakdown(stats)["total"]
    decided = totals["excused"] + totals["unexcused"]
    if decided == 0:
        return []
    rate = 100 - unexcused_rate(totals["unexcused"], decided)
    if rate < 50:
        severity, title = "critical", "Most Absences Unexcused"
        recommendation = "Enforce the excuse deadline and contact families with open excuses."
    elif rate < 75:
        severity, title = "warning", "Excuse Rate Can Be Improved"
        recommendation = "Remind classes of the excuse procedure at the next parents' evening."
    else:
        severity, title = "info", "Good Excuse Discipline"
        recommendation = "Keep the current excuse procedure."
    return [{
        "id": "excuse_rate",
        "category": "excuses",
        "severity": severity,
        "title": title,
        "narrative": narrate_excuse_rate(rate, totals["excused"], decided),
        "supporting_data": {
            "excuse_rate": round(rate, 1),
            "excused": totals["excused"],
            "unexcused": totals["unexcused"],
            "pending": totals["pending"],
        },
        "recommendation": recommendation,
    }]


def _weekday_insights(entries: List[ClassifiedEntry]) -> List[Dict[str, Any]]:
    days = weekday_breakdown(entries)
    total = sum(d["total"] for d in days)
    if total < 10:
        return []
    peak = max(days, key=lambda d: d["total"])
    share = peak["total"] / total * 100
    if share < 30:
        return []
    return [{
        "id": f"weekday_peak_{peak['weekday'].lower()}",
        "category": "weekday",
        "severity": "warning",
        "title": f"Incidents Cluster on {peak['weekday']}",
        "narrative": narrate_weekday_peak(peak["weekday"], share, peak["total"]),
        "supporting_data": {"weekdays": days, "share": round(share, 1)},
        "recommendation": f"Look into timetable or transport issues on {peak['weekday']}s.",
    }]


def _trend_insights(metric: str, result: Optional[RegressionResult]) -> List[Dict[str, Any]]:
    if result is None or ("ascending" not in result.trend and "descending" not in result.trend):
        return []
    rising = result.slope > 0
    severity = "warning" if rising and result.r_squared > 0.5 else "info"
    return [{
        "id": f"trend_{metric}",
        "category": "trend",
        "severity": severity,
        "title": f"{metric.capitalize()} {'Rising' if rising else 'Falling'}",
        "narrative": narrate_trend(metric, result),
        "supporting_data": {
            "slope": round(result.slope, 3),
            "r_squared": round(result.r_squared, 3),
            "prediction": result.prediction,
            "p_value": result.p_value,
        },
        "recommendation": (
            "Address the rising trend before it settles in." if rising
            else "The measures in place are working; keep them."
        ),
    }]


def _critical_insights(stats: Dict[str, StudentPeriodStats], weeks: int) -> List[Dict[str, Any]]:
    critical = find_critical_students(stats, weeks)
    high = [s for s in critical["students"] if s["level"] == "High"]
    if not high:
        return []
    names = ", ".join(s["student"] for s in high[:5])
    return [{
        "id": "critical_students",
        "category": "critical",
        "severity": "critical",
        "title": f"{len(high)} Student(s) With Critical Attendance",
        "narrative": f"Critical attendance patterns were found for: {names}.",
        "supporting_data": {"students": high},
        "recommendation": high[0]["recommendation"],
    }]


def generate_all_insights(
    stats: Dict[str, StudentPeriodStats],
    entries: List[ClassifiedEntry],
    tardiness_trend: Optional[RegressionResult] = None,
    absence_trend: Optional[RegressionResult] = None,
    weeks: int = 4,
) -> Dict[str, Any]:
    """
    Run every rule and return:
        {"insights": [...], "summary": {...}, "executive_summary": str}
    """
    insights: List[Dict[str, Any]] = []
    insights.extend(_excuse_insights(stats))
    insights.extend(_weekday_insights(entries))
    insights.extend(_trend_insights("tardiness", tardiness_trend))
    insights.extend(_trend_insights("absence", absence_trend))
    insights.extend(_critical_insights(stats, weeks))

    insights.sort(key=lambda i: SEVERITY_ORDER.get(i.get("severity", "info"), 9))

    by_category: Dict[str, int] = {}
    by_severity: Dict[str, int] = {}
    for insight in insights:
        by_category[insight["category"]] = by_category.get(insight["category"], 0) + 1
        by_severity[insight["severity"]] = by_severity.get(insight["severity"], 0) + 1

    return {
        "insights": insights,
        "summary": {
            "total": len(insights),
            "by_category": by_category,
            "by_severity": by_severity,
        },
        "executive_summary": generate_executive_summary(insights),
    }
