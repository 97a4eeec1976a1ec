"""
patterns.py — Critical attendance patterns and dashboard breakdowns.

Critical-student score (0–100) from weighted factors:
- Unexcused tardiness in the trailing weeks above threshold: 30%
- A single week with excessive unexcused tardiness: 15%
- Unexcused share of this school year's absences ≥ 50%: 25%
- Tardiness well above the class average: 15%
- Deterioration of ≥ 50% against a previous period: 15%

Levels: High (≥70), Medium (40–69), Low (<40)
"""

import math
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from analyzer.models import Category, ClassifiedEntry, ExcuseOutcome, StudentPeriodStats

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]
DETERIORATION_PCT = 50
WEEKLY_LATE_THRESHOLD = 3
CLASS_DEVIATION_FACTOR = 1.5


# ── Recommendation Library ──────────────────────────────────────────

RECOMMENDATIONS = {
    "unexcused_tardiness": (
        "Talk to the student about punctuality and inform the parents in writing "
        "about the unexcused late arrivals."
    ),
    "excessive_week": (
        "Check what happened in the week with the most late arrivals; "
        "short-term causes are often easy to address."
    ),
    "unexcused_absence_rate": (
        "Remind the family of the excuse deadline and follow up on every missing excuse."
    ),
    "class_deviation": (
        "The student stands out from the class. Arrange a meeting with the class teacher."
    ),
    "deterioration": (
        "Attendance has worsened noticeably. Check for changes in the student's situation."
    ),
    "general_high": (
        "Attendance is critical. Involve class teacher, parents and school social work."
    ),
    "general_medium": (
        "Attendance shows warning signs. Monitor closely over the next weeks."
    ),
}


# ── Helpers ─────────────────────────────────────────────────────────

def _safe_float(val) -> Optional[float]:
    try:
        v = float(val)
        return None if np.isnan(v) or np.isinf(v) else round(v, 2)
    except (TypeError, ValueError):
        return None


def _sanitize(obj):
    """Recursively coerce numpy/pandas scalars to plain Python types."""
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_sanitize(v) for v in obj]
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, (np.floating, float)):
        v = float(obj)
        return None if (np.isnan(v) or np.isinf(v)) else v
    return obj


# ── Thresholds ──────────────────────────────────────────────────────

def late_threshold(weeks: float) -> int:
    """Unexcused late arrivals tolerated within the given number of weeks."""
    rounded = math.ceil(weeks)
    if rounded >= 4:
        return 5
    if rounded >= 2:
        return 3
    return 2


def school_days_in_weeks(weeks: float) -> float:
    """Five school days per week, holidays ignored."""
    return weeks * 5


def _change_pct(current: float, previous: float) -> float:
    if previous > 0:
        return (current - previous) / previous * 100
    return 100.0 if current > 0 else 0.0


def deterioration(current: Dict[str, float], previous: Dict[str, float]) -> Dict[str, Any]:
    """
    Percentage change of tardiness and absence between two periods.
    Both dicts carry "tardiness" and "absence" counts.
    """
    tardiness_change = _change_pct(current.get("tardiness", 0), previous.get("tardiness", 0))
    absence_change = _change_pct(current.get("absence", 0), previous.get("absence", 0))
    return {
        "tardiness_change": tardiness_change,
        "absence_change": absence_change,
        "tardiness_deteriorated": tardiness_change >= DETERIORATION_PCT,
        "absence_deteriorated": absence_change >= DETERIORATION_PCT,
    }


def class_average(stats: Dict[str, StudentPeriodStats], class_name: str) -> Dict[str, float]:
    classmates = [s for s in stats.values() if s.class_name == class_name]
    if not classmates:
        return {"tardiness_avg": 0.0, "absence_avg": 0.0}
    return {
        "tardiness_avg": sum(s.total_tardiness for s in classmates) / len(classmates),
        "absence_avg": sum(s.total_absence for s in classmates) / len(classmates),
    }


def has_excessive_week(weekly: Sequence[int], threshold: int = WEEKLY_LATE_THRESHOLD) -> bool:
    return any(v > threshold for v in weekly)


def max_weekly(weekly: Sequence[int]) -> int:
    return max(list(weekly) + [0])


def unexcused_rate(unexcused: float, total: float) -> float:
    """Unexcused share in percent; 0 when there is nothing to excuse."""
    if total == 0:
        return 0.0
    return unexcused / total * 100


# ── Dashboard breakdowns ────────────────────────────────────────────

def weekday_breakdown(entries: Iterable[ClassifiedEntry]) -> List[Dict[str, Any]]:
    """Monday–Friday counts of tardiness and absence."""
    df = pd.DataFrame(
        [{"weekday": e.date.weekday(), "category": e.category.value} for e in entries],
        columns=["weekday", "category"],
    )
    counts = df.groupby(["weekday", "category"]).size() if not df.empty else pd.Series(dtype=int)
    rows = []
    for idx, name in enumerate(WEEKDAYS):
        tardiness = int(counts.get((idx, Category.TARDINESS.value), 0))
        absence = int(counts.get((idx, Category.ABSENCE.value), 0))
        rows.append({"weekday": name, "tardiness": tardiness, "absence": absence, "total": tardiness + absence})
    return rows


def absence_type_breakdown(stats: Dict[str, StudentPeriodStats]) -> Dict[str, Dict[str, int]]:
    """Excused/unexcused/pending totals per category and overall."""
    result = {
        "tardiness": {o.value: 0 for o in ExcuseOutcome},
        "absence": {o.value: 0 for o in ExcuseOutcome},
        "total": {o.value: 0 for o in ExcuseOutcome},
    }
    for s in stats.values():
        for outcome in ExcuseOutcome:
            key = outcome.value
            result["tardiness"][key] += s.tardiness[key]
            result["absence"][key] += s.absence[key]
            result["total"][key] += s.tardiness[key] + s.absence[key]
    return result


# ── Critical students ───────────────────────────────────────────────

def _factor(name: str, weight: int, triggered: bool, detail: str) -> Dict[str, Any]:
    return {"factor": name, "weight": weight, "triggered": triggered, "detail": detail}


def find_critical_students(
    stats: Dict[str, StudentPeriodStats],
    weeks: int,
    previous: Optional[Dict[str, StudentPeriodStats]] = None,
) -> Dict[str, Any]:
    """
    Score every student against the critical-pattern factors.
    `previous` holds stats of the preceding period for the deterioration check.
    Students without any triggered factor are left out.
    """
    threshold = late_threshold(weeks)
    class_avgs = {c: class_average(stats, c) for c in {s.class_name for s in stats.values()}}
    students = []

    for s in stats.values():
        factors = []

        late = s.trailing_tardiness_unexcused
        factors.append(_factor(
            "Unexcused Tardiness", 30, late >= threshold,
            f"{late} unexcused late arrivals in the last {weeks} weeks (threshold {threshold}).",
        ))

        worst = max_weekly(s.weekly_tardiness)
        factors.append(_factor(
            "Excessive Week", 15, has_excessive_week(s.weekly_tardiness),
            f"Most unexcused late arrivals in a single week: {worst}.",
        ))

        rate = unexcused_rate(s.year_absence_unexcused, s.year_absence_total)
        factors.append(_factor(
            "Unexcused Absence Rate", 25, s.year_absence_total > 0 and rate >= 50,
            f"{rate:.0f}% of {s.year_absence_total} absence days this school year are unexcused.",
        ))

        avg = class_avgs[s.class_name]["tardiness_avg"]
        deviating = s.total_tardiness > 0 and s.total_tardiness > avg * CLASS_DEVIATION_FACTOR
        factors.append(_factor(
            "Class Deviation", 15, deviating,
            f"{s.total_tardiness} late arrivals against a class average of {avg:.1f}.",
        ))

        if previous is not None and s.student in previous:
            before = previous[s.student]
            change = deterioration(
                {"tardiness": s.total_tardiness, "absence": s.total_absence},
                {"tardiness": before.total_tardiness, "absence": before.total_absence},
            )
            worse = change["tardiness_deteriorated"] or change["absence_deteriorated"]
            factors.append(_factor(
                "Deterioration", 15, worse,
                f"Tardiness {change['tardiness_change']:+.0f}%, absence {change['absence_change']:+.0f}% "
                f"against the previous period.",
            ))

        triggered = [f for f in factors if f["triggered"]]
        if not triggered:
            continue
        score = float(sum(f["weight"] for f in triggered))
        if score >= 70:
            level = "High"
        elif score >= 40:
            level = "Medium"
        else:
            level = "Low"

        top = max(triggered, key=lambda f: f["weight"])
        factor_key = top["factor"].lower().replace(" ", "_")
        if level == "High":
            recommendation = RECOMMENDATIONS["general_high"] + " " + RECOMMENDATIONS[factor_key]
        elif level == "Medium":
            recommendation = RECOMMENDATIONS["general_medium"] + " " + RECOMMENDATIONS[factor_key]
        else:
            recommendation = RECOMMENDATIONS[factor_key]

        students.append({
            "student": s.student,
            "class": s.class_name,
            "score": score,
            "level": level,
            "factors": factors,
            "recommendation": recommendation,
        })

    students.sort(key=lambda x: (-x["score"], x["student"].casefold()))
    high = sum(1 for x in students if x["level"] == "High")
    medium = sum(1 for x in students if x["level"] == "Medium")

    return _sanitize({
        "students": students,
        "summary": {
            "total": len(students),
            "high": high,
            "medium": medium,
            "low": len(students) - high - medium,
            "late_threshold": threshold,
            "school_days": school_days_in_weeks(weeks),
            "critical_pct": _safe_float(len(students) / len(stats) * 100) if stats else 0,
        },
    })
