"""
models.py — Plain data types shared by the analysis modules.

Records come in from ingestion, classified entries flow into the aggregator
and the period grouper, and buckets carry the time-series statistics.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import List, Optional


class Category(str, Enum):
    TARDINESS = "tardiness"
    ABSENCE = "absence"


class ExcuseOutcome(str, Enum):
    EXCUSED = "excused"
    UNEXCUSED = "unexcused"
    PENDING = "pending"


class Granularity(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Metric(str, Enum):
    TARDINESS = "tardiness"
    ABSENCE = "absence"


@dataclass
class AttendanceRecord:
    """One raw row of the attendance export."""

    surname: str
    given_name: str
    class_name: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    begin_time: str = ""
    end_time: str = ""
    status: str = ""
    absence_reason: str = ""
    note: str = ""

    @property
    def student(self) -> str:
        return f"{self.surname}, {self.given_name}"


@dataclass(frozen=True)
class ClassifiedEntry:
    student: str
    class_name: str
    date: date
    category: Category
    # None for a status outside the known vocabulary
    outcome: Optional[ExcuseOutcome]
    begin_time: str = ""
    end_time: str = ""
    reason: str = ""
    note: str = ""
    status: str = ""


def _zero_counts() -> dict:
    return {o.value: 0 for o in ExcuseOutcome}


@dataclass
class StudentPeriodStats:
    """Counters and drill-down lists for one student."""

    student: str
    class_name: str = ""
    # Selected range: category -> outcome -> count
    tardiness: dict = field(default_factory=_zero_counts)
    absence: dict = field(default_factory=_zero_counts)
    tardiness_details: List[ClassifiedEntry] = field(default_factory=list)
    absence_details: List[ClassifiedEntry] = field(default_factory=list)
    # School year to date
    year_tardiness_unexcused: int = 0
    year_absence_unexcused: int = 0
    year_absence_total: int = 0
    # Trailing N weeks
    trailing_tardiness_unexcused: int = 0
    trailing_absence_unexcused: int = 0
    weekly_tardiness: List[int] = field(default_factory=list)
    weekly_absence: List[int] = field(default_factory=list)

    @property
    def surname(self) -> str:
        return self.student.split(",", 1)[0].strip()

    @property
    def given_name(self) -> str:
        parts = self.student.split(",", 1)
        return parts[1].strip() if len(parts) > 1 else ""

    @property
    def total_tardiness(self) -> int:
        return sum(self.tardiness.values())

    @property
    def total_absence(self) -> int:
        return sum(self.absence.values())


@dataclass
class PeriodBucket:
    """One point of a period series (a day, a week or a month)."""

    label: str
    sort_key: int
    period_start: Optional[date] = None
    date_range: str = ""
    tardiness: int = 0
    tardiness_unexcused: int = 0
    absence_excused: int = 0
    absence_unexcused: int = 0
    absence_pending: int = 0
    absence_total: int = 0
    moving_average: Optional[float] = None
    is_outlier: bool = False
    regression_line: Optional[float] = None
    rate: Optional[float] = None
    is_prediction: bool = False

    @property
    def weight(self) -> int:
        return self.tardiness + self.absence_total


def metric_value(bucket: PeriodBucket, metric: Metric, relative: bool = False) -> Optional[float]:
    """Read the analysed value of a bucket; None for forecast points."""
    if bucket.is_prediction:
        return None
    if relative:
        return bucket.rate
    if metric == Metric.TARDINESS:
        return bucket.tardiness
    return bucket.absence_total


@dataclass
class RegressionResult:
    slope: float = 0.0
    intercept: float = 0.0
    r_squared: float = 0.0
    trend: str = "no data available"
    prediction: Optional[float] = None
    outlier_indices: List[int] = field(default_factory=list)
    p_value: Optional[float] = None


@dataclass(frozen=True)
class RegressionOptions:
    exclude_outliers: bool = False
    use_relative_values: bool = False


@dataclass(frozen=True)
class AggregationOptions:
    granularity: Granularity = Granularity.WEEKLY
    range_start: Optional[date] = None
    range_end: Optional[date] = None


@dataclass(frozen=True)
class Week:
    start: date
    end: date
    week: int
    year: int


@dataclass(frozen=True)
class SchoolYear:
    start: date
    end: date
    start_year: int
    end_year: int
