"""Result types produced by the health analytics.

Every result is derived and transient: it is recomputed on each call and
never persisted. ``to_dict()`` gives the JSON-ready form the tools emit.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from vitalog.core.storage.models import _parse_token


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class _Serializable:
    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))  # type: ignore[call-overload]


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

class Threshold(str, Enum):
    RELAXED = "relaxed"
    MODERATE = "moderate"
    STRICT = "strict"

    @property
    def factor(self) -> float:
        """IQR multiplier for the anomaly bounds."""
        return {"relaxed": 2.0, "moderate": 1.5, "strict": 1.0}[self.value]

    @classmethod
    def parse(cls, token: str) -> Threshold:
        return _parse_token(cls, token, "threshold")


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ALERT = "alert"


class TrendPeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def rate_unit(self) -> str:
        return {"daily": "per day", "weekly": "per week", "monthly": "per month"}[self.value]

    @property
    def periods_in_30_days(self) -> float:
        return {"daily": 30.0, "weekly": 30.0 / 7.0, "monthly": 1.0}[self.value]

    @classmethod
    def parse(cls, token: str) -> TrendPeriod:
        return _parse_token(cls, token, "period")


# ---------------------------------------------------------------------------
# Anomalies
# ---------------------------------------------------------------------------

@dataclass
class Baseline(_Serializable):
    """Order statistics of one metric type over a trailing window."""

    q1: float
    median: float
    q3: float
    iqr: float


@dataclass
class Bounds(_Serializable):
    lower: float
    upper: float


@dataclass
class Anomaly(_Serializable):
    metric_type: str
    value: float
    timestamp: datetime
    baseline: Baseline
    bounds: Bounds
    deviation: str  # 'above' | 'below'
    severity: Severity
    summary: str


@dataclass
class AnomalyPeriod(_Serializable):
    baseline_start: date
    baseline_end: date
    days: int


@dataclass
class AnomalyResult(_Serializable):
    period: AnomalyPeriod
    threshold: Threshold
    anomalies: list[Anomaly] = field(default_factory=list)
    scanned_types: list[str] = field(default_factory=list)
    clean_types: list[str] = field(default_factory=list)
    summary: str = ""


# ---------------------------------------------------------------------------
# Trends and correlation
# ---------------------------------------------------------------------------

@dataclass
class PeriodData(_Serializable):
    """Summary statistics of one calendar bucket."""

    label: str
    avg: float
    min: float
    max: float
    count: int


@dataclass
class TrendSummary(_Serializable):
    direction: str  # 'increasing' | 'decreasing' | 'stable'
    rate: float
    rate_unit: str
    projected_30d: float | None = None


@dataclass
class TrendResult(_Serializable):
    metric_type: str
    period: TrendPeriod
    data: list[PeriodData]
    trend: TrendSummary

    @property
    def is_empty(self) -> bool:
        return not self.data


@dataclass
class CorrelationResult(_Serializable):
    metric_a: str
    metric_b: str
    coefficient: float
    data_points: int
    interpretation: str


# ---------------------------------------------------------------------------
# Medication adherence
# ---------------------------------------------------------------------------

@dataclass
class DayAdherence(_Serializable):
    date: date
    required: int
    taken: int
    adherent: bool


@dataclass
class MedStatus(_Serializable):
    """Today's snapshot and adherence history of one medication.

    ``schedule`` says which optional fields apply: ``fixed`` (daily,
    2x/3x daily) fills all of them, ``weekly`` leaves ``required_today``
    unset, ``as_needed`` leaves every adherence field unset.
    """

    name: str
    frequency: str
    schedule: str  # 'fixed' | 'weekly' | 'as_needed'
    route: str
    dose: str | None = None
    required_today: int | None = None
    taken_today: int = 0
    adherent_today: bool | None = None
    streak_days: int | None = None
    adherence_7d: float | None = None
    adherence_30d: float | None = None
    adherence_history: list[DayAdherence] | None = None


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------

@dataclass
class GoalStatus(_Serializable):
    id: str
    metric_type: str
    target_value: float
    direction: str
    timeframe: str
    current_value: float | None
    is_met: bool
    progress: str | None = None


# ---------------------------------------------------------------------------
# Health context briefing
# ---------------------------------------------------------------------------

@dataclass
class LatestValue(_Serializable):
    value: float
    unit: str
    timestamp: datetime


@dataclass
class TrendInfo(_Serializable):
    direction: str
    rate: float
    rate_unit: str


@dataclass
class MetricStats(_Serializable):
    min: float
    max: float
    avg: float
    count: int


@dataclass
class MetricContext(_Serializable):
    latest: LatestValue | None
    trend: TrendInfo | None
    stats: MetricStats
    summary: str


@dataclass
class GoalBrief(_Serializable):
    metric_type: str
    target: float
    direction: str
    timeframe: str
    current: float | None
    is_met: bool
    summary: str


@dataclass
class MedicationBrief(_Serializable):
    name: str
    adherent_today: bool | None
    adherence_7d: float | None
    streak: int | None


@dataclass
class MedicationContext(_Serializable):
    active_count: int
    adherence_today: float
    adherence_7d: float | None
    medications: list[MedicationBrief]
    summary: str


@dataclass
class AlertItem(_Serializable):
    type: str  # 'pain_elevated' | 'consecutive_pain' | 'anomaly'
    message: str


@dataclass
class ContextPeriod(_Serializable):
    start: date
    end: date
    days: int


@dataclass
class HealthContext(_Serializable):
    """Everything worth knowing about the last N days, in one record."""

    generated_at: datetime
    period: ContextPeriod
    summary: str
    metrics: dict[str, MetricContext] = field(default_factory=dict)
    goals: list[GoalBrief] = field(default_factory=list)
    medications: MedicationContext | None = None
    streaks: dict[str, int] = field(default_factory=dict)
    alerts: list[AlertItem] = field(default_factory=list)
    anomalies: list[Anomaly] = field(default_factory=list)
