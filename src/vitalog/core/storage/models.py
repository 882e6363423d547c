"""Data models for the health persistence layer.

The enum string values are written to SQLite and to export files, so they
are part of the storage contract: never rename a value.
"""

from __future__ import annotations

import sys
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import TypeVar

from vitalog.core.errors import InvalidParameterError

# Source marker of observations recorded by taking a medication dose
DOSE_TAKEN_SOURCE = "med_take"

_E = TypeVar("_E", bound=Enum)


def _parse_token(enum_cls: type[_E], token: str, parameter: str) -> _E:
    normalized = token.strip().lower()
    for member in enum_cls:
        if member.value == normalized:
            return member
    raise InvalidParameterError(parameter, token, [m.value for m in enum_cls])


# ---------------------------------------------------------------------------
# Closed vocabularies
# ---------------------------------------------------------------------------

class Category(str, Enum):
    BODY = "body"
    EXERCISE = "exercise"
    SLEEP = "sleep"
    NUTRITION = "nutrition"
    PAIN = "pain"
    HABIT = "habit"
    MEDICATION = "medication"
    CUSTOM = "custom"

    @classmethod
    def from_type(cls, metric_type: str) -> Category:
        """Derive the category of a (non-medication) metric type."""
        return _CATEGORY_BY_TYPE.get(metric_type, cls.CUSTOM)

    @classmethod
    def from_stored(cls, value: str) -> Category:
        try:
            return cls(value)
        except ValueError:
            return cls.CUSTOM


_CATEGORY_BY_TYPE = {
    "weight": Category.BODY,
    "body_fat": Category.BODY,
    "waist": Category.BODY,
    "cardio": Category.EXERCISE,
    "strength": Category.EXERCISE,
    "calories_burned": Category.EXERCISE,
    "sleep_hours": Category.SLEEP,
    "sleep_quality": Category.SLEEP,
    "bed_time": Category.SLEEP,
    "wake_time": Category.SLEEP,
    "calories": Category.NUTRITION,
    "calories_in": Category.NUTRITION,
    "calories_out": Category.NUTRITION,
    "water": Category.NUTRITION,
    "pain": Category.PAIN,
    "soreness": Category.PAIN,
    "standing_breaks": Category.HABIT,
    "screen_time": Category.HABIT,
}

DEFAULT_UNITS = {
    "weight": "kg",
    "body_fat": "%",
    "waist": "cm",
    "cardio": "min",
    "strength": "min",
    "calories": "kcal",
    "calories_out": "kcal",
    "calories_burned": "kcal",
    "calories_in": "kcal",
    "sleep_hours": "hours",
    "sleep_quality": "1-5",
    "bed_time": "HH:MM",
    "wake_time": "HH:MM",
    "water": "ml",
    "sleep": "hours",
    "steps": "steps",
    "mood": "1-10",
    "heart_rate": "bpm",
    "bp_systolic": "mmHg",
    "bp_diastolic": "mmHg",
    "pain": "0-10",
    "soreness": "0-10",
    "standing_breaks": "count",
    "screen_time": "hours",
}

# Summed over a goal timeframe instead of taking the latest value
CUMULATIVE_TYPES = frozenset(
    {"water", "steps", "calories_in", "calories_burned", "standing_breaks"}
)


def default_unit(metric_type: str) -> str:
    """Default unit for a known metric type, empty for unknown ones."""
    return DEFAULT_UNITS.get(metric_type, "")


def is_cumulative(metric_type: str) -> bool:
    return metric_type in CUMULATIVE_TYPES


class Frequency(str, Enum):
    DAILY = "daily"
    TWICE_DAILY = "2x_daily"
    THREE_TIMES_DAILY = "3x_daily"
    WEEKLY = "weekly"
    AS_NEEDED = "as_needed"

    @property
    def required_per_day(self) -> int | None:
        """Doses required per day; ``None`` when there is no fixed daily schedule."""
        return _REQUIRED_PER_DAY.get(self)

    @classmethod
    def parse(cls, token: str) -> Frequency:
        return _parse_token(cls, token, "frequency")


_REQUIRED_PER_DAY = {
    Frequency.DAILY: 1,
    Frequency.TWICE_DAILY: 2,
    Frequency.THREE_TIMES_DAILY: 3,
}


def normalize_route(route: str | None) -> str:
    """Lower-case a route; unknown routes are kept as free text."""
    if not route or not route.strip():
        return "oral"
    return route.strip().lower()


class Direction(str, Enum):
    ABOVE = "above"
    BELOW = "below"
    EQUAL = "equal"

    @classmethod
    def parse(cls, token: str) -> Direction:
        return _parse_token(cls, token, "direction")


class Timeframe(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, token: str) -> Timeframe:
        return _parse_token(cls, token, "timeframe")


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def at_noon_utc(day: date) -> datetime:
    """Timestamp used when an entry is back-dated to a calendar day."""
    return datetime(day.year, day.month, day.day, 12, 0, 0, tzinfo=timezone.utc)


@dataclass(frozen=True)
class Observation:
    """A single timestamped metric value. Immutable once created."""

    id: str
    timestamp: datetime  # timezone-aware, UTC
    metric_type: str
    value: float
    unit: str
    category: Category
    note: str | None = None
    tags: tuple[str, ...] = ()
    source: str = "manual"

    @classmethod
    def new(
        cls,
        metric_type: str,
        value: float,
        *,
        timestamp: datetime | None = None,
        unit: str | None = None,
        category: Category | None = None,
        note: str | None = None,
        tags: tuple[str, ...] | list[str] = (),
        source: str = "manual",
    ) -> Observation:
        """Build a new observation with a fresh id and type-derived defaults."""
        ts = timestamp or utc_now()
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return cls(
            id=str(uuid.uuid4()),
            timestamp=ts.astimezone(timezone.utc),
            metric_type=metric_type,
            value=float(value),
            unit=default_unit(metric_type) if unit is None else unit,
            category=category or Category.from_type(metric_type),
            note=note,
            tags=tuple(tags),
            source=source,
        )

    @property
    def day(self) -> date:
        """Calendar day (UTC) the observation belongs to."""
        return self.timestamp.date()

    @property
    def is_dose(self) -> bool:
        return self.source == DOSE_TAKEN_SOURCE


@dataclass
class Medication:
    """A medication schedule. Intake events live in ``metrics`` as observations."""

    id: str
    name: str
    frequency: Frequency
    route: str = "oral"
    dose: str | None = None
    dose_value: float | None = None
    dose_unit: str | None = None
    active: bool = True
    started_at: datetime = field(default_factory=utc_now)
    stopped_at: datetime | None = None
    stop_reason: str | None = None
    note: str | None = None
    created_at: datetime = field(default_factory=utc_now)

    @property
    def started_on(self) -> date:
        return self.started_at.date()

    @property
    def stopped_on(self) -> date | None:
        return self.stopped_at.date() if self.stopped_at else None


@dataclass
class Goal:
    """A target for one metric type. At most one active goal per type."""

    id: str
    metric_type: str
    target_value: float
    direction: Direction
    timeframe: Timeframe
    active: bool = True
    created_at: datetime = field(default_factory=utc_now)

    @classmethod
    def new(
        cls,
        metric_type: str,
        target_value: float,
        direction: Direction,
        timeframe: Timeframe,
    ) -> Goal:
        return cls(
            id=str(uuid.uuid4()),
            metric_type=metric_type,
            target_value=float(target_value),
            direction=direction,
            timeframe=timeframe,
        )

    def is_met(self, value: float) -> bool:
        """Check a current value against the target.

        ``equal`` is exact to machine epsilon, with no tolerance band.
        """
        if self.direction is Direction.ABOVE:
            return value >= self.target_value
        if self.direction is Direction.BELOW:
            return value <= self.target_value
        return abs(value - self.target_value) < sys.float_info.epsilon
