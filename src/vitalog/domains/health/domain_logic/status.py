"""Daily status overview: what was logged, body profile, streaks and alerts."""

from __future__ import annotations

import logging
import statistics
from datetime import date, timedelta
from typing import Any

from vitalog.core.storage.models import utc_now
from vitalog.core.storage.repository import HealthRepository
from vitalog.domains.health.domain_logic.adherence import MedicationAdherenceEngine
from vitalog.domains.health.domain_logic.analytics_models import MedStatus
from vitalog.domains.health.domain_logic.baseline import round_half_away

logger = logging.getLogger(__name__)

PAIN_TYPES = ("pain", "soreness")
STREAK_LOOKBACK_DAYS = 365
PAIN_LOOKBACK_DAYS = 30


def bmi_category(bmi: float) -> str:
    if bmi < 18.5:
        return "underweight"
    if bmi < 25.0:
        return "normal"
    if bmi < 30.0:
        return "overweight"
    return "obese"


def medication_rollup(statuses: list[MedStatus]) -> dict[str, Any] | None:
    """Summarise today's adherence across active medications."""
    if not statuses:
        return None

    adherent = non_adherent = as_needed = 0
    missed: list[str] = []
    for s in statuses:
        if s.adherent_today is None:
            as_needed += 1
        elif s.adherent_today:
            adherent += 1
        else:
            non_adherent += 1
            if s.required_today is not None:
                missed.append(f"{s.name} ({s.taken_today}/{s.required_today} taken)")
            else:
                missed.append(f"{s.name} ({s.taken_today} taken this week)")

    ratios = [s.adherence_7d for s in statuses if s.adherence_7d is not None]
    return {
        "active_count": len(statuses),
        "adherent_today": adherent,
        "non_adherent_today": non_adherent,
        "as_needed": as_needed,
        "missed": missed,
        "overall_adherence_7d": statistics.mean(ratios) if ratios else None,
    }


class DailyStatus:
    """Builds the one-screen overview for a day.

    Usage::

        status = DailyStatus(repository, height_cm=180, pain_threshold=5)
        overview = status.compute()
    """

    def __init__(
        self,
        repository: HealthRepository,
        *,
        height_cm: float | None = None,
        pain_threshold: int = 5,
        pain_consecutive_days: int = 3,
    ) -> None:
        self._repo = repository
        self._height_cm = height_cm
        self._pain_threshold = float(pain_threshold)
        self._pain_days = pain_consecutive_days

    @property
    def pain_threshold(self) -> float:
        return self._pain_threshold

    def compute(self, *, today: date | None = None) -> dict[str, Any]:
        today = today or utc_now().date()
        entries = self._repo.query_by_date(today)

        logged: list[str] = []
        for obs in entries:
            if obs.metric_type not in logged:
                logged.append(obs.metric_type)

        latest = self._repo.query_by_type("weight", limit=1)
        weight = latest[0].value if latest else None
        bmi = None
        if self._height_cm and weight is not None:
            height_m = self._height_cm / 100.0
            bmi = round_half_away(weight / (height_m * height_m), 1)

        pain_alerts = [
            {"type": obs.metric_type, "value": obs.value, "tags": list(obs.tags)}
            for obs in entries
            if obs.metric_type in PAIN_TYPES and obs.value >= self._pain_threshold
        ]

        statuses = MedicationAdherenceEngine(self._repo).adherence_status(today=today)

        return {
            "date": today.isoformat(),
            "profile": {
                "height_cm": self._height_cm,
                "latest_weight_kg": weight,
                "bmi": bmi,
                "bmi_category": bmi_category(bmi) if bmi is not None else None,
            },
            "today": {"logged": logged, "pain_alerts": pain_alerts},
            "streaks": {"logging_days": self.logging_streak(today)},
            "consecutive_pain_alerts": self.consecutive_pain_alerts(today),
            "medications": medication_rollup(statuses),
        }

    def logging_streak(self, today: date) -> int:
        """Consecutive days, ending today, with at least one entry."""
        dates = self._repo.distinct_entry_dates(
            today - timedelta(days=STREAK_LOOKBACK_DAYS), today
        )
        streak = 0
        expected = today
        for day in dates:
            if day != expected:
                break
            streak += 1
            expected -= timedelta(days=1)
        return streak

    def consecutive_pain_alerts(self, today: date) -> list[dict[str, Any]]:
        """Pain types at or above the threshold on N or more consecutive days."""
        start = today - timedelta(days=PAIN_LOOKBACK_DAYS - 1)
        alerts: list[dict[str, Any]] = []
        for pain_type in PAIN_TYPES:
            high_by_day: dict[date, float] = {}
            for obs in self._repo.query_all(pain_type, from_date=start, to_date=today):
                if obs.value >= self._pain_threshold:
                    high_by_day[obs.day] = max(obs.value, high_by_day.get(obs.day, obs.value))

            consecutive = 0
            day = today
            while day >= start and day in high_by_day:
                consecutive += 1
                day -= timedelta(days=1)

            if consecutive and consecutive >= self._pain_days:
                alerts.append(
                    {
                        "metric_type": pain_type,
                        "consecutive_days": consecutive,
                        "latest_value": high_by_day[today],
                    }
                )
                logger.info(
                    "%s at or above %s for %d day(s)", pain_type, self._pain_threshold, consecutive
                )
        return alerts
