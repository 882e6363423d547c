"""Medication adherence: today's snapshot, streaks and windowed ratios.

A day is adherent when the doses taken that day reach the frequency's
daily requirement. Weekly medications are judged per ISO week (Monday
start): any single dose satisfies the week. As-needed medications have no
schedule and report no adherence at all.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date, timedelta

from vitalog.core.storage.models import Frequency, Medication, utc_now
from vitalog.core.storage.repository import HealthRepository
from vitalog.domains.health.domain_logic.analytics_models import DayAdherence, MedStatus
from vitalog.domains.health.domain_logic.medications import MedicationManager

logger = logging.getLogger(__name__)

SHORT_WINDOW_DAYS = 7
LONG_WINDOW_DAYS = 30


def week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


class _IntakeLog:
    """Dose counts per UTC day for one medication."""

    def __init__(self, counts: Counter[date]) -> None:
        self._counts = counts

    def on(self, day: date) -> int:
        return self._counts.get(day, 0)

    def between(self, start: date, end: date) -> int:
        return sum(n for day, n in self._counts.items() if start <= day <= end)


class _Schedule:
    """Eligibility and adherence rules of one medication's schedule."""

    def __init__(self, medication: Medication, intake: _IntakeLog) -> None:
        self.frequency = medication.frequency
        self.started = medication.started_on
        self.stopped = medication.stopped_on
        self.intake = intake

    @property
    def is_weekly(self) -> bool:
        return self.frequency is Frequency.WEEKLY

    def is_eligible(self, day: date) -> bool:
        if day < self.started:
            return False
        return self.stopped is None or day <= self.stopped

    def is_adherent(self, day: date) -> bool:
        if self.is_weekly:
            start = week_start(day)
            return self.intake.between(start, start + timedelta(days=6)) >= 1
        return self.intake.on(day) >= (self.frequency.required_per_day or 1)

    def day_required(self, day: date) -> int:
        # Weekly: only the Sunday of an unsatisfied week is a hard miss.
        if self.is_weekly:
            taken_so_far = self.intake.between(week_start(day), day)
            return 1 if taken_so_far >= 1 or day.weekday() == 6 else 0
        return self.frequency.required_per_day or 1

    def streak(self, today: date) -> int:
        if self.is_weekly:
            return self._weekly_streak(today)
        count = 0
        day = today
        while self.is_eligible(day) and self.is_adherent(day):
            count += 1
            day -= timedelta(days=1)
        return count

    def _weekly_streak(self, today: date) -> int:
        count = 0
        start = week_start(today)
        while start >= self.started - timedelta(days=6):
            if self.stopped is not None and start > self.stopped:
                break
            if self.intake.between(start, start + timedelta(days=6)) < 1:
                break
            count += 1
            start -= timedelta(days=7)
        return count

    def window_ratio(self, today: date, window: int) -> float | None:
        eligible = adherent = 0
        for offset in range(window):
            day = today - timedelta(days=offset)
            if not self.is_eligible(day):
                continue
            eligible += 1
            if self.is_adherent(day):
                adherent += 1
        return adherent / eligible if eligible else None

    def history(self, today: date, last_days: int) -> list[DayAdherence]:
        days: list[DayAdherence] = []
        for offset in range(last_days):
            day = today - timedelta(days=offset)
            if day < self.started:
                break
            if self.stopped is not None and day > self.stopped:
                continue
            required = self.day_required(day)
            taken = self.intake.on(day)
            days.append(
                DayAdherence(date=day, required=required, taken=taken, adherent=taken >= required)
            )
        return days


class MedicationAdherenceEngine:
    """Computes adherence status for one or all active medications.

    Usage::

        engine = MedicationAdherenceEngine(repository)
        statuses = engine.adherence_status("ibuprofen", last_days=14)
    """

    def __init__(self, repository: HealthRepository) -> None:
        self._repo = repository

    def adherence_status(
        self,
        name: str | None = None,
        *,
        last_days: int = 7,
        today: date | None = None,
    ) -> list[MedStatus]:
        """Adherence of a named medication, or of every active one.

        The 30-day ratio and the day-by-day history are only filled in for
        a single named medication.

        Raises:
            MedicationNotFoundError: If ``name`` matches no medication.
        """
        today = today or utc_now().date()
        if name is not None:
            medications = [MedicationManager(self._repo).resolve(name)]
        else:
            medications = self._repo.list_medications()

        single = name is not None
        statuses = [self._status(med, today, last_days, single) for med in medications]
        logger.debug("Adherence computed for %d medication(s)", len(statuses))
        return statuses

    def _intake(self, medication: Medication) -> _IntakeLog:
        counts: Counter[date] = Counter(
            obs.day for obs in self._repo.query_all(medication.name) if obs.is_dose
        )
        return _IntakeLog(counts)

    def _status(
        self, medication: Medication, today: date, last_days: int, single: bool
    ) -> MedStatus:
        intake = self._intake(medication)
        frequency = medication.frequency
        status = MedStatus(
            name=medication.name,
            frequency=frequency.value,
            schedule="fixed",
            route=medication.route,
            dose=medication.dose,
            taken_today=intake.on(today),
        )

        if frequency is Frequency.AS_NEEDED:
            status.schedule = "as_needed"
            return status

        schedule = _Schedule(medication, intake)
        if schedule.is_weekly:
            status.schedule = "weekly"
            status.adherent_today = intake.between(week_start(today), today) >= 1
        else:
            status.required_today = frequency.required_per_day
            status.adherent_today = status.taken_today >= (frequency.required_per_day or 0)

        status.streak_days = schedule.streak(today)
        status.adherence_7d = schedule.window_ratio(today, SHORT_WINDOW_DAYS)
        if single:
            status.adherence_30d = schedule.window_ratio(today, LONG_WINDOW_DAYS)
            status.adherence_history = schedule.history(today, last_days)
        return status
