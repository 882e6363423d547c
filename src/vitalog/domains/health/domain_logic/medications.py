"""Medication schedules and dose-taken events.

Intake is not a separate table: taking a dose records an Observation whose
metric type is the medication name and whose source is ``med_take``.
"""

from __future__ import annotations

import logging
import re
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import date

from vitalog.core.errors import DuplicateMedicationError, MedicationNotFoundError
from vitalog.core.storage.models import (
    DOSE_TAKEN_SOURCE,
    Category,
    Frequency,
    Medication,
    Observation,
    at_noon_utc,
    normalize_route,
    utc_now,
)
from vitalog.core.storage.repository import HealthRepository

logger = logging.getLogger(__name__)

_UNICODE_FRACTIONS = {
    "½": 0.5,
    "⅓": 1.0 / 3.0,
    "⅔": 2.0 / 3.0,
    "¼": 0.25,
    "¾": 0.75,
}
_FRACTION_RE = re.compile(r"^(\d+)\s*/\s*(\d+)\s*(.*)$")
_DECIMAL_RE = re.compile(r"^(\d+\.?\d*|\.\d+)\s*(.*)$")


@dataclass(frozen=True)
class ParsedDose:
    value: float | None
    unit: str


def _unit_or_dose(rest: str) -> str:
    return rest.strip() or "dose"


def parse_dose(text: str | None) -> ParsedDose:
    """Split a free-text dose into a numeric amount and a unit.

    "400mg" -> 400 mg, "1/2 tablet" and "½ tablet" -> 0.5 tablet,
    no dose -> 1 dose. Text without a leading positive number (for example
    "thin layer") has no amount and counts as one "application".
    """
    if not text:
        return ParsedDose(1.0, "dose")

    stripped = text.strip()
    if stripped and stripped[0] in _UNICODE_FRACTIONS:
        return ParsedDose(_UNICODE_FRACTIONS[stripped[0]], _unit_or_dose(stripped[1:]))

    match = _FRACTION_RE.match(stripped)
    if match:
        numerator, denominator = float(match.group(1)), float(match.group(2))
        if numerator and denominator:
            return ParsedDose(numerator / denominator, _unit_or_dose(match.group(3)))

    match = _DECIMAL_RE.match(stripped)
    if match:
        value = float(match.group(1))
        if value > 0:
            return ParsedDose(value, _unit_or_dose(match.group(2)))

    return ParsedDose(None, "application")


def _dose_note(medication: Medication, dose_override: str | None, note: str | None) -> str | None:
    parts: list[str] = []
    dose = f"{dose_override} (override)" if dose_override else medication.dose
    if dose:
        parts.append(dose)
    if not medication.active:
        parts.append("(stopped)")
    head = " ".join(parts)
    if note:
        return f"{head}; {note}" if head else note
    return head or None


class MedicationManager:
    """Adds, stops and removes medications and records taken doses.

    Usage::

        meds = MedicationManager(repository)
        meds.add("ibuprofen", "2x_daily", dose="400mg")
        meds.take("ibuprofen")
    """

    def __init__(self, repository: HealthRepository) -> None:
        self._repo = repository

    def add(
        self,
        name: str,
        frequency: str,
        *,
        dose: str | None = None,
        route: str | None = None,
        note: str | None = None,
        started: date | None = None,
    ) -> Medication:
        """Register a new active medication.

        Raises:
            InvalidParameterError: If the frequency token is unknown.
            DuplicateMedicationError: If an active medication already has
                this name.
        """
        parsed = parse_dose(dose)
        medication = Medication(
            id=str(uuid.uuid4()),
            name=name,
            frequency=Frequency.parse(frequency),
            route=normalize_route(route),
            dose=dose,
            dose_value=parsed.value,
            dose_unit=parsed.unit,
            note=note,
            started_at=at_noon_utc(started) if started else utc_now(),
        )
        try:
            self._repo.insert_medication(medication)
        except sqlite3.IntegrityError as exc:
            raise DuplicateMedicationError(name) from exc
        return medication

    def take(
        self,
        name: str,
        *,
        dose_override: str | None = None,
        note: str | None = None,
        tags: list[str] | None = None,
        on: date | None = None,
    ) -> tuple[Observation, Medication]:
        """Record one dose of a medication (active record first, then any).

        Doses of stopped medications are still recorded and marked
        "(stopped)" in the note.
        """
        medication = self.resolve(name)
        observation = Observation.new(
            medication.name,
            1.0,
            timestamp=at_noon_utc(on) if on else None,
            unit="dose",
            category=Category.MEDICATION,
            note=_dose_note(medication, dose_override, note),
            tags=[t.strip() for t in tags or [] if t.strip()],
            source=DOSE_TAKEN_SOURCE,
        )
        self._repo.insert_observation(observation)
        logger.info("Recorded dose of %s (active=%s)", medication.name, medication.active)
        return observation, medication

    def stop(self, name: str, *, reason: str | None = None, on: date | None = None) -> None:
        stopped_at = at_noon_utc(on) if on else utc_now()
        if not self._repo.stop_medication(name, stopped_at, reason):
            raise MedicationNotFoundError(name)

    def remove(self, name: str) -> None:
        """Delete a medication's records; its intake history is kept."""
        if not self._repo.remove_medication(name):
            raise MedicationNotFoundError(name)

    def list_medications(self, *, include_stopped: bool = False) -> list[Medication]:
        return self._repo.list_medications(include_stopped=include_stopped)

    def resolve(self, name: str) -> Medication:
        medication = self._repo.get_medication_by_name(name)
        if medication is None:
            medication = self._repo.get_medication_by_name_any(name)
        if medication is None:
            raise MedicationNotFoundError(name)
        return medication
