"""Logging and viewing raw metric entries.

Input values are given in the configured unit system and stored metric;
aliases (``w`` -> ``weight``) are resolved before anything is stored.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import date
from typing import Any

from vitalog.core.errors import InvalidParameterError
from vitalog.core.storage.models import Observation, at_noon_utc, utc_now
from vitalog.core.storage.repository import HealthRepository
from vitalog.domains.health.domain_logic.units import converts, from_input, to_display

logger = logging.getLogger(__name__)


def split_tags(tags: str | list[str] | None) -> list[str]:
    if not tags:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    return [t.strip() for t in tags if t and t.strip()]


class MetricLog:
    """Writes and reads metric entries on behalf of the tools.

    Usage::

        log = MetricLog(repository, aliases={"w": "weight"}, unit_system="metric")
        log.log("w", 82.4, note="after run")
        entries = log.show("weight", last=7)
    """

    def __init__(
        self,
        repository: HealthRepository,
        *,
        aliases: Mapping[str, str] | None = None,
        unit_system: str = "metric",
    ) -> None:
        self._repo = repository
        self._aliases = dict(aliases or {})
        self._unit_system = unit_system

    def resolve(self, metric_type: str) -> str:
        return self._aliases.get(metric_type, metric_type)

    def log(
        self,
        metric_type: str,
        value: float,
        *,
        note: str | None = None,
        tags: str | list[str] | None = None,
        source: str | None = None,
        on: date | None = None,
    ) -> Observation:
        resolved = self.resolve(metric_type)
        observation = Observation.new(
            resolved,
            from_input(float(value), resolved, self._unit_system),
            timestamp=at_noon_utc(on) if on else utc_now(),
            note=note or None,
            tags=split_tags(tags),
            source=source or "manual",
        )
        self._repo.insert_observation(observation)
        return observation

    def log_batch(self, batch: str | list[dict[str, Any]]) -> list[Observation]:
        """Log several entries given as ``[{"type": ..., "value": ...}, ...]``.

        Every entry is validated before any is stored.
        """
        if isinstance(batch, str):
            try:
                batch = json.loads(batch)
            except json.JSONDecodeError as exc:
                raise InvalidParameterError("batch", "not valid JSON", ["JSON array"]) from exc
        if not isinstance(batch, list):
            raise InvalidParameterError("batch", type(batch).__name__, ["JSON array"])

        for index, entry in enumerate(batch):
            if (
                not isinstance(entry, dict)
                or not isinstance(entry.get("type"), str)
                or not isinstance(entry.get("value"), (int, float))
            ):
                raise InvalidParameterError(
                    "batch entry", index, ['{"type": str, "value": number}']
                )

        logged = [
            self.log(
                entry["type"],
                entry["value"],
                note=entry.get("note"),
                tags=entry.get("tags"),
            )
            for entry in batch
        ]
        logger.info("Logged batch of %d entries", len(logged))
        return logged

    def show(
        self,
        metric_type: str | None = None,
        *,
        last: int | None = None,
        on: date | None = None,
    ) -> dict[str, Any]:
        """Recent entries of one type, or every entry on one day."""
        if metric_type:
            resolved = self.resolve(metric_type)
            entries = self._repo.query_by_type(resolved, limit=last or 1)
            return {"type": resolved, "entries": [self.display(o) for o in entries]}

        day = on or utc_now().date()
        entries = self._repo.query_by_date(day)
        return {"date": day.isoformat(), "entries": [self.display(o) for o in entries]}

    def display(self, obs: Observation) -> dict[str, Any]:
        if converts(obs.metric_type, self._unit_system):
            value, unit = to_display(obs.value, obs.metric_type, self._unit_system)
        else:
            value, unit = obs.value, obs.unit
        return {
            "id": obs.id,
            "timestamp": obs.timestamp.isoformat(),
            "type": obs.metric_type,
            "value": value,
            "unit": unit,
            "note": obs.note,
            "tags": list(obs.tags),
            "source": obs.source,
        }
