"""CSV and JSON export/import of observations.

CSV columns: ``timestamp,type,value,unit,note,tags,source``. Tags are a
JSON array in a single column. JSON is an array of observation objects.
Timestamps are ISO-8601 UTC; values are written with ``repr`` precision so
a round trip preserves them exactly.
"""

from __future__ import annotations

import csv
import io
import json
import logging
from datetime import date, datetime, timezone
from typing import Any

from vitalog.core.errors import AnalyticsError
from vitalog.core.storage.models import (
    DOSE_TAKEN_SOURCE,
    Category,
    Observation,
    default_unit,
)
from vitalog.core.storage.repository import HealthRepository

logger = logging.getLogger(__name__)

CSV_COLUMNS = ("timestamp", "type", "value", "unit", "note", "tags", "source")
IMPORT_SOURCE = "import"


class ImportFormatError(AnalyticsError, ValueError):
    """Raised when an import payload cannot be parsed."""

    error_type = "invalid_import"


def _parse_timestamp(text: str) -> datetime:
    try:
        ts = datetime.fromisoformat(text.strip().replace("Z", "+00:00"))
    except ValueError as exc:
        raise ImportFormatError(f"Invalid timestamp: {text!r}") from exc
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _category_for(metric_type: str, source: str, stored: str | None = None) -> Category:
    if stored:
        return Category.from_stored(stored)
    if source == DOSE_TAKEN_SOURCE:
        return Category.MEDICATION
    return Category.from_type(metric_type)


def _parse_tags(raw: Any) -> list[str]:
    """Tags from a list, a JSON array string or a comma-separated string."""
    if not raw:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            raw = raw.split(",")
    if not isinstance(raw, list):
        raw = [raw]
    return [str(t).strip() for t in raw if str(t).strip()]


def observation_to_dict(obs: Observation) -> dict[str, Any]:
    return {
        "id": obs.id,
        "timestamp": obs.timestamp.isoformat(),
        "category": obs.category.value,
        "type": obs.metric_type,
        "value": obs.value,
        "unit": obs.unit,
        "note": obs.note,
        "tags": list(obs.tags),
        "source": obs.source,
    }


class ObservationExporter:
    """Serialises stored observations, optionally filtered by type and days."""

    def __init__(self, repository: HealthRepository) -> None:
        self._repo = repository

    def to_csv(
        self,
        metric_type: str | None = None,
        *,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_COLUMNS)
        for obs in self._repo.query_all(metric_type, from_date=from_date, to_date=to_date):
            writer.writerow(
                [
                    obs.timestamp.isoformat(),
                    obs.metric_type,
                    repr(obs.value),
                    obs.unit,
                    obs.note or "",
                    json.dumps(list(obs.tags)),
                    obs.source,
                ]
            )
        return buffer.getvalue()

    def to_json(
        self,
        metric_type: str | None = None,
        *,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> str:
        entries = self._repo.query_all(metric_type, from_date=from_date, to_date=to_date)
        return json.dumps([observation_to_dict(obs) for obs in entries], indent=2)


class ObservationImporter:
    """Parses CSV or JSON payloads into new observations and stores them.

    Imported rows always get fresh ids. A missing unit falls back to the
    type's default unit and a missing source to ``import``. The whole
    payload is parsed before anything is stored, then stored in one transaction.
    """

    def __init__(self, repository: HealthRepository) -> None:
        self._repo = repository

    def import_csv(self, payload: str) -> int:
        reader = csv.DictReader(io.StringIO(payload))
        missing = {"timestamp", "type", "value"} - set(reader.fieldnames or ())
        if missing:
            raise ImportFormatError(f"CSV header is missing: {', '.join(sorted(missing))}")

        parsed: list[Observation] = []
        for line_no, row in enumerate(reader, start=2):
            if not row.get("type") and not row.get("timestamp"):
                continue
            parsed.append(self._build(row, f"Line {line_no}"))
        return self._store(parsed, "CSV")

    def import_json(self, payload: str) -> int:
        try:
            entries = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ImportFormatError(f"Invalid JSON: {exc}") from exc
        if not isinstance(entries, list):
            raise ImportFormatError("JSON import expects an array of observations")

        parsed: list[Observation] = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise ImportFormatError(f"Entry {index}: expected an object")
            parsed.append(self._build(entry, f"Entry {index}"))
        return self._store(parsed, "JSON")

    def _store(self, observations: list[Observation], fmt: str) -> int:
        count = self._repo.insert_observations(observations) if observations else 0
        logger.info("Imported %d observation(s) from %s", count, fmt)
        return count

    @staticmethod
    def _build(entry: dict[str, Any], where: str) -> Observation:
        metric_type = entry.get("type")
        if not metric_type:
            raise ImportFormatError(f"{where}: 'type' is required")
        try:
            value = float(entry["value"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ImportFormatError(f"{where}: invalid value {entry.get('value')!r}") from exc

        source = entry.get("source") or IMPORT_SOURCE
        timestamp = None
        if entry.get("timestamp"):
            try:
                timestamp = _parse_timestamp(str(entry["timestamp"]))
            except ImportFormatError as exc:
                raise ImportFormatError(f"{where}: {exc}") from exc
        return Observation.new(
            str(metric_type),
            value,
            timestamp=timestamp,
            unit=entry.get("unit") or default_unit(str(metric_type)),
            category=_category_for(str(metric_type), source, entry.get("category")),
            note=entry.get("note") or None,
            tags=_parse_tags(entry.get("tags")),
            source=source,
        )
