"""Per-type summary report over a date range."""

from __future__ import annotations

import statistics
from datetime import date
from typing import Any

from vitalog.core.storage.repository import HealthRepository


def generate_report(repository: HealthRepository, start: date, end: date) -> dict[str, Any]:
    """Summarise every observation between ``start`` and ``end`` (inclusive).

    Returns:
        Dict with: from, to, days_with_entries, total_entries and metrics,
        one {type, count, avg, min, max, unit} entry per metric type.
    """
    entries = repository.query_by_date_range(start, end)

    grouped: dict[str, list[float]] = {}
    units: dict[str, str] = {}
    for obs in entries:
        grouped.setdefault(obs.metric_type, []).append(obs.value)
        units.setdefault(obs.metric_type, obs.unit)

    metrics = [
        {
            "type": metric_type,
            "count": len(values),
            "avg": statistics.mean(values),
            "min": min(values),
            "max": max(values),
            "unit": units[metric_type],
        }
        for metric_type, values in sorted(grouped.items())
    ]

    return {
        "from": start.isoformat(),
        "to": end.isoformat(),
        "days_with_entries": len({obs.day for obs in entries}),
        "total_entries": len(entries),
        "metrics": metrics,
    }
