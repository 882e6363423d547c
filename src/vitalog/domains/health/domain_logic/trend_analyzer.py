"""Longitudinal trend analysis of a metric's history.

Observations are bucketed by calendar period (day, ISO week or month), a
least-squares line is fitted through the bucket averages, and the slope
drives the direction, the rate and a clamped 30-day projection.
"""

from __future__ import annotations

import logging
import statistics
from collections.abc import Sequence
from datetime import date

from vitalog.core.storage.models import Observation
from vitalog.core.storage.repository import HealthRepository
from vitalog.domains.health.domain_logic.analytics_models import (
    PeriodData,
    TrendPeriod,
    TrendResult,
    TrendSummary,
)
from vitalog.domains.health.domain_logic.baseline import round_half_away

logger = logging.getLogger(__name__)

DEFAULT_LAST_N = 12
_STABLE_SLOPE = 0.01


def bucket_label(obs: Observation, period: TrendPeriod) -> str:
    if period is TrendPeriod.DAILY:
        return obs.day.isoformat()
    if period is TrendPeriod.WEEKLY:
        iso_year, iso_week, _ = obs.day.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    return obs.day.strftime("%Y-%m")


def bucket_observations(
    observations: Sequence[Observation], period: TrendPeriod
) -> list[PeriodData]:
    """Aggregate observations into per-period buckets, sorted by label."""
    grouped: dict[str, list[float]] = {}
    for obs in observations:
        grouped.setdefault(bucket_label(obs, period), []).append(obs.value)

    return [
        PeriodData(
            label=label,
            avg=statistics.mean(values),
            min=min(values),
            max=max(values),
            count=len(values),
        )
        for label, values in sorted(grouped.items())
    ]


def linear_slope(ys: Sequence[float]) -> float:
    """OLS slope of ``ys`` against their 0-based index."""
    n = len(ys)
    if n < 2:
        return 0.0
    sum_x = sum_y = sum_xy = sum_x2 = 0.0
    for i, y in enumerate(ys):
        sum_x += i
        sum_y += y
        sum_xy += i * y
        sum_x2 += i * i
    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denominator


def clamp_projection(raw: float, last_avg: float) -> float:
    """Clamp a projection to within 50% of the last average, never below zero
    for a non-negative series."""
    if last_avg >= 0:
        lower, upper = max(0.0, last_avg * 0.5), last_avg * 1.5
    else:
        lower, upper = last_avg * 1.5, last_avg * 0.5
    return min(max(raw, lower), upper)


class TrendAnalyzer:
    """Computes per-period trends from a metric's stored history.

    Usage::

        analyzer = TrendAnalyzer(repository)
        result = analyzer.compute("weight", TrendPeriod.WEEKLY, last_n=8)
    """

    def __init__(self, repository: HealthRepository) -> None:
        self._repo = repository

    def compute(
        self,
        metric_type: str,
        period: TrendPeriod = TrendPeriod.WEEKLY,
        *,
        last_n: int | None = None,
        since: date | None = None,
    ) -> TrendResult:
        """Compute the trend of one metric type.

        Args:
            metric_type: Metric to analyse.
            period: Bucket size.
            last_n: Keep only the most recent N buckets (default 12).
            since: Ignore observations logged before this day.

        Returns:
            TrendResult; ``data`` is empty when the metric has no history.
        """
        history = self._repo.query_by_type_asc(metric_type)
        if since is not None:
            history = [obs for obs in history if obs.day >= since]
        buckets = bucket_observations(history, period)
        keep = DEFAULT_LAST_N if last_n is None else last_n
        buckets = buckets[-keep:] if keep > 0 else []

        if len(buckets) < 2:
            projected = buckets[0].avg if buckets else None
            trend = TrendSummary(
                direction="stable",
                rate=0.0,
                rate_unit=period.rate_unit,
                projected_30d=projected,
            )
            return TrendResult(metric_type=metric_type, period=period, data=buckets, trend=trend)

        slope = linear_slope([b.avg for b in buckets])
        if slope < -_STABLE_SLOPE:
            direction = "decreasing"
        elif slope > _STABLE_SLOPE:
            direction = "increasing"
        else:
            direction = "stable"

        last_avg = buckets[-1].avg
        raw = last_avg + slope * period.periods_in_30_days
        projected = round_half_away(clamp_projection(raw, last_avg), 1)

        logger.debug(
            "Trend for %s (%s): %d bucket(s), slope=%.4f",
            metric_type,
            period.value,
            len(buckets),
            slope,
        )
        return TrendResult(
            metric_type=metric_type,
            period=period,
            data=buckets,
            trend=TrendSummary(
                direction=direction,
                rate=round_half_away(slope, 1),
                rate_unit=period.rate_unit,
                projected_30d=projected,
            ),
        )
