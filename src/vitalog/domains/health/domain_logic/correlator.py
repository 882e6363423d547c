"""Pearson correlation between two metrics on matching days."""

from __future__ import annotations

import logging
import math
import statistics
from collections.abc import Sequence
from datetime import date, timedelta

from vitalog.core.storage.models import Observation, utc_now
from vitalog.core.storage.repository import HealthRepository
from vitalog.domains.health.domain_logic.analytics_models import CorrelationResult
from vitalog.domains.health.domain_logic.baseline import round_half_away

logger = logging.getLogger(__name__)

MIN_PAIRS = 3
LOW_SAMPLE_PAIRS = 10


def daily_averages(observations: Sequence[Observation]) -> dict[date, float]:
    """One mean value per UTC calendar day."""
    grouped: dict[date, list[float]] = {}
    for obs in observations:
        grouped.setdefault(obs.day, []).append(obs.value)
    return {day: statistics.mean(values) for day, values in grouped.items()}


def pearson(xs: Sequence[float], ys: Sequence[float]) -> float:
    n = len(xs)
    sum_x = sum(xs)
    sum_y = sum(ys)
    sum_xy = sum(x * y for x, y in zip(xs, ys))
    sum_x2 = sum(x * x for x in xs)
    sum_y2 = sum(y * y for y in ys)

    numerator = n * sum_xy - sum_x * sum_y
    # Guard the product, a constant series can make it slightly negative.
    product = (n * sum_x2 - sum_x**2) * (n * sum_y2 - sum_y**2)
    denominator = math.sqrt(product) if product > 0 else 0.0
    if denominator < 1e-10:
        return 0.0
    return numerator / denominator


def interpret(coefficient: float, pairs: int) -> str:
    magnitude = abs(coefficient)
    if magnitude < 0.3:
        strength = "weak"
    elif magnitude < 0.7:
        strength = "moderate"
    else:
        strength = "strong"
    text = strength
    if pairs < LOW_SAMPLE_PAIRS:
        text += f" (low sample size: n={pairs})"
    return text


class Correlator:
    """Correlates the daily averages of two metric types.

    Usage::

        correlator = Correlator(repository)
        result = correlator.correlate("sleep_hours", "pain", last_days=30)
    """

    def __init__(self, repository: HealthRepository) -> None:
        self._repo = repository

    def correlate(
        self,
        metric_a: str,
        metric_b: str,
        *,
        last_days: int | None = None,
        today: date | None = None,
    ) -> CorrelationResult:
        a_by_day = daily_averages(self._repo.query_by_type_asc(metric_a))
        b_by_day = daily_averages(self._repo.query_by_type_asc(metric_b))

        days = sorted(a_by_day.keys() & b_by_day.keys())
        if last_days is not None:
            cutoff = (today or utc_now().date()) - timedelta(days=last_days)
            days = [d for d in days if d >= cutoff]

        if len(days) < MIN_PAIRS:
            return CorrelationResult(
                metric_a=metric_a,
                metric_b=metric_b,
                coefficient=0.0,
                data_points=len(days),
                interpretation="insufficient data",
            )

        coefficient = round_half_away(
            pearson([a_by_day[d] for d in days], [b_by_day[d] for d in days]), 2
        )
        logger.debug(
            "Correlation %s/%s over %d day(s): %.2f", metric_a, metric_b, len(days), coefficient
        )
        return CorrelationResult(
            metric_a=metric_a,
            metric_b=metric_b,
            coefficient=coefficient,
            data_points=len(days),
            interpretation=interpret(coefficient, len(days)),
        )
