"""Order statistics used as the baseline for anomaly detection, and the
rounding every analytics result is reported with."""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

from vitalog.domains.health.domain_logic.analytics_models import Baseline


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """p-th percentile of an ascending sample, by linear interpolation.

    An empty sample gives 0.0 and a single value is returned as is.
    """
    n = len(sorted_values)
    if n == 0:
        return 0.0
    if n == 1:
        return float(sorted_values[0])

    k = (p / 100.0) * (n - 1)
    lower = math.floor(k)
    upper = math.ceil(k)
    if lower == upper:
        return float(sorted_values[lower])
    fraction = k - lower
    return sorted_values[lower] * (1.0 - fraction) + sorted_values[upper] * fraction


def round_half_away(value: float, digits: int = 1) -> float:
    """Round to ``digits`` decimals with halves going away from zero.

    ``round()`` sends halves to the even digit, so 0.25 would give 0.2.
    """
    scale = 10.0**digits
    return math.copysign(math.floor(abs(value) * scale + 0.5), value) / scale


def compute_baseline(values: Iterable[float]) -> Baseline:
    ordered = sorted(values)
    q1 = percentile(ordered, 25)
    q3 = percentile(ordered, 75)
    return Baseline(q1=q1, median=percentile(ordered, 50), q3=q3, iqr=q3 - q1)
