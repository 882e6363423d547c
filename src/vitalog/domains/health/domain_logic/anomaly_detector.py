"""IQR-based outlier detection on today's observations.

Each metric type gets a trailing baseline built from the values logged
before today; today's values outside ``[q1 - f*iqr, q3 + f*iqr]`` are
reported with a severity grade.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

from vitalog.core.storage.models import Observation, utc_now
from vitalog.core.storage.repository import HealthRepository
from vitalog.domains.health.domain_logic.analytics_models import (
    Anomaly,
    AnomalyPeriod,
    AnomalyResult,
    Baseline,
    Bounds,
    Severity,
    Threshold,
)
from vitalog.domains.health.domain_logic.baseline import compute_baseline

logger = logging.getLogger(__name__)

MIN_BASELINE_POINTS = 7
_IQR_FLOOR = 0.01


def classify_severity(value: float, baseline: Baseline, deviation: str) -> Severity:
    """Grade an out-of-bounds value by its distance from the quartile in IQRs."""
    spread = max(baseline.iqr, _IQR_FLOOR)
    if deviation == "above":
        distance = (value - baseline.q3) / spread
    else:
        distance = (baseline.q1 - value) / spread
    if distance > 2.0:
        return Severity.ALERT
    if distance > 1.5:
        return Severity.WARNING
    return Severity.INFO


class AnomalyDetector:
    """Flags today's observations that fall outside their personal baseline.

    Usage::

        detector = AnomalyDetector(repository)
        result = detector.detect("heart_rate", threshold=Threshold.STRICT)
    """

    def __init__(self, repository: HealthRepository) -> None:
        self._repo = repository

    def detect(
        self,
        metric_type: str | None = None,
        *,
        baseline_days: int = 30,
        threshold: Threshold = Threshold.MODERATE,
        today: date | None = None,
    ) -> AnomalyResult:
        """Scan one metric type (or every type present) for anomalies.

        Args:
            metric_type: Restrict the scan to this type.
            baseline_days: Length of the trailing baseline window.
            threshold: IQR multiple used for the bounds.
            today: Reference day (UTC); defaults to the current day.

        Returns:
            AnomalyResult with the anomalies plus scanned and clean types.
        """
        today = today or utc_now().date()
        start = today - timedelta(days=baseline_days)
        factor = threshold.factor

        types = [metric_type] if metric_type else self._repo.distinct_metric_types()

        anomalies: list[Anomaly] = []
        scanned: list[str] = []
        clean: list[str] = []

        for mtype in types:
            window = self._repo.query_all(mtype, from_date=start, to_date=today)
            if len(window) < MIN_BASELINE_POINTS:
                continue

            historical = [o.value for o in window if o.day < today]
            current = [o for o in window if o.day == today]
            scanned.append(mtype)

            if len(historical) < MIN_BASELINE_POINTS or not current:
                continue

            baseline = compute_baseline(historical)
            bounds = Bounds(
                lower=baseline.q1 - factor * baseline.iqr,
                upper=baseline.q3 + factor * baseline.iqr,
            )

            found = [
                self._build_anomaly(obs, baseline, bounds)
                for obs in current
                if obs.value < bounds.lower or obs.value > bounds.upper
            ]
            if found:
                anomalies.extend(found)
            else:
                clean.append(mtype)

        summary = _summarize(anomalies, len(scanned))
        logger.debug(
            "Anomaly scan: %d type(s) scanned, %d anomal(ies)", len(scanned), len(anomalies)
        )
        return AnomalyResult(
            period=AnomalyPeriod(baseline_start=start, baseline_end=today, days=baseline_days),
            threshold=threshold,
            anomalies=anomalies,
            scanned_types=scanned,
            clean_types=clean,
            summary=summary,
        )

    @staticmethod
    def _build_anomaly(obs: Observation, baseline: Baseline, bounds: Bounds) -> Anomaly:
        deviation = "above" if obs.value > bounds.upper else "below"
        return Anomaly(
            metric_type=obs.metric_type,
            value=obs.value,
            timestamp=obs.timestamp,
            baseline=baseline,
            bounds=bounds,
            deviation=deviation,
            severity=classify_severity(obs.value, baseline, deviation),
            summary=(
                f"{obs.metric_type} {obs.value:.1f} is {deviation} your normal range "
                f"({bounds.lower:.1f}-{bounds.upper:.1f})"
            ),
        )


def _summarize(anomalies: list[Anomaly], scanned_count: int) -> str:
    if scanned_count == 0:
        return "No metrics with sufficient data for anomaly detection."
    if not anomalies:
        return f"No anomalies detected across {scanned_count} metric type(s)."

    affected: list[str] = []
    for anomaly in anomalies:
        if anomaly.metric_type not in affected:
            affected.append(anomaly.metric_type)
    noun = "anomaly" if len(anomalies) == 1 else "anomalies"
    return (
        f"{len(anomalies)} {noun} detected across {scanned_count} metric type(s). "
        f"Affected: {', '.join(affected)}."
    )
