"""Health context briefing: one record summarising the last N days.

Combines per-metric latest value, trend and stats with goal progress, the
medication rollup, the logging streak, alerts and today's anomalies, so an
assistant can be brought up to speed with a single call.
"""

from __future__ import annotations

import logging
import statistics
from collections.abc import Collection
from datetime import date, timedelta

from vitalog.core.storage.models import utc_now
from vitalog.core.storage.repository import HealthRepository
from vitalog.domains.health.domain_logic.adherence import MedicationAdherenceEngine
from vitalog.domains.health.domain_logic.analytics_models import (
    AlertItem,
    Anomaly,
    ContextPeriod,
    GoalBrief,
    GoalStatus,
    HealthContext,
    LatestValue,
    MedicationBrief,
    MedicationContext,
    MedStatus,
    MetricContext,
    MetricStats,
    Threshold,
    TrendInfo,
    TrendPeriod,
)
from vitalog.domains.health.domain_logic.anomaly_detector import AnomalyDetector
from vitalog.domains.health.domain_logic.baseline import round_half_away
from vitalog.domains.health.domain_logic.goal_evaluator import GoalEvaluator
from vitalog.domains.health.domain_logic.status import PAIN_TYPES, DailyStatus
from vitalog.domains.health.domain_logic.trend_analyzer import TrendAnalyzer

logger = logging.getLogger(__name__)

DEFAULT_DAYS = 7
MIN_ANOMALY_BASELINE_DAYS = 14


def _num(value: float) -> str:
    return f"{value:g}"


def metric_summary(
    metric_type: str,
    latest: LatestValue | None,
    trend: TrendInfo | None,
    stats: MetricStats,
) -> str:
    parts: list[str] = []
    if latest is not None:
        parts.append(f"{metric_type} at {latest.value:.1f}")
    if trend is not None:
        if trend.direction == "stable":
            parts.append("stable")
        else:
            parts.append(f"{trend.direction} {abs(trend.rate):.1f} {trend.rate_unit}")
    if stats.count > 1:
        parts.append(f"{stats.count} readings")
    return ", ".join(parts) if parts else "no data"


def goal_brief(status: GoalStatus) -> GoalBrief:
    if status.is_met:
        summary = (
            f"{status.metric_type} goal met ({status.direction} {_num(status.target_value)})"
        )
    elif status.current_value is not None:
        summary = (
            f"{status.metric_type}: {status.current_value:.1f} / "
            f"{status.target_value:.1f} ({status.direction})"
        )
    else:
        summary = f"{status.metric_type} goal: no data yet"
    return GoalBrief(
        metric_type=status.metric_type,
        target=status.target_value,
        direction=status.direction,
        timeframe=status.timeframe,
        current=status.current_value,
        is_met=status.is_met,
        summary=summary,
    )


def medication_context(statuses: list[MedStatus]) -> MedicationContext | None:
    """Rollup of active medications; None when nothing is being taken."""
    if not statuses:
        return None

    scheduled = [s for s in statuses if s.adherent_today is not None]
    adherent = sum(1 for s in scheduled if s.adherent_today)
    ratios = [s.adherence_7d for s in statuses if s.adherence_7d is not None]
    adherence_7d = statistics.mean(ratios) if ratios else None

    summary = f"{len(statuses)} active medication(s). {adherent}/{len(scheduled)} taken today."
    if adherence_7d is not None:
        summary += f" {adherence_7d * 100:.0f}% adherence (7d)."

    return MedicationContext(
        active_count=len(statuses),
        adherence_today=adherent / len(scheduled) if scheduled else 1.0,
        adherence_7d=adherence_7d,
        medications=[
            MedicationBrief(
                name=s.name,
                adherent_today=s.adherent_today,
                adherence_7d=s.adherence_7d,
                streak=s.streak_days,
            )
            for s in statuses
        ],
        summary=summary,
    )


def top_summary(
    metrics: dict[str, MetricContext],
    goals: list[GoalBrief],
    medications: MedicationContext | None,
    logging_days: int,
    anomalies: list[Anomaly],
) -> str:
    if metrics:
        parts = [f"Tracking {len(metrics)} metric type(s)."]
    else:
        parts = ["No metrics tracked in this period."]
    if goals:
        met = sum(1 for g in goals if g.is_met)
        parts.append(f"{met}/{len(goals)} goal(s) met.")
    if medications is not None:
        parts.append(medications.summary)
    if logging_days > 0:
        parts.append(f"Logging streak: {logging_days} day(s).")
    if anomalies:
        noun = "anomaly" if len(anomalies) == 1 else "anomalies"
        parts.append(f"{len(anomalies)} {noun} detected.")
    return " ".join(parts)


class HealthContextBuilder:
    """Builds the health context briefing from the analytics engines.

    Usage::

        builder = HealthContextBuilder(repository, status=DailyStatus(repository))
        briefing = builder.compute(days=7, types=["weight", "pain"])
    """

    def __init__(
        self,
        repository: HealthRepository,
        *,
        status: DailyStatus,
        trend_analyzer: TrendAnalyzer | None = None,
        anomaly_detector: AnomalyDetector | None = None,
        goals: GoalEvaluator | None = None,
        adherence: MedicationAdherenceEngine | None = None,
    ) -> None:
        self._repo = repository
        self._status = status
        self._trends = trend_analyzer or TrendAnalyzer(repository)
        self._anomalies = anomaly_detector or AnomalyDetector(repository)
        self._goals = goals or GoalEvaluator(repository)
        self._adherence = adherence or MedicationAdherenceEngine(repository)

    def compute(
        self,
        days: int = DEFAULT_DAYS,
        *,
        types: Collection[str] | None = None,
        today: date | None = None,
    ) -> HealthContext:
        """Brief on the window ``[today - days, today]``.

        Args:
            days: Window length in days.
            types: Only include these metric types (goals and anomalies too).
            today: Reference day (UTC); defaults to the current day.
        """
        today = today or utc_now().date()
        start = today - timedelta(days=days)

        def wanted(metric_type: str) -> bool:
            return types is None or metric_type in types

        metrics: dict[str, MetricContext] = {}
        for metric_type in self._repo.distinct_metric_types():
            if not wanted(metric_type):
                continue
            context = self._metric_context(metric_type, start, today, days)
            if context is not None:
                metrics[metric_type] = context

        goals = [
            goal_brief(g) for g in self._goals.goal_status(today=today) if wanted(g.metric_type)
        ]
        medications = medication_context(self._adherence.adherence_status(today=today))
        logging_days = self._status.logging_streak(today)

        anomaly_result = self._anomalies.detect(
            baseline_days=max(days, MIN_ANOMALY_BASELINE_DAYS),
            threshold=Threshold.MODERATE,
            today=today,
        )
        anomalies = [a for a in anomaly_result.anomalies if wanted(a.metric_type)]

        alerts = self._alerts(today)
        alerts.extend(AlertItem(type="anomaly", message=a.summary) for a in anomalies)

        logger.debug(
            "Health context over %d day(s): %d metric(s), %d alert(s)",
            days,
            len(metrics),
            len(alerts),
        )
        return HealthContext(
            generated_at=utc_now(),
            period=ContextPeriod(start=start, end=today, days=days),
            summary=top_summary(metrics, goals, medications, logging_days, anomalies),
            metrics=metrics,
            goals=goals,
            medications=medications,
            streaks={"logging_days": logging_days},
            alerts=alerts,
            anomalies=anomalies,
        )

    def _metric_context(
        self, metric_type: str, start: date, today: date, days: int
    ) -> MetricContext | None:
        entries = self._repo.query_all(metric_type, from_date=start, to_date=today)
        if not entries:
            return None

        last = entries[-1]
        latest = LatestValue(value=last.value, unit=last.unit, timestamp=last.timestamp)
        values = [obs.value for obs in entries]
        stats = MetricStats(
            min=min(values),
            max=max(values),
            avg=round_half_away(statistics.mean(values), 1),
            count=len(values),
        )

        trend = None
        if stats.count >= 2:
            result = self._trends.compute(
                metric_type, TrendPeriod.DAILY, last_n=days, since=start
            )
            trend = TrendInfo(
                direction=result.trend.direction,
                rate=result.trend.rate,
                rate_unit=result.trend.rate_unit,
            )

        return MetricContext(
            latest=latest,
            trend=trend,
            stats=stats,
            summary=metric_summary(metric_type, latest, trend, stats),
        )

    def _alerts(self, today: date) -> list[AlertItem]:
        threshold = self._status.pain_threshold
        alerts = [
            AlertItem(
                type="pain_elevated",
                message=(
                    f"{obs.metric_type} at {_num(obs.value)}/10, "
                    f"above threshold of {_num(threshold)}"
                ),
            )
            for obs in self._repo.query_by_date(today)
            if obs.metric_type in PAIN_TYPES and obs.value >= threshold
        ]
        for streak in self._status.consecutive_pain_alerts(today):
            alerts.append(
                AlertItem(
                    type="consecutive_pain",
                    message=(
                        f"{streak['metric_type']} above threshold for "
                        f"{streak['consecutive_days']} consecutive days "
                        f"(latest: {_num(streak['latest_value'])})"
                    ),
                )
            )
        return alerts
