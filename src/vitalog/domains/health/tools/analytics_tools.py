"""MCP tools for health analytics: anomalies, trends, correlations, overviews.

Every tool recomputes from the stored history on each call; nothing
computed here is persisted.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from vitalog.core.errors import AnalyticsError, InvalidParameterError
from vitalog.core.storage.models import utc_now
from vitalog.domains.health.domain_logic.analytics_models import (
    Threshold,
    TrendPeriod,
    TrendResult,
)
from vitalog.domains.health.domain_logic.report import generate_report
from vitalog.domains.health.domain_logic.units import (
    converts,
    display_unit,
    to_display,
    to_display_rate,
)
from vitalog.domains.health.tools.tool_support import ToolCall, parse_day

if TYPE_CHECKING:
    from vitalog.core.audit.logger import AuditLogger
    from vitalog.core.config.settings import Settings
    from vitalog.core.storage.repository import HealthRepository
    from vitalog.domains.health.domain_logic.anomaly_detector import AnomalyDetector
    from vitalog.domains.health.domain_logic.context import HealthContextBuilder
    from vitalog.domains.health.domain_logic.correlator import Correlator
    from vitalog.domains.health.domain_logic.status import DailyStatus
    from vitalog.domains.health.domain_logic.trend_analyzer import TrendAnalyzer

logger = logging.getLogger(__name__)


def trend_for_display(result: TrendResult, unit_system: str) -> dict[str, Any]:
    """Trend result with values converted to the display unit system."""
    mtype = result.metric_type
    if not converts(mtype, unit_system):
        return result.to_dict()

    def shown(value: float) -> float:
        return to_display(value, mtype, unit_system)[0]

    data = [
        replace(b, avg=shown(b.avg), min=shown(b.min), max=shown(b.max)) for b in result.data
    ]
    trend = replace(
        result.trend,
        rate=to_display_rate(result.trend.rate, mtype, unit_system),
        projected_30d=(
            shown(result.trend.projected_30d)
            if result.trend.projected_30d is not None
            else None
        ),
    )
    payload = replace(result, data=data, trend=trend).to_dict()
    payload["unit"] = display_unit(mtype, unit_system)
    return payload


def register_analytics_tools(
    mcp: FastMCP,
    *,
    repository: HealthRepository,
    settings: Settings,
    anomaly_detector: AnomalyDetector,
    trend_analyzer: TrendAnalyzer,
    correlator: Correlator,
    status_builder: DailyStatus,
    context_builder: HealthContextBuilder,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register analytics tools on the MCP server."""

    @mcp.tool
    async def detect_anomalies(
        ctx: Context,
        metric_type: str = "",
        baseline_days: int = 0,
        threshold: str = "",
    ) -> str:
        """Flag today's values that fall outside your personal normal range.

        The range is the interquartile band of the values logged over the
        trailing baseline window, widened by the threshold factor
        (relaxed 2.0, moderate 1.5, strict 1.0). Metric types need at least
        7 earlier entries in the window to be scanned.

        Args:
            metric_type: Restrict to one metric type or alias. Empty scans all types.
            baseline_days: Baseline window in days (default from settings, 30).
            threshold: 'relaxed', 'moderate' or 'strict' (default from settings).
        """
        call = ToolCall(
            audit_logger,
            "detect_anomalies",
            {"metric_type": metric_type, "baseline_days": baseline_days, "threshold": threshold},
        )
        try:
            result = anomaly_detector.detect(
                settings.resolve_alias(metric_type) if metric_type else None,
                baseline_days=baseline_days or settings.anomaly_baseline_days,
                threshold=Threshold.parse(threshold or settings.anomaly_threshold),
            )
        except AnalyticsError as exc:
            return call.failed(exc)

        call.done(metadata={"anomalies": len(result.anomalies)})
        return json.dumps({"status": "ok", **result.to_dict()}, indent=2)

    @mcp.tool
    async def metric_trend(
        ctx: Context,
        metric_type: str,
        period: str = "weekly",
        last: int = 12,
    ) -> str:
        """Show how a metric moves over time, with a 30-day projection.

        Values are averaged per day, ISO week or month; a least-squares line
        through those averages gives the direction and rate. The projection
        is capped at +/-50% of the latest period average.

        Args:
            metric_type: Metric type or alias (e.g., 'weight').
            period: 'daily', 'weekly' or 'monthly' (default weekly).
            last: Number of most recent periods to use (default 12).
        """
        call = ToolCall(
            audit_logger,
            "metric_trend",
            {"metric_type": metric_type, "period": period, "last": last},
        )
        if last < 1:
            return call.failed(InvalidParameterError("last", last, ["1 or more"]))
        try:
            result = trend_analyzer.compute(
                settings.resolve_alias(metric_type), TrendPeriod.parse(period), last_n=last
            )
        except AnalyticsError as exc:
            return call.failed(exc)

        call.done(metadata={"periods": len(result.data)})
        if result.is_empty:
            return json.dumps({
                "status": "no_data",
                **result.to_dict(),
                "message": f"No entries logged for '{result.metric_type}' yet.",
            })
        return json.dumps(
            {"status": "ok", **trend_for_display(result, settings.unit_system)}, indent=2
        )

    @mcp.tool
    async def correlate_metrics(
        ctx: Context,
        metric_a: str,
        metric_b: str,
        last_days: int = 0,
    ) -> str:
        """Pearson correlation between two metrics on days where both were logged.

        Args:
            metric_a: First metric type or alias (e.g., 'sleep_hours').
            metric_b: Second metric type or alias (e.g., 'pain').
            last_days: Only use the last N days (default: all history).
        """
        call = ToolCall(
            audit_logger,
            "correlate_metrics",
            {"metric_a": metric_a, "metric_b": metric_b, "last_days": last_days},
        )
        if last_days < 0:
            return call.failed(InvalidParameterError("last_days", last_days, ["0 or more"]))

        result = correlator.correlate(
            settings.resolve_alias(metric_a),
            settings.resolve_alias(metric_b),
            last_days=last_days or None,
        )
        call.done(metadata={"data_points": result.data_points})
        return json.dumps({"status": "ok", **result.to_dict()})

    @mcp.tool
    async def daily_status(ctx: Context) -> str:
        """Today's overview: what you logged, BMI, streaks, pain and medication alerts."""
        call = ToolCall(audit_logger, "daily_status")
        overview = status_builder.compute()
        call.done()
        return json.dumps({"status": "ok", **overview}, indent=2)

    @mcp.tool
    async def health_report(
        ctx: Context,
        from_date: str = "",
        to_date: str = "",
    ) -> str:
        """Summarise every metric over a date range (count, average, min, max).

        Args:
            from_date: First day (YYYY-MM-DD). Defaults to 6 days before to_date.
            to_date: Last day (YYYY-MM-DD). Defaults to today.
        """
        call = ToolCall(audit_logger, "health_report", {"from": from_date, "to": to_date})
        try:
            end = parse_day(to_date, "to_date") or utc_now().date()
            start = parse_day(from_date, "from_date") or end - timedelta(days=6)
            if start > end:
                raise InvalidParameterError("from_date", from_date, [f"a day on or before {end}"])
        except AnalyticsError as exc:
            return call.failed(exc)

        report = generate_report(repository, start, end)
        call.done(metadata={"total_entries": report["total_entries"]})
        return json.dumps({"status": "ok", **report}, indent=2)

    @mcp.tool
    async def health_context(
        ctx: Context,
        days: int = 7,
        types: str = "",
    ) -> str:
        """Briefing on recent health: latest values, trends, goals, medications, alerts.

        Call this first in a conversation to get up to speed. Each metric
        logged in the window gets its latest value, min/max/average and a
        daily trend; goal progress, medication adherence, the logging streak,
        pain alerts and today's anomalies are included alongside.

        Args:
            days: Number of days to look back (default 7).
            types: Comma-separated metric types or aliases to include. Empty includes all.
        """
        call = ToolCall(audit_logger, "health_context", {"days": days, "types": types})
        if days < 1:
            return call.failed(InvalidParameterError("days", days, ["1 or more"]))

        wanted = [settings.resolve_alias(t.strip()) for t in types.split(",") if t.strip()]
        briefing = context_builder.compute(days, types=wanted or None)
        call.done(metadata={"metrics": len(briefing.metrics), "alerts": len(briefing.alerts)})
        return json.dumps({"status": "ok", **briefing.to_dict()}, indent=2)
