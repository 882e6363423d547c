"""MCP tools for logging and viewing metric entries.

Values are entered in the configured unit system and persisted to the
encrypted health data bank (notes are encrypted, numbers are not).
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from vitalog.core.errors import AnalyticsError
from vitalog.domains.health.tools.tool_support import ToolCall, parse_day

if TYPE_CHECKING:
    from vitalog.core.audit.logger import AuditLogger
    from vitalog.domains.health.domain_logic.metric_log import MetricLog

logger = logging.getLogger(__name__)


def register_metric_tools(
    mcp: FastMCP,
    metric_log: MetricLog,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register metric entry tools on the MCP server."""

    @mcp.tool
    async def log_metric(
        ctx: Context,
        metric_type: str,
        value: float,
        note: str = "",
        tags: str = "",
        source: str = "",
        date: str = "",
    ) -> str:
        """Log one metric value (weight, pain, sleep_hours, water, ...).

        Args:
            metric_type: Metric type or alias (e.g., 'weight' or 'w').
            value: Numeric value in your configured unit system.
            note: Optional free-text note (stored encrypted).
            tags: Optional comma-separated tags.
            source: Optional source label (default 'manual').
            date: Day of the entry (YYYY-MM-DD, stored at 12:00 UTC). Defaults to now.
        """
        call = ToolCall(audit_logger, "log_metric", {"metric_type": metric_type, "date": date})
        try:
            obs = metric_log.log(
                metric_type, value, note=note, tags=tags, source=source, on=parse_day(date)
            )
        except AnalyticsError as exc:
            return call.failed(exc)

        call.done()
        logger.info("Logged %s (entry %s)", obs.metric_type, obs.id)
        return json.dumps({
            "status": "saved",
            "entry": {
                "id": obs.id,
                "timestamp": obs.timestamp.isoformat(),
                "type": obs.metric_type,
                "value": obs.value,
                "unit": obs.unit,
            },
        })

    @mcp.tool
    async def log_batch(
        ctx: Context,
        entries: str,
    ) -> str:
        """Log several metric values at once.

        Args:
            entries: JSON array such as '[{"type": "weight", "value": 82.4},
                {"type": "pain", "value": 3, "note": "left knee"}]'.
        """
        call = ToolCall(audit_logger, "log_batch")
        try:
            logged = metric_log.log_batch(entries)
        except AnalyticsError as exc:
            return call.failed(exc)

        call.done(metadata={"entries": len(logged)})
        return json.dumps({
            "status": "saved",
            "entries": [
                {"id": o.id, "type": o.metric_type, "value": o.value, "unit": o.unit}
                for o in logged
            ],
        })

    @mcp.tool
    async def show_metrics(
        ctx: Context,
        metric_type: str = "",
        last: int = 1,
        date: str = "",
    ) -> str:
        """Show recent entries of one metric type, or everything logged on a day.

        Args:
            metric_type: Metric type or alias. Leave empty to list a whole day.
            last: Number of most recent entries to show for a type (default 1).
            date: Day to list when no type is given (YYYY-MM-DD, default today).
        """
        call = ToolCall(audit_logger, "show_metrics", {"metric_type": metric_type, "date": date})
        try:
            result = metric_log.show(metric_type or None, last=last, on=parse_day(date))
        except AnalyticsError as exc:
            return call.failed(exc)

        call.done(metadata={"entries": len(result["entries"])})
        return json.dumps({"status": "ok", **result}, indent=2)
