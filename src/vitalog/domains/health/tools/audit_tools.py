"""MCP tool for reviewing the audit trail.

The trail never holds health data, so it can be shown in full: which tools
ran, how long they took, how many failed, and how many entries were
imported or deleted.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from vitalog.core.errors import InvalidParameterError
from vitalog.domains.health.tools.tool_support import error_response

if TYPE_CHECKING:
    from vitalog.core.audit.logger import AuditLogger

logger = logging.getLogger(__name__)

RECENT_LIMIT = 20


def register_audit_tools(mcp: FastMCP, audit_logger: AuditLogger) -> None:
    """Register the audit trail tool on the MCP server."""

    @mcp.tool
    async def audit_summary(
        ctx: Context,
        days: int = 30,
        tool_name: str = "",
    ) -> str:
        """Summarise tool usage, failures, imports and deletions.

        Args:
            days: Number of days to look back (default: 30).
            tool_name: Only list recent calls of this tool (e.g. 'med_take').
        """
        if days < 1:
            return error_response(
                InvalidParameterError("days", days, ["a whole number of days >= 1"])
            )

        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        summary = audit_logger.summarize(since=since)
        recent = audit_logger.recent(since=since, tool_name=tool_name or None, limit=RECENT_LIMIT)
        logger.debug("Audit summary over %d day(s): %d event(s)", days, summary.total_events)

        return json.dumps({
            "status": "ok",
            "period_days": days,
            "total_events": summary.total_events,
            "failed_calls": summary.failed_calls,
            "calls_by_tool": summary.calls_by_tool,
            "records_imported": summary.records_imported,
            "records_deleted": summary.records_deleted,
            "recent_events": [event.to_dict() for event in recent],
            "note": "This audit trail contains no health data.",
        }, indent=2)
