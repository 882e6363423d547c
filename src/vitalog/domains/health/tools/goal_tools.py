"""MCP tools for metric goals."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from vitalog.core.errors import AnalyticsError
from vitalog.domains.health.tools.tool_support import ToolCall

if TYPE_CHECKING:
    from vitalog.core.audit.logger import AuditLogger
    from vitalog.core.config.settings import Settings
    from vitalog.domains.health.domain_logic.goal_evaluator import GoalEvaluator

logger = logging.getLogger(__name__)


def register_goal_tools(
    mcp: FastMCP,
    *,
    settings: Settings,
    goals: GoalEvaluator,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register goal tools on the MCP server."""

    @mcp.tool
    async def goal_set(
        ctx: Context,
        metric_type: str,
        target: float,
        direction: str,
        timeframe: str = "daily",
    ) -> str:
        """Set a goal for a metric. Replaces the current goal for that metric.

        Cumulative metrics (water, steps, calories_in, calories_burned,
        standing_breaks, medication doses) are summed over the timeframe;
        others use the latest value.

        Args:
            metric_type: Metric type or alias.
            target: Target value.
            direction: 'above', 'below' or 'equal'.
            timeframe: 'daily', 'weekly' or 'monthly' (default daily).
        """
        call = ToolCall(
            audit_logger, "goal_set", {"direction": direction, "timeframe": timeframe}
        )
        try:
            goal = goals.set_goal(
                settings.resolve_alias(metric_type), target, direction, timeframe
            )
        except AnalyticsError as exc:
            return call.failed(exc)

        call.done()
        return json.dumps({
            "status": "saved",
            "goal": {
                "id": goal.id,
                "metric_type": goal.metric_type,
                "target_value": goal.target_value,
                "direction": goal.direction.value,
                "timeframe": goal.timeframe.value,
            },
        })

    @mcp.tool
    async def goal_status(
        ctx: Context,
        metric_type: str = "",
    ) -> str:
        """Progress towards your active goals.

        Args:
            metric_type: Only this metric type or alias. Empty shows all goals.
        """
        call = ToolCall(audit_logger, "goal_status")
        statuses = goals.goal_status(settings.resolve_alias(metric_type) if metric_type else None)
        call.done(metadata={"goals": len(statuses)})
        return json.dumps({
            "status": "ok",
            "goals": [s.to_dict() for s in statuses],
        }, indent=2)

    @mcp.tool
    async def goal_remove(
        ctx: Context,
        goal: str,
    ) -> str:
        """Retire a goal. Goal history is kept.

        Args:
            goal: Goal id, or the metric type whose goal should be retired.
        """
        call = ToolCall(audit_logger, "goal_remove")
        try:
            goals.remove_goal(settings.resolve_alias(goal))
        except AnalyticsError as exc:
            return call.failed(exc)

        call.done()
        return json.dumps({"status": "removed", "goal": goal})
