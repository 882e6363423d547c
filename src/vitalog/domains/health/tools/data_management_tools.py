"""MCP tools for health data management: export, import and deletion.

Exports return plaintext (notes decrypted) so the user can take their data
elsewhere. Imports and deletions are audit-logged.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from vitalog.core.errors import AnalyticsError, InvalidParameterError
from vitalog.domains.health.tools.tool_support import ToolCall, parse_day

if TYPE_CHECKING:
    from vitalog.core.audit.logger import AuditLogger
    from vitalog.core.config.settings import Settings
    from vitalog.core.storage.repository import HealthRepository
    from vitalog.domains.health.connectors.export_import import (
        ObservationExporter,
        ObservationImporter,
    )

logger = logging.getLogger(__name__)

_FORMATS = ("csv", "json")


def _check_format(fmt: str) -> str:
    normalized = fmt.strip().lower()
    if normalized not in _FORMATS:
        raise InvalidParameterError("format", fmt, _FORMATS)
    return normalized


def register_data_management_tools(
    mcp: FastMCP,
    *,
    settings: Settings,
    repository: HealthRepository,
    exporter: ObservationExporter,
    importer: ObservationImporter,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register data management tools on the MCP server."""

    @mcp.tool
    async def export_metrics(
        ctx: Context,
        format: str = "csv",
        metric_type: str = "",
        from_date: str = "",
        to_date: str = "",
    ) -> str:
        """Export logged entries as CSV or JSON.

        Args:
            format: 'csv' (timestamp,type,value,unit,note,tags,source) or 'json'.
            metric_type: Only this metric type or alias. Empty exports everything.
            from_date: First day to include (YYYY-MM-DD).
            to_date: Last day to include (YYYY-MM-DD).
        """
        call = ToolCall(
            audit_logger,
            "export_metrics",
            {"format": format, "metric_type": metric_type, "from": from_date, "to": to_date},
        )
        try:
            fmt = _check_format(format)
            mtype = settings.resolve_alias(metric_type) if metric_type else None
            start = parse_day(from_date, "from_date")
            end = parse_day(to_date, "to_date")
        except AnalyticsError as exc:
            return call.failed(exc)

        if fmt == "csv":
            content = exporter.to_csv(mtype, from_date=start, to_date=end)
        else:
            content = exporter.to_json(mtype, from_date=start, to_date=end)

        call.done(metadata={"format": fmt})
        return json.dumps({"status": "ok", "format": fmt, "content": content})

    @mcp.tool
    async def import_metrics(
        ctx: Context,
        content: str,
        format: str = "csv",
    ) -> str:
        """Import entries from a CSV or JSON export.

        Every row is validated before anything is stored. Rows without a
        source are marked 'import'.

        Args:
            content: The exported text.
            format: 'csv' or 'json'.
        """
        call = ToolCall(audit_logger, "import_metrics", {"format": format})
        try:
            fmt = _check_format(format)
            if fmt == "csv":
                count = importer.import_csv(content)
            else:
                count = importer.import_json(content)
        except AnalyticsError as exc:
            return call.failed(exc)

        call.done(metadata={"records_imported": count})
        if audit_logger is not None:
            audit_logger.record_import("import_metrics", count=count, fmt=fmt)
        return json.dumps({"status": "imported", "imported": count})

    @mcp.tool
    async def delete_all_health_data(
        ctx: Context,
        confirm: str = "",
    ) -> str:
        """Permanently delete ALL stored entries, medications and goals.

        This is a destructive operation and cannot be undone. The audit
        trail is kept.

        Args:
            confirm: Must be exactly 'DELETE_ALL' to proceed. Safety gate.
        """
        if confirm != "DELETE_ALL":
            return json.dumps({
                "status": "cancelled",
                "message": (
                    "To delete all health data, call this tool with "
                    "confirm='DELETE_ALL'. This action cannot be undone."
                ),
            })

        call = ToolCall(audit_logger, "delete_all_health_data")
        count = repository.delete_all_data()

        if audit_logger is not None:
            audit_logger.record_delete("delete_all_health_data", count=count)

        return json.dumps({
            "status": "all_deleted",
            "entries_deleted": count,
            "duration_ms": call.elapsed_ms,
            "message": "All health data has been permanently deleted.",
        })
