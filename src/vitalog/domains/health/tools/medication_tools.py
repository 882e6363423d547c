"""MCP tools for medication schedules, dose logging and adherence."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from vitalog.core.errors import AnalyticsError
from vitalog.domains.health.domain_logic.metric_log import split_tags
from vitalog.domains.health.tools.tool_support import ToolCall, parse_day

if TYPE_CHECKING:
    from vitalog.core.audit.logger import AuditLogger
    from vitalog.core.config.settings import Settings
    from vitalog.core.storage.models import Medication
    from vitalog.domains.health.domain_logic.adherence import MedicationAdherenceEngine
    from vitalog.domains.health.domain_logic.medications import MedicationManager

logger = logging.getLogger(__name__)


def medication_to_dict(med: Medication) -> dict:
    return {
        "id": med.id,
        "name": med.name,
        "dose": med.dose,
        "dose_value": med.dose_value,
        "dose_unit": med.dose_unit,
        "route": med.route,
        "frequency": med.frequency.value,
        "active": med.active,
        "started_at": med.started_at.isoformat(),
        "stopped_at": med.stopped_at.isoformat() if med.stopped_at else None,
        "stop_reason": med.stop_reason,
        "note": med.note,
    }


def register_medication_tools(
    mcp: FastMCP,
    *,
    settings: Settings,
    medications: MedicationManager,
    adherence: MedicationAdherenceEngine,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register medication tools on the MCP server."""

    @mcp.tool
    async def med_add(
        ctx: Context,
        name: str,
        frequency: str,
        dose: str = "",
        route: str = "oral",
        note: str = "",
        started: str = "",
    ) -> str:
        """Start tracking a medication.

        Args:
            name: Medication name (e.g., 'ibuprofen').
            frequency: 'daily', '2x_daily', '3x_daily', 'weekly' or 'as_needed'.
            dose: Dose text, e.g. '400mg', '1/2 tablet', '2 drops'.
            route: oral, topical, ophthalmic, injection, inhaled, sublingual,
                transdermal, or any other route.
            note: Optional note (stored encrypted).
            started: Start date (YYYY-MM-DD). Defaults to now.
        """
        call = ToolCall(audit_logger, "med_add", {"frequency": frequency, "route": route})
        try:
            med = medications.add(
                name,
                frequency,
                dose=dose or None,
                route=route,
                note=note or None,
                started=parse_day(started, "started"),
            )
        except AnalyticsError as exc:
            return call.failed(exc)

        call.done()
        return json.dumps({"status": "saved", "medication": medication_to_dict(med)})

    @mcp.tool
    async def med_take(
        ctx: Context,
        name: str,
        dose: str = "",
        note: str = "",
        tags: str = "",
        date: str = "",
    ) -> str:
        """Record that you took a dose of a medication.

        Args:
            name: Medication name or alias.
            dose: Override the scheduled dose for this intake.
            note: Optional note (stored encrypted).
            tags: Optional comma-separated tags.
            date: Day of the dose (YYYY-MM-DD, stored at 12:00 UTC). Defaults to now.
        """
        call = ToolCall(audit_logger, "med_take", {"date": date})
        try:
            obs, med = medications.take(
                settings.resolve_alias(name),
                dose_override=dose or None,
                note=note or None,
                tags=split_tags(tags),
                on=parse_day(date),
            )
        except AnalyticsError as exc:
            return call.failed(exc)

        call.done()
        result = {
            "status": "saved",
            "entry": {
                "id": obs.id,
                "timestamp": obs.timestamp.isoformat(),
                "type": obs.metric_type,
                "value": obs.value,
                "unit": obs.unit,
                "note": obs.note,
            },
            "medication": {"name": med.name, "dose": med.dose, "active": med.active},
        }
        if not med.active:
            result["warning"] = f"'{med.name}' is stopped; the dose was recorded anyway."
        return json.dumps(result)

    @mcp.tool
    async def med_stop(
        ctx: Context,
        name: str,
        reason: str = "",
        date: str = "",
    ) -> str:
        """Stop an active medication. Its dose history is kept.

        Args:
            name: Medication name.
            reason: Optional reason (stored encrypted).
            date: Stop date (YYYY-MM-DD). Defaults to now.
        """
        call = ToolCall(audit_logger, "med_stop", {"date": date})
        try:
            medications.stop(name, reason=reason or None, on=parse_day(date))
        except AnalyticsError as exc:
            return call.failed(exc)

        call.done()
        return json.dumps({"status": "stopped", "name": name})

    @mcp.tool
    async def med_remove(
        ctx: Context,
        name: str,
    ) -> str:
        """Delete a medication's schedule records. Logged doses are kept.

        Args:
            name: Medication name.
        """
        call = ToolCall(audit_logger, "med_remove")
        try:
            medications.remove(name)
        except AnalyticsError as exc:
            return call.failed(exc)

        call.done()
        return json.dumps({"status": "removed", "name": name})

    @mcp.tool
    async def med_list(
        ctx: Context,
        include_stopped: bool = False,
    ) -> str:
        """List tracked medications.

        Args:
            include_stopped: Also list stopped medications.
        """
        call = ToolCall(audit_logger, "med_list", {"include_stopped": include_stopped})
        meds = medications.list_medications(include_stopped=include_stopped)
        call.done(metadata={"medications": len(meds)})
        return json.dumps({
            "status": "ok",
            "medications": [medication_to_dict(m) for m in meds],
        }, indent=2)

    @mcp.tool
    async def med_status(
        ctx: Context,
        name: str = "",
        last_days: int = 7,
    ) -> str:
        """Adherence status: doses due and taken today, streak and adherence ratios.

        With a name, also reports 30-day adherence and a day-by-day history.

        Args:
            name: Medication name or alias. Empty reports every active medication.
            last_days: Days of history for a single medication (default 7).
        """
        call = ToolCall(audit_logger, "med_status", {"last_days": last_days})
        try:
            statuses = adherence.adherence_status(
                settings.resolve_alias(name) if name else None, last_days=last_days
            )
        except AnalyticsError as exc:
            return call.failed(exc)

        call.done(metadata={"medications": len(statuses)})
        return json.dumps({
            "status": "ok",
            "medications": [s.to_dict() for s in statuses],
        }, indent=2)
