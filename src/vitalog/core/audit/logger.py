"""PHI-free audit trail for the vitalog data bank.

Every tool call, import and bulk delete leaves one ``audit_log`` row. Rows
describe *that* something happened (tool, duration, outcome, counts), never
*what* was logged: tool arguments are reduced to a SHA-256 fingerprint.
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from vitalog.core.storage.database import HealthDatabase

logger = logging.getLogger(__name__)

TOOL_CALL = "tool_invocation"
DATA_IMPORT = "data_import"
DATA_DELETE = "data_delete"

SUCCESS = "success"
FAILURE = "failure"


def input_fingerprint(tool_input: dict[str, Any] | None) -> str:
    """SHA-256 of the call's non-empty arguments as canonical JSON.

    Arguments left at an empty default do not change the fingerprint, so
    ``show_metrics(metric_type="weight")`` and
    ``show_metrics(metric_type="weight", date="")`` hash alike.
    """
    if not tool_input:
        return ""
    meaningful = {k: v for k, v in tool_input.items() if v not in (None, "")}
    if not meaningful:
        return ""
    canonical = json.dumps(meaningful, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


@dataclass(frozen=True)
class AuditEvent:
    action: str
    timestamp: str = ""
    tool_name: str | None = None
    tool_input_hash: str | None = None
    duration_ms: float | None = None
    status: str = SUCCESS
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "action": self.action,
            "tool_name": self.tool_name,
            "status": self.status,
            "error_type": self.error_type,
            "duration_ms": self.duration_ms,
        }


@dataclass
class AuditSummary:
    """Aggregate view of the trail since a cut-off."""

    total_events: int = 0
    failed_calls: int = 0
    calls_by_tool: dict[str, int] = field(default_factory=dict)
    records_imported: int = 0
    records_deleted: int = 0


class AuditLogger:
    """Writes and aggregates ``audit_log`` rows.

    A failed audit write is logged and swallowed: losing an audit row must
    never fail the health tool call it describes.
    """

    def __init__(self, database: HealthDatabase) -> None:
        self._db = database

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------

    def record(self, event: AuditEvent) -> str:
        """Insert an event and return its id ("" if the write failed)."""
        event_id = event.id or str(uuid.uuid4())
        timestamp = event.timestamp or datetime.now(timezone.utc).isoformat()
        try:
            with self._db.transaction() as conn:
                conn.execute(
                    """INSERT INTO audit_log
                       (id, timestamp, action, tool_name, tool_input_hash,
                        duration_ms, status, error_type, metadata_json)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        event_id,
                        timestamp,
                        event.action,
                        event.tool_name,
                        event.tool_input_hash or None,
                        event.duration_ms,
                        event.status,
                        event.error_type,
                        json.dumps(event.metadata, separators=(",", ":"))
                        if event.metadata else None,
                    ),
                )
        except Exception:
            logger.exception("Failed to write %s audit event for %s", event.action, event.tool_name)
            return ""
        return event_id

    def record_call(
        self,
        tool_name: str,
        tool_input: dict[str, Any] | None = None,
        *,
        duration_ms: float | None = None,
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Record one tool call; it counts as failed when ``error_type`` is set."""
        return self.record(AuditEvent(
            action=TOOL_CALL,
            tool_name=tool_name,
            tool_input_hash=input_fingerprint(tool_input),
            duration_ms=duration_ms,
            status=FAILURE if error_type else SUCCESS,
            error_type=error_type,
            metadata=metadata or {},
        ))

    def record_import(self, tool_name: str, *, count: int, fmt: str) -> str:
        return self.record(AuditEvent(
            action=DATA_IMPORT,
            tool_name=tool_name,
            metadata={"records_imported": count, "format": fmt},
        ))

    def record_delete(self, tool_name: str, *, count: int, scope: str = "all") -> str:
        return self.record(AuditEvent(
            action=DATA_DELETE,
            tool_name=tool_name,
            metadata={"records_deleted": count, "scope": scope},
        ))

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------

    def recent(
        self,
        *,
        since: str | None = None,
        action: str | None = None,
        tool_name: str | None = None,
        limit: int = 20,
    ) -> list[AuditEvent]:
        """Events newest first, optionally filtered."""
        where, params = self._filters(since=since, action=action, tool_name=tool_name)
        rows = self._db.connection.execute(
            f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC LIMIT ?",
            (*params, limit),
        ).fetchall()
        return [self._row_to_event(row) for row in rows]

    def summarize(self, *, since: str | None = None) -> AuditSummary:
        """Counts per tool, failures, and totals imported and deleted."""
        where, params = self._filters(since=since)
        conn = self._db.connection
        summary = AuditSummary()

        rows = conn.execute(
            f"""SELECT action, tool_name, status, metadata_json
                FROM audit_log{where}""",
            params,
        ).fetchall()
        for row in rows:
            summary.total_events += 1
            metadata = json.loads(row["metadata_json"]) if row["metadata_json"] else {}
            if row["action"] == TOOL_CALL:
                tool = row["tool_name"] or "unknown"
                summary.calls_by_tool[tool] = summary.calls_by_tool.get(tool, 0) + 1
                if row["status"] == FAILURE:
                    summary.failed_calls += 1
            elif row["action"] == DATA_IMPORT:
                summary.records_imported += int(metadata.get("records_imported", 0))
            elif row["action"] == DATA_DELETE:
                summary.records_deleted += int(metadata.get("records_deleted", 0))

        summary.calls_by_tool = dict(
            sorted(summary.calls_by_tool.items(), key=lambda item: (-item[1], item[0]))
        )
        return summary

    @staticmethod
    def _filters(**conditions: str | None) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        for column, value in conditions.items():
            if not value:
                continue
            if column == "since":
                clauses.append("timestamp >= ?")
            else:
                clauses.append(f"{column} = ?")
            params.append(value)
        return ((" WHERE " + " AND ".join(clauses)) if clauses else ""), params

    @staticmethod
    def _row_to_event(row: Any) -> AuditEvent:
        return AuditEvent(
            id=row["id"],
            timestamp=row["timestamp"],
            action=row["action"],
            tool_name=row["tool_name"],
            tool_input_hash=row["tool_input_hash"],
            duration_ms=row["duration_ms"],
            status=row["status"],
            error_type=row["error_type"],
            metadata=json.loads(row["metadata_json"]) if row["metadata_json"] else {},
        )
