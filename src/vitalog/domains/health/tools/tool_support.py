"""Helpers shared by the health MCP tools."""

from __future__ import annotations

import json
import logging
import time
from datetime import date
from typing import TYPE_CHECKING, Any

from vitalog.core.errors import AnalyticsError, InvalidParameterError

if TYPE_CHECKING:
    from vitalog.core.audit.logger import AuditLogger

logger = logging.getLogger(__name__)


def parse_day(text: str, parameter: str = "date") -> date | None:
    """Parse an optional ``YYYY-MM-DD`` tool argument."""
    if not text:
        return None
    try:
        return date.fromisoformat(text.strip())
    except ValueError as exc:
        raise InvalidParameterError(parameter, text, ["YYYY-MM-DD"]) from exc


def error_response(exc: AnalyticsError) -> str:
    return json.dumps({
        "status": "error",
        "error_type": exc.error_type,
        "message": str(exc),
    })


class ToolCall:
    """Times one tool invocation and writes its audit entry.

    Usage::

        call = ToolCall(audit_logger, "metric_trend", {"metric_type": "weight"})
        ...
        call.done(metadata={"buckets": 8})
    """

    def __init__(
        self,
        audit_logger: AuditLogger | None,
        tool_name: str,
        tool_input: dict[str, Any] | None = None,
    ) -> None:
        self._audit = audit_logger
        self.tool_name = tool_name
        self._input = tool_input
        self._start = time.monotonic()

    @property
    def elapsed_ms(self) -> float:
        return round((time.monotonic() - self._start) * 1000, 1)

    def done(self, *, metadata: dict[str, Any] | None = None) -> None:
        if self._audit is not None:
            self._audit.record_call(
                self.tool_name,
                self._input,
                duration_ms=self.elapsed_ms,
                metadata=metadata,
            )

    def failed(self, exc: AnalyticsError) -> str:
        """Audit a caller-facing failure and return its JSON response."""
        logger.info("%s rejected: %s", self.tool_name, exc)
        if self._audit is not None:
            self._audit.record_call(
                self.tool_name,
                self._input,
                duration_ms=self.elapsed_ms,
                error_type=exc.error_type,
            )
        return error_response(exc)
