"""Error taxonomy shared by the store, the analytics and the MCP tools.

Insufficient data is never an error: analytics return explicit empty
results instead. Store failures (``sqlite3.Error``, ``DatabaseError``,
``EncryptionError``) are not wrapped and propagate unchanged.
"""

from __future__ import annotations

from collections.abc import Iterable


class AnalyticsError(Exception):
    """Base class for caller-facing failures the tools report as JSON."""

    error_type = "analytics_error"


class InvalidParameterError(AnalyticsError, ValueError):
    """An enum-like token (threshold, period, direction, ...) did not parse."""

    error_type = "invalid_parameter"

    def __init__(self, parameter: str, value: object, accepted: Iterable[str]) -> None:
        self.parameter = parameter
        self.value = value
        self.accepted = tuple(accepted)
        super().__init__(
            f"invalid {parameter}: {value} (expected {'/'.join(self.accepted)})"
        )


class MedicationNotFoundError(AnalyticsError, LookupError):
    """No medication record (active or stopped) matches the given name."""

    error_type = "not_found"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Medication '{name}' not found.")


class DuplicateMedicationError(AnalyticsError):
    """An active medication with the same name already exists."""

    error_type = "duplicate"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Medication '{name}' is already active. Stop it first before re-adding."
        )


class GoalNotFoundError(AnalyticsError, LookupError):
    """No active goal matches the given id or metric type."""

    error_type = "not_found"

    def __init__(self, id_or_type: str) -> None:
        self.id_or_type = id_or_type
        super().__init__(f"goal not found or already inactive: {id_or_type}")
