"""
src/errors.py
─────────────
Domain exceptions raised by the store, ingestion and scheduler.

Callers (forms, API routes) turn these into user-facing messages via
`to_dict()`; nothing is persisted when ValidationError or NotFoundError
is raised from record_reading().
"""
from __future__ import annotations

from typing import Any


class GaugeMonitorError(Exception):
    """Base class for all gauge monitor errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(GaugeMonitorError):
    """Missing required field for the gauge's type, or a malformed value."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message, {"field": field} if field else None)


class NotFoundError(GaugeMonitorError):
    """A referenced machine, station, gauge or gauge type does not exist."""

    def __init__(self, resource_type: str, resource_id: Any):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(
            f"{resource_type} with id '{resource_id}' not found",
            {"resource_type": resource_type, "resource_id": str(resource_id)},
        )


class PersistenceError(GaugeMonitorError):
    """The storage collaborator failed."""

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        message = f"Persistence failure during {operation}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message, {"operation": operation})


class ConfigurationError(GaugeMonitorError):
    """A setting holds a value that cannot be used (e.g. a bad "HH:MM")."""

    def __init__(self, setting: str, value: Any, reason: str):
        self.setting = setting
        self.value = value
        super().__init__(
            f"Invalid value {value!r} for {setting}: {reason}",
            {"setting": setting, "value": str(value), "reason": reason},
        )
