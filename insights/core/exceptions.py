"""Exception hierarchy for the reporting core.

Every error raised on purpose by this package derives from
``InsightsException`` so the API layer can render it uniformly.

Error codes follow pattern: [CATEGORY][NUMBER]
- VAL: Input validation errors (001-099)
- DAT: Data access errors (200-299)
- SYS: System/configuration errors (400-499)

Unrecognized status values met during aggregation are NOT errors: they are
mapped to an ``UNKNOWN`` bucket and logged (see ``insights.models.statuses``).
"""

from __future__ import annotations

from typing import Any


class InsightsException(Exception):
    """Base exception for all reporting errors."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        """Initialize exception with a user-facing message and metadata.

        Args:
            message: Human readable error message
            code: Unique error code (e.g., "VAL001")
            status_code: HTTP status code (default: 400 Bad Request)
            details: Optional additional context
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response format."""
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "details": self.details,
            }
        }


# ============================================================================
# VALIDATION ERRORS (VAL001-099)
# ============================================================================

class ValidationError(InsightsException):
    """Base class for invalid aggregator parameters.

    Raised synchronously, before any query is issued.
    """
    pass


class MissingOrganizationError(ValidationError):
    """An aggregator was invoked without an organization id."""

    def __init__(self, aggregator: str | None = None):
        super().__init__(
            message="Organisation non définie",
            code="VAL001",
            status_code=400,
            details={"aggregator": aggregator} if aggregator else {},
        )


class InvalidDateRangeError(ValidationError):
    """Explicit date range whose start is after its end."""

    def __init__(self, start: Any, end: Any):
        super().__init__(
            message=f"Invalid date range: {start} is after {end}",
            code="VAL002",
            status_code=422,
            details={"start_date": str(start), "end_date": str(end)},
        )


class InvalidParameterError(ValidationError):
    """Aggregator parameter outside its accepted values."""

    def __init__(self, name: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid {name} {value!r}: {reason}",
            code="VAL003",
            status_code=422,
            details={"parameter": name, "value": str(value)},
        )


# ============================================================================
# DATA ACCESS ERRORS (DAT200-299)
# ============================================================================

class DataAccessError(InsightsException):
    """An underlying read against the data store failed."""

    def __init__(self, table: str, reason: str | None = None):
        message = f"Failed to read from '{table}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            code="DAT200",
            status_code=502,
            details={"table": table},
        )


class UnknownTableError(DataAccessError):
    """Query referenced a table or column the data access layer does not expose."""

    def __init__(self, table: str, column: str | None = None):
        super().__init__(table, f"unknown column '{column}'" if column else "unknown table")
        self.code = "DAT201"
        self.status_code = 500
        if column:
            self.details["column"] = column


# ============================================================================
# SYSTEM ERRORS (SYS400-499)
# ============================================================================

class ConfigurationError(InsightsException):
    """Application is misconfigured."""

    def __init__(self, setting: str, reason: str | None = None):
        super().__init__(
            message=f"Invalid configuration for {setting}" + (f": {reason}" if reason else ""),
            code="SYS401",
            status_code=500,
            details={"setting": setting},
        )
