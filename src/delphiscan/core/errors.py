"""delphiscan error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Scan
- 9xxx: Internal

Only caller mistakes (bad input paths, bad config) and cancellation are
raised. Problems found inside the scanned sources travel as ScanWarning
values, see core/results.py.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002

    # Scan (3xxx)
    SCAN_PATH_NOT_FOUND = 3001
    SCAN_UNSUPPORTED_INPUT = 3002
    SCAN_CANCELLED = 3003

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


@dataclass(frozen=True, slots=True)
class DelphiScanError(Exception):
    """Base error with structured context for JSON output."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'SCAN_PATH_NOT_FOUND')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(DelphiScanError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )


class ScanError(DelphiScanError):
    """Errors in the scan request itself (never in the scanned sources)."""

    @classmethod
    def path_not_found(cls, path: str) -> "ScanError":
        return cls(
            code=ErrorCode.SCAN_PATH_NOT_FOUND,
            message=f"Path not found: {path}",
            details={"path": path},
        )

    @classmethod
    def unsupported_input(cls, path: str) -> "ScanError":
        return cls(
            code=ErrorCode.SCAN_UNSUPPORTED_INPUT,
            message=f"Expected a .dpr, .dproj or directory: {path}",
            details={"path": path},
        )


class ScanCancelled(DelphiScanError):
    """Raised when a CancellationToken fires between units or projects."""

    @classmethod
    def between(cls, what: str) -> "ScanCancelled":
        return cls(
            code=ErrorCode.SCAN_CANCELLED,
            message=f"Scan cancelled before {what}",
            retryable=True,
            details={"next": what},
        )


class InternalError(DelphiScanError):
    """A bug in delphiscan met while scanning one unit.

    Never raised out of a scan: the pipeline records it on the project as an
    INTERNAL warning and moves on to the next unit.
    """

    @classmethod
    def unit_failed(cls, unit_name: str, cause: Exception) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Failed to scan unit {unit_name}: {cause}",
            details={"unit": unit_name, "exception": type(cause).__name__},
        )
