"""Core module exports."""

from delphiscan.core.cancel import CancellationToken
from delphiscan.core.errors import (
    ConfigError,
    DelphiScanError,
    ErrorCode,
    InternalError,
    ScanCancelled,
    ScanError,
)
from delphiscan.core.logging import (
    configure_logging,
    get_logger,
    get_scan_id,
    scan_context,
    submit_with_context,
    unit_context,
)
from delphiscan.core.progress import pluralize, progress, status
from delphiscan.core.results import Outcome, ScanWarning, WarningKind

__all__ = [
    # Cancellation
    "CancellationToken",
    # Errors
    "ConfigError",
    "DelphiScanError",
    "ErrorCode",
    "InternalError",
    "ScanCancelled",
    "ScanError",
    # Results
    "Outcome",
    "ScanWarning",
    "WarningKind",
    # Logging
    "configure_logging",
    "get_logger",
    "get_scan_id",
    "scan_context",
    "submit_with_context",
    "unit_context",
    # Progress
    "pluralize",
    "progress",
    "status",
]
