"""Config module exports."""

from delphiscan.config.loader import load_config
from delphiscan.config.models import (
    DelphiScanConfig,
    LoggingConfig,
    ProjectFileConfig,
    ScannerConfig,
    SqlConfig,
)

__all__ = [
    "load_config",
    "DelphiScanConfig",
    "LoggingConfig",
    "ProjectFileConfig",
    "ScannerConfig",
    "SqlConfig",
]
