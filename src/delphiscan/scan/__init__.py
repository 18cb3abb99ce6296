"""Project and batch scanning."""

from delphiscan.scan.pipeline import (
    ProjectScanner,
    ProjectScanReport,
    UnitScanResult,
    scan_many,
    scan_unit,
)

__all__ = [
    "ProjectScanReport",
    "ProjectScanner",
    "UnitScanResult",
    "scan_many",
    "scan_unit",
]
