"""Non-fatal scan results.

Scanning never aborts on bad input. Functions that can partially fail return
an ``Outcome`` carrying the value plus any ``ScanWarning`` produced on the
way; callers merge the warnings into the project they are building.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from delphiscan.core.errors import InternalError


class WarningKind(str, Enum):
    UNRESOLVED_REFERENCE = "unresolved_reference"
    MALFORMED_PROJECT_FILE = "malformed_project_file"
    UNTERMINATED_METHOD = "unterminated_method"
    UNREADABLE_FILE = "unreadable_file"
    INTERNAL = "internal"


@dataclass(frozen=True, slots=True)
class ScanWarning:
    """A problem found in the scanned sources."""

    kind: WarningKind
    message: str
    path: str | None = None

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, "path": self.path}

    @classmethod
    def unresolved_unit(cls, unit_name: str, relative_path: str | None = None) -> ScanWarning:
        message = f"Unit not found: {unit_name}"
        if relative_path is not None:
            message += f" (path: {relative_path})"
        return cls(WarningKind.UNRESOLVED_REFERENCE, message, relative_path)

    @classmethod
    def unreadable(cls, path: str, reason: str) -> ScanWarning:
        return cls(WarningKind.UNREADABLE_FILE, f"Cannot read {path}: {reason}", path)

    @classmethod
    def malformed_project(cls, path: str, reason: str) -> ScanWarning:
        message = f"Malformed project file {path}: {reason}"
        return cls(WarningKind.MALFORMED_PROJECT_FILE, message, path)

    @classmethod
    def internal(cls, error: InternalError, path: str | None = None) -> ScanWarning:
        return cls(WarningKind.INTERNAL, error.message, path)


@dataclass
class Outcome[T]:
    """A value together with the warnings raised while producing it."""

    value: T
    warnings: list[ScanWarning] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings
