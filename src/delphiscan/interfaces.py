"""Collaborator contracts.

The scanner reads files through a SourceReader and hands its results to
whatever sits downstream (translation, persistence). Only the reader has an
implementation in this package, see project/sources.py.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from delphiscan.models import ExtractedMethod, QueryDescriptor
    from delphiscan.scan.pipeline import ProjectScanReport


@runtime_checkable
class SourceReader(Protocol):
    """File-system access used by the resolver and the unit scanner."""

    def read_text(self, path: Path) -> str:
        """Return the decoded text of a file.

        Raises:
            OSError: If the file cannot be read.
        """
        ...

    def size(self, path: Path) -> int:
        """Size of the file in bytes."""
        ...


@runtime_checkable
class MethodTranslator(Protocol):
    """Turns an extracted method into target-language source."""

    def translate(
        self,
        method: ExtractedMethod,
        queries: list[QueryDescriptor],
    ) -> str:
        ...


@runtime_checkable
class FactSink(Protocol):
    """Receives a finished project scan, e.g. to persist it."""

    def accept(self, report: ProjectScanReport) -> None:
        ...
