"""Project discovery: project files, units, forms."""

from delphiscan.project.dproj import DprojParser, cross_reference
from delphiscan.project.resolver import ProjectResolver
from delphiscan.project.sources import LocalSourceReader
from delphiscan.project.units import (
    UsesEntry,
    is_system_unit,
    parse_form,
    parse_unit,
    parse_uses_clause,
    strip_conditional_directives,
    uses_entries,
)

__all__ = [
    "DprojParser",
    "LocalSourceReader",
    "ProjectResolver",
    "UsesEntry",
    "cross_reference",
    "is_system_unit",
    "parse_form",
    "parse_unit",
    "parse_uses_clause",
    "strip_conditional_directives",
    "uses_entries",
]
