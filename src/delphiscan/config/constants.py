"""Scanner constants.

Values here are properties of the Delphi toolchain and of the project-file
format, not user preferences. For configurable values, see models.py.
"""

# =============================================================================
# Unit resolution
# =============================================================================

UNIT_FILE_EXTENSIONS: tuple[str, ...] = (".pas", ".pp", ".inc")
"""Extensions tried, in order, when resolving a uses-clause name to a file."""

DELPHI_SOURCE_EXTENSIONS: frozenset[str] = frozenset({".pas", ".dpr", ".dpk", ".dfm", ".fmx"})

SYSTEM_UNIT_PREFIXES: tuple[str, ...] = (
    # Dotted namespace prefixes
    "System.",
    "Vcl.",
    "Fmx.",
    "Data.",
    "Winapi.",
    "Posix.",
    "System",
    "Xml.",
    "Soap.",
    "Web.",
    "REST.",
    "FireDAC.",
    "IBX.",
    "IdHTTP",
    "IdTCP",
    "Indy.",
    "Generics.",
    # Classic unit names
    "SysUtils",
    "Classes",
    "Windows",
    "Messages",
    "Graphics",
    "Controls",
    "Forms",
    "Dialogs",
    "StdCtrls",
    "ExtCtrls",
    "ComCtrls",
    "Menus",
    "Buttons",
    "Grids",
    "DBGrids",
    "DB",
    "ADODB",
    "Variants",
    "StrUtils",
    "DateUtils",
    "Math",
    "Types",
    "TypInfo",
    "RTTI",
    "IOUtils",
    "RegularExpressions",
    "NetEncoding",
    "JSON",
    "Threading",
)
"""Runtime/VCL/FMX units that never live in the project tree.

Matched case-insensitively as prefixes, so "DB" also covers "DBClient".
"""

PRUNABLE_DIRS: frozenset[str] = frozenset(
    {".git", ".svn", ".hg", "__history", "__recovery", "Win32", "Win64", "backup"}
)
"""Directories skipped by folder scans and form discovery."""

# =============================================================================
# Project files (.dproj)
# =============================================================================

MSBUILD_NAMESPACE = "http://schemas.microsoft.com/developer/msbuild/2003"

DEFAULT_PLATFORM = "Win32"
DEFAULT_CONFIGURATION = "Debug"

# =============================================================================
# SQL reconstruction
# =============================================================================

DYNAMIC_SQL_MARKER = "Dynamic SQL"
"""sql_text of a query whose text could not be reconstructed at all."""

MIN_SQL_LENGTH = 6
