"""Data model for scanned Delphi projects.

Records produced by the resolver (Project, Unit, Form, project-file metadata)
are plain mutable dataclasses: they are filled in while a scan runs and
treated as read-only afterwards. Records produced by the extractors
(ExtractedMethod, QueryDescriptor, FieldAccess) are frozen.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from delphiscan.core.results import ScanWarning


class FrameworkKind(str, Enum):
    """UI framework a project is built against."""

    VCL = "VCL"
    FMX = "FMX"
    CONSOLE = "Console"

    @classmethod
    def parse(cls, value: str | None) -> FrameworkKind:
        """Map a FrameworkType/AppType string to a kind, defaulting to VCL."""
        key = (value or "").strip().lower()
        if key == "none":
            return cls.CONSOLE
        for kind in cls:
            if kind.value.lower() == key:
                return kind
        return cls.VCL


class MethodKind(str, Enum):
    PROCEDURE = "procedure"
    FUNCTION = "function"
    CONSTRUCTOR = "constructor"
    DESTRUCTOR = "destructor"


class ParameterModifier(str, Enum):
    NONE = ""
    VAR = "var"
    CONST = "const"
    OUT = "out"


class SourceFileType(str, Enum):
    UNKNOWN = "unknown"
    UNIT = "unit"
    PROGRAM = "program"
    PACKAGE = "package"
    INCLUDE = "include"
    FORM = "form"
    RESOURCE = "resource"
    COMPILED_RESOURCE = "compiled_resource"

    @classmethod
    def from_file_name(cls, file_name: str) -> SourceFileType:
        ext = Path(file_name.replace("\\", "/")).suffix.lower()
        return _FILE_TYPES_BY_EXT.get(ext, cls.UNKNOWN)


_FILE_TYPES_BY_EXT = {
    ".pas": SourceFileType.UNIT,
    ".dpr": SourceFileType.PROGRAM,
    ".dpk": SourceFileType.PACKAGE,
    ".inc": SourceFileType.INCLUDE,
    ".dfm": SourceFileType.FORM,
    ".fmx": SourceFileType.FORM,
    ".rc": SourceFileType.RESOURCE,
    ".res": SourceFileType.COMPILED_RESOURCE,
}


class QueryBlockKind(str, Enum):
    """Source shape a query was reconstructed from."""

    ADD_SEQUENCE = "add_sequence"  # X.SQL.Clear; X.SQL.Add(...); ...
    TEXT_ASSIGNMENT = "text_assignment"  # X.SQL.Text := ...


class SqlOperation(str, Enum):
    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    DDL = "DDL"
    STORED_PROCEDURE = "STORED_PROCEDURE"
    UNKNOWN = "UNKNOWN"


# =============================================================================
# Extraction results
# =============================================================================


@dataclass(frozen=True, slots=True)
class Parameter:
    """One formal parameter of a method header."""

    name: str
    type_text: str = ""  # empty for untyped var/const parameters
    modifier: ParameterModifier = ParameterModifier.NONE
    default: str | None = None


@dataclass(frozen=True, slots=True)
class ExtractedMethod:
    """A method body cut out of an implementation section.

    ``source_code`` runs from the header through the matching ``end;``.
    When the body never balanced, ``is_terminated`` is False and the text
    stops at the next header or at the end of the section.
    """

    name: str
    kind: MethodKind
    source_code: str
    start_line: int
    containing_class: str | None = None
    return_type: str | None = None
    parameters: tuple[Parameter, ...] = ()
    is_terminated: bool = True

    @property
    def is_standalone(self) -> bool:
        return self.containing_class is None

    @property
    def qualified_name(self) -> str:
        if self.containing_class is None:
            return self.name
        return f"{self.containing_class}.{self.name}"


@dataclass(frozen=True, slots=True)
class QueryDescriptor:
    """A SQL statement reconstructed from Delphi query-building code."""

    sql_text: str
    is_dynamic: bool
    line: int
    block_kind: QueryBlockKind
    method_name: str | None = None
    class_name: str | None = None
    parameters: tuple[str, ...] = ()
    query_variable: str | None = None
    sql_property: str = "SQL"
    operation: SqlOperation = SqlOperation.UNKNOWN
    table_name: str | None = None
    expressions: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class FieldAccess:
    """A dataset field read such as ``Q.FieldByName('NAME').AsString``."""

    field_name: str
    delphi_type: str
    accessor: str
    line: int
    dataset: str | None = None
    checks_null: bool = False
    method_name: str | None = None


# =============================================================================
# Units and forms
# =============================================================================


@dataclass(frozen=True, slots=True)
class DelphiClass:
    name: str
    parent: str | None = None


@dataclass(frozen=True, slots=True)
class DelphiRecord:
    name: str


@dataclass(frozen=True, slots=True)
class FormComponent:
    name: str
    class_name: str


@dataclass
class Form:
    """A parsed .dfm form definition."""

    name: str
    file_path: Path
    relative_path: str
    class_name: str | None = None
    components: list[FormComponent] = field(default_factory=list)
    size_bytes: int = 0


@dataclass
class Unit:
    """One Pascal unit, with or without a backing file."""

    name: str
    file_path: Path | None = None
    relative_path: str = ""
    size_bytes: int = 0
    line_count: int = 0
    is_form: bool = False
    is_data_module: bool = False
    is_frame: bool = False
    is_entry_point: bool = False
    is_from_project_file: bool = False
    is_in_entry_point: bool = False
    has_form: bool = False
    form_name: str | None = None
    form_type: str | None = None
    form_file: Path | None = None
    uses_interface: list[str] = field(default_factory=list)
    uses_implementation: list[str] = field(default_factory=list)
    classes: list[DelphiClass] = field(default_factory=list)
    records: list[DelphiRecord] = field(default_factory=list)
    methods: list[ExtractedMethod] = field(default_factory=list)

    @property
    def has_file(self) -> bool:
        return self.file_path is not None


# =============================================================================
# Project-file metadata
# =============================================================================


@dataclass
class BuildConfiguration:
    name: str
    defines: list[str] = field(default_factory=list)
    search_paths: list[str] = field(default_factory=list)
    output_path: str = ""
    is_debug: bool = False


@dataclass
class ProjectSourceFile:
    """A DCCReference/DelphiCompile entry of a project file."""

    file_name: str
    file_type: SourceFileType = SourceFileType.UNKNOWN
    form: str | None = None
    design_class: str | None = None
    is_main_source: bool = False
    resolved_path: str | None = None
    exists: bool = False

    @property
    def unit_name(self) -> str:
        return Path(self.file_name.replace("\\", "/")).stem


@dataclass
class ProjectFormFile:
    unit_path: str
    dfm_path: str
    form_name: str
    form_type: str = "TForm"
    resolved_unit_path: str | None = None
    resolved_dfm_path: str | None = None
    unit_exists: bool = False
    dfm_exists: bool = False


@dataclass(frozen=True, slots=True)
class PackageReference:
    name: str
    is_runtime: bool = True
    is_design_time: bool = False


@dataclass
class VersionInfo:
    major: str = "1"
    minor: str = "0"
    release: str = "0"
    build: str = "0"
    file_description: str = ""
    company_name: str = ""
    product_name: str = ""

    @property
    def version_string(self) -> str:
        return f"{self.major}.{self.minor}.{self.release}.{self.build}"


@dataclass
class DprojMetadata:
    """Everything read from a .dproj file.

    Fields keep their defaults when the file is missing or malformed.
    """

    path: str
    directory: str
    project_guid: str = ""
    project_name: str = ""
    main_source: str = ""
    framework: FrameworkKind = FrameworkKind.VCL
    product_version: str = ""
    platform: str = "Win32"
    active_configuration: str = "Debug"
    configurations: list[BuildConfiguration] = field(default_factory=list)
    compiler_defines: list[str] = field(default_factory=list)
    search_paths: list[str] = field(default_factory=list)
    resolved_search_paths: list[str] = field(default_factory=list)
    unit_scope_names: list[str] = field(default_factory=list)
    source_files: list[ProjectSourceFile] = field(default_factory=list)
    form_files: list[ProjectFormFile] = field(default_factory=list)
    resource_files: list[str] = field(default_factory=list)
    package_references: list[PackageReference] = field(default_factory=list)
    output_directory: str = ""
    resolved_output_directory: str = ""
    unit_output_directory: str = ""
    version_info: VersionInfo = field(default_factory=VersionInfo)

    def active_defines(self) -> list[str]:
        """Compiler defines plus the implicit platform and framework symbols."""
        defines = list(self.compiler_defines)
        platform = self.platform.lower()
        if platform == "win32":
            defines += ["WIN32", "MSWINDOWS"]
        elif platform == "win64":
            defines += ["WIN64", "MSWINDOWS"]
        if self.framework in (FrameworkKind.VCL, FrameworkKind.FMX):
            defines.append(self.framework.value)
        return unique_ci(defines)


@dataclass
class CrossReference:
    """Project-file source entries checked against the entry point's uses clause."""

    active_files: list[ProjectSourceFile] = field(default_factory=list)
    orphaned_files: list[ProjectSourceFile] = field(default_factory=list)
    external_units: list[str] = field(default_factory=list)


# =============================================================================
# Project
# =============================================================================


@dataclass
class Project:
    """A resolved Delphi project."""

    name: str
    root_path: Path
    dpr_path: Path | None = None
    dproj_path: Path | None = None
    framework: FrameworkKind = FrameworkKind.VCL
    search_paths: list[str] = field(default_factory=list)
    compiler_defines: list[str] = field(default_factory=list)
    units: list[Unit] = field(default_factory=list)
    forms: list[Form] = field(default_factory=list)
    warnings: list[ScanWarning] = field(default_factory=list)
    dproj: DprojMetadata | None = None
    scanned_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def find_unit(self, name: str) -> Unit | None:
        key = name.lower()
        for unit in self.units:
            if unit.name.lower() == key:
                return unit
        return None

    def add_unit(self, unit: Unit) -> bool:
        """Append unless a unit of the same name (any case) exists."""
        if self.find_unit(unit.name) is not None:
            return False
        self.units.append(unit)
        return True

    def compiled_unit_names(self) -> list[str]:
        return [u.name for u in self.units]

    def add_defines(self, defines: list[str]) -> None:
        self.compiler_defines = unique_ci([*self.compiler_defines, *defines])

    def add_search_paths(self, paths: list[str]) -> None:
        self.search_paths = unique_ci([*self.search_paths, *paths])

    @property
    def warning_messages(self) -> list[str]:
        return [str(w) for w in self.warnings]


def unique_ci(values: list[str]) -> list[str]:
    """De-duplicate case-insensitively, keeping the first spelling and order."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        key = value.lower()
        if key not in seen:
            seen.add(key)
            result.append(value)
    return result


def to_jsonable(obj: Any) -> Any:
    """Convert model records into JSON-ready builtins."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        data = {f.name: to_jsonable(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
        if isinstance(obj, ExtractedMethod):
            data["is_standalone"] = obj.is_standalone
            data["qualified_name"] = obj.qualified_name
        return data
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, list | tuple):
        return [to_jsonable(v) for v in obj]
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    return obj
