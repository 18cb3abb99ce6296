"""Delphi project file (.dproj) parsing.

A .dproj is an MSBuild document. Files written by the IDE use the MSBuild
2003 namespace; hand-edited or converted ones sometimes drop it, so every
lookup goes through ``_find``/``_iter_all``, which try the namespaced tag
first and the bare tag second.

Configuration-specific values live in ``PropertyGroup`` elements guarded by
a ``Condition`` attribute. Two spellings are recognized::

    <PropertyGroup Condition="'$(Config)'=='Release'">
    <PropertyGroup Condition="'$(Cfg_2)'!=''">   (Cfg_2 named by a BuildConfiguration item)

Parsing never raises. A file that cannot be read or is not well-formed XML
yields default metadata and a MALFORMED_PROJECT_FILE warning.
"""

from __future__ import annotations

import os
import re
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path

import structlog

from delphiscan.config.constants import DEFAULT_CONFIGURATION, DEFAULT_PLATFORM, MSBUILD_NAMESPACE
from delphiscan.core.results import Outcome, ScanWarning
from delphiscan.interfaces import SourceReader
from delphiscan.models import (
    BuildConfiguration,
    CrossReference,
    DprojMetadata,
    FrameworkKind,
    PackageReference,
    ProjectFormFile,
    ProjectSourceFile,
    SourceFileType,
    VersionInfo,
    unique_ci,
)
from delphiscan.project.sources import LocalSourceReader

log = structlog.get_logger(__name__)

_CONFIG_CONDITION_RE = re.compile(r"'\$\((?:Cfg_\d+|Config)\)'\s*[!=]=\s*'(\w+)'", re.IGNORECASE)
_KEYED_CONDITION_RE = re.compile(r"'\$\((Cfg_\d+)\)'\s*!=\s*''", re.IGNORECASE)
_BASE_CONDITION_RE = re.compile(r"^\s*'\$\(Base\)'\s*!=\s*''\s*$", re.IGNORECASE)
_VARIABLE_RE = re.compile(r"\$\((\w+)\)")
_DRIVE_RE = re.compile(r"^[A-Za-z]:/")


# =============================================================================
# Namespace-tolerant lookups
# =============================================================================


def _tags(name: str) -> tuple[str, str]:
    return f"{{{MSBUILD_NAMESPACE}}}{name}", name


def _iter_all(element: ET.Element, name: str) -> Iterator[ET.Element]:
    """Descendants named ``name``: namespaced matches first, then bare ones."""
    for tag in _tags(name):
        yield from element.iter(tag)


def _find(element: ET.Element, name: str) -> ET.Element | None:
    return next(_iter_all(element, name), None)


def _children(element: ET.Element, name: str) -> Iterator[ET.Element]:
    for tag in _tags(name):
        yield from element.findall(tag)


def _text(element: ET.Element | None) -> str:
    if element is None:
        return ""
    return "".join(element.itertext()).strip()


def _property(element: ET.Element, name: str) -> str:
    return _text(_find(element, name))


def _child_text(element: ET.Element, name: str) -> str | None:
    child = next(_children(element, name), None)
    value = _text(child)
    return value or None


def _split_list(value: str, self_reference: str | None = None) -> list[str]:
    parts = [p.strip() for p in value.split(";")]
    return [p for p in parts if p and p != self_reference]


def cross_reference(metadata: DprojMetadata, entry_units: Iterable[str]) -> CrossReference:
    """Compare the project's source entries with the units the entry point uses.

    Entries named in the entry point's uses clause are active, the rest are
    orphaned. Entry-point units with no source entry are external. The main
    source itself is neither.
    """
    used = {name.lower(): name for name in entry_units}
    result = CrossReference()
    listed: set[str] = set()
    for source in metadata.source_files:
        if source.is_main_source:
            continue
        key = source.unit_name.lower()
        listed.add(key)
        if key in used:
            result.active_files.append(source)
        else:
            result.orphaned_files.append(source)
    result.external_units = [name for key, name in used.items() if key not in listed]
    return result


class DprojParser:
    """Reads a .dproj into DprojMetadata.

    ``variables`` extends the ``$(Name)`` substitution table used when
    resolving path values; ``platform`` and ``config`` stand in for
    ``$(Platform)`` and ``$(Config)`` and for properties the file omits.
    """

    def __init__(
        self,
        variables: Mapping[str, str] | None = None,
        *,
        platform: str = DEFAULT_PLATFORM,
        config: str = DEFAULT_CONFIGURATION,
        reader: SourceReader | None = None,
    ) -> None:
        self.variables = dict(variables or {})
        self.platform = platform
        self.config = config
        self.reader = reader or LocalSourceReader()

    def parse(self, path: Path) -> Outcome[DprojMetadata]:
        try:
            text = self.reader.read_text(path)
        except OSError as e:
            log.warning("dproj_unreadable", path=str(path), error=str(e))
            return Outcome(
                self._empty(path),
                [ScanWarning.malformed_project(str(path), f"cannot read file: {e.strerror or e}")],
            )
        return self.parse_text(text, path)

    def parse_text(self, text: str, path: Path) -> Outcome[DprojMetadata]:
        """Parse project-file XML; ``path`` anchors relative paths."""
        metadata = self._empty(path)
        try:
            root = ET.fromstring(text)
        except ET.ParseError as e:
            log.warning("dproj_malformed", path=str(path), error=str(e))
            return Outcome(
                metadata,
                [ScanWarning.malformed_project(str(path), str(e))],
            )

        metadata.project_guid = _property(root, "ProjectGuid")
        metadata.main_source = _property(root, "MainSource")
        metadata.product_version = _property(root, "ProjectVersion")
        metadata.platform = _property(root, "Platform") or self.platform
        metadata.active_configuration = _property(root, "Config") or self.config
        metadata.framework = self._framework(root, text)

        metadata.configurations = self._configurations(root)
        active = self._config_groups(root, metadata.active_configuration)
        metadata.compiler_defines = self._defines(root, active, metadata.active_configuration)
        metadata.search_paths = self._search_paths(root, active)
        metadata.resolved_search_paths = self._existing_dirs(metadata.search_paths, metadata)
        metadata.unit_scope_names = unique_ci(
            _split_list(_property(root, "DCC_UnitAlias"), "$(DCC_UnitAlias)")
            + _split_list(_property(root, "DCC_Namespace"), "$(DCC_Namespace)")
        )

        metadata.source_files = self._source_files(root, metadata)
        metadata.form_files = self._form_files(root, metadata)
        metadata.resource_files = self._resources(root)
        metadata.package_references = self._packages(root)

        metadata.output_directory = _property(root, "DCC_ExeOutput")
        output = self.resolve_path(metadata.output_directory, metadata)
        metadata.resolved_output_directory = output or ""
        metadata.unit_output_directory = _property(root, "DCC_DcuOutput")
        metadata.version_info = self._version_info(root)

        log.debug(
            "dproj_parsed",
            path=str(path),
            configurations=len(metadata.configurations),
            source_files=len(metadata.source_files),
            search_paths=len(metadata.search_paths),
        )
        return Outcome(metadata)

    def _empty(self, path: Path) -> DprojMetadata:
        return DprojMetadata(
            path=str(path),
            directory=str(path.parent),
            project_name=path.stem,
            platform=self.platform,
            active_configuration=self.config,
        )

    # -------------------------------------------------------------------------
    # Framework and configurations
    # -------------------------------------------------------------------------

    def _framework(self, root: ET.Element, text: str) -> FrameworkKind:
        explicit = _property(root, "FrameworkType")
        if explicit:
            return FrameworkKind.parse(explicit)
        if "FMX." in text or "FireMonkey" in text:
            return FrameworkKind.FMX
        if _property(root, "AppType").lower() == "console":
            return FrameworkKind.CONSOLE
        return FrameworkKind.VCL

    def _config_keys(self, root: ET.Element) -> dict[str, str]:
        """Map ``Cfg_N`` keys to configuration names from BuildConfiguration items."""
        keys: dict[str, str] = {}
        for item in _iter_all(root, "BuildConfiguration"):
            name = item.get("Include", "")
            key = _child_text(item, "Key")
            if name and key:
                keys[key.lower()] = name
        return keys

    def _group_config_name(self, condition: str, keys: Mapping[str, str]) -> str | None:
        for m in _CONFIG_CONDITION_RE.finditer(condition):
            if m.group(1).lower() not in ("true", "false"):
                return m.group(1)
        keyed = _KEYED_CONDITION_RE.fullmatch(condition.strip())
        if keyed is not None:
            return keys.get(keyed.group(1).lower())
        return None

    def _configurations(self, root: ET.Element) -> list[BuildConfiguration]:
        keys = self._config_keys(root)
        found: dict[str, BuildConfiguration] = {}
        for group in _iter_all(root, "PropertyGroup"):
            name = self._group_config_name(group.get("Condition", ""), keys)
            if name is None:
                continue
            # First group naming a configuration wins; later duplicates are skipped.
            if name.lower() in found:
                continue
            paths = _split_list(_property(group, "DCC_UnitSearchPath"))
            found[name.lower()] = BuildConfiguration(
                name=name,
                is_debug="debug" in name.lower(),
                defines=unique_ci(_split_list(_property(group, "DCC_Define"), "$(DCC_Define)")),
                search_paths=unique_ci([p for p in paths if not p.startswith("$(")]),
                output_path=_property(group, "DCC_ExeOutput"),
            )
        for name in keys.values():
            found.setdefault(
                name.lower(), BuildConfiguration(name=name, is_debug="debug" in name.lower())
            )
        if not found:
            return [
                BuildConfiguration(name="Debug", is_debug=True),
                BuildConfiguration(name="Release", is_debug=False),
            ]
        return list(found.values())

    def _config_groups(self, root: ET.Element, config: str) -> list[ET.Element]:
        """PropertyGroups holding the overrides of configuration ``config``."""
        keys = self._config_keys(root)
        wanted = config.lower()
        named: list[ET.Element] = []
        mentioned: list[ET.Element] = []
        for group in _iter_all(root, "PropertyGroup"):
            condition = group.get("Condition", "")
            name = self._group_config_name(condition, keys)
            if name is not None and name.lower() == wanted:
                named.append(group)
            elif wanted and wanted in condition.lower():
                mentioned.append(group)
        return named or mentioned[:1]

    def _base_value(self, root: ET.Element, name: str) -> str:
        """Value from an unconditioned (or ``$(Base)``) group, else the first anywhere."""
        for group in _iter_all(root, "PropertyGroup"):
            condition = group.get("Condition")
            if condition is None or _BASE_CONDITION_RE.match(condition):
                value = _property(group, name)
                if value:
                    return value
        return _property(root, name)

    def _defines(self, root: ET.Element, active: list[ET.Element], config: str) -> list[str]:
        defines = _split_list(self._base_value(root, "DCC_Define"), "$(DCC_Define)")
        for group in active:
            defines += _split_list(_property(group, "DCC_Define"), "$(DCC_Define)")
        defines.append("DEBUG" if "debug" in config.lower() else "RELEASE")
        return unique_ci(defines)

    def _search_paths(self, root: ET.Element, active: list[ET.Element]) -> list[str]:
        marker = "$(DCC_UnitSearchPath)"
        paths = _split_list(self._base_value(root, "DCC_UnitSearchPath"), marker)
        for group in active:
            paths += _split_list(_property(group, "DCC_UnitSearchPath"), marker)
        return unique_ci(paths)

    # -------------------------------------------------------------------------
    # Item groups
    # -------------------------------------------------------------------------

    def _source_files(self, root: ET.Element, metadata: DprojMetadata) -> list[ProjectSourceFile]:
        files: list[ProjectSourceFile] = []
        seen: set[str] = set()

        def add(include: str, item: ET.Element | None = None) -> ProjectSourceFile:
            resolved = self.resolve_path(include, metadata)
            source = ProjectSourceFile(
                file_name=include,
                file_type=SourceFileType.from_file_name(include),
                form=_child_text(item, "Form") if item is not None else None,
                design_class=_child_text(item, "DesignClass") if item is not None else None,
                resolved_path=resolved,
                exists=resolved is not None and os.path.isfile(resolved),
            )
            seen.add(include.lower())
            files.append(source)
            return source

        for item in _iter_all(root, "DCCReference"):
            include = item.get("Include", "").strip()
            if include and include.lower() not in seen:
                add(include, item)

        main = metadata.main_source
        if main:
            existing = next((f for f in files if f.file_name.lower() == main.lower()), None)
            if existing is None:
                existing = add(main)
                files.insert(0, files.pop())
            existing.is_main_source = True

        for item in _iter_all(root, "DelphiCompile"):
            include = item.get("Include", "").strip()
            if include.lower() == "$(mainsource)" and main:
                include = main
            if include and include.lower() not in seen:
                add(include, item)
        return files

    def _form_files(self, root: ET.Element, metadata: DprojMetadata) -> list[ProjectFormFile]:
        forms: list[ProjectFormFile] = []
        for item in _iter_all(root, "DCCReference"):
            include = item.get("Include", "").strip()
            form_name = _child_text(item, "Form")
            if not include or form_name is None:
                continue
            dfm = str(Path(include.replace("\\", "/")).with_suffix(".dfm"))
            resolved_unit = self.resolve_path(include, metadata)
            resolved_dfm = self.resolve_path(dfm, metadata)
            forms.append(
                ProjectFormFile(
                    unit_path=include,
                    dfm_path=dfm,
                    form_name=form_name,
                    form_type=_child_text(item, "DesignClass") or "TForm",
                    resolved_unit_path=resolved_unit,
                    resolved_dfm_path=resolved_dfm,
                    unit_exists=resolved_unit is not None and os.path.isfile(resolved_unit),
                    dfm_exists=resolved_dfm is not None and os.path.isfile(resolved_dfm),
                )
            )
        return forms

    def _resources(self, root: ET.Element) -> list[str]:
        resources: list[str] = []
        for name in ("RcCompile", "ResourceCompile"):
            resources += [item.get("Include", "").strip() for item in _iter_all(root, name)]
        return unique_ci([r for r in resources if r])

    def _packages(self, root: ET.Element) -> list[PackageReference]:
        packages: dict[str, PackageReference] = {}
        for item in _iter_all(root, "PackageImport"):
            name = item.get("Include", "").strip()
            if name and name.lower() not in packages:
                packages[name.lower()] = PackageReference(name)
        for item in _iter_all(root, "DesignOnlyPackage"):
            name = item.get("Include", "").strip()
            if name and name.lower() not in packages:
                packages[name.lower()] = PackageReference(
                    name, is_runtime=False, is_design_time=True
                )
        for name in _split_list(_property(root, "DCC_UsePackage"), "$(DCC_UsePackage)"):
            if name.lower() not in packages:
                packages[name.lower()] = PackageReference(name)
        return list(packages.values())

    def _version_info(self, root: ET.Element) -> VersionInfo:
        info = VersionInfo(
            major=_property(root, "VerInfo_MajorVer") or "1",
            minor=_property(root, "VerInfo_MinorVer") or "0",
            release=_property(root, "VerInfo_Release") or "0",
            build=_property(root, "VerInfo_Build") or "0",
        )
        for pair in _split_list(_property(root, "VerInfo_Keys")):
            key, _, value = pair.partition("=")
            match key.strip():
                case "FileDescription":
                    info.file_description = value
                case "CompanyName":
                    info.company_name = value
                case "ProductName":
                    info.product_name = value
        return info

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------

    def _variable_table(self, metadata: DprojMetadata) -> dict[str, str]:
        table = {"Platform": metadata.platform, "Config": metadata.active_configuration}
        bds = self.variables.get("BDS") or os.environ.get("BDS")
        if bds:
            table["BDS"] = bds
            table["BDSLIB"] = bds.rstrip("/\\") + "/lib"
        table.update(self.variables)
        return {k.lower(): v for k, v in table.items()}

    def resolve_path(self, value: str, metadata: DprojMetadata) -> str | None:
        """Resolve a project-file path value against the project directory.

        ``$(Var)`` references are substituted from the variable table. A value
        that still holds an unknown variable, or names a Windows drive, is
        returned as written (after substitution) rather than dropped.
        """
        if not value:
            return None
        if "$(" in value:
            table = self._variable_table(metadata)
            value = _VARIABLE_RE.sub(lambda m: table.get(m.group(1).lower(), m.group(0)), value)
            if "$(" in value:
                return value
        path = value.replace("\\", "/")
        if _DRIVE_RE.match(path):
            return path
        if not os.path.isabs(path):
            path = os.path.join(metadata.directory, path)
        return os.path.normpath(path)

    def _existing_dirs(self, paths: list[str], metadata: DprojMetadata) -> list[str]:
        resolved = [self.resolve_path(p, metadata) for p in paths]
        return unique_ci([p for p in resolved if p is not None and os.path.isdir(p)])
