"""Project resolution: from a path on disk to a Project with its units.

Accepted inputs:

- a ``.dproj`` file: project-file metadata is read, the entry ``.dpr`` (same
  stem, else the file's MainSource) is parsed, and the metadata enriches the
  project with search paths, defines, extra units and form pairings;
- a ``.dpr`` file: parsed directly, with a sibling ``.dproj`` applied when
  one exists;
- a directory: the top-level ``.dproj`` or ``.dpr`` is used when present,
  otherwise every ``.pas`` below it is parsed.

Unit names from the entry point's uses clause are resolved in this order:
the ``in '...'`` path, the project root, each search path (trying every
configured extension), and finally a case-insensitive search of the whole
tree. A name that resolves nowhere becomes an UNRESOLVED_REFERENCE warning
and a unit without a backing file.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from delphiscan.config.models import ProjectFileConfig, ScannerConfig
from delphiscan.core.errors import ScanError
from delphiscan.core.results import ScanWarning
from delphiscan.interfaces import SourceReader
from delphiscan.models import DprojMetadata, Form, Project, SourceFileType, Unit
from delphiscan.project.dproj import DprojParser
from delphiscan.project.sources import LocalSourceReader
from delphiscan.project.units import (
    entry_point_name,
    is_system_unit,
    parse_form,
    parse_unit,
    relative_to_root,
    uses_entries,
)

log = structlog.get_logger(__name__)

_DRIVE_RE = re.compile(r"^(?:[A-Za-z]:|//)")


@dataclass
class _Resolution:
    """State of one resolve() call."""

    project: Project
    prune: frozenset[str]
    _stems: dict[str, Path] | None = field(default=None, repr=False)

    def files_by_stem(self) -> dict[str, Path]:
        """Lowercase stem -> first ``.pas`` below the root, built on first use."""
        if self._stems is None:
            self._stems = {}
            for path in walk_files(self.project.root_path, self.prune, (".pas",)):
                self._stems.setdefault(path.stem.lower(), path)
        return self._stems


def walk_files(root: Path, prune: frozenset[str], suffixes: tuple[str, ...]) -> list[Path]:
    """Files under ``root`` with one of ``suffixes``, pruning ``prune`` dirs, sorted."""
    results: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in prune)
        for filename in sorted(filenames):
            if filename.lower().endswith(suffixes):
                results.append(Path(dirpath) / filename)
    return results


class ProjectResolver:
    """Builds a Project from a ``.dpr``, a ``.dproj`` or a directory."""

    def __init__(
        self,
        config: ScannerConfig | None = None,
        reader: SourceReader | None = None,
        project_file: ProjectFileConfig | None = None,
    ) -> None:
        self.config = config or ScannerConfig()
        self.reader = reader or LocalSourceReader(self.config.fallback_encoding)
        self.project_file = project_file or ProjectFileConfig()

    def resolve(self, path: Path | str) -> Project:
        """Resolve ``path`` into a Project.

        Raises:
            ScanError: If the path does not exist or is not a project file
                or directory. Every other problem becomes a project warning.
        """
        path = Path(path).expanduser().resolve()
        if not path.exists():
            raise ScanError.path_not_found(str(path))

        if path.is_dir():
            project = self._resolve_directory(path)
        elif path.suffix.lower() == ".dproj":
            project = self._resolve_dproj(path)
        elif path.suffix.lower() == ".dpr":
            project = self._resolve_dpr(path)
        else:
            raise ScanError.unsupported_input(str(path))

        log.info(
            "project_resolved",
            project=project.name,
            units=len(project.units),
            forms=len(project.forms),
            warnings=len(project.warnings),
        )
        return project

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def _resolve_directory(self, directory: Path) -> Project:
        dprojs = sorted(directory.glob("*.dproj"))
        if dprojs:
            return self._resolve_dproj(dprojs[0])
        dprs = sorted(directory.glob("*.dpr"))
        if dprs:
            return self._resolve_dpr(dprs[0])

        ctx = self._start(Project(name=directory.name, root_path=directory))
        for file_path in walk_files(directory, ctx.prune, (".pas",)):
            unit = self._load_unit(ctx, file_path)
            if unit is not None and not ctx.project.add_unit(unit):
                log.debug("duplicate_unit_skipped", unit=unit.name, path=str(file_path))
        self._scan_forms(ctx)
        return ctx.project

    def _resolve_dproj(self, dproj_path: Path) -> Project:
        root = dproj_path.parent
        ctx = self._start(Project(name=dproj_path.stem, root_path=root, dproj_path=dproj_path))
        metadata = self._read_metadata(ctx, dproj_path)

        dpr_path = dproj_path.with_suffix(".dpr")
        if not dpr_path.is_file() and metadata.main_source:
            dpr_path = root / metadata.main_source.replace("\\", "/")
        if dpr_path.is_file():
            ctx.project.dpr_path = dpr_path
            self._parse_entry_point(ctx, dpr_path)
        else:
            log.debug("entry_point_missing", dproj=str(dproj_path))

        self._add_project_units(ctx, metadata)
        self._scan_forms(ctx)
        return ctx.project

    def _resolve_dpr(self, dpr_path: Path) -> Project:
        ctx = self._start(Project(name=dpr_path.stem, root_path=dpr_path.parent, dpr_path=dpr_path))
        dproj_path = dpr_path.with_suffix(".dproj")
        metadata: DprojMetadata | None = None
        if dproj_path.is_file():
            ctx.project.dproj_path = dproj_path
            metadata = self._read_metadata(ctx, dproj_path)

        self._parse_entry_point(ctx, dpr_path)
        if metadata is not None:
            self._add_project_units(ctx, metadata)
        self._scan_forms(ctx)
        return ctx.project

    def _start(self, project: Project) -> _Resolution:
        return _Resolution(project=project, prune=frozenset(self.config.prune_dirs))

    # -------------------------------------------------------------------------
    # Project-file metadata
    # -------------------------------------------------------------------------

    def _read_metadata(self, ctx: _Resolution, dproj_path: Path) -> DprojMetadata:
        parser = DprojParser(
            self.project_file.variables,
            platform=self.project_file.default_platform,
            config=self.project_file.default_config,
            reader=self.reader,
        )
        outcome = parser.parse(dproj_path)
        metadata = outcome.value
        project = ctx.project
        project.warnings.extend(outcome.warnings)
        project.dproj = metadata
        project.framework = metadata.framework
        project.add_search_paths(metadata.resolved_search_paths)
        project.add_defines(metadata.compiler_defines)
        return metadata

    def _add_project_units(self, ctx: _Resolution, metadata: DprojMetadata) -> None:
        """Add units listed only in the project file, then pair its forms."""
        project = ctx.project
        for source in metadata.source_files:
            if source.file_type is not SourceFileType.UNIT:
                continue
            if project.find_unit(source.unit_name) is not None:
                continue
            if not source.exists or source.resolved_path is None:
                project.warnings.append(
                    ScanWarning.unresolved_unit(source.unit_name, source.file_name)
                )
                log.debug("project_unit_missing", unit=source.unit_name, path=source.file_name)
                continue
            unit = self._load_unit(ctx, Path(source.resolved_path))
            if unit is None:
                continue
            unit.is_from_project_file = True
            unit.has_form = unit.has_form or source.form is not None
            project.add_unit(unit)

        for form in metadata.form_files:
            if not form.unit_exists:
                continue
            stem = Path(form.unit_path.replace("\\", "/")).stem
            unit = _match_unit(project, stem)
            if unit is None:
                continue
            unit.has_form = True
            unit.form_name = form.form_name
            unit.form_type = form.form_type
            if form.dfm_exists and form.resolved_dfm_path is not None:
                unit.form_file = Path(form.resolved_dfm_path)

    # -------------------------------------------------------------------------
    # Entry point and units
    # -------------------------------------------------------------------------

    def _parse_entry_point(self, ctx: _Resolution, dpr_path: Path) -> None:
        project = ctx.project
        text = self._read(ctx, dpr_path)
        if text is None:
            return
        entry = parse_unit(text, dpr_path, project.root_path, size_bytes=self._size(dpr_path))
        entry.name = entry_point_name(text, dpr_path)
        entry.is_entry_point = True
        project.add_unit(entry)

        for ref in uses_entries(text):
            if is_system_unit(ref.name, self.config.extra_system_prefixes):
                continue
            if project.find_unit(ref.name) is not None:
                continue
            file_path = self._locate(ctx, ref.name, ref.in_path)
            unit: Unit | None = None
            if file_path is not None:
                unit = self._load_unit(ctx, file_path)
            else:
                project.warnings.append(ScanWarning.unresolved_unit(ref.name, ref.in_path))
                log.debug("unit_unresolved", unit=ref.name, in_path=ref.in_path)
            if unit is None:
                unit = Unit(name=ref.name)
            unit.is_in_entry_point = True
            project.add_unit(unit)

    def locate_unit_file(
        self, name: str, project: Project, in_path: str | None = None
    ) -> Path | None:
        """Find the file for unit ``name``, or None.

        Tries the ``in`` path, then the project root and each search path
        with every configured extension (full dotted name first, then its
        last segment), then a case-insensitive search below the root.
        """
        return self._locate(self._start(project), name, in_path)

    def _locate(self, ctx: _Resolution, name: str, in_path: str | None) -> Path | None:
        project = ctx.project
        root = project.root_path
        if in_path:
            relative = in_path.replace("\\", "/")
            if not _DRIVE_RE.match(relative):
                candidate = Path(os.path.normpath(root / relative))
                if candidate.is_file():
                    return candidate

        names = [name]
        if "." in name:
            names.append(name.rsplit(".", 1)[1])
        bases = [root, *(Path(p) for p in project.search_paths)]
        for base in bases:
            for candidate_name in names:
                for ext in self.config.unit_extensions:
                    candidate = base / f"{candidate_name}{ext}"
                    if candidate.is_file():
                        return candidate

        stems = ctx.files_by_stem()
        for candidate_name in names:
            found = stems.get(candidate_name.lower())
            if found is not None:
                return found
        return None

    def _scan_forms(self, ctx: _Resolution) -> None:
        """Parse every ``.dfm`` under the root and pair it with its unit."""
        project = ctx.project
        for dfm_path in walk_files(project.root_path, ctx.prune, (".dfm",)):
            text = self._read(ctx, dfm_path)
            if text is None:
                continue
            form = parse_form(text, dfm_path, project.root_path, size_bytes=self._size(dfm_path))
            project.forms.append(form)
            unit = _match_unit(project, dfm_path.stem) or _unit_beside(project, dfm_path)
            if unit is not None:
                _pair(unit, form)

    def _load_unit(self, ctx: _Resolution, file_path: Path) -> Unit | None:
        text = self._read(ctx, file_path)
        if text is None:
            return None
        return parse_unit(text, file_path, ctx.project.root_path, size_bytes=self._size(file_path))

    def _read(self, ctx: _Resolution, file_path: Path) -> str | None:
        try:
            return self.reader.read_text(file_path)
        except OSError as e:
            relative = relative_to_root(file_path, ctx.project.root_path)
            ctx.project.warnings.append(ScanWarning.unreadable(relative, e.strerror or str(e)))
            log.warning("source_unreadable", path=str(file_path), error=str(e))
            return None

    def _size(self, file_path: Path) -> int:
        try:
            return self.reader.size(file_path)
        except OSError:
            return 0


def _match_unit(project: Project, stem: str) -> Unit | None:
    """Unit named ``stem``, or whose last dotted segment is ``stem``."""
    unit = project.find_unit(stem)
    if unit is not None:
        return unit
    key = stem.lower()
    for candidate in project.units:
        if candidate.name.rsplit(".", 1)[-1].lower() == key:
            return candidate
    return None


def _unit_beside(project: Project, dfm_path: Path) -> Unit | None:
    """Unit whose file sits in the same directory with the same stem."""
    for unit in project.units:
        file_path = unit.file_path
        if (
            file_path is not None
            and file_path.parent == dfm_path.parent
            and file_path.stem.lower() == dfm_path.stem.lower()
        ):
            return unit
    return None


def _pair(unit: Unit, form: Form) -> None:
    unit.is_form = True
    unit.has_form = True
    unit.form_file = form.file_path
    if unit.form_name is None:
        unit.form_name = form.class_name or form.name
