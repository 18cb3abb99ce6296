"""Project and batch scans.

A project scan resolves the project, then runs ``scan_unit`` for every unit
with a backing file. Unit scans are independent and pure: each worker gets a
Unit, reads its text and returns a ``UnitScanResult`` value. Only the
coordinating thread touches the Project, merging results in unit order so a
parallel scan produces the same report as a sequential one.

Failures inside a unit never abort the project: ``scan_unit`` turns them
into warnings at the unit boundary.
"""

from __future__ import annotations

import dataclasses
import time
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from delphiscan.config.constants import DYNAMIC_SQL_MARKER
from delphiscan.config.models import DelphiScanConfig
from delphiscan.core.cancel import CancellationToken
from delphiscan.core.errors import InternalError
from delphiscan.core.logging import scan_context, submit_with_context, unit_context
from delphiscan.core.progress import progress
from delphiscan.core.results import ScanWarning
from delphiscan.extraction.fields import extract_field_accesses
from delphiscan.extraction.methods import extract_methods
from delphiscan.extraction.quoting import quote_reserved_words
from delphiscan.extraction.sql import extract_queries
from delphiscan.interfaces import FactSink, SourceReader
from delphiscan.models import (
    CrossReference,
    ExtractedMethod,
    FieldAccess,
    Project,
    QueryDescriptor,
    Unit,
    to_jsonable,
)
from delphiscan.project.dproj import cross_reference
from delphiscan.project.resolver import ProjectResolver
from delphiscan.project.sources import LocalSourceReader
from delphiscan.project.units import is_system_unit

log = structlog.get_logger(__name__)


@dataclass
class UnitScanResult:
    """Everything extracted from one unit."""

    unit_name: str
    methods: list[ExtractedMethod] = field(default_factory=list)
    queries: list[QueryDescriptor] = field(default_factory=list)
    field_accesses: list[FieldAccess] = field(default_factory=list)
    warnings: list[ScanWarning] = field(default_factory=list)


def quote_query(query: QueryDescriptor) -> QueryDescriptor:
    """Query with reserved words in its SQL quoted; fully dynamic queries pass through."""
    if query.sql_text == DYNAMIC_SQL_MARKER:
        return query
    return dataclasses.replace(query, sql_text=quote_reserved_words(query.sql_text))


def scan_unit(unit: Unit, reader: SourceReader, *, quote: bool = False) -> UnitScanResult:
    """Extract methods, queries and field reads from one unit.

    Never raises: an unreadable file or an unexpected failure is returned as
    a warning and whatever was extracted before it.
    """
    result = UnitScanResult(unit_name=unit.name)
    if unit.file_path is None:
        return result
    with unit_context(unit.name):
        return _scan_unit_file(unit, unit.file_path, reader, result, quote=quote)


def _scan_unit_file(
    unit: Unit, path: Path, reader: SourceReader, result: UnitScanResult, *, quote: bool
) -> UnitScanResult:
    location = unit.relative_path or str(path)

    try:
        text = reader.read_text(path)
    except OSError as e:
        result.warnings.append(ScanWarning.unreadable(location, e.strerror or str(e)))
        log.warning("unit_unreadable", path=location, error=str(e))
        return result

    try:
        outcome = extract_methods(text)
        result.methods = outcome.value
        result.warnings.extend(
            dataclasses.replace(w, path=location) if w.path is None else w for w in outcome.warnings
        )
        for method in outcome.value:
            offset = method.start_line - 1
            queries = extract_queries(method.source_code, line_offset=offset, method=method)
            if quote:
                queries = [quote_query(q) for q in queries]
            result.queries.extend(queries)
            result.field_accesses.extend(
                extract_field_accesses(method.source_code, line_offset=offset, method=method)
            )
    except Exception as e:  # unit boundary
        error = InternalError.unit_failed(unit.name, e)
        result.warnings.append(ScanWarning.internal(error, location))
        log.warning(
            "unit_scan_failed",
            path=location,
            error=error.error_name,
            **error.details,
            exc_info=True,
        )
        return result

    log.debug("unit_scanned", methods=len(result.methods), queries=len(result.queries))
    return result


@dataclass
class ProjectScanReport:
    """Result of scanning one project."""

    project: Project
    queries: dict[str, list[QueryDescriptor]] = field(default_factory=dict)
    field_accesses: dict[str, list[FieldAccess]] = field(default_factory=dict)
    cross_reference: CrossReference | None = None
    scan_id: str = ""
    elapsed_seconds: float = 0.0

    @property
    def warnings(self) -> list[ScanWarning]:
        return self.project.warnings

    @property
    def method_count(self) -> int:
        return sum(len(u.methods) for u in self.project.units)

    @property
    def query_count(self) -> int:
        return sum(len(q) for q in self.queries.values())

    def all_queries(self) -> list[QueryDescriptor]:
        return [q for queries in self.queries.values() for q in queries]

    def summary(self) -> dict[str, Any]:
        queries = self.all_queries()
        return {
            "project": self.project.name,
            "framework": self.project.framework.value,
            "units": len(self.project.units),
            "units_with_file": sum(1 for u in self.project.units if u.has_file),
            "forms": len(self.project.forms),
            "methods": self.method_count,
            "queries": len(queries),
            "dynamic_queries": sum(1 for q in queries if q.is_dynamic),
            "warnings": len(self.warnings),
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }

    def to_dict(self, *, include_source: bool = False) -> dict[str, Any]:
        """JSON-ready report. Method bodies are left out unless ``include_source``."""
        project = to_jsonable(self.project)
        if not include_source:
            for unit in project["units"]:
                for method in unit["methods"]:
                    method.pop("source_code", None)
        return {
            "scan_id": self.scan_id,
            "summary": self.summary(),
            "project": project,
            "queries": to_jsonable(self.queries),
            "field_accesses": to_jsonable(self.field_accesses),
            "cross_reference": to_jsonable(self.cross_reference),
        }


class ProjectScanner:
    """Resolves and scans Delphi projects.

    Example::

        scanner = ProjectScanner(load_config())
        report = scanner.scan(Path("legacy/Billing.dproj"))
        for query in report.all_queries():
            print(query.line, query.sql_text)
    """

    def __init__(
        self, config: DelphiScanConfig | None = None, *, reader: SourceReader | None = None
    ) -> None:
        self.config = config or DelphiScanConfig()
        self.reader = reader or LocalSourceReader(self.config.scanner.fallback_encoding)
        self.resolver = ProjectResolver(self.config.scanner, self.reader, self.config.project_file)

    def scan(
        self,
        path: Path | str,
        *,
        cancel: CancellationToken | None = None,
        sink: FactSink | None = None,
        max_workers: int | None = None,
        on_unit: Callable[[UnitScanResult], None] | None = None,
        show_progress: bool = False,
    ) -> ProjectScanReport:
        """Resolve ``path`` and scan every unit of the project.

        ``show_progress`` draws a progress bar on a terminal; leave it off
        when several scans run at once.

        Raises:
            ScanError: If ``path`` is not a project file or directory.
            ScanCancelled: If ``cancel`` fires before the scan completes.
        """
        cancel = cancel or CancellationToken()
        workers = max_workers or self.config.scanner.max_workers
        started = time.perf_counter()
        with scan_context(str(path)) as scan_id:
            cancel.raise_if_cancelled("project resolution")
            project = self.resolver.resolve(path)
            units = [u for u in project.units if u.has_file]

            if workers <= 1 or len(units) <= 1:
                results = self._sequential(units, cancel, on_unit, show_progress)
            else:
                results = self._parallel(units, cancel, workers, on_unit, show_progress)

            report = ProjectScanReport(project=project, scan_id=scan_id)
            for unit, result in zip(units, results, strict=True):
                unit.methods = result.methods
                project.warnings.extend(result.warnings)
                if result.queries:
                    report.queries[unit.name] = result.queries
                if result.field_accesses:
                    report.field_accesses[unit.name] = result.field_accesses

            entry = next((u for u in project.units if u.is_entry_point), None)
            if project.dproj is not None and entry is not None:
                extra = self.config.scanner.extra_system_prefixes
                used = [*entry.uses_interface, *entry.uses_implementation]
                report.cross_reference = cross_reference(
                    project.dproj, [name for name in used if not is_system_unit(name, extra)]
                )
            report.elapsed_seconds = time.perf_counter() - started

            log.info("project_scanned", **report.summary())
            if sink is not None:
                sink.accept(report)
            return report

    def _sequential(
        self,
        units: list[Unit],
        cancel: CancellationToken,
        on_unit: Callable[[UnitScanResult], None] | None,
        show_progress: bool,
    ) -> list[UnitScanResult]:
        quote = self.config.sql.quote_reserved_words
        results: list[UnitScanResult] = []
        pending = progress(units, desc="Scanning") if show_progress else units
        for unit in pending:
            cancel.raise_if_cancelled(f"unit {unit.name}")
            result = scan_unit(unit, self.reader, quote=quote)
            results.append(result)
            if on_unit is not None:
                on_unit(result)
        return results

    def _parallel(
        self,
        units: list[Unit],
        cancel: CancellationToken,
        workers: int,
        on_unit: Callable[[UnitScanResult], None] | None,
        show_progress: bool,
    ) -> list[UnitScanResult]:
        quote = self.config.sql.quote_reserved_words
        results: dict[int, UnitScanResult] = {}
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="delphiscan-unit")
        try:
            futures: dict[Future[UnitScanResult], int] = {}
            for index, unit in enumerate(units):
                if cancel.cancelled:
                    break
                future = submit_with_context(executor, scan_unit, unit, self.reader, quote=quote)
                futures[future] = index
            completed: Iterable[Future[UnitScanResult]] = as_completed(futures)
            if show_progress:
                completed = progress(completed, desc="Scanning", total=len(futures))
            for future in completed:
                cancel.raise_if_cancelled("remaining units")
                result = future.result()
                results[futures[future]] = result
                if on_unit is not None:
                    on_unit(result)
            cancel.raise_if_cancelled("remaining units")
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
        return [results[i] for i in range(len(units))]


def scan_many(
    paths: Sequence[Path | str],
    *,
    max_workers: int | None = None,
    cancel: CancellationToken | None = None,
    config: DelphiScanConfig | None = None,
    on_project: Callable[[ProjectScanReport], None] | None = None,
) -> list[ProjectScanReport]:
    """Scan several projects, at most ``max_workers`` at a time.

    Reports come back in the order of ``paths``. The first failing project
    (bad path, cancellation) stops the batch and its error propagates.
    """
    config = config or DelphiScanConfig()
    cancel = cancel or CancellationToken()
    workers = max_workers or config.scanner.max_projects
    scanner = ProjectScanner(config)

    def scan_one(path: Path | str) -> ProjectScanReport:
        cancel.raise_if_cancelled(f"project {path}")
        return scanner.scan(path, cancel=cancel)

    reports: list[ProjectScanReport] = []
    if workers <= 1 or len(paths) <= 1:
        for path in paths:
            reports.append(scan_one(path))
            if on_project is not None:
                on_project(reports[-1])
    else:
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="delphiscan-project"
        ) as executor:
            futures = [submit_with_context(executor, scan_one, p) for p in paths]
            try:
                for future in futures:
                    reports.append(future.result())
                    if on_project is not None:
                        on_project(reports[-1])
            except BaseException:
                executor.shutdown(wait=False, cancel_futures=True)
                raise
    log.info("batch_scanned", projects=len(reports))
    return reports
