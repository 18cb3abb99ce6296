"""Tests for scan/pipeline.py module.

Covers:
- scan_unit() extraction and its failure boundary
- ProjectScanner.scan() sequential and parallel runs
- Cancellation, progress callbacks and sinks
- ProjectScanReport summary and JSON shape
- scan_many() batches
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from delphiscan.config.models import (
    DelphiScanConfig,
    LoggingConfig,
    LogOutputConfig,
    ScannerConfig,
    SqlConfig,
)
from delphiscan.core.cancel import CancellationToken
from delphiscan.core.errors import ErrorCode, ScanCancelled, ScanError
from delphiscan.core.logging import configure_logging, get_scan_id
from delphiscan.core.results import WarningKind
from delphiscan.models import SqlOperation, Unit
from delphiscan.project.sources import LocalSourceReader
from delphiscan.scan.pipeline import (
    ProjectScanner,
    ProjectScanReport,
    UnitScanResult,
    quote_query,
    scan_many,
    scan_unit,
)


def _unit(tmp_path: Path, name: str, text: str) -> Unit:
    path = tmp_path / f"{name}.pas"
    path.write_text(text)
    return Unit(name=name, file_path=path, relative_path=f"{name}.pas")


class RecordingSink:
    """FactSink that keeps what it receives."""

    def __init__(self) -> None:
        self.reports: list[ProjectScanReport] = []

    def accept(self, report: ProjectScanReport) -> None:
        self.reports.append(report)


class TestScanUnit:
    """Tests for scan_unit function."""

    def test_given_unit_when_scanned_then_queries_carry_file_lines(
        self, tmp_path: Path
    ) -> None:
        """Query and field lines are absolute lines in the unit file."""
        # Given
        text = (
            "unit U;\ninterface\nimplementation\n\n"
            "procedure Load;\nbegin\n"
            "  Q.SQL.Text := 'SELECT Name FROM Customers';\n"
            "  N := Q.FieldByName('Name').AsString;\n"
            "end;\n\nend.\n"
        )
        unit = _unit(tmp_path, "U", text)

        # When
        result = scan_unit(unit, LocalSourceReader())

        # Then
        assert result.unit_name == "U"
        assert [m.name for m in result.methods] == ["Load"]
        assert [(q.line, q.sql_text) for q in result.queries] == [
            (7, "SELECT Name FROM Customers")
        ]
        assert [(f.line, f.field_name) for f in result.field_accesses] == [(8, "Name")]
        assert result.warnings == []

    def test_quote_reserved_words(self, tmp_path: Path) -> None:
        text = (
            "unit U;\ninterface\nimplementation\nprocedure P;\nbegin\n"
            "  Q.SQL.Text := 'SELECT Date FROM Orders';\nend;\nend.\n"
        )
        result = scan_unit(_unit(tmp_path, "U", text), LocalSourceReader(), quote=True)
        assert result.queries[0].sql_text == 'SELECT "Date" FROM Orders'

    def test_unit_without_file_yields_empty_result(self) -> None:
        result = scan_unit(Unit(name="Ghost"), LocalSourceReader())
        assert result == UnitScanResult(unit_name="Ghost")

    def test_unreadable_file_is_a_warning(self, tmp_path: Path) -> None:
        unit = Unit(name="Gone", file_path=tmp_path / "Gone.pas", relative_path="Gone.pas")
        result = scan_unit(unit, LocalSourceReader())
        assert [w.kind for w in result.warnings] == [WarningKind.UNREADABLE_FILE]
        assert result.warnings[0].message.startswith("Cannot read Gone.pas")

    def test_unterminated_method_warning_gets_unit_path(self, tmp_path: Path) -> None:
        text = "unit U;\ninterface\nimplementation\nprocedure P;\nbegin\n  X := 1;\n"
        result = scan_unit(_unit(tmp_path, "U", text), LocalSourceReader())
        assert [w.kind for w in result.warnings] == [WarningKind.UNTERMINATED_METHOD]
        assert result.warnings[0].path == "U.pas"

    def test_given_extractor_failure_when_scanned_then_internal_warning(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """An unexpected failure stays inside the unit."""

        # Given
        def explode(text: str) -> None:  # noqa: ARG001
            raise RuntimeError("boom")

        monkeypatch.setattr("delphiscan.scan.pipeline.extract_methods", explode)
        unit = _unit(tmp_path, "U", "unit U;\nend.\n")

        # When
        result = scan_unit(unit, LocalSourceReader())

        # Then
        assert [w.kind for w in result.warnings] == [WarningKind.INTERNAL]
        assert result.warnings[0].message == "Failed to scan unit U: boom"


class TestQuoteQuery:
    """Tests for quote_query function."""

    def test_dynamic_marker_untouched(self, tmp_path: Path) -> None:
        text = (
            "unit U;\ninterface\nimplementation\nprocedure P;\nbegin\n"
            "  Q.SQL.Text := Format('SELECT * FROM %s', [T]);\nend;\nend.\n"
        )
        query = scan_unit(_unit(tmp_path, "U", text), LocalSourceReader()).queries[0]
        assert quote_query(query) is query


class TestProjectScanner:
    """ProjectScanner on the sample project."""

    def test_given_project_when_scanned_then_queries_by_unit(self, billing_project: Path) -> None:
        # Given
        scanner = ProjectScanner()

        # When
        report = scanner.scan(billing_project)

        # Then
        assert list(report.queries) == ["Orders.Data", "Reports"]
        delete, count = report.queries["Orders.Data"]
        assert delete.line == 22
        assert delete.sql_text == "DELETE FROM Orders WHERE Id = :OrderId;"
        assert delete.operation is SqlOperation.DELETE
        assert delete.method_name == "DeleteOrder"
        assert delete.class_name == "TOrderRepository"
        assert count.line == 28
        assert count.sql_text == "SELECT COUNT(*) AS Total FROM Orders"
        assert count.is_dynamic is False
        [reports_query] = report.queries["Reports"]
        assert reports_query.line == 9
        assert reports_query.sql_text == "SELECT * FROM Reports"

    def test_field_accesses_and_methods(self, billing_project: Path) -> None:
        report = ProjectScanner().scan(billing_project)
        [total] = report.field_accesses["Orders.Data"]
        assert total.field_name == "Total"
        assert total.line == 32
        assert total.method_name == "TOrderRepository.CountOrders"
        orders = report.project.find_unit("Orders.Data")
        assert [(m.name, m.start_line) for m in orders.methods] == [
            ("DeleteOrder", 20),
            ("CountOrders", 26),
        ]

    def test_summary(self, billing_project: Path) -> None:
        summary = ProjectScanner().scan(billing_project).summary()
        assert summary["project"] == "Billing"
        assert summary["framework"] == "VCL"
        assert summary["units"] == 5
        assert summary["units_with_file"] == 5
        assert summary["forms"] == 1
        assert summary["methods"] == 5
        assert summary["queries"] == 3
        assert summary["dynamic_queries"] == 1
        assert summary["warnings"] == 1

    def test_cross_reference_ignores_runtime_units(self, billing_project: Path) -> None:
        report = ProjectScanner().scan(billing_project)
        xref = report.cross_reference
        assert xref is not None
        assert [f.unit_name for f in xref.active_files] == ["MainForm", "Orders.Data"]
        assert [f.unit_name for f in xref.orphaned_files] == ["Reports", "Gone"]
        assert xref.external_units == ["Helpers"]

    def test_no_cross_reference_without_project_file(self, tmp_path: Path) -> None:
        (tmp_path / "App.dpr").write_text("program App;\nbegin\nend.\n")
        assert ProjectScanner().scan(tmp_path / "App.dpr").cross_reference is None

    def test_parallel_matches_sequential(self, billing_project: Path) -> None:
        """Worker count never changes the report."""
        sequential = ProjectScanner().scan(billing_project, max_workers=1)
        parallel = ProjectScanner().scan(billing_project, max_workers=4)
        assert parallel.queries == sequential.queries
        assert parallel.field_accesses == sequential.field_accesses
        assert [u.methods for u in parallel.project.units] == [
            u.methods for u in sequential.project.units
        ]
        assert parallel.warnings == sequential.warnings

    def test_quote_config_applied(self, tmp_path: Path) -> None:
        (tmp_path / "U.pas").write_text(
            "unit U;\ninterface\nimplementation\nprocedure P;\nbegin\n"
            "  Q.SQL.Text := 'SELECT Value FROM Totals';\nend;\nend.\n"
        )
        config = DelphiScanConfig(sql=SqlConfig(quote_reserved_words=True))
        report = ProjectScanner(config).scan(tmp_path)
        assert report.queries["U"][0].sql_text == 'SELECT "Value" FROM Totals'

    def test_on_unit_called_per_unit_with_file(self, billing_project: Path) -> None:
        seen: list[str] = []
        ProjectScanner().scan(billing_project, on_unit=lambda r: seen.append(r.unit_name))
        assert sorted(seen) == sorted(["Billing", "MainForm", "Orders.Data", "Helpers", "Reports"])

    def test_sink_receives_report(self, billing_project: Path) -> None:
        sink = RecordingSink()
        report = ProjectScanner().scan(billing_project, sink=sink)
        assert sink.reports == [report]

    def test_scan_id_set_on_report_and_cleared(self, billing_project: Path) -> None:
        report = ProjectScanner().scan(billing_project)
        assert len(report.scan_id) == 12
        assert get_scan_id() is None

    def test_given_parallel_scan_when_logged_then_worker_lines_carry_scan_and_unit(
        self, billing_project: Path, tmp_path: Path
    ) -> None:
        """Unit workers log under the scan ID of the project that started them."""
        # Given
        log_file = tmp_path / "scan.log"
        configure_logging(
            config=LoggingConfig(
                level="DEBUG",
                outputs=[LogOutputConfig(format="json", destination=str(log_file))],
            )
        )

        # When
        try:
            report = ProjectScanner().scan(billing_project, max_workers=4)
        finally:
            configure_logging()

        # Then
        lines = [json.loads(line) for line in log_file.read_text().splitlines()]
        unit_lines = [line for line in lines if line["event"] == "unit_scanned"]
        assert {line["unit"] for line in unit_lines} == {
            "Billing",
            "MainForm",
            "Orders.Data",
            "Helpers",
            "Reports",
        }
        assert {line["scan_id"] for line in unit_lines} == {report.scan_id}

    def test_missing_path_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ScanError) as exc_info:
            ProjectScanner().scan(tmp_path / "missing.dproj")
        assert exc_info.value.code == ErrorCode.SCAN_PATH_NOT_FOUND
        assert get_scan_id() is None


class TestCancellation:
    """Cancellation between units."""

    def test_cancelled_before_start(self, billing_project: Path) -> None:
        token = CancellationToken()
        token.cancel()
        with pytest.raises(ScanCancelled) as exc_info:
            ProjectScanner().scan(billing_project, cancel=token)
        assert exc_info.value.details == {"next": "project resolution"}

    @pytest.mark.parametrize("workers", [1, 4])
    def test_given_cancel_during_scan_when_next_unit_then_raises(
        self, billing_project: Path, workers: int
    ) -> None:
        # Given
        token = CancellationToken()

        # When / Then
        with pytest.raises(ScanCancelled) as exc_info:
            ProjectScanner().scan(
                billing_project,
                cancel=token,
                max_workers=workers,
                on_unit=lambda _: token.cancel(),
            )
        assert exc_info.value.code == ErrorCode.SCAN_CANCELLED
        assert exc_info.value.retryable is True


class TestReportJson:
    """ProjectScanReport.to_dict."""

    def test_given_report_when_serialized_then_json_without_bodies(
        self, billing_project: Path
    ) -> None:
        # Given
        report = ProjectScanner().scan(billing_project)

        # When
        data = json.loads(json.dumps(report.to_dict()))

        # Then
        assert data["summary"]["queries"] == 3
        assert data["scan_id"] == report.scan_id
        methods = [m for u in data["project"]["units"] for m in u["methods"]]
        assert methods
        assert all("source_code" not in m for m in methods)
        assert data["queries"]["Orders.Data"][0]["operation"] == "DELETE"
        assert data["cross_reference"]["external_units"] == ["Helpers"]

    def test_source_included_on_request(self, billing_project: Path) -> None:
        data = ProjectScanner().scan(billing_project).to_dict(include_source=True)
        orders = next(u for u in data["project"]["units"] if u["name"] == "Orders.Data")
        assert orders["methods"][0]["source_code"].startswith("procedure TOrderRepository")
        assert orders["methods"][0]["qualified_name"] == "TOrderRepository.DeleteOrder"


class TestScanMany:
    """Tests for scan_many function."""

    @pytest.fixture
    def tiny_project(self, tmp_path: Path) -> Path:
        path = tmp_path / "tiny" / "Tiny.dpr"
        path.parent.mkdir()
        path.write_text("program Tiny;\nbegin\nend.\n")
        return path

    @pytest.mark.parametrize("workers", [1, 2])
    def test_reports_in_input_order(
        self, billing_project: Path, tiny_project: Path, workers: int
    ) -> None:
        seen: list[str] = []
        reports = scan_many(
            [tiny_project, billing_project],
            max_workers=workers,
            on_project=lambda r: seen.append(r.project.name),
        )
        assert [r.project.name for r in reports] == ["Tiny", "Billing"]
        assert seen == ["Tiny", "Billing"]

    def test_failing_project_propagates(self, tmp_path: Path, tiny_project: Path) -> None:
        with pytest.raises(ScanError):
            scan_many([tiny_project, tmp_path / "missing"], max_workers=2)

    def test_cancelled_batch(self, tiny_project: Path) -> None:
        token = CancellationToken()
        token.cancel()
        with pytest.raises(ScanCancelled):
            scan_many([tiny_project], cancel=token)

    def test_config_limits_used(self, billing_project: Path) -> None:
        config = DelphiScanConfig(scanner=ScannerConfig(max_projects=1, max_workers=1))
        [report] = scan_many([billing_project], config=config)
        assert report.query_count == 3
