"""Tests for the dscan CLI commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from conftest import ORDERS_UNIT
from delphiscan.cli.main import cli

runner = CliRunner()


@pytest.fixture(autouse=True)
def no_global_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the user's own config file out of the tests."""
    monkeypatch.setattr("delphiscan.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "none.yaml")


@pytest.fixture
def orders_file(tmp_path: Path) -> Path:
    path = tmp_path / "Orders.Data.pas"
    path.write_text(ORDERS_UNIT)
    return path


class TestCliGroup:
    """dscan group tests."""

    def test_version(self) -> None:
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_help_lists_commands(self) -> None:
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("scan", "batch", "methods", "sql", "dproj", "quote"):
            assert command in result.output


class TestScanCommand:
    """dscan scan command tests."""

    def test_given_project_when_scan_json_then_report_on_stdout(
        self, billing_project: Path
    ) -> None:
        """--json writes only the report to stdout."""
        # Given
        path = billing_project / "Billing.dproj"

        # When
        result = runner.invoke(cli, ["scan", str(path), "--json"])

        # Then
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["summary"]["project"] == "Billing"
        assert data["summary"]["queries"] == 3
        assert list(data["queries"]) == ["Orders.Data", "Reports"]

    def test_text_report(self, billing_project: Path) -> None:
        result = runner.invoke(cli, ["scan", str(billing_project)])
        assert result.exit_code == 0, result.output
        assert "Billing (VCL)" in result.output
        assert "TOrderRepository.DeleteOrder:22" in result.output
        assert "Unit not found: Gone" in result.output

    def test_quote_flag(self, tmp_path: Path) -> None:
        (tmp_path / "U.pas").write_text(
            "unit U;\ninterface\nimplementation\nprocedure P;\nbegin\n"
            "  Q.SQL.Text := 'SELECT Date FROM Totals';\nend;\nend.\n"
        )
        result = runner.invoke(cli, ["scan", str(tmp_path), "--json", "--quote", "--workers", "1"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["queries"]["U"][0]["sql_text"] == 'SELECT "Date" FROM Totals'

    def test_missing_path_fails(self, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["scan", str(tmp_path / "nope")])
        assert result.exit_code != 0

    def test_unsupported_file_fails_with_message(self, tmp_path: Path) -> None:
        path = tmp_path / "notes.txt"
        path.write_text("x")
        result = runner.invoke(cli, ["scan", str(path)])
        assert result.exit_code == 1
        assert "Expected a .dpr, .dproj or directory" in result.output

    def test_invalid_project_config_fails(self, billing_project: Path) -> None:
        (billing_project / ".delphiscan").mkdir()
        (billing_project / ".delphiscan" / "config.yaml").write_text(
            "scanner:\n  max_workers: 0\n"
        )
        result = runner.invoke(cli, ["scan", str(billing_project)])
        assert result.exit_code == 1
        assert "scanner.max_workers" in result.output


class TestBatchCommand:
    """dscan batch command tests."""

    def test_given_two_projects_when_batch_json_then_reports_in_order(
        self, billing_project: Path, tmp_path: Path
    ) -> None:
        # Given
        tiny = tmp_path / "Tiny.dpr"
        tiny.write_text("program Tiny;\nbegin\nend.\n")

        # When
        result = runner.invoke(cli, ["batch", str(tiny), str(billing_project), "--json"])

        # Then
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert [r["summary"]["project"] for r in data] == ["Tiny", "Billing"]

    def test_text_summary(self, billing_project: Path) -> None:
        result = runner.invoke(cli, ["batch", str(billing_project)])
        assert result.exit_code == 0, result.output
        assert "Done: 3 queries found" in result.output


class TestMethodsCommand:
    """dscan methods command tests."""

    def test_json_without_bodies(self, orders_file: Path) -> None:
        result = runner.invoke(cli, ["methods", str(orders_file), "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        names = [m["qualified_name"] for m in data["methods"]]
        assert names == ["TOrderRepository.DeleteOrder", "TOrderRepository.CountOrders"]
        assert [m["start_line"] for m in data["methods"]] == [20, 26]
        assert "source_code" not in data["methods"][0]
        assert data["warnings"] == []

    def test_json_with_bodies(self, orders_file: Path) -> None:
        result = runner.invoke(cli, ["methods", str(orders_file), "--json", "--source"])
        data = json.loads(result.stdout)
        assert data["methods"][0]["source_code"].rstrip().endswith("end;")

    def test_table(self, orders_file: Path) -> None:
        result = runner.invoke(cli, ["methods", str(orders_file)])
        assert result.exit_code == 0
        assert "TOrderRepository.CountOrders" in result.output
        assert "2 methods" in result.output


class TestSqlCommand:
    """dscan sql command tests."""

    def test_given_unit_when_sql_json_then_queries_with_lines(self, orders_file: Path) -> None:
        # When
        result = runner.invoke(cli, ["sql", str(orders_file), "--json"])

        # Then
        assert result.exit_code == 0, result.output
        queries = json.loads(result.stdout)["queries"]
        assert [(q["line"], q["operation"]) for q in queries] == [(22, "DELETE"), (28, "SELECT")]
        assert queries[0]["parameters"] == ["OrderId"]

    def test_fragment_without_methods(self, tmp_path: Path) -> None:
        path = tmp_path / "snippet.pas"
        path.write_text("Q.SQL.Clear;\nQ.SQL.Add('SELECT Value');\nQ.SQL.Add('FROM Totals');\n")
        result = runner.invoke(cli, ["sql", str(path), "--json", "--quote"])
        queries = json.loads(result.stdout)["queries"]
        assert [q["sql_text"] for q in queries] == ['SELECT "Value" FROM Totals']

    def test_text_output(self, orders_file: Path) -> None:
        result = runner.invoke(cli, ["sql", str(orders_file)])
        assert result.exit_code == 0
        assert "TOrderRepository.DeleteOrder" in result.output
        assert "params: OrderId" in result.output
        assert "2 queries" in result.output


class TestDprojCommand:
    """dscan dproj command tests."""

    def test_json(self, billing_project: Path) -> None:
        result = runner.invoke(cli, ["dproj", str(billing_project / "Billing.dproj"), "--json"])
        assert result.exit_code == 0, result.output
        metadata = json.loads(result.stdout)["metadata"]
        assert metadata["project_name"] == "Billing"
        assert metadata["framework"] == "VCL"
        assert "MSWINDOWS" in metadata["active_defines"]

    def test_text_lists_missing_sources(self, billing_project: Path) -> None:
        result = runner.invoke(cli, ["dproj", str(billing_project / "Billing.dproj")])
        assert result.exit_code == 0
        assert "5 source files (1 missing)" in result.output
        assert "src\\Gone.pas" in result.output


class TestQuoteCommand:
    """dscan quote command tests."""

    def test_argument(self) -> None:
        result = runner.invoke(cli, ["quote", "SELECT Value FROM Order"])
        assert result.exit_code == 0
        assert result.stdout == 'SELECT "Value" FROM "Order"\n'

    def test_stdin(self) -> None:
        result = runner.invoke(cli, ["quote"], input="UPDATE Order SET Date = :D\n")
        assert result.exit_code == 0
        assert result.stdout == 'UPDATE "Order" SET "Date" = :D\n'
