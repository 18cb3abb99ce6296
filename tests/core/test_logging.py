"""Tests for structured logging."""

import json
import logging
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
import structlog

from delphiscan.config.models import LoggingConfig, LogOutputConfig
from delphiscan.core.logging import (
    ConsoleSuppressingFilter,
    configure_logging,
    get_logger,
    get_scan_id,
    new_scan_id,
    scan_context,
    submit_with_context,
    unit_context,
)
from delphiscan.core.progress import suppress_console_logs


def _json_lines(path: Path) -> list[dict[str, object]]:
    return [json.loads(line) for line in path.read_text().splitlines() if line]


@pytest.fixture
def json_log(tmp_path: Path) -> Iterator[Path]:
    """Route DEBUG and up to a JSON file for the duration of a test."""
    log_file = tmp_path / "scan.log"
    configure_logging(
        config=LoggingConfig(
            level="DEBUG",
            outputs=[LogOutputConfig(format="json", destination=str(log_file))],
        )
    )
    yield log_file
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    configure_logging()


class TestScanContext:
    """Scan and unit context binding tests."""

    def setup_method(self) -> None:
        structlog.contextvars.clear_contextvars()

    def test_given_scan_context_when_entered_then_id_bound_and_restored(self) -> None:
        """The scan ID is visible inside the block and gone after it."""
        # Given
        assert get_scan_id() is None

        # When
        with scan_context("Billing.dproj", scan_id="scan-123") as sid:
            inside = get_scan_id()

        # Then
        assert sid == "scan-123"
        assert inside == "scan-123"
        assert get_scan_id() is None

    def test_generated_id(self) -> None:
        with scan_context("Billing.dproj") as sid:
            assert len(sid) == 12
            assert get_scan_id() == sid

    def test_new_scan_ids_differ(self) -> None:
        assert new_scan_id() != new_scan_id()

    def test_nested_context_restores_outer_id(self) -> None:
        with scan_context("batch", scan_id="outer"):
            with scan_context("Billing.dproj", scan_id="inner"):
                assert get_scan_id() == "inner"
            assert get_scan_id() == "outer"

    def test_given_pool_thread_when_submitted_with_context_then_id_visible(self) -> None:
        """Executor threads see the submitting thread's scan ID."""
        # Given
        with ThreadPoolExecutor(max_workers=1) as executor, scan_context("P", scan_id="abc"):
            # When
            carried = submit_with_context(executor, get_scan_id).result()

        # Then
        assert carried == "abc"

    def test_unit_context_does_not_leak_into_caller(self) -> None:
        with ThreadPoolExecutor(max_workers=1) as executor, scan_context("P", scan_id="abc"):

            def bound_unit() -> object:
                with unit_context("Orders"):
                    return structlog.contextvars.get_contextvars()["unit"]

            assert submit_with_context(executor, bound_unit).result() == "Orders"
            assert "unit" not in structlog.contextvars.get_contextvars()


class TestLoggingConfiguration:
    """Logging configuration tests."""

    def setup_method(self) -> None:
        """Reset structlog and stdlib logging before each test."""
        structlog.reset_defaults()
        structlog.contextvars.clear_contextvars()
        logging.getLogger().handlers.clear()

    def test_given_json_format_when_log_then_valid_json_output(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """JSON format produces valid JSON with required fields."""
        # Given
        configure_logging(json_format=True, level="INFO")
        logger = get_logger("delphiscan.test")

        # When
        logger.info("test message", key="value")

        # Then
        captured = capsys.readouterr()
        data = json.loads(captured.err.strip().splitlines()[-1])
        assert data["event"] == "test message"
        assert data["key"] == "value"
        assert data["level"] == "info"
        assert data["logger"] == "delphiscan.test"
        assert "timestamp" in data

    def test_given_config_object_when_configure_then_takes_precedence(self, tmp_path: Path) -> None:
        """LoggingConfig object takes precedence over simple params."""
        # Given
        log_file = tmp_path / "test.log"
        config = LoggingConfig(
            level="DEBUG",
            outputs=[LogOutputConfig(format="json", destination=str(log_file))],
        )

        # When - config's DEBUG should override the level="ERROR" param
        configure_logging(config=config, json_format=False, level="ERROR")
        get_logger().debug("debug msg")

        # Then
        assert "debug msg" in log_file.read_text()

    def test_given_multi_output_config_when_configure_then_logs_to_all(
        self, tmp_path: Path
    ) -> None:
        """Multiple outputs receive logs according to their levels."""
        # Given
        debug_file = tmp_path / "debug.log"
        info_file = tmp_path / "info.log"
        config = LoggingConfig(
            level="DEBUG",
            outputs=[
                LogOutputConfig(format="json", destination=str(info_file), level="INFO"),
                LogOutputConfig(format="json", destination=str(debug_file)),
            ],
        )

        # When
        configure_logging(config=config)
        logger = get_logger()
        logger.debug("debug only")
        logger.info("info msg")

        # Then - info_file has INFO only
        info_content = info_file.read_text()
        assert "info msg" in info_content
        assert "debug only" not in info_content

        # Then - debug_file has both
        debug_content = debug_file.read_text()
        assert "debug only" in debug_content
        assert "info msg" in debug_content

    def test_output_level_below_default_still_receives(self, tmp_path: Path) -> None:
        """An output asking for DEBUG gets it even when the default level is WARNING."""
        log_file = tmp_path / "debug.log"
        configure_logging(
            config=LoggingConfig(
                level="WARNING",
                outputs=[
                    LogOutputConfig(destination="stderr"),
                    LogOutputConfig(format="json", destination=str(log_file), level="DEBUG"),
                ],
            )
        )
        get_logger().debug("unit_scanned")
        assert [line["event"] for line in _json_lines(log_file)] == ["unit_scanned"]

    def test_reconfigure_closes_previous_files(self, tmp_path: Path) -> None:
        first = tmp_path / "first.log"
        configure_logging(
            config=LoggingConfig(outputs=[LogOutputConfig(destination=str(first))])
        )
        handler = logging.getLogger().handlers[0]
        assert isinstance(handler, logging.FileHandler)

        configure_logging()

        assert handler not in logging.getLogger().handlers
        assert handler.stream is None

    def test_file_destination_parent_created(self, tmp_path: Path) -> None:
        log_file = tmp_path / "nested" / "dir" / "delphiscan.log"
        configure_logging(
            config=LoggingConfig(outputs=[LogOutputConfig(destination=str(log_file))])
        )
        assert log_file.parent.is_dir()


class TestContextInLogLines:
    """Bound context shows up in rendered lines."""

    def test_given_scan_and_unit_when_logged_then_lines_carry_both(self, json_log: Path) -> None:
        """Log lines written inside a unit scan name the scan and the unit."""
        # Given
        logger = get_logger("delphiscan.scan")

        # When
        with scan_context("Billing.dproj", scan_id="0123456789ab"), unit_context("Orders"):
            logger.info("unit_scanned", methods=2)
        logger.info("batch_scanned")

        # Then
        inside, outside = _json_lines(json_log)
        assert inside["scan_id"] == "0123456789ab"
        assert inside["target"] == "Billing.dproj"
        assert inside["unit"] == "Orders"
        assert inside["methods"] == 2
        assert "scan_id" not in outside

    def test_exception_rendered_in_json(self, json_log: Path) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger().warning("unit_scan_failed", exc_info=True)
        (line,) = _json_lines(json_log)
        assert "ValueError: boom" in str(line["exception"])


class TestConsoleSuppressingFilter:
    """Tests for ConsoleSuppressingFilter."""

    def _record(self) -> logging.LogRecord:
        return logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)

    def test_passes_records_normally(self) -> None:
        assert ConsoleSuppressingFilter().filter(self._record()) is True

    def test_blocks_records_while_suppressed(self) -> None:
        with suppress_console_logs():
            assert ConsoleSuppressingFilter().filter(self._record()) is False
        assert ConsoleSuppressingFilter().filter(self._record()) is True
