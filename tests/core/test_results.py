"""Tests for core/results.py module."""

from __future__ import annotations

from delphiscan.core.errors import InternalError
from delphiscan.core.results import Outcome, ScanWarning, WarningKind


class TestScanWarning:
    """Tests for ScanWarning factories."""

    def test_unresolved_unit_with_path(self) -> None:
        warning = ScanWarning.unresolved_unit("Gone", "src\\Gone.pas")
        assert warning.kind is WarningKind.UNRESOLVED_REFERENCE
        assert warning.message == "Unit not found: Gone (path: src\\Gone.pas)"
        assert warning.path == "src\\Gone.pas"

    def test_unresolved_unit_without_path(self) -> None:
        warning = ScanWarning.unresolved_unit("Gone")
        assert str(warning) == "Unit not found: Gone"
        assert warning.path is None

    def test_unreadable(self) -> None:
        warning = ScanWarning.unreadable("lib/A.pas", "Permission denied")
        assert warning.kind is WarningKind.UNREADABLE_FILE
        assert warning.message == "Cannot read lib/A.pas: Permission denied"

    def test_malformed_project(self) -> None:
        warning = ScanWarning.malformed_project("A.dproj", "no element found")
        assert warning.kind is WarningKind.MALFORMED_PROJECT_FILE
        assert "A.dproj" in warning.message

    def test_internal_from_unit_failure(self) -> None:
        error = InternalError.unit_failed("U", ValueError("boom"))
        warning = ScanWarning.internal(error, "U.pas")
        assert warning.kind is WarningKind.INTERNAL
        assert warning.message == "Failed to scan unit U: boom"
        assert warning.path == "U.pas"

    def test_to_dict(self) -> None:
        warning = ScanWarning(WarningKind.INTERNAL, "boom", "U.pas")
        assert warning.to_dict() == {"kind": "internal", "message": "boom", "path": "U.pas"}


class TestOutcome:
    """Tests for Outcome."""

    def test_ok_without_warnings(self) -> None:
        assert Outcome([1, 2]).ok is True

    def test_not_ok_with_warnings(self) -> None:
        outcome = Outcome([], [ScanWarning.unresolved_unit("X")])
        assert outcome.ok is False
        assert outcome.value == []

    def test_warning_lists_not_shared(self) -> None:
        first: Outcome[int] = Outcome(1)
        second: Outcome[int] = Outcome(2)
        first.warnings.append(ScanWarning.unresolved_unit("X"))
        assert second.warnings == []
