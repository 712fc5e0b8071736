"""Tests for shared helpers and error types."""

import logging
from datetime import datetime, timezone

from compliance_reporter.utils import (
    FILETIME_EPOCH,
    RemoteQueryError,
    ReporterError,
    TargetResolutionError,
    filetime_to_datetime,
    parse_datetime,
    setup_logging,
)


class TestFiletime:
    """Tests for FILETIME conversion."""

    def test_known_value(self):
        """2024-01-01T00:00:00Z as FILETIME."""
        assert filetime_to_datetime(133485408000000000) == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_numeric_string(self):
        """Numeric strings are accepted."""
        assert filetime_to_datetime("133485408000000000") == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_epoch(self):
        """One tick is just after the epoch."""
        assert filetime_to_datetime(10) > FILETIME_EPOCH

    def test_zero_means_never(self):
        """Zero and negative values mean no timestamp."""
        assert filetime_to_datetime(0) is None
        assert filetime_to_datetime(-5) is None

    def test_max_value_means_never(self):
        """0x7FFFFFFFFFFFFFFF overflows and is treated as never."""
        assert filetime_to_datetime(0x7FFFFFFFFFFFFFFF) is None

    def test_garbage(self):
        """Unparseable values return None."""
        assert filetime_to_datetime(None) is None
        assert filetime_to_datetime("not-a-number") is None


class TestParseDatetime:
    """Tests for ISO timestamp parsing."""

    def test_zulu_suffix(self):
        """Trailing Z is read as UTC."""
        assert parse_datetime("2024-03-01T12:00:00Z") == datetime(2024, 3, 1, 12, tzinfo=timezone.utc)

    def test_naive_assumed_utc(self):
        """Values without offset are assumed UTC."""
        parsed = parse_datetime("2024-03-01T12:00:00")
        assert parsed.tzinfo == timezone.utc

    def test_empty_and_invalid(self):
        """Empty and invalid strings return None."""
        assert parse_datetime(None) is None
        assert parse_datetime("") is None
        assert parse_datetime("yesterday") is None


class TestErrors:
    """Tests for error types."""

    def test_hierarchy(self):
        """All reporter errors share a base class."""
        assert issubclass(TargetResolutionError, ReporterError)
        assert issubclass(RemoteQueryError, ReporterError)

    def test_remote_query_error_message(self):
        """Message names class, machine and every cause."""
        error = RemoteQueryError("HOST-B", "Win32_OperatingSystem", ["CIM: timeout", "WMI: RPC unavailable"])
        assert error.machine == "HOST-B"
        assert error.class_name == "Win32_OperatingSystem"
        assert str(error) == "Win32_OperatingSystem query on HOST-B failed: CIM: timeout; WMI: RPC unavailable"

    def test_remote_query_error_without_causes(self):
        """Missing causes produce a generic message."""
        assert str(RemoteQueryError("HOST-B", "X")).endswith("no data returned")


class TestSetupLogging:
    """Tests for logging setup."""

    def test_sets_level(self):
        """Root logger level follows the argument."""
        root = logging.getLogger()
        level, handlers = root.level, root.handlers[:]
        try:
            setup_logging("debug")
            assert root.level == logging.DEBUG
            setup_logging("WARNING")
            assert root.level == logging.WARNING
        finally:
            root.handlers[:] = handlers
            root.setLevel(level)
