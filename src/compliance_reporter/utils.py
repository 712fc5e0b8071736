"""
Utility functions for the compliance reporter.

Includes:
- Error types shared across discovery, transport and reporting
- Windows timestamp conversion
- Logging setup
"""

import logging
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

# Windows FILETIME counts 100ns ticks since 1601-01-01 UTC
FILETIME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)


class ReporterError(Exception):
    """Base class for compliance reporter errors."""


class TargetResolutionError(ReporterError):
    """Raised when the list of machines to report on cannot be built."""


class ConfigError(ReporterError):
    """Raised when configuration cannot be loaded or is invalid."""


class RemoteQueryError(ReporterError):
    """Error raised when every query strategy for a class failed on a machine."""

    def __init__(self, machine: str, class_name: str, causes: Iterable[str] = ()):
        self.machine = machine
        self.class_name = class_name
        self.causes = list(causes)
        detail = "; ".join(self.causes) if self.causes else "no data returned"
        super().__init__(f"{class_name} query on {machine} failed: {detail}")


def filetime_to_datetime(value: Any) -> Optional[datetime]:
    """
    Convert a Windows FILETIME value to a UTC datetime.

    Args:
        value: Tick count as int or numeric string

    Returns:
        Timezone-aware datetime, or None for 0 ("never") and unparseable values
    """
    try:
        ticks = int(value)
    except (TypeError, ValueError):
        return None

    if ticks <= 0:
        return None

    try:
        return FILETIME_EPOCH + timedelta(microseconds=ticks // 10)
    except OverflowError:
        # 0x7FFFFFFFFFFFFFFF is used by AD to mean "never"
        return None


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse ISO datetime string, assuming UTC when no offset is present."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging for the reporter.

    Diagnostics go to stderr so that report output on stdout stays clean.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stderr,
        force=True,
    )
