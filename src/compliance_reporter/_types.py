"""
Type definitions for compliance reports.

Every report row is a flat dataclass whose fields all carry a sentinel
default. A machine that could not be queried still produces a complete
row; only the fields that were actually collected differ from the defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Optional, Union


# Sentinel values for fields that failed to populate
UNKNOWN = "Unknown"
UNSET = -1


def now_utc() -> datetime:
    """Get current UTC timestamp (replaces deprecated datetime.utcnow())."""
    return datetime.now(timezone.utc)


class LicenseStatus(IntEnum):
    """SoftwareLicensingProduct.LicenseStatus codes."""
    UNLICENSED = 0
    LICENSED = 1
    OOB_GRACE = 2
    OOT_GRACE = 3
    NON_GENUINE_GRACE = 4
    NOTIFICATION = 5
    EXTENDED_GRACE = 6


LICENSE_STATUS_LABELS: dict[int, str] = {
    LicenseStatus.UNLICENSED: "Unlicensed",
    LicenseStatus.LICENSED: "Licensed",
    LicenseStatus.OOB_GRACE: "OOBGrace",
    LicenseStatus.OOT_GRACE: "OOTGrace",
    LicenseStatus.NON_GENUINE_GRACE: "NonGenuineGrace",
    LicenseStatus.NOTIFICATION: "Notification",
    LicenseStatus.EXTENDED_GRACE: "ExtendedGrace",
}


def license_status_label(code: int) -> str:
    """Render a raw license status code as e.g. "1 (Licensed)"."""
    label = LICENSE_STATUS_LABELS.get(code, "unknown")
    return f"{code} ({label})"


def column(name: str, default: Any) -> Any:
    """Declare a record field together with its report column header."""
    return field(default=default, metadata={"column": name})


@dataclass
class MachineRecord:
    """
    One report row.

    Created fresh for each machine, filled in as each collection
    category succeeds, and emitted unchanged by the output layer.
    """
    system: str = field(metadata={"column": "System"})
    os_type: str = column("Type", UNKNOWN)
    os_version: str = column("Version", UNKNOWN)

    @classmethod
    def columns(cls) -> list[str]:
        """Column headers in field declaration order."""
        return [f.metadata["column"] for f in fields(cls)]

    def to_dict(self) -> dict[str, Any]:
        """Convert to an ordered column -> value mapping."""
        return {f.metadata["column"]: getattr(self, f.name) for f in fields(self)}


@dataclass
class LicenseRecord(MachineRecord):
    """Row of the license report."""
    license_status: Union[int, str] = column("LicenseStatus", UNSET)
    license_reason: int = column("LicenseReason", UNSET)
    license_product: str = column("LicenseProduct", "")
    license_description: str = column("LicenseDescription", "")
    product_key_channel: str = column("ProductKeyChannel", "")
    kms_server: str = column("KMSServer", "")


@dataclass
class UpdateRecord(MachineRecord):
    """Row of the update report."""
    critical: int = column("Critical", UNSET)
    security: int = column("Security", UNSET)
    security_age: int = column("SecurityAge", UNSET)


@dataclass
class ComplianceRecord(UpdateRecord, LicenseRecord):
    """Row of the combined report: licensing columns, then update columns."""


@dataclass
class PendingUpdate:
    """An update reported by the Windows Update searcher as not installed."""
    title: str
    severity: Optional[str] = None
    last_change: Optional[datetime] = None
    is_security: bool = False
