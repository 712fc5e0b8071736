"""
Compliance Reporter - Windows license and update status across a domain.

Resolves machines from Active Directory (or an explicit list), queries each
one over WinRM, and emits one flat record per machine as a table, CSV or
JSON. Per-machine failures degrade to warnings and sentinel values.
"""

__version__ = "0.1.0"

from ._types import (
    LicenseRecord,
    LicenseStatus,
    MachineRecord,
    PendingUpdate,
    UpdateRecord,
    ComplianceRecord,
    license_status_label,
)
from .reports import ComplianceReport, LicenseReport, ReportGenerator, UpdateReport
from .utils import ConfigError, RemoteQueryError, ReporterError, TargetResolutionError

__all__ = [
    "__version__",

    # Records
    "MachineRecord",
    "LicenseRecord",
    "UpdateRecord",
    "ComplianceRecord",
    "PendingUpdate",
    "LicenseStatus",
    "license_status_label",

    # Reports
    "ReportGenerator",
    "LicenseReport",
    "UpdateReport",
    "ComplianceReport",

    # Errors
    "ReporterError",
    "TargetResolutionError",
    "RemoteQueryError",
    "ConfigError",
]
