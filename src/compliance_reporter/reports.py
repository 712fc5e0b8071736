"""
Report generators.

A report runs a fixed list of collection categories against each machine
in turn. Every category runs for every machine; a failing category is
logged as a warning and leaves its fields at their sentinel defaults.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Type

from ._types import ComplianceRecord, LicenseRecord, MachineRecord, UpdateRecord
from .collectors import collect_licensing, collect_os_identity, collect_update_status
from .remote.executor import WindowsExecutor
from .remote.retrieval import default_strategies, primary_only

logger = logging.getLogger(__name__)


@dataclass
class Category:
    """A named collection step: (executor, machine, record) -> None."""
    name: str
    collect: Callable[[WindowsExecutor, str, MachineRecord], Awaitable[None]]


class ReportGenerator(ABC):
    """Base report: sequential, per-category error isolation."""

    name = "base"
    record_type: Type[MachineRecord] = MachineRecord

    def __init__(
        self,
        executor: WindowsExecutor,
        legacy_gateway: Optional[str] = None,
        now: Optional[datetime] = None,
    ):
        """
        Args:
            executor: WinRM executor used for every query
            legacy_gateway: Host for legacy WMI fallback queries
            now: Reference time for age calculations (default: current time)
        """
        self.executor = executor
        self.legacy_gateway = legacy_gateway
        self.now = now

    @abstractmethod
    def categories(self) -> List[Category]:
        """Collection steps run for every machine, in order."""

    async def collect(self, machine: str) -> MachineRecord:
        """Build the record for one machine, running every category."""
        record = self.record_type(system=machine)
        failures = 0

        categories = self.categories()
        for category in categories:
            try:
                await category.collect(self.executor, machine, record)
            except Exception as e:
                failures += 1
                logger.warning(f"Unable to collect {category.name} from {machine}: {e}")

        if failures:
            logger.debug(f"{machine}: {failures}/{len(categories)} categories failed")
        return record

    async def run(self, machines: Sequence[str]) -> List[MachineRecord]:
        """Collect records for machines in order, one machine at a time."""
        records = []
        total = len(machines)

        for index, machine in enumerate(machines, start=1):
            logger.info(f"[{index}/{total}] Collecting {self.name} data from {machine}")
            records.append(await self.collect(machine))

        logger.info(f"{self.name} report complete: {len(records)} machines")
        return records


class LicenseReport(ReportGenerator):
    """Licensing status with OS identity; queries use the CIM transport only."""

    name = "license"
    record_type = LicenseRecord

    def categories(self) -> List[Category]:
        return [
            Category("licensing", partial(collect_licensing, strategies=primary_only())),
            Category("operating system", partial(collect_os_identity, strategies=primary_only())),
        ]


class UpdateReport(ReportGenerator):
    """Pending update counts with OS identity (CIM with WMI fallback)."""

    name = "updates"
    record_type = UpdateRecord

    def categories(self) -> List[Category]:
        return [
            Category(
                "operating system",
                partial(collect_os_identity, strategies=default_strategies(self.legacy_gateway)),
            ),
            Category("update status", partial(collect_update_status, now=self.now)),
        ]


class ComplianceReport(ReportGenerator):
    """Licensing and update status in one row per machine."""

    name = "all"
    record_type = ComplianceRecord

    def categories(self) -> List[Category]:
        return [
            Category("licensing", partial(collect_licensing, strategies=primary_only())),
            Category(
                "operating system",
                partial(collect_os_identity, strategies=default_strategies(self.legacy_gateway)),
            ),
            Category("update status", partial(collect_update_status, now=self.now)),
        ]


REPORTS: Dict[str, Type[ReportGenerator]] = {
    LicenseReport.name: LicenseReport,
    UpdateReport.name: UpdateReport,
    ComplianceReport.name: ComplianceReport,
}
