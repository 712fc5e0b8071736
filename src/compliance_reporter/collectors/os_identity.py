"""Operating system identity (Win32_OperatingSystem caption and version)."""

import logging
from typing import Optional, Sequence

from .._types import UNKNOWN, MachineRecord
from ..remote.executor import WindowsExecutor
from ..remote.retrieval import ClassQuery, QueryStrategy, get_instance

logger = logging.getLogger(__name__)

OS_QUERY = ClassQuery(
    class_name="Win32_OperatingSystem",
    properties=("Caption", "Version"),
)


async def collect_os_identity(
    executor: WindowsExecutor,
    machine: str,
    record: MachineRecord,
    strategies: Optional[Sequence[QueryStrategy]] = None,
) -> None:
    """Fill Type and Version of record; raises RemoteQueryError on failure."""
    os_info = await get_instance(executor, machine, OS_QUERY, strategies)

    caption = (os_info.get("Caption") or "").strip()
    version = (os_info.get("Version") or "").strip()

    record.os_type = caption or UNKNOWN
    record.os_version = version or UNKNOWN
