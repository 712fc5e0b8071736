"""
Pending Windows Update status.

Runs a Windows Update Agent search on the target for updates that are
neither installed nor hidden, then derives:
- Critical: updates whose MSRC severity is exactly "Critical"
- Security: updates in the "Security Updates" category
- SecurityAge: days since the oldest pending security update changed
  (-1 when there are none)
"""

import logging
from datetime import datetime
from typing import Any, List, Optional, Tuple

from .._types import UNSET, PendingUpdate, UpdateRecord, now_utc
from ..remote.executor import WindowsExecutor
from ..utils import RemoteQueryError, parse_datetime

logger = logging.getLogger(__name__)

UPDATE_SEARCH_CRITERIA = "IsInstalled=0 and IsHidden=0"
SECURITY_CATEGORY = "Security Updates"

UPDATE_SEARCH_SCRIPT = r'''
$ErrorActionPreference = 'Stop'
$session = New-Object -ComObject Microsoft.Update.Session
$searcher = $session.CreateUpdateSearcher()
$result = $searcher.Search("''' + UPDATE_SEARCH_CRITERIA + r'''")

$updates = @(foreach ($update in $result.Updates) {
    $categories = @($update.Categories | ForEach-Object { $_.Name })
    [pscustomobject]@{
        Title = $update.Title
        Severity = $update.MsrcSeverity
        LastChange = if ($update.LastDeploymentChangeTime) {
            $update.LastDeploymentChangeTime.ToUniversalTime().ToString("o")
        } else { $null }
        IsSecurity = $categories -contains "''' + SECURITY_CATEGORY + r'''"
    }
})

ConvertTo-Json -InputObject $updates -Depth 3 -Compress
'''


def parse_updates(data: Any) -> List[PendingUpdate]:
    """Convert the search script's JSON into PendingUpdate objects."""
    if data is None:
        return []
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise ValueError(f"unexpected update search output: {type(data).__name__}")

    updates = []
    for item in data:
        if not isinstance(item, dict):
            continue
        updates.append(PendingUpdate(
            title=item.get("Title") or "",
            severity=item.get("Severity") or None,
            last_change=parse_datetime(item.get("LastChange")),
            is_security=bool(item.get("IsSecurity")),
        ))
    return updates


def summarize_updates(
    updates: List[PendingUpdate],
    now: Optional[datetime] = None,
) -> Tuple[int, int, int]:
    """
    Derive (critical, security, security_age) from pending updates.

    security_age is rounded to the nearest whole day and is -1 when no
    dated security update is pending.
    """
    now = now or now_utc()

    critical = sum(1 for u in updates if u.severity == "Critical")
    security = [u for u in updates if u.is_security]

    dated = [u.last_change for u in security if u.last_change is not None]
    if dated:
        oldest = min(dated)
        security_age = round((now - oldest).total_seconds() / 86400)
    else:
        security_age = UNSET

    return critical, len(security), security_age


async def collect_update_status(
    executor: WindowsExecutor,
    machine: str,
    record: UpdateRecord,
    now: Optional[datetime] = None,
) -> None:
    """
    Fill the Critical, Security and SecurityAge fields of record.

    Raises:
        RemoteQueryError: If the update search fails or returns malformed output
    """
    result = await executor.run_script(machine, UPDATE_SEARCH_SCRIPT)

    if not result.success:
        raise RemoteQueryError(machine, "Microsoft.Update.Session", [result.error or "unknown error"])

    parse_error = result.output.get("parse_error")
    if parse_error:
        raise RemoteQueryError(machine, "Microsoft.Update.Session", [f"malformed response: {parse_error}"])

    try:
        updates = parse_updates(result.output.get("parsed"))
    except ValueError as e:
        raise RemoteQueryError(machine, "Microsoft.Update.Session", [str(e)]) from e

    critical, security, security_age = summarize_updates(updates, now)

    record.critical = critical
    record.security = security
    record.security_age = security_age

    logger.debug(
        f"{machine}: {len(updates)} pending, {critical} critical, {security} security"
    )
