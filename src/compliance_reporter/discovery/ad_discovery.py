"""
Active Directory target discovery using LDAP.

Queries AD for computer objects and keeps those that logged on recently.
Uses the ldap3 library for LDAP operations.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Sequence

from ldap3 import Server, Connection, ALL, SUBTREE
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from .._types import now_utc
from ..utils import TargetResolutionError, filetime_to_datetime

logger = logging.getLogger(__name__)

COMPUTER_ATTRIBUTES = [
    "name",                # Short computer name
    "dNSHostName",         # FQDN
    "lastLogonTimestamp",  # Replicated last logon (FILETIME)
]


@dataclass
class ADComputer:
    """Represents a computer object from AD."""
    name: str
    dns_hostname: Optional[str] = None
    last_logon: Optional[datetime] = None

    def target_name(self, prefer_fqdn: bool = False) -> str:
        if prefer_fqdn and self.dns_hostname:
            return self.dns_hostname
        return self.name


def compute_cutoff(machine_age: int, now: Optional[datetime] = None) -> datetime:
    """
    Oldest last-logon time a computer may have and still be reported.

    Negative ages are treated as their absolute value.
    """
    now = now or now_utc()
    return now - timedelta(days=abs(machine_age))


def build_search_filter(name_filter: Optional[str] = None, ldap_filter: Optional[str] = None) -> str:
    """
    Build the LDAP filter for computer objects.

    Args:
        name_filter: Wildcard pattern on the computer name (e.g. "SRV-*")
        ldap_filter: Raw LDAP filter ANDed with the computer clause
    """
    clauses = ["(objectCategory=computer)"]

    if name_filter:
        # Keep wildcards, escape everything else
        pattern = "*".join(escape_filter_chars(part) for part in name_filter.split("*"))
        clauses.append(f"(name={pattern})")

    if ldap_filter:
        raw = ldap_filter.strip()
        if not (raw.startswith("(") and raw.endswith(")")):
            raw = f"({raw})"
        clauses.append(raw)

    if len(clauses) == 1:
        return clauses[0]
    return f"(&{''.join(clauses)})"


def _single(value: Any) -> Any:
    """Collapse ldap3 multi-value lists to a single value."""
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _to_datetime(value: Any) -> Optional[datetime]:
    """Normalize lastLogonTimestamp (datetime with schema, FILETIME without)."""
    value = _single(value)
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="ignore")
    return filetime_to_datetime(value)


class ADDiscovery:
    """
    Discover report targets via Active Directory LDAP queries.

    The recency cutoff is applied after retrieval rather than in the LDAP
    filter, so every matching computer object is read from the directory.
    """

    def __init__(
        self,
        server: str,
        base_dn: Optional[str] = None,
        bind_dn: Optional[str] = None,
        bind_password: Optional[str] = None,
        use_ssl: bool = False,
        port: Optional[int] = None,
        page_size: int = 500,
        prefer_fqdn: bool = False,
    ):
        """
        Initialize AD discovery.

        Args:
            server: AD domain controller hostname or IP
            base_dn: Default search base (e.g., "DC=example,DC=com")
            bind_dn: DN or UPN for authentication
            bind_password: Password for bind_dn
            use_ssl: Use LDAPS (port 636) instead of LDAP (port 389)
            port: Override default port
            page_size: Entries per page for the paged search
            prefer_fqdn: Return dNSHostName instead of name when available
        """
        self.server_address = server
        self.base_dn = base_dn
        self.bind_dn = bind_dn
        self.bind_password = bind_password
        self.use_ssl = use_ssl
        self.port = port or (636 if use_ssl else 389)
        self.page_size = page_size
        self.prefer_fqdn = prefer_fqdn

    @classmethod
    def from_config(cls, config) -> "ADDiscovery":
        """Create discovery from a ReporterConfig."""
        if not config.ad_server:
            raise TargetResolutionError("No domain controller configured (set AD_SERVER or ad.server)")
        return cls(
            server=config.ad_server,
            base_dn=config.ad_base_dn,
            bind_dn=config.ad_bind_dn,
            bind_password=config.ad_bind_password,
            use_ssl=config.ad_use_ssl,
            port=config.ldap_port,
            page_size=config.ad_page_size,
            prefer_fqdn=config.prefer_fqdn,
        )

    def _connect(self) -> Connection:
        server = Server(
            self.server_address,
            port=self.port,
            use_ssl=self.use_ssl,
            get_info=ALL,
            connect_timeout=10,
        )
        return Connection(
            server,
            user=self.bind_dn,
            password=self.bind_password,
            auto_bind=True,
            raise_exceptions=True,
        )

    def _default_search_base(self, conn: Connection) -> Optional[str]:
        if self.base_dn:
            return self.base_dn
        info = conn.server.info
        if info is not None and info.other:
            return _single(info.other.get("defaultNamingContext"))
        return None

    def search_computers(
        self,
        search_base: Optional[str] = None,
        search_filter: str = "(objectCategory=computer)",
    ) -> list[ADComputer]:
        """
        Run a paged subtree search for computer objects.

        Raises:
            TargetResolutionError: On any LDAP failure or missing search base
        """
        try:
            conn = self._connect()
        except LDAPException as e:
            raise TargetResolutionError(f"Cannot connect to {self.server_address}: {e}") from e

        try:
            base = search_base or self._default_search_base(conn)
            if not base:
                raise TargetResolutionError(
                    f"No search base given and {self.server_address} did not report a defaultNamingContext"
                )

            logger.debug(f"LDAP search base={base} filter={search_filter}")

            responses = conn.extend.standard.paged_search(
                search_base=base,
                search_filter=search_filter,
                search_scope=SUBTREE,
                attributes=COMPUTER_ATTRIBUTES,
                paged_size=self.page_size,
                generator=False,
            )

            computers = []
            for response in responses:
                if response.get("type") != "searchResEntry":
                    continue
                attrs = response.get("attributes", {})
                name = _single(attrs.get("name"))
                if not name:
                    logger.debug(f"Skipping entry without name: {response.get('dn')}")
                    continue
                computers.append(ADComputer(
                    name=str(name),
                    dns_hostname=_single(attrs.get("dNSHostName")) or None,
                    last_logon=_to_datetime(attrs.get("lastLogonTimestamp")),
                ))

            logger.info(f"AD query returned {len(computers)} computers")
            return computers

        except LDAPException as e:
            raise TargetResolutionError(f"LDAP search failed on {self.server_address}: {e}") from e
        finally:
            conn.unbind()

    async def find_active_computers(
        self,
        search_base: Optional[str] = None,
        name_filter: Optional[str] = None,
        ldap_filter: Optional[str] = None,
        machine_age: int = 30,
        now: Optional[datetime] = None,
    ) -> list[str]:
        """
        Names of computers matching the filters that logged on recently.

        Computers with no recorded logon are never reported.
        """
        # ldap3 is synchronous
        loop = asyncio.get_running_loop()
        computers = await loop.run_in_executor(
            None,
            self.search_computers,
            search_base,
            build_search_filter(name_filter, ldap_filter),
        )

        cutoff = compute_cutoff(machine_age, now)
        active = [
            c.target_name(self.prefer_fqdn)
            for c in computers
            if c.last_logon is not None and c.last_logon > cutoff
        ]

        logger.info(
            f"{len(active)}/{len(computers)} computers logged on since {cutoff.isoformat()}"
        )
        return active


async def resolve_targets(
    systems: Optional[Sequence[str]] = None,
    discovery: Optional[ADDiscovery] = None,
    search_base: Optional[str] = None,
    name_filter: Optional[str] = None,
    ldap_filter: Optional[str] = None,
    machine_age: int = 30,
    now: Optional[datetime] = None,
) -> list[str]:
    """
    Produce the ordered list of machines to report on.

    An explicit, non-empty list of systems is returned unchanged and all
    directory parameters are ignored. Otherwise the directory is queried.

    Raises:
        TargetResolutionError: If the directory query fails
    """
    if systems:
        logger.info(f"Using {len(systems)} explicitly listed systems")
        return list(systems)

    if discovery is None:
        raise TargetResolutionError("No systems given and no directory configured")

    return await discovery.find_active_computers(
        search_base=search_base,
        name_filter=name_filter,
        ldap_filter=ldap_filter,
        machine_age=machine_age,
        now=now,
    )
