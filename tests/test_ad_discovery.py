"""Tests for Active Directory target resolution."""

import threading

import pytest
from datetime import datetime, timezone, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

from ldap3.core.exceptions import LDAPException

from compliance_reporter.config import ReporterConfig
from compliance_reporter.discovery import (
    ADComputer,
    ADDiscovery,
    build_search_filter,
    compute_cutoff,
    resolve_targets,
)
from compliance_reporter.utils import TargetResolutionError


NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


def filetime(dt: datetime) -> int:
    """Encode a datetime as a Windows FILETIME tick count."""
    epoch = datetime(1601, 1, 1, tzinfo=timezone.utc)
    return int((dt - epoch).total_seconds()) * 10_000_000


def entry(name, last_logon=None, dns_hostname=None):
    """paged_search result entry."""
    attrs = {"name": name}
    if dns_hostname is not None:
        attrs["dNSHostName"] = dns_hostname
    if last_logon is not None:
        attrs["lastLogonTimestamp"] = last_logon
    return {
        "type": "searchResEntry",
        "dn": f"CN={name},OU=Servers,DC=corp,DC=local",
        "attributes": attrs,
    }


@pytest.fixture
def mock_connection():
    """ldap3 connection with a paged search and root DSE info."""
    conn = MagicMock()
    conn.server.info.other = {"defaultNamingContext": ["DC=corp,DC=local"]}
    conn.extend.standard.paged_search.return_value = []
    return conn


@pytest.fixture
def discovery(mock_connection):
    """ADDiscovery whose connection is mocked."""
    d = ADDiscovery(server="dc01.corp.local", bind_dn="svc@corp.local", bind_password="pw")
    with patch.object(ADDiscovery, "_connect", return_value=mock_connection):
        yield d


class TestBuildSearchFilter:
    """Tests for LDAP filter construction."""

    def test_computers_only(self):
        """No filters selects every computer object."""
        assert build_search_filter() == "(objectCategory=computer)"

    def test_name_pattern(self):
        """Name pattern keeps wildcards."""
        assert build_search_filter("SRV-*") == "(&(objectCategory=computer)(name=SRV-*))"

    def test_name_pattern_escaped(self):
        """Filter metacharacters in the name pattern are escaped."""
        result = build_search_filter("WEB(1)*")
        assert result == "(&(objectCategory=computer)(name=WEB\\281\\29*))"

    def test_raw_filter_wrapped(self):
        """Raw filters get parentheses when missing."""
        result = build_search_filter(ldap_filter="operatingSystem=*Server*")
        assert result == "(&(objectCategory=computer)(operatingSystem=*Server*))"

    def test_both_filters(self):
        """Name and raw filters are ANDed with the computer clause."""
        result = build_search_filter("SRV-*", "(!(userAccountControl:1.2.840.113556.1.4.803:=2))")
        assert result == (
            "(&(objectCategory=computer)(name=SRV-*)"
            "(!(userAccountControl:1.2.840.113556.1.4.803:=2)))"
        )


class TestComputeCutoff:
    """Tests for the recency cutoff."""

    def test_days_before_now(self):
        """Cutoff is now minus the given days."""
        assert compute_cutoff(30, NOW) == NOW - timedelta(days=30)

    def test_negative_age_same_as_positive(self):
        """Sign of the age is ignored."""
        assert compute_cutoff(-10, NOW) == compute_cutoff(10, NOW)


class TestADComputer:
    """Tests for ADComputer."""

    def test_target_name(self):
        """Short name unless FQDN is preferred and known."""
        computer = ADComputer(name="SRV01", dns_hostname="srv01.corp.local")
        assert computer.target_name() == "SRV01"
        assert computer.target_name(prefer_fqdn=True) == "srv01.corp.local"
        assert ADComputer(name="SRV02").target_name(prefer_fqdn=True) == "SRV02"


class TestADDiscovery:
    """Tests for directory queries."""

    def test_from_config_requires_server(self):
        """No domain controller means targets cannot be resolved."""
        with pytest.raises(TargetResolutionError):
            ADDiscovery.from_config(ReporterConfig())

    def test_from_config(self):
        """Settings are carried over from config."""
        config = ReporterConfig(ad_server="dc01", ad_use_ssl=True, ad_page_size=200, prefer_fqdn=True)
        discovery = ADDiscovery.from_config(config)
        assert discovery.server_address == "dc01"
        assert discovery.port == 636
        assert discovery.page_size == 200
        assert discovery.prefer_fqdn is True

    @pytest.mark.asyncio
    async def test_recency_filter(self, discovery, mock_connection):
        """Only computers that logged on after the cutoff are kept, in order."""
        mock_connection.extend.standard.paged_search.return_value = [
            entry("SRV01", filetime(NOW - timedelta(days=1))),
            entry("SRV02", filetime(NOW - timedelta(days=45))),
            entry("SRV03", NOW - timedelta(days=29)),
            entry("SRV04"),
            entry("SRV05", 0),
            {"type": "searchResRef", "uri": ["ldap://other.corp.local/DC=other"]},
        ]

        names = await discovery.find_active_computers(machine_age=30, now=NOW)

        assert names == ["SRV01", "SRV03"]

    @pytest.mark.asyncio
    async def test_naive_datetime_treated_as_utc(self, discovery, mock_connection):
        """Schema-decoded timestamps without tzinfo compare as UTC."""
        naive = (NOW - timedelta(days=2)).replace(tzinfo=None)
        mock_connection.extend.standard.paged_search.return_value = [entry("SRV01", [naive])]

        assert await discovery.find_active_computers(now=NOW) == ["SRV01"]

    @pytest.mark.asyncio
    async def test_default_search_base(self, discovery, mock_connection):
        """Without a search base the defaultNamingContext is used."""
        await discovery.find_active_computers(name_filter="SRV-*", now=NOW)

        kwargs = mock_connection.extend.standard.paged_search.call_args.kwargs
        assert kwargs["search_base"] == "DC=corp,DC=local"
        assert kwargs["search_filter"] == "(&(objectCategory=computer)(name=SRV-*))"
        assert kwargs["paged_size"] == 500
        mock_connection.unbind.assert_called_once()

    @pytest.mark.asyncio
    async def test_explicit_search_base(self, discovery, mock_connection):
        """An explicit search base is passed through."""
        await discovery.find_active_computers(search_base="OU=Servers,DC=corp,DC=local", now=NOW)

        kwargs = mock_connection.extend.standard.paged_search.call_args.kwargs
        assert kwargs["search_base"] == "OU=Servers,DC=corp,DC=local"

    @pytest.mark.asyncio
    async def test_prefer_fqdn(self, mock_connection):
        """dNSHostName is reported when configured."""
        mock_connection.extend.standard.paged_search.return_value = [
            entry("SRV01", filetime(NOW - timedelta(days=1)), dns_hostname="srv01.corp.local"),
        ]
        d = ADDiscovery(server="dc01", prefer_fqdn=True)
        with patch.object(ADDiscovery, "_connect", return_value=mock_connection):
            assert await d.find_active_computers(now=NOW) == ["srv01.corp.local"]

    @pytest.mark.asyncio
    async def test_search_failure(self, discovery, mock_connection):
        """LDAP errors during search become TargetResolutionError."""
        mock_connection.extend.standard.paged_search.side_effect = LDAPException("invalid filter")

        with pytest.raises(TargetResolutionError):
            await discovery.find_active_computers(now=NOW)
        mock_connection.unbind.assert_called_once()

    @pytest.mark.asyncio
    async def test_connect_failure(self):
        """Bind failures become TargetResolutionError."""
        d = ADDiscovery(server="dc01")
        with patch.object(ADDiscovery, "_connect", side_effect=LDAPException("invalidCredentials")):
            with pytest.raises(TargetResolutionError):
                await d.find_active_computers(now=NOW)

    @pytest.mark.asyncio
    async def test_search_runs_in_worker_thread(self, discovery):
        """The blocking LDAP search does not run on the event loop thread."""
        threads = []

        def search(search_base, search_filter):
            threads.append(threading.get_ident())
            return [ADComputer(name="SRV01", last_logon=NOW - timedelta(days=1))]

        with patch.object(ADDiscovery, "search_computers", side_effect=search):
            names = await discovery.find_active_computers(now=NOW)

        assert names == ["SRV01"]
        assert threads and threads[0] != threading.get_ident()

    @pytest.mark.asyncio
    async def test_no_search_base(self, discovery, mock_connection):
        """No base and no naming context is a resolution error."""
        mock_connection.server.info.other = {}

        with pytest.raises(TargetResolutionError):
            await discovery.find_active_computers(now=NOW)


class TestResolveTargets:
    """Tests for resolve_targets."""

    @pytest.mark.asyncio
    async def test_explicit_systems(self):
        """Explicit systems are returned unchanged; the directory is not touched."""
        discovery = MagicMock()
        discovery.find_active_computers = AsyncMock()

        result = await resolve_targets(
            systems=["HOST-B", "HOST-A", "HOST-B"],
            discovery=discovery,
            search_base="OU=Ignored,DC=corp,DC=local",
            machine_age=1,
        )

        assert result == ["HOST-B", "HOST-A", "HOST-B"]
        discovery.find_active_computers.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_systems_queries_directory(self):
        """An empty list falls through to the directory."""
        discovery = MagicMock()
        discovery.find_active_computers = AsyncMock(return_value=["SRV01"])

        result = await resolve_targets(systems=[], discovery=discovery, name_filter="SRV*", machine_age=7)

        assert result == ["SRV01"]
        kwargs = discovery.find_active_computers.call_args.kwargs
        assert kwargs["name_filter"] == "SRV*"
        assert kwargs["machine_age"] == 7

    @pytest.mark.asyncio
    async def test_no_source(self):
        """Neither systems nor directory is an error."""
        with pytest.raises(TargetResolutionError):
            await resolve_targets()
