"""
PowerShell execution on Windows machines via WinRM.

Runs PowerShell scripts on report targets using pywinrm. Sessions are
cached per host for the lifetime of a run.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import winrm

logger = logging.getLogger(__name__)


@dataclass
class WindowsTarget:
    """WinRM connection settings for a single host."""
    hostname: str
    port: int = 5985  # WinRM HTTP (5986 for HTTPS)
    username: str = ""
    password: str = ""
    use_ssl: bool = False
    verify_ssl: bool = True
    transport: str = "ntlm"  # ntlm, kerberos, credssp, ...
    operation_timeout: int = 20
    read_timeout: int = 30

    @property
    def endpoint(self) -> str:
        protocol = "https" if self.use_ssl else "http"
        return f"{protocol}://{self.hostname}:{self.port}/wsman"


@dataclass
class ExecutionResult:
    """Result of a PowerShell script execution."""
    success: bool
    target: str
    output: Dict[str, Any]
    duration_seconds: float
    error: Optional[str] = None
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()


class WindowsExecutor:
    """
    Execute PowerShell on Windows hosts via WinRM.

    Uses the pywinrm library for WinRM communication. pywinrm is
    synchronous, so each call runs in the default thread pool; callers
    await each call before starting the next.
    """

    def __init__(
        self,
        username: str = "",
        password: str = "",
        transport: str = "ntlm",
        use_ssl: bool = False,
        port: Optional[int] = None,
        verify_ssl: bool = True,
        operation_timeout: int = 20,
        read_timeout: int = 30,
    ):
        """
        Initialize executor.

        Args:
            username: Windows username (DOMAIN\\user or user@domain)
            password: Windows password
            transport: pywinrm transport (ntlm, kerberos, ...)
            use_ssl: Use HTTPS (port 5986) instead of HTTP (port 5985)
            port: Override default WinRM port
            verify_ssl: Validate server certificates
            operation_timeout: WS-Man operation timeout in seconds
            read_timeout: HTTP read timeout in seconds
        """
        self.username = username
        self.password = password
        self.transport = transport
        self.use_ssl = use_ssl
        self.port = port or (5986 if use_ssl else 5985)
        self.verify_ssl = verify_ssl
        self.operation_timeout = operation_timeout
        self.read_timeout = read_timeout

        self._session_cache: Dict[str, Any] = {}

    @classmethod
    def from_config(cls, config) -> "WindowsExecutor":
        """Create executor from a ReporterConfig."""
        return cls(
            username=config.winrm_username or "",
            password=config.winrm_password or "",
            transport=config.winrm_transport,
            use_ssl=config.winrm_use_ssl,
            port=config.winrm_effective_port,
            verify_ssl=config.winrm_verify_ssl,
            operation_timeout=config.winrm_operation_timeout,
            read_timeout=config.winrm_read_timeout,
        )

    def target_for(self, hostname: str) -> WindowsTarget:
        """Connection settings for hostname using the executor's credentials."""
        return WindowsTarget(
            hostname=hostname,
            port=self.port,
            username=self.username,
            password=self.password,
            use_ssl=self.use_ssl,
            verify_ssl=self.verify_ssl,
            transport=self.transport,
            operation_timeout=self.operation_timeout,
            read_timeout=self.read_timeout,
        )

    def _get_session(self, target: WindowsTarget):
        """
        Get or create WinRM session for target.

        Returns:
            winrm.Session object
        """
        cache_key = target.hostname

        if cache_key not in self._session_cache:
            self._session_cache[cache_key] = winrm.Session(
                target.endpoint,
                auth=(target.username, target.password),
                transport=target.transport,
                server_cert_validation='validate' if target.verify_ssl else 'ignore',
                operation_timeout_sec=target.operation_timeout,
                read_timeout_sec=target.read_timeout,
            )

        return self._session_cache[cache_key]

    async def run_script(self, hostname: str, script: str) -> ExecutionResult:
        """
        Execute PowerShell script on hostname.

        Transport and remote errors are reported in the result, never raised.

        Returns:
            ExecutionResult with script output
        """
        target = self.target_for(hostname)
        start_time = datetime.now(timezone.utc)

        try:
            loop = asyncio.get_running_loop()
            output = await loop.run_in_executor(None, self._execute_sync, target, script)
        except Exception as e:
            duration = (datetime.now(timezone.utc) - start_time).total_seconds()
            logger.debug(f"WinRM call to {hostname} raised {type(e).__name__}: {e}")
            return ExecutionResult(
                success=False,
                target=hostname,
                output={},
                duration_seconds=duration,
                error=str(e) or type(e).__name__,
            )

        duration = (datetime.now(timezone.utc) - start_time).total_seconds()
        error = None
        if not output["success"]:
            error = output["std_err"].strip() or f"exit code {output['status_code']}"

        return ExecutionResult(
            success=output["success"],
            target=hostname,
            output=output,
            duration_seconds=duration,
            error=error,
        )

    def _execute_sync(self, target: WindowsTarget, script: str) -> Dict[str, Any]:
        """Synchronous script execution (runs in thread pool)."""
        session = self._get_session(target)

        result = session.run_ps(script)

        output = {
            "status_code": result.status_code,
            "std_out": result.std_out.decode('utf-8', errors='replace') if result.std_out else "",
            "std_err": result.std_err.decode('utf-8', errors='replace') if result.std_err else "",
            "success": result.status_code == 0,
            "parsed": None,
            "parse_error": None,
        }

        # Try to parse JSON output
        if output["std_out"].strip():
            try:
                output["parsed"] = json.loads(output["std_out"])
            except json.JSONDecodeError as e:
                output["parse_error"] = str(e)

        return output
