"""
Class-instance retrieval with transport fallback.

A retrieval is described by a ClassQuery and attempted through an ordered
list of query strategies. The primary strategy uses the CIM cmdlets over
WS-Man; the legacy strategy uses Get-WmiObject, optionally relayed through
a gateway host that reaches the target over DCOM. Each strategy is tried
exactly once.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from ..utils import RemoteQueryError
from .executor import ExecutionResult, WindowsExecutor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassQuery:
    """A WMI/CIM class retrieval."""
    class_name: str
    properties: tuple = ()
    namespace: str = "root/cimv2"
    filter: Optional[str] = None


def ps_quote(value: str) -> str:
    """Quote a value as a PowerShell single-quoted string literal."""
    return "'" + str(value).replace("'", "''") + "'"


def _json_pipeline(command: str, properties: Sequence[str]) -> str:
    select = ""
    if properties:
        select = " | Select-Object -Property " + ", ".join(ps_quote(p) for p in properties)
    return (
        "$ErrorActionPreference = 'Stop'\n"
        f"$instances = @({command}{select})\n"
        "ConvertTo-Json -InputObject $instances -Depth 3 -Compress\n"
    )


class QueryStrategy(ABC):
    """How to reach a machine's class instances."""

    name: str = "query"

    @abstractmethod
    def endpoint(self, machine: str) -> str:
        """Host the WinRM session is opened against."""

    @abstractmethod
    def build_script(self, query: ClassQuery, machine: str) -> str:
        """PowerShell that prints the matching instances as a JSON array."""


class CimQueryStrategy(QueryStrategy):
    """Primary transport: Get-CimInstance on the target over WS-Man."""

    name = "CIM"

    def endpoint(self, machine: str) -> str:
        return machine

    def build_script(self, query: ClassQuery, machine: str) -> str:
        args = [
            f"-Namespace {ps_quote(query.namespace)}",
            f"-ClassName {ps_quote(query.class_name)}",
        ]
        if query.filter:
            args.append(f"-Filter {ps_quote(query.filter)}")
        return _json_pipeline(f"Get-CimInstance {' '.join(args)}", query.properties)


class WmiQueryStrategy(QueryStrategy):
    """
    Legacy transport: Get-WmiObject.

    Without a gateway the cmdlet runs on the target itself. With a gateway
    it runs there and reaches the target with -ComputerName (DCOM).
    """

    name = "WMI"

    def __init__(self, gateway: Optional[str] = None):
        self.gateway = gateway

    def endpoint(self, machine: str) -> str:
        return self.gateway or machine

    def build_script(self, query: ClassQuery, machine: str) -> str:
        namespace = query.namespace.replace("/", "\\")
        args = [
            f"-Namespace {ps_quote(namespace)}",
            f"-Class {ps_quote(query.class_name)}",
        ]
        if query.filter:
            args.append(f"-Filter {ps_quote(query.filter)}")
        if self.gateway:
            args.append(f"-ComputerName {ps_quote(machine)}")
        return _json_pipeline(f"Get-WmiObject {' '.join(args)}", query.properties)


def default_strategies(gateway: Optional[str] = None) -> List[QueryStrategy]:
    """Primary CIM strategy followed by the legacy WMI strategy."""
    return [CimQueryStrategy(), WmiQueryStrategy(gateway)]


def primary_only() -> List[QueryStrategy]:
    return [CimQueryStrategy()]


def _instances_from(result: ExecutionResult) -> List[Dict[str, Any]]:
    """Extract instance property bags from a successful execution."""
    parse_error = result.output.get("parse_error")
    if parse_error:
        raise ValueError(f"malformed response: {parse_error}")

    parsed = result.output.get("parsed")
    if parsed is None:
        return []
    # Single object (not array)
    if isinstance(parsed, dict):
        return [parsed]
    if isinstance(parsed, list):
        return [item for item in parsed if isinstance(item, dict)]
    raise ValueError(f"unexpected response type: {type(parsed).__name__}")


async def get_instances(
    executor: WindowsExecutor,
    machine: str,
    query: ClassQuery,
    strategies: Optional[Sequence[QueryStrategy]] = None,
) -> List[Dict[str, Any]]:
    """
    Retrieve class instances from machine, falling back between strategies.

    Args:
        executor: WinRM executor
        machine: Target machine name
        query: Class, namespace, filter and properties to retrieve
        strategies: Ordered strategies (default: CIM then WMI)

    Returns:
        List of property dicts (possibly empty)

    Raises:
        RemoteQueryError: If every strategy failed
    """
    strategies = list(strategies) if strategies is not None else default_strategies()
    causes: List[str] = []

    for index, strategy in enumerate(strategies):
        result = await executor.run_script(
            strategy.endpoint(machine),
            strategy.build_script(query, machine),
        )

        if result.success:
            try:
                instances = _instances_from(result)
                logger.debug(
                    f"{strategy.name} returned {len(instances)} {query.class_name} instance(s) from {machine}"
                )
                return instances
            except ValueError as e:
                cause = str(e)
        else:
            cause = result.error or "unknown error"

        causes.append(f"{strategy.name}: {cause}")

        if index + 1 < len(strategies):
            logger.warning(
                f"{strategy.name} query for {query.class_name} on {machine} failed ({cause}); "
                f"trying {strategies[index + 1].name}"
            )

    raise RemoteQueryError(machine, query.class_name, causes)


async def get_instance(
    executor: WindowsExecutor,
    machine: str,
    query: ClassQuery,
    strategies: Optional[Sequence[QueryStrategy]] = None,
) -> Dict[str, Any]:
    """
    Retrieve the first instance of a class.

    Raises:
        RemoteQueryError: If every strategy failed or no instance exists
    """
    instances = await get_instances(executor, machine, query, strategies)
    if not instances:
        raise RemoteQueryError(machine, query.class_name, ["no instances returned"])
    return instances[0]
