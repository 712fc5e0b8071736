"""
Remote queries against Windows machines over WinRM.
"""

from .executor import ExecutionResult, WindowsExecutor, WindowsTarget
from .retrieval import (
    ClassQuery,
    CimQueryStrategy,
    QueryStrategy,
    WmiQueryStrategy,
    default_strategies,
    get_instance,
    get_instances,
    primary_only,
)

__all__ = [
    "ExecutionResult",
    "WindowsExecutor",
    "WindowsTarget",
    "ClassQuery",
    "CimQueryStrategy",
    "QueryStrategy",
    "WmiQueryStrategy",
    "default_strategies",
    "get_instance",
    "get_instances",
    "primary_only",
]
