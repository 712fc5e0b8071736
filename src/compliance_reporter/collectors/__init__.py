"""
Per-machine fact collection categories.

Each category fills a disjoint set of record fields and raises on failure;
the report runner isolates failures per category.
"""

from .licensing import LICENSING_QUERY, collect_licensing, select_license
from .os_identity import OS_QUERY, collect_os_identity
from .updates import (
    UPDATE_SEARCH_SCRIPT,
    collect_update_status,
    parse_updates,
    summarize_updates,
)

__all__ = [
    "LICENSING_QUERY",
    "collect_licensing",
    "select_license",
    "OS_QUERY",
    "collect_os_identity",
    "UPDATE_SEARCH_SCRIPT",
    "collect_update_status",
    "parse_updates",
    "summarize_updates",
]
