"""
Target discovery.

Machines come either from an explicit list or from an Active Directory
query filtered by last-logon recency.
"""

from .ad_discovery import (
    ADComputer,
    ADDiscovery,
    build_search_filter,
    compute_cutoff,
    resolve_targets,
)

__all__ = [
    "ADComputer",
    "ADDiscovery",
    "build_search_filter",
    "compute_cutoff",
    "resolve_targets",
]
