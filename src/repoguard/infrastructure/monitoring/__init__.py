# SPDX-License-Identifier: Apache-2.0
"""Query performance monitoring infrastructure."""

from __future__ import annotations

from .monitored_client import MonitoredDataClient, MonitoredQueryBuilder
from .query_monitor import (
    NPlusOneIssue,
    QueryPerformanceMonitor,
    QueryRecord,
    QueryStat,
    WindowReport,
    normalize_query,
)

__all__ = [
    "MonitoredDataClient",
    "MonitoredQueryBuilder",
    "NPlusOneIssue",
    "QueryPerformanceMonitor",
    "QueryRecord",
    "QueryStat",
    "WindowReport",
    "normalize_query",
]
