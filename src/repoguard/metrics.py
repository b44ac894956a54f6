# SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics for the data-access layer."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# Repository resilience wrapper
REPOSITORY_CALLS = Counter(
    "repoguard_repository_calls_total",
    "Logical repository calls",
    ["domain", "method", "outcome"],
)
REPOSITORY_RETRIES = Counter(
    "repoguard_repository_retries_total",
    "Retries after transient failures",
    ["domain", "method"],
)
REPOSITORY_ERRORS = Counter(
    "repoguard_repository_errors_total",
    "Repository calls that ended in an error",
    ["domain", "method", "kind"],
)

# Query performance monitor
QUERY_LATENCY = Histogram(
    "repoguard_query_duration_seconds",
    "Duration of tracked database calls",
    ["operation"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5],
)
SLOW_QUERIES = Counter(
    "repoguard_slow_queries_total",
    "Queries slower than the slow-query threshold",
    ["operation"],
)
N_PLUS_ONE_DETECTIONS = Counter(
    "repoguard_n_plus_one_detections_total",
    "Query patterns flagged as potential N+1 issues",
    ["operation"],
)

# Event bus
EVENTS_PUBLISHED = Counter(
    "repoguard_events_published_total",
    "Domain events published",
    ["event_type"],
)
EVENT_HANDLER_FAILURES = Counter(
    "repoguard_event_handler_failures_total",
    "Event handlers that raised during delivery",
    ["event_type"],
)

__all__ = [
    "EVENTS_PUBLISHED",
    "EVENT_HANDLER_FAILURES",
    "N_PLUS_ONE_DETECTIONS",
    "QUERY_LATENCY",
    "REPOSITORY_CALLS",
    "REPOSITORY_ERRORS",
    "REPOSITORY_RETRIES",
    "SLOW_QUERIES",
]
