# SPDX-License-Identifier: Apache-2.0
"""Query performance monitoring.

Tracks every database call made through the monitored data-access client,
aggregates them per repository method within a collection window, and
reports slow queries and repeated query shapes (potential N+1 issues).

Slow queries are logged as soon as they are tracked. Everything else is
reported when the window is flushed, either by the background timer started
with :meth:`QueryPerformanceMonitor.start` or by calling
:meth:`QueryPerformanceMonitor.flush` directly.
"""

from __future__ import annotations

import math
import re
import threading
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from repoguard.log import LoggerLike, get_logger
from repoguard.metrics import N_PLUS_ONE_DETECTIONS, QUERY_LATENCY, SLOW_QUERIES
from repoguard.security.mask import redact_params

if TYPE_CHECKING:
    from repoguard.config.settings import QueryMonitorConfig

_UUID = re.compile(
    r"\b[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\b", re.IGNORECASE
)
_QUOTED = re.compile(r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\"")
_INTEGER = re.compile(r"\b\d+\b")
_WHITESPACE = re.compile(r"\s+")

ERROR_SUFFIX = " (ERROR)"


def normalize_query(query: str, operation: str) -> str:
    """Reduce a rendered query to its shape.

    UUIDs become ``UUID``, quoted literals ``STRING`` and integer literals
    ``N``; the result is prefixed with the operation.

    Examples:
        >>> normalize_query("select from orders [id = 42]", "select")
        'select:select from orders [id = N]'
        >>> normalize_query("select from users [name = 'bob']", "select")
        'select:select from users [name = STRING]'
    """
    text = _UUID.sub("UUID", query)
    text = _QUOTED.sub("STRING", text)
    text = _INTEGER.sub("N", text)
    text = _WHITESPACE.sub(" ", text).strip()
    return f"{operation}:{text}"


@dataclass
class QueryStat:
    """Aggregated durations of one repository method within a window."""

    count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: float = math.inf
    max_duration_ms: float = 0.0

    def record(self, duration_ms: float) -> None:
        self.count += 1
        self.total_duration_ms += duration_ms
        self.min_duration_ms = min(self.min_duration_ms, duration_ms)
        self.max_duration_ms = max(self.max_duration_ms, duration_ms)

    @property
    def avg_duration_ms(self) -> float:
        return self.total_duration_ms / self.count if self.count else 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "count": self.count,
            "total_ms": round(self.total_duration_ms, 3),
            "avg_ms": round(self.avg_duration_ms, 3),
            "min_ms": round(self.min_duration_ms, 3) if self.count else 0.0,
            "max_ms": round(self.max_duration_ms, 3),
        }


@dataclass(frozen=True)
class QueryRecord:
    """A single tracked call, kept as an example for N+1 reports."""

    query: str
    operation: str
    repository: str
    method: str
    duration_ms: float
    params: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "source": f"{self.repository}.{self.method}",
            "duration_ms": round(self.duration_ms, 3),
            "params": dict(self.params),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class _PatternBucket:
    operation: str
    count: int = 0
    total_duration_ms: float = 0.0
    examples: list[QueryRecord] = field(default_factory=list)


@dataclass(frozen=True)
class NPlusOneIssue:
    """A query shape executed more often than the threshold in one window."""

    pattern: str
    operation: str
    count: int
    avg_duration_ms: float
    examples: tuple[QueryRecord, ...] = ()


@dataclass(frozen=True)
class WindowReport:
    """Summary of one closed collection window."""

    window_seconds: float
    total_queries: int
    queries_per_second: float
    avg_duration_ms: float
    stats: dict[str, QueryStat]
    n_plus_one: list[NPlusOneIssue]


class _Window:
    """Mutable state of the open collection window."""

    def __init__(self) -> None:
        self.started = time.monotonic()
        self.stats: dict[str, QueryStat] = {}
        self.patterns: dict[str, _PatternBucket] = {}


class QueryPerformanceMonitor:
    """Collects query timings and reports slow queries and N+1 patterns.

    Args:
        collection_period_ms: Length of a collection window
        slow_query_threshold_ms: Calls strictly slower than this are logged immediately
        n_plus_one_threshold: A pattern seen more often than this in one window is flagged
        max_examples: Example calls included in each N+1 report
        min_tracked_duration_ms: Calls faster than this are ignored
        logger: Logger or adapter to use (defaults to ``repoguard.query_monitor``)
    """

    def __init__(
        self,
        collection_period_ms: int = 120_000,
        slow_query_threshold_ms: float = 300.0,
        n_plus_one_threshold: int = 5,
        max_examples: int = 3,
        min_tracked_duration_ms: float = 0.0,
        logger: Optional[LoggerLike] = None,
    ) -> None:
        if collection_period_ms <= 0:
            raise ValueError("collection_period_ms must be positive")
        self.collection_period_ms = collection_period_ms
        self.slow_query_threshold_ms = slow_query_threshold_ms
        self.n_plus_one_threshold = n_plus_one_threshold
        self.max_examples = max_examples
        self.min_tracked_duration_ms = min_tracked_duration_ms
        self._log = get_logger("query_monitor", logger)
        self._lock = threading.Lock()
        self._window = _Window()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def from_config(
        cls, config: QueryMonitorConfig, logger: Optional[LoggerLike] = None
    ) -> QueryPerformanceMonitor:
        """Create a monitor from the ``query_monitor`` configuration section."""
        return cls(
            collection_period_ms=config.collection_period_ms,
            slow_query_threshold_ms=config.slow_query_threshold_ms,
            n_plus_one_threshold=config.n_plus_one_threshold,
            max_examples=config.max_examples,
            min_tracked_duration_ms=config.min_tracked_duration_ms,
            logger=logger,
        )

    # ---------- Tracking ----------
    def track_query(
        self,
        *,
        query: str,
        operation: str,
        duration: float,
        repository: str = "unknown",
        method: str = "unknown",
        params: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Record one database call.

        Args:
            query: Rendered query, literals included
            operation: ``select``, ``insert``, ``update``, ``upsert`` or ``delete``
            duration: Wall-clock duration in milliseconds
            repository: Repository class that issued the call
            method: Repository method that issued the call
            params: Call parameters; redacted before they are stored
        """
        source = f"{repository}.{method}"
        safe_params = redact_params(params or {})

        if duration > self.slow_query_threshold_ms:
            SLOW_QUERIES.labels(operation=operation).inc()
            self._log.warning(
                f"Slow query detected ({duration:.2f}ms)",
                extra={
                    "query": query,
                    "source": source,
                    "threshold_ms": self.slow_query_threshold_ms,
                    "params": safe_params,
                },
            )

        if duration < self.min_tracked_duration_ms:
            return

        QUERY_LATENCY.labels(operation=operation).observe(duration / 1000.0)
        pattern = normalize_query(query, operation)
        record = QueryRecord(
            query=query,
            operation=operation,
            repository=repository,
            method=method,
            duration_ms=duration,
            params=safe_params,
        )

        with self._lock:
            window = self._window
            window.stats.setdefault(source, QueryStat()).record(duration)
            bucket = window.patterns.get(pattern)
            if bucket is None:
                bucket = window.patterns[pattern] = _PatternBucket(operation)
            bucket.count += 1
            bucket.total_duration_ms += duration
            if len(bucket.examples) < self.max_examples:
                bucket.examples.append(record)

    @contextmanager
    def measure(
        self,
        query: str,
        operation: str,
        *,
        repository: str = "unknown",
        method: str = "unknown",
        params: Optional[Mapping[str, Any]] = None,
    ) -> Iterator[None]:
        """Time the enclosed block and track it as one query.

        A block that raises is tracked with `` (ERROR)`` appended to the
        query and the exception propagates.
        """
        start = time.perf_counter()
        failed = False
        try:
            yield
        except BaseException:
            failed = True
            raise
        finally:
            duration = (time.perf_counter() - start) * 1000
            self.track_query(
                query=query + ERROR_SUFFIX if failed else query,
                operation=operation,
                duration=duration,
                repository=repository,
                method=method,
                params=params,
            )

    # ---------- Reporting ----------
    def flush(self) -> WindowReport:
        """Close the current window, report on it and open a fresh one."""
        with self._lock:
            window, self._window = self._window, _Window()

        elapsed = max(time.monotonic() - window.started, 1e-6)
        total_queries = sum(stat.count for stat in window.stats.values())
        total_duration = sum(stat.total_duration_ms for stat in window.stats.values())
        avg_duration = total_duration / total_queries if total_queries else 0.0

        issues = [
            NPlusOneIssue(
                pattern=pattern,
                operation=bucket.operation,
                count=bucket.count,
                avg_duration_ms=bucket.total_duration_ms / bucket.count,
                examples=tuple(bucket.examples[: self.max_examples]),
            )
            for pattern, bucket in window.patterns.items()
            if bucket.count > self.n_plus_one_threshold
        ]
        report = WindowReport(
            window_seconds=elapsed,
            total_queries=total_queries,
            queries_per_second=total_queries / elapsed,
            avg_duration_ms=avg_duration,
            stats=window.stats,
            n_plus_one=issues,
        )

        if total_queries:
            self._log.info(
                "Query performance summary",
                extra={
                    "window_s": round(elapsed, 1),
                    "total_queries": total_queries,
                    "queries_per_second": round(report.queries_per_second, 2),
                    "avg_duration_ms": round(avg_duration, 2),
                },
            )
        else:
            self._log.debug("Query performance window closed with no queries")

        for issue in issues:
            N_PLUS_ONE_DETECTIONS.labels(operation=issue.operation).inc()
            self._log.warning(
                f"Potential N+1 query pattern detected: {issue.pattern}",
                extra={
                    "count": issue.count,
                    "threshold": self.n_plus_one_threshold,
                    "avg_duration_ms": round(issue.avg_duration_ms, 2),
                    "examples": [example.to_dict() for example in issue.examples],
                },
            )

        return report

    def get_stats(self) -> dict[str, Any]:
        """Snapshot of the open window."""
        with self._lock:
            window = self._window
            return {
                "window_age_s": time.monotonic() - window.started,
                "total_queries": sum(stat.count for stat in window.stats.values()),
                "methods": {source: stat.to_dict() for source, stat in window.stats.items()},
                "patterns": {pattern: b.count for pattern, b in window.patterns.items()},
            }

    # ---------- Lifecycle ----------
    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Flush periodically on a daemon thread. No-op if already running."""
        if self.running:
            return
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            args=(self._stop_event,),
            name="repoguard-query-monitor",
            daemon=True,
        )
        self._thread.start()
        self._log.debug(
            "Query monitor started", extra={"collection_period_ms": self.collection_period_ms}
        )

    def _run(self, stop_event: threading.Event) -> None:
        interval = self.collection_period_ms / 1000.0
        while not stop_event.wait(interval):
            try:
                self.flush()
            except Exception:
                self._log.exception("Query monitor flush failed")

    def stop(self) -> None:
        """Cancel the timer and discard all collected stats."""
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)
        with self._lock:
            self._window = _Window()
        self._log.debug("Query monitor stopped")


__all__ = [
    "ERROR_SUFFIX",
    "NPlusOneIssue",
    "QueryPerformanceMonitor",
    "QueryRecord",
    "QueryStat",
    "WindowReport",
    "normalize_query",
]
