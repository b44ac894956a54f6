# SPDX-License-Identifier: Apache-2.0
"""Data-access client decorator that reports every query to the monitor.

:class:`MonitoredDataClient` exposes the same query-builder surface as the
client it wraps. Builder calls are forwarded unchanged; each terminal call
(``execute``, ``single``, ``maybe_single``) is timed and tracked. The calling
repository and method come from the active
:class:`~repoguard.infrastructure.repositories.resilience.RepositoryCallContext`,
so repositories need no changes to be monitored.
"""

from __future__ import annotations

import contextlib
import time
from collections.abc import AsyncIterator, Iterable, Mapping
from typing import Any, Awaitable, Callable

from repoguard.infrastructure.database.client import IDataClient, QueryResult
from repoguard.infrastructure.repositories.resilience import current_call_context

from .query_monitor import ERROR_SUFFIX, QueryPerformanceMonitor


class MonitoredQueryBuilder:
    """Forwards to an inner query builder and times its terminal calls."""

    def __init__(self, inner: Any, monitor: QueryPerformanceMonitor) -> None:
        self._inner = inner
        self._monitor = monitor

    @property
    def operation(self) -> str:
        return self._inner.operation

    @property
    def table(self) -> str:
        return self._inner.table

    def describe(self) -> str:
        return self._inner.describe()

    def _chain(self, name: str, *args: Any, **kwargs: Any) -> MonitoredQueryBuilder:
        result = getattr(self._inner, name)(*args, **kwargs)
        if result is not self._inner:
            self._inner = result
        return self

    def select(self, columns: str = "*") -> MonitoredQueryBuilder:
        return self._chain("select", columns)

    def insert(self, rows: Any) -> MonitoredQueryBuilder:
        return self._chain("insert", rows)

    def upsert(self, rows: Any, on_conflict: str = "id") -> MonitoredQueryBuilder:
        return self._chain("upsert", rows, on_conflict=on_conflict)

    def update(self, values: Mapping[str, Any]) -> MonitoredQueryBuilder:
        return self._chain("update", values)

    def delete(self) -> MonitoredQueryBuilder:
        return self._chain("delete")

    def eq(self, column: str, value: Any) -> MonitoredQueryBuilder:
        return self._chain("eq", column, value)

    def neq(self, column: str, value: Any) -> MonitoredQueryBuilder:
        return self._chain("neq", column, value)

    def in_(self, column: str, values: Iterable[Any]) -> MonitoredQueryBuilder:
        return self._chain("in_", column, values)

    def order(self, column: str, desc: bool = False) -> MonitoredQueryBuilder:
        return self._chain("order", column, desc=desc)

    def limit(self, count: int) -> MonitoredQueryBuilder:
        return self._chain("limit", count)

    async def execute(self) -> QueryResult:
        return await self._timed(self._inner.execute)

    async def single(self) -> QueryResult:
        return await self._timed(self._inner.single)

    async def maybe_single(self) -> QueryResult:
        return await self._timed(self._inner.maybe_single)

    async def _timed(self, terminal: Callable[[], Awaitable[QueryResult]]) -> QueryResult:
        context = current_call_context()
        query = self._inner.describe()
        start = time.perf_counter()
        failed = True
        try:
            result = await terminal()
            failed = getattr(result, "error", None) is not None
            return result
        finally:
            self._monitor.track_query(
                query=query + ERROR_SUFFIX if failed else query,
                operation=self._inner.operation,
                duration=(time.perf_counter() - start) * 1000,
                repository=context.repository if context else "unknown",
                method=context.method_name if context else "unknown",
                params=context.params if context else None,
            )


class MonitoredDataClient:
    """Decorator around a data-access client that tracks every query.

    Args:
        inner: Client to delegate to
        monitor: Monitor receiving the timings
    """

    def __init__(self, inner: IDataClient, monitor: QueryPerformanceMonitor) -> None:
        self._inner = inner
        self.monitor = monitor

    @property
    def inner(self) -> Any:
        return self._inner

    @property
    def supports_transactions(self) -> bool:
        return bool(getattr(self._inner, "supports_transactions", False))

    def from_(self, table: str) -> MonitoredQueryBuilder:
        return MonitoredQueryBuilder(self._inner.from_(table), self.monitor)

    def table(self, table: str) -> MonitoredQueryBuilder:
        return self.from_(table)

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[MonitoredDataClient]:
        """Open a transaction on the inner client; queries inside stay monitored."""
        async with self._inner.transaction() as tx:
            yield MonitoredDataClient(tx, self.monitor)

    def __getattr__(self, name: str) -> Any:
        # Lifecycle and maintenance calls (connect, close, executescript) are not monitored
        return getattr(self._inner, name)


__all__ = ["MonitoredDataClient", "MonitoredQueryBuilder"]
