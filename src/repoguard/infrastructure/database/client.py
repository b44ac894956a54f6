# SPDX-License-Identifier: Apache-2.0
"""Async SQLite data-access client with a fluent query builder.

Repositories talk to storage through a small query-builder surface::

    result = await client.from_("progress").select().eq("user_id", uid).single()
    if result.error:
        raise result.error

Terminal calls resolve to a :class:`QueryResult`. Driver failures are
returned in ``QueryResult.error`` as a :class:`DataAccessError` rather than
raised, so the repository decides how to surface them. The exception is a
failed commit, which :meth:`SqliteDataClient.transaction` rolls back and
raises. Builder misuse (bad identifiers, missing values) raises ``ValueError``
immediately.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import re
import sqlite3
from collections.abc import AsyncIterator, Iterable, Mapping, Sequence
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union, runtime_checkable

import aiosqlite

from repoguard.log import LoggerLike, get_logger

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Error codes mirror the ones a PostgREST-style backend reports
NO_SINGLE_ROW = "PGRST116"
UNIQUE_VIOLATION = "23505"
INTEGRITY_VIOLATION = "23000"
DATABASE_BUSY = "SQLITE_BUSY"
DATABASE_FAILURE = "SQLITE_ERROR"

Row = dict[str, Any]

_ACTIVE_TRANSACTION: ContextVar[Optional[_TransactionClient]] = ContextVar(
    "repoguard_active_transaction", default=None
)


class DataAccessError(Exception):
    """Error reported by the data-access client.

    Args:
        message: Driver message
        code: Backend error code, if known
    """

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    def __repr__(self) -> str:
        return f"DataAccessError({self.message!r}, code={self.code!r})"


@dataclass(frozen=True)
class QueryResult:
    """Outcome of a terminal query call."""

    data: Any = None
    error: Optional[DataAccessError] = None
    count: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _identifier(name: str) -> str:
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid identifier: {name!r}")
    return f'"{name}"'


def _bind(value: Any) -> Any:
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return value


def _literal(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class QueryBuilder:
    """Fluent builder for one statement against one table.

    The builder starts as a ``select``; calling :meth:`insert`,
    :meth:`update`, :meth:`upsert` or :meth:`delete` switches the operation.
    On write operations :meth:`select` chooses the returned columns.
    """

    def __init__(self, runner: _Runner, table: str) -> None:
        _identifier(table)
        self._runner = runner
        self.table = table
        self.operation = "select"
        self._columns = "*"
        self._rows: list[Row] = []
        self._values: Row = {}
        self._on_conflict: Optional[str] = None
        self._filters: list[tuple[str, str, Any]] = []
        self._order: list[tuple[str, bool]] = []
        self._limit: Optional[int] = None

    # ---------- Operations ----------
    def select(self, columns: str = "*") -> QueryBuilder:
        self._columns = columns
        return self

    def insert(self, rows: Union[Row, Sequence[Row]]) -> QueryBuilder:
        self.operation = "insert"
        self._rows = self._as_rows(rows)
        return self

    def upsert(self, rows: Union[Row, Sequence[Row]], on_conflict: str = "id") -> QueryBuilder:
        self.operation = "upsert"
        self._rows = self._as_rows(rows)
        self._on_conflict = on_conflict
        return self

    def update(self, values: Mapping[str, Any]) -> QueryBuilder:
        if not values:
            raise ValueError("update() requires at least one column")
        self.operation = "update"
        self._values = dict(values)
        return self

    def delete(self) -> QueryBuilder:
        self.operation = "delete"
        return self

    @staticmethod
    def _as_rows(rows: Union[Row, Sequence[Row]]) -> list[Row]:
        as_list = [dict(rows)] if isinstance(rows, Mapping) else [dict(r) for r in rows]
        if not as_list:
            raise ValueError("At least one row is required")
        keys = set(as_list[0])
        if not keys or any(set(row) != keys for row in as_list[1:]):
            raise ValueError("All rows must provide the same, non-empty set of columns")
        return as_list

    # ---------- Filters and modifiers ----------
    def eq(self, column: str, value: Any) -> QueryBuilder:
        self._filters.append((column, "=", value))
        return self

    def neq(self, column: str, value: Any) -> QueryBuilder:
        self._filters.append((column, "!=", value))
        return self

    def in_(self, column: str, values: Iterable[Any]) -> QueryBuilder:
        self._filters.append((column, "in", list(values)))
        return self

    def order(self, column: str, desc: bool = False) -> QueryBuilder:
        self._order.append((column, desc))
        return self

    def limit(self, count: int) -> QueryBuilder:
        if count < 0:
            raise ValueError("limit must be non-negative")
        self._limit = count
        return self

    # ---------- Rendering ----------
    def _returning(self) -> str:
        if self._columns.strip() == "*":
            return "*"
        return ", ".join(_identifier(c.strip()) for c in self._columns.split(",") if c.strip())

    def _where(self, params: list[Any]) -> str:
        clauses = []
        for column, op, value in self._filters:
            col = _identifier(column)
            if op == "in":
                if not value:
                    clauses.append("0")
                    continue
                clauses.append(f"{col} IN ({', '.join('?' for _ in value)})")
                params.extend(_bind(v) for v in value)
            elif value is None:
                clauses.append(f"{col} IS {'NOT ' if op == '!=' else ''}NULL")
            else:
                clauses.append(f"{col} {op} ?")
                params.append(_bind(value))
        return f" WHERE {' AND '.join(clauses)}" if clauses else ""

    def to_sql(self) -> tuple[str, list[Any]]:
        """Render the statement and its bound parameters."""
        params: list[Any] = []
        table = _identifier(self.table)

        if self.operation == "select":
            sql = f"SELECT {self._returning()} FROM {table}{self._where(params)}"
            if self._order:
                sql += " ORDER BY " + ", ".join(
                    f"{_identifier(c)} {'DESC' if desc else 'ASC'}" for c, desc in self._order
                )
            if self._limit is not None:
                sql += " LIMIT ?"
                params.append(self._limit)
            return sql, params

        if self.operation in ("insert", "upsert"):
            columns = list(self._rows[0])
            placeholders = "(" + ", ".join("?" for _ in columns) + ")"
            sql = (
                f"INSERT INTO {table} ({', '.join(_identifier(c) for c in columns)}) "
                f"VALUES {', '.join(placeholders for _ in self._rows)}"
            )
            for row in self._rows:
                params.extend(_bind(row[c]) for c in columns)
            if self.operation == "upsert":
                conflict = _identifier(self._on_conflict or "id")
                updates = [c for c in columns if c != self._on_conflict]
                if updates:
                    assignments = ", ".join(
                        f"{_identifier(c)} = excluded.{_identifier(c)}" for c in updates
                    )
                    sql += f" ON CONFLICT ({conflict}) DO UPDATE SET {assignments}"
                else:
                    sql += f" ON CONFLICT ({conflict}) DO NOTHING"
            return f"{sql} RETURNING {self._returning()}", params

        if self.operation == "update":
            assignments = ", ".join(f"{_identifier(c)} = ?" for c in self._values)
            params.extend(_bind(v) for v in self._values.values())
            sql = f"UPDATE {table} SET {assignments}{self._where(params)}"
            return f"{sql} RETURNING {self._returning()}", params

        sql = f"DELETE FROM {table}{self._where(params)}"
        return f"{sql} RETURNING {self._returning()}", params

    def describe(self) -> str:
        """Human readable shape of the statement with literal values.

        Used for monitoring, where literals are normalized away again to
        group calls by shape.
        """
        parts = [f"{self.operation} from {self.table}"]
        if self.operation in ("insert", "upsert"):
            parts.append(f"({', '.join(self._rows[0])}) [{len(self._rows)} rows]")
        elif self.operation == "update":
            parts.append(f"set ({', '.join(self._values)})")
        elif self._columns.strip() != "*":
            parts.append(f"[{self._columns}]")
        if self._filters:
            conditions = []
            for column, op, value in self._filters:
                if op == "in":
                    rendered = "(" + ", ".join(_literal(v) for v in value) + ")"
                else:
                    rendered = _literal(value)
                conditions.append(f"{column} {op} {rendered}")
            parts.append("where " + " and ".join(conditions))
        if self._order:
            parts.append(
                "order by " + ", ".join(f"{c} {'desc' if d else 'asc'}" for c, d in self._order)
            )
        if self._limit is not None:
            parts.append(f"limit {self._limit}")
        return " ".join(parts)

    # ---------- Terminals ----------
    async def execute(self) -> QueryResult:
        """Run the statement; ``data`` is the list of affected or selected rows."""
        return await self._runner.run(self, "many")

    async def single(self) -> QueryResult:
        """Run the statement expecting exactly one row."""
        return await self._runner.run(self, "single")

    async def maybe_single(self) -> QueryResult:
        """Run the statement expecting at most one row; no row yields ``data=None``."""
        return await self._runner.run(self, "maybe_single")


class _Runner(Protocol):
    async def run(self, builder: QueryBuilder, mode: str) -> QueryResult: ...


@runtime_checkable
class IDataClient(Protocol):
    """Interface repositories use to reach storage."""

    def from_(self, table: str) -> Any:
        """Start a query against ``table``."""
        ...

    def table(self, table: str) -> Any:
        """Alias of :meth:`from_`."""
        ...


def _translate(exc: sqlite3.Error) -> DataAccessError:
    message = str(exc) or type(exc).__name__
    if isinstance(exc, sqlite3.IntegrityError):
        code = UNIQUE_VIOLATION if "UNIQUE constraint failed" in message else INTEGRITY_VIOLATION
        return DataAccessError(message, code)
    if isinstance(exc, sqlite3.OperationalError) and (
        "locked" in message.lower() or "busy" in message.lower()
    ):
        return DataAccessError(f"database is locked: {message}", DATABASE_BUSY)
    return DataAccessError(message, DATABASE_FAILURE)


def _shape(rows: list[Row], mode: str) -> QueryResult:
    if mode == "many":
        return QueryResult(data=rows, count=len(rows))
    if len(rows) > 1:
        return QueryResult(
            error=DataAccessError(
                f"JSON object requested, multiple rows returned ({len(rows)})", NO_SINGLE_ROW
            ),
            count=len(rows),
        )
    if not rows:
        if mode == "maybe_single":
            return QueryResult(data=None, count=0)
        return QueryResult(
            error=DataAccessError("JSON object requested, no rows returned", NO_SINGLE_ROW),
            count=0,
        )
    return QueryResult(data=rows[0], count=1)


async def _execute(db: aiosqlite.Connection, builder: QueryBuilder, mode: str) -> QueryResult:
    sql, params = builder.to_sql()
    try:
        cursor = await db.execute(sql, params)
        try:
            rows = [dict(row) for row in await cursor.fetchall()]
        finally:
            await cursor.close()
    except sqlite3.Error as e:
        return QueryResult(error=_translate(e))
    return _shape(rows, mode)


class _TransactionClient:
    """Client bound to an open transaction.

    Statements run on the owning client's connection without taking its lock,
    which the transaction already holds.
    """

    supports_transactions = True

    def __init__(self, owner: SqliteDataClient, db: aiosqlite.Connection) -> None:
        self._owner = owner
        self._db = db
        self.closed = False

    def from_(self, table: str) -> QueryBuilder:
        return QueryBuilder(self, table)

    table = from_

    async def run(self, builder: QueryBuilder, mode: str) -> QueryResult:
        if self.closed:
            raise RuntimeError("Transaction is no longer active")
        return await _execute(self._db, builder, mode)

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[_TransactionClient]:
        # Nested units of work join the outer transaction
        yield self


class SqliteDataClient:
    """Data-access client backed by a single aiosqlite connection.

    Statements are serialized on the connection; :meth:`transaction` holds the
    connection for the duration of one unit of work.

    Args:
        db_path: SQLite file path or ``":memory:"``
        timeout: Seconds to wait on a locked database before failing
        logger: Logger or adapter to use
    """

    supports_transactions = True

    def __init__(
        self, db_path: str, *, timeout: float = 30.0, logger: Optional[LoggerLike] = None
    ) -> None:
        self.db_path = str(db_path)
        self.timeout = timeout
        self._log = get_logger("database", logger)
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def connect(self) -> SqliteDataClient:
        """Open the connection. Safe to call more than once."""
        if self._db is not None:
            return self
        db = await aiosqlite.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        db.row_factory = aiosqlite.Row
        if self.db_path != ":memory:":
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.execute("PRAGMA synchronous=NORMAL;")
        await db.execute("PRAGMA foreign_keys=ON;")
        self._db = db
        self._log.debug("Connected to database", extra={"path": self.db_path})
        return self

    async def close(self) -> None:
        if self._db is not None:
            db, self._db = self._db, None
            await db.close()
            self._log.debug("Database connection closed", extra={"path": self.db_path})

    async def __aenter__(self) -> SqliteDataClient:
        return await self.connect()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _connection(self) -> aiosqlite.Connection:
        if self._db is None:
            await self.connect()
        assert self._db is not None
        return self._db

    def _active_transaction(self) -> Optional[_TransactionClient]:
        tx = _ACTIVE_TRANSACTION.get()
        if tx is not None and tx._owner is self and not tx.closed:
            return tx
        return None

    async def executescript(self, script: str) -> None:
        """Run a multi-statement script, e.g. a schema definition."""
        db = await self._connection()
        async with self._lock:
            await db.executescript(script)

    def from_(self, table: str) -> QueryBuilder:
        return QueryBuilder(self, table)

    table = from_

    async def run(self, builder: QueryBuilder, mode: str) -> QueryResult:
        tx = self._active_transaction()
        if tx is not None:
            # The enclosing transaction already holds the lock
            return await tx.run(builder, mode)
        db = await self._connection()
        async with self._lock:
            return await _execute(db, builder, mode)

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[_TransactionClient]:
        """Run the enclosed statements atomically.

        Commits when the block exits normally and rolls back when it raises;
        the exception propagates unchanged. A commit that fails is rolled back
        and raised as :class:`DataAccessError`. Inside the block, statements
        issued through this client join the open transaction.
        """
        active = self._active_transaction()
        if active is not None:
            yield active
            return
        db = await self._connection()
        async with self._lock:
            await db.execute("BEGIN")
            tx = _TransactionClient(self, db)
            token = _ACTIVE_TRANSACTION.set(tx)
            try:
                yield tx
            except BaseException:
                await db.execute("ROLLBACK")
                self._log.debug("Transaction rolled back")
                raise
            else:
                try:
                    await db.execute("COMMIT")
                except sqlite3.Error as e:
                    await self._rollback_after_failed_commit(db)
                    raise _translate(e) from e
            finally:
                tx.closed = True
                _ACTIVE_TRANSACTION.reset(token)

    async def _rollback_after_failed_commit(self, db: aiosqlite.Connection) -> None:
        if not db.in_transaction:
            return
        try:
            await db.execute("ROLLBACK")
        except sqlite3.Error as e:
            self._log.warning("Rollback after failed commit also failed", extra={"error": str(e)})
        else:
            self._log.debug("Transaction rolled back after failed commit")


__all__ = [
    "DATABASE_BUSY",
    "DATABASE_FAILURE",
    "DataAccessError",
    "IDataClient",
    "INTEGRITY_VIOLATION",
    "NO_SINGLE_ROW",
    "QueryBuilder",
    "QueryResult",
    "SqliteDataClient",
    "UNIQUE_VIOLATION",
]
