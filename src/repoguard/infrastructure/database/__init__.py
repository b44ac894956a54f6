# SPDX-License-Identifier: Apache-2.0
"""Data-access client implementations."""

from __future__ import annotations

from .client import (
    DataAccessError,
    IDataClient,
    QueryBuilder,
    QueryResult,
    SqliteDataClient,
)

__all__ = ["DataAccessError", "IDataClient", "QueryBuilder", "QueryResult", "SqliteDataClient"]
