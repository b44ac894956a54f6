# SPDX-License-Identifier: Apache-2.0
"""Shared test fixtures for the RepoGuard test suite.

FIXTURES PROVIDED:
- event_bus: Isolated in-memory event bus
- query_monitor: Monitor with default thresholds, stopped after the test
- sqlite_client: Connected in-memory SQLite client with the progress schema
- monitored_client: ``sqlite_client`` wrapped with ``query_monitor``
- metric_value: Reads the current value of a Prometheus sample
"""

from __future__ import annotations

from typing import Any, Optional

import pytest
from prometheus_client import REGISTRY

from repoguard.infrastructure.database import SqliteDataClient
from repoguard.infrastructure.messaging import InMemoryEventBus
from repoguard.infrastructure.monitoring import MonitoredDataClient, QueryPerformanceMonitor
from tests.fakes import PROGRESS_SCHEMA


@pytest.fixture
def event_bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def query_monitor():
    monitor = QueryPerformanceMonitor()
    yield monitor
    monitor.stop()


@pytest.fixture
async def sqlite_client():
    client = SqliteDataClient(":memory:")
    await client.connect()
    await client.executescript(PROGRESS_SCHEMA)
    yield client
    await client.close()


@pytest.fixture
def monitored_client(sqlite_client, query_monitor) -> MonitoredDataClient:
    return MonitoredDataClient(sqlite_client, query_monitor)


@pytest.fixture
def metric_value():
    """Return a reader for Prometheus samples; missing samples read as 0."""

    def read(name: str, **labels: Any) -> float:
        value: Optional[float] = REGISTRY.get_sample_value(name, labels)
        return value or 0.0

    return read
