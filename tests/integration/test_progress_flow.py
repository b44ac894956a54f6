# SPDX-License-Identifier: Apache-2.0
"""End-to-end tests: bootstrapped services, a repository, the bus and the monitor."""

from __future__ import annotations

import logging

import pytest

from repoguard.bootstrap import bootstrap
from repoguard.config import config_from_dict
from repoguard.domain.events import EventTypes
from repoguard.infrastructure.monitoring import MonitoredDataClient
from tests.fakes import PROGRESS_SCHEMA, Progress, ProgressRepository, progress_errors

pytestmark = pytest.mark.integration


@pytest.fixture
def restore_logging():
    root = logging.getLogger("repoguard")
    level, handlers = root.level, list(root.handlers)
    yield
    root.setLevel(level)
    root.handlers[:] = handlers


@pytest.fixture
async def services(restore_logging):
    config = config_from_dict(
        {
            "config_version": "1",
            "database": {"path": ":memory:"},
            "retry": {"retry_delay_ms": 0},
        },
        env={},
    )
    services = await bootstrap(config, start_monitor=False)
    await services.client.executescript(PROGRESS_SCHEMA)
    yield services
    await services.aclose()


@pytest.fixture
def repository(services) -> ProgressRepository:
    return ProgressRepository(services.client, **services.repository_options())


@pytest.mark.asyncio
async def test_services_are_wired(services):
    assert isinstance(services.client, MonitoredDataClient)
    assert services.query_monitor is not None
    assert not services.query_monitor.running
    assert EventTypes.PROGRESS_UPDATED in services.event_bus.get_event_types()


@pytest.mark.asyncio
async def test_saved_progress_reaches_handlers(services, repository):
    received = []
    services.event_bus.register_handler(EventTypes.PROGRESS_UPDATED, received.append)
    progress = Progress(user_id="u1")
    progress.record_completion("c1", 7)
    progress.record_completion("c2", 3)

    saved = await repository.save(progress)

    assert saved.total_score == 10
    assert [event.data["challenge_id"] for event in received] == ["c1", "c2"]
    assert progress.get_uncommitted_events() == []


@pytest.mark.asyncio
async def test_repeated_lookups_are_reported_as_n_plus_one(services, repository, caplog):
    for i in range(6):
        await repository.save(Progress(user_id=f"u{i}"))
    services.query_monitor.flush()

    found = await repository.find_for_users([f"u{i}" for i in range(6)])
    with caplog.at_level(logging.WARNING, logger="repoguard.query_monitor"):
        report = services.query_monitor.flush()

    assert len(found) == 6
    assert len(report.n_plus_one) == 1
    issue = report.n_plus_one[0]
    assert issue.pattern == "select:select from progress where user_id = STRING"
    assert issue.count == 6
    assert len(issue.examples) == 3
    assert issue.examples[0].repository == "ProgressRepository"
    assert issue.examples[0].method == "find_by_user_id"
    assert report.stats["ProgressRepository.find_by_user_id"].count == 6
    assert len([r for r in caplog.records if "Potential N+1" in r.message]) == 1


@pytest.mark.asyncio
async def test_duplicate_user_is_a_processing_error(services, repository):
    await repository.save(Progress(user_id="u1"))
    duplicate = Progress(user_id="u1")
    duplicate.record_completion("c1", 5)

    with pytest.raises(progress_errors.processing) as exc_info:
        await repository.save(duplicate)

    assert "UNIQUE constraint failed" in exc_info.value.message
    assert exc_info.value.__cause__.code == "23505"
    assert services.event_bus.get_event_history(event_type=EventTypes.PROGRESS_UPDATED) == []
    assert await repository.find_by_id(duplicate.id) is None


@pytest.mark.asyncio
async def test_missing_progress_is_not_found(repository):
    with pytest.raises(progress_errors.not_found) as exc_info:
        await repository.get_by_id("missing")

    assert exc_info.value.status_code == 404
    assert exc_info.value.metadata["method"] == "get_by_id"
