# SPDX-License-Identifier: Apache-2.0
"""Application start-up wiring.

Builds the process-wide services once and hands them to the code that
creates repositories:

    services = await bootstrap(load_config("repoguard.yaml"))
    progress = ProgressRepository(services.client, **services.repository_options())
    ...
    await services.aclose()
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from repoguard.config import RepoGuardConfig
from repoguard.domain.events import EventTypes
from repoguard.infrastructure.database.client import IDataClient, SqliteDataClient
from repoguard.infrastructure.messaging.in_memory_bus import InMemoryEventBus
from repoguard.infrastructure.monitoring.monitored_client import MonitoredDataClient
from repoguard.infrastructure.monitoring.query_monitor import QueryPerformanceMonitor
from repoguard.infrastructure.repositories.resilience import ErrorClassifier
from repoguard.log import configure_logging, get_logger

_EVENT_CATALOG = {
    EventTypes.USER_CREATED: ("A new user registered", "user"),
    EventTypes.USER_UPDATED: ("User profile changed", "user"),
    EventTypes.USER_DELETED: ("User removed", "user"),
    EventTypes.CHALLENGE_CREATED: ("Challenge generated for a user", "challenge"),
    EventTypes.CHALLENGE_COMPLETED: ("User submitted a challenge response", "challenge"),
    EventTypes.EVALUATION_CREATED: ("Challenge response evaluated", "evaluation"),
    EventTypes.PROGRESS_UPDATED: ("User progress recalculated", "progress"),
    EventTypes.PERSONALITY_PROFILE_UPDATED: ("Personality traits updated", "personality"),
}


@dataclass
class RepoGuardServices:
    """Services shared by every repository in the process."""

    config: RepoGuardConfig
    event_bus: InMemoryEventBus
    client: IDataClient
    classifier: ErrorClassifier
    query_monitor: Optional[QueryPerformanceMonitor] = None

    def repository_options(self) -> dict[str, Any]:
        """Keyword arguments for :class:`~repoguard.infrastructure.repositories.BaseRepository`."""
        retry = self.config.retry
        return {
            "event_bus": self.event_bus,
            "classifier": self.classifier,
            "max_retries": retry.max_retries,
            "retry_delay": retry.retry_delay_ms / 1000.0,
            "backoff_factor": retry.backoff_factor,
        }

    async def aclose(self) -> None:
        """Stop the monitor and close the database connection."""
        if self.query_monitor is not None:
            self.query_monitor.stop()
        await self.client.close()


async def bootstrap(
    config: Optional[RepoGuardConfig] = None, *, start_monitor: bool = True
) -> RepoGuardServices:
    """Create the event bus, query monitor and connected data client.

    Args:
        config: Validated configuration (defaults apply when omitted)
        start_monitor: Start the periodic flush thread of the query monitor

    Returns:
        RepoGuardServices ready for use
    """
    config = config or RepoGuardConfig()
    configure_logging(config.logging.level, config.logging.format)
    log = get_logger("bootstrap")

    event_bus = InMemoryEventBus(
        record_history=config.event_bus.record_history,
        history_limit=config.event_bus.history_limit,
    )
    for name, (description, category) in _EVENT_CATALOG.items():
        event_bus.register_event_type(name, description, category)

    if config.database.path != ":memory:":
        Path(config.database.path).parent.mkdir(parents=True, exist_ok=True)
    raw_client = SqliteDataClient(config.database.path)
    await raw_client.connect()

    monitor: Optional[QueryPerformanceMonitor] = None
    client: IDataClient = raw_client
    if config.query_monitor.enabled:
        monitor = QueryPerformanceMonitor.from_config(config.query_monitor)
        client = MonitoredDataClient(raw_client, monitor)
        if start_monitor:
            monitor.start()

    log.info(
        "RepoGuard services ready",
        extra={
            "database": config.database.path,
            "query_monitoring": config.query_monitor.enabled,
        },
    )
    return RepoGuardServices(
        config=config,
        event_bus=event_bus,
        client=client,
        classifier=ErrorClassifier.from_config(config.retry),
        query_monitor=monitor,
    )


__all__ = ["RepoGuardServices", "bootstrap"]
