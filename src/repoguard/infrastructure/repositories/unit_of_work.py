# SPDX-License-Identifier: Apache-2.0
"""Transactional unit of work.

A write path collects the domain events raised by the entities it persists
and hands them back together with its result. The events reach the event bus
only after the write (and, where the client supports it, the commit) has
succeeded, so listeners never observe a change that was rolled back.

Example:
    async def save(tx):
        events = collect_domain_events(progress)
        await tx.from_("progress").upsert(row).execute()
        return UnitOfWorkResult(progress, events)

    saved = await with_transaction(save, client=client, event_bus=bus)
"""

from __future__ import annotations

import inspect
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

from repoguard.domain.events import DomainEvent, IEventBus
from repoguard.log import LoggerLike, get_logger


@dataclass(frozen=True)
class UnitOfWorkResult:
    """Result of a unit of work plus the events to publish after commit."""

    result: Any = None
    domain_events: Sequence[DomainEvent] = field(default_factory=tuple)


WorkFn = Callable[[Any], Union[Awaitable[Any], Any]]


def supports_transactions(client: Any) -> bool:
    """True if ``client`` can run statements atomically via ``transaction()``."""
    return bool(getattr(client, "supports_transactions", False))


async def with_transaction(
    work_fn: WorkFn,
    *,
    publish_events: bool = True,
    event_bus: Optional[IEventBus] = None,
    client: Any = None,
    logger: Optional[LoggerLike] = None,
) -> Any:
    """Run ``work_fn`` as one unit of work and publish its events afterwards.

    Args:
        work_fn: Receives the transaction-bound client (or ``client`` itself
            when it has no transaction support) and returns a plain result or a
            :class:`UnitOfWorkResult`
        publish_events: Publish collected events after success
        event_bus: Bus to publish on; without one, events are dropped with a warning
        client: Data-access client the work runs against
        logger: Logger or adapter to use

    Returns:
        The work's result (unwrapped from :class:`UnitOfWorkResult`)

    Raises:
        Whatever ``work_fn`` raises, unchanged. No event is published then.
    """
    log = get_logger("unit_of_work", logger)

    if client is not None and supports_transactions(client):
        async with client.transaction() as tx:
            outcome = await _run(work_fn, tx)
        log.debug("Transaction committed")
    else:
        log.debug("Client has no transaction support; running without an atomic boundary")
        outcome = await _run(work_fn, client)

    if isinstance(outcome, UnitOfWorkResult):
        result, events = outcome.result, list(outcome.domain_events)
    else:
        result, events = outcome, []

    if publish_events and events:
        if event_bus is None:
            log.warning(
                "Domain events collected but no event bus configured",
                extra={"events": [event.type for event in events]},
            )
        else:
            log.debug("Publishing domain events", extra={"count": len(events)})
            for event in events:
                await event_bus.publish_event(event)

    return result


async def _run(work_fn: WorkFn, client: Any) -> Any:
    outcome = work_fn(client)
    if inspect.isawaitable(outcome):
        outcome = await outcome
    return outcome


__all__ = ["UnitOfWorkResult", "supports_transactions", "with_transaction"]
