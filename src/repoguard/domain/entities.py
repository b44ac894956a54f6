# SPDX-License-Identifier: Apache-2.0
"""Base classes for entities that raise domain events.

Entities buffer the events they raise while their state changes. The events
are detached by the repository right before the entity is persisted and are
published only once the write has succeeded.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional

from .events import DomainEvent


class AggregateRoot:
    """Entity that accumulates uncommitted domain events."""

    def __init__(self, id: Optional[str] = None):
        self.id = id
        self._events: list[DomainEvent] = []

    def add_domain_event(
        self, event_type: str, data: Optional[Mapping[str, Any]] = None
    ) -> DomainEvent:
        """Record a new event raised by this entity."""
        event = DomainEvent(
            type=event_type,
            data=dict(data or {}),
            source_id=str(self.id) if self.id is not None else None,
        )
        self._events.append(event)
        return event

    def get_uncommitted_events(self) -> list[DomainEvent]:
        """Events raised since the last commit, oldest first."""
        return self._events.copy()

    def mark_events_committed(self) -> None:
        """Forget buffered events after they have been handed off."""
        self._events.clear()


def collect_domain_events(entity: Any) -> list[DomainEvent]:
    """Detach and return the events buffered on ``entity``.

    Entities that do not buffer events yield an empty list. After the call the
    entity holds no events, so saving it again cannot publish them twice.
    """
    getter = getattr(entity, "get_uncommitted_events", None)
    if getter is None:
        return []
    events = list(getter())
    if events:
        entity.mark_events_committed()
    return events


__all__ = ["AggregateRoot", "collect_domain_events"]
