# SPDX-License-Identifier: Apache-2.0
"""Domain events.

Domain events record that something significant already happened in one
bounded context (a challenge was completed, a user was created) so other
contexts can react without being called directly. They are plain immutable
envelopes: a string type plus an arbitrary payload.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Optional, Protocol, Union
from uuid import uuid4


class EventTypes:
    """Names of the events exchanged between domains."""

    USER_CREATED = "UserCreated"
    USER_UPDATED = "UserUpdated"
    USER_DELETED = "UserDeleted"
    USER_ACTIVATED = "UserActivated"
    USER_DEACTIVATED = "UserDeactivated"
    USER_ONBOARDING_COMPLETED = "UserOnboardingCompleted"
    USER_FOCUS_AREA_SET = "UserFocusAreaSet"
    CHALLENGE_CREATED = "ChallengeCreated"
    CHALLENGE_COMPLETED = "ChallengeCompleted"
    CHALLENGE_DELETED = "ChallengeDeleted"
    EVALUATION_CREATED = "EvaluationCreated"
    EVALUATION_UPDATED = "EvaluationUpdated"
    PROGRESS_UPDATED = "ProgressUpdated"
    PROGRESS_DELETED = "ProgressDeleted"
    PERSONALITY_PROFILE_UPDATED = "PersonalityProfileUpdated"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_event_id() -> str:
    return str(uuid4())


@dataclass(frozen=True)
class DomainEvent:
    """An immutable fact published after a successful state change.

    ``data`` is copied into a read-only mapping on creation, so neither the
    publisher nor any handler can change what other handlers observe.
    """

    type: str
    data: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)
    event_id: str = field(default_factory=_new_event_id)
    correlation_id: Optional[str] = None
    source_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.type:
            raise ValueError("Domain event type must be a non-empty string")
        object.__setattr__(self, "data", MappingProxyType(dict(self.data or {})))
        if self.correlation_id is None:
            object.__setattr__(self, "correlation_id", self.event_id)

    def to_dict(self) -> dict[str, Any]:
        """Plain dictionary form, e.g. for logging."""
        return {
            "type": self.type,
            "data": dict(self.data),
            "timestamp": self.timestamp.isoformat(),
            "event_id": self.event_id,
            "correlation_id": self.correlation_id,
            "source_id": self.source_id,
        }

    def __str__(self) -> str:
        return f"{self.type}(id={self.event_id}, source={self.source_id})"


EventHandler = Callable[[DomainEvent], Union[Any, Awaitable[Any]]]


@dataclass(frozen=True)
class EventTypeInfo:
    """Catalog entry describing an event type."""

    name: str
    description: str = ""
    category: str = "uncategorized"
    created_at: datetime = field(default_factory=_utcnow)


class IEventBus(Protocol):
    """Protocol for event bus implementations.

    Repositories and services depend on this interface; the concrete bus is
    created once at start-up and injected.
    """

    def register_handler(self, event_type: str, handler: EventHandler) -> str:
        """Register ``handler`` for ``event_type`` and return its id."""
        ...

    def unregister_handler(self, handler_id: str) -> bool:
        """Remove a registration; False if the id is unknown."""
        ...

    async def publish(self, event_type: str, data: Optional[Mapping[str, Any]] = None) -> list[Any]:
        """Deliver a new event to every handler of ``event_type`` in order."""
        ...

    async def publish_event(self, event: DomainEvent) -> list[Any]:
        """Deliver an already constructed event."""
        ...

    def get_event_history(self) -> list[DomainEvent]:
        """Recently published events, most recent first."""
        ...


__all__ = [
    "DomainEvent",
    "EventHandler",
    "EventTypeInfo",
    "EventTypes",
    "IEventBus",
]
