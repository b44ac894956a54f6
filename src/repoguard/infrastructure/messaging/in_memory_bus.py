# SPDX-License-Identifier: Apache-2.0
"""In-memory event bus implementation.

This module provides the concrete :class:`~repoguard.domain.events.IEventBus`
used across the backend: a process-wide publish/subscribe registry with a
bounded history. Delivery is synchronous per publish call: handlers run one
after another in registration order, and a failing handler never stops
delivery to the next one or reaches the publisher.
"""

from __future__ import annotations

import inspect
import threading
import time
from collections import defaultdict, deque
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional
from uuid import uuid4

from repoguard.domain.errors import HandlerError
from repoguard.domain.events import DomainEvent, EventHandler, EventTypeInfo, IEventBus
from repoguard.log import LoggerLike, get_logger
from repoguard.metrics import EVENT_HANDLER_FAILURES, EVENTS_PUBLISHED

DEFAULT_HISTORY_LIMIT = 100


@dataclass(frozen=True)
class HandlerRegistration:
    """A handler registered for one event type."""

    id: str
    event_type: str
    handler: EventHandler
    once: bool = False


@dataclass
class HandlerTiming:
    """Running totals of handler durations for one event type."""

    count: int = 0
    total_ms: float = 0.0

    def add(self, duration_ms: float) -> None:
        self.count += 1
        self.total_ms += duration_ms

    @property
    def average_ms(self) -> float:
        return self.total_ms / self.count if self.count else 0.0


class InMemoryEventBus(IEventBus):
    """Process-wide domain event bus.

    Create one instance at start-up and inject it wherever events are
    published or consumed; tests create their own isolated instances.

    Args:
        record_history: Keep the most recent events for debugging
        history_limit: Capacity of the history ring
        logger: Logger or adapter to use (defaults to ``repoguard.event_bus``)
    """

    def __init__(
        self,
        record_history: bool = True,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        logger: Optional[LoggerLike] = None,
    ) -> None:
        if history_limit <= 0:
            raise ValueError("history_limit must be positive")
        self._log = get_logger("event_bus", logger)
        self._lock = threading.Lock()
        self._registrations: dict[str, list[HandlerRegistration]] = defaultdict(list)
        self._by_id: dict[str, HandlerRegistration] = {}
        self._event_types: dict[str, EventTypeInfo] = {}
        self.record_history = record_history
        self.history_limit = history_limit
        self._history: deque[DomainEvent] = deque(maxlen=history_limit)
        self._published_events = 0
        self._failed_handlers = 0
        self._processing_times: dict[str, HandlerTiming] = defaultdict(HandlerTiming)

    # ---------- Registration ----------
    def register_handler(
        self,
        event_type: str,
        handler: EventHandler,
        *,
        once: bool = False,
        handler_id: Optional[str] = None,
    ) -> str:
        """Register a handler and return its id.

        Args:
            event_type: Name of the event to listen for
            handler: Sync or async callable receiving the :class:`DomainEvent`
            once: Remove the registration after its first delivery
            handler_id: Explicit id; must be unique if given

        Returns:
            Opaque id for :meth:`unregister_handler`
        """
        if not callable(handler):
            raise TypeError("Event handler must be callable")

        with self._lock:
            registration_id = handler_id or f"{event_type}-{uuid4().hex}"
            if registration_id in self._by_id:
                raise ValueError(f"Handler id already registered: {registration_id}")
            registration = HandlerRegistration(registration_id, event_type, handler, once)
            self._registrations[event_type].append(registration)
            self._by_id[registration_id] = registration

        self._log.debug(
            f"Registered handler for event: {event_type}",
            extra={"handler_id": registration_id, "once": once},
        )
        return registration_id

    def once(self, event_type: str, handler: EventHandler) -> str:
        """Register a handler that is removed after its first delivery."""
        return self.register_handler(event_type, handler, once=True)

    def unregister_handler(self, handler_id: str) -> bool:
        """Remove a registration.

        Returns:
            True if the registration existed, False otherwise (never raises)
        """
        with self._lock:
            removed = self._remove(handler_id)
        if removed:
            self._log.debug("Removed event handler", extra={"handler_id": handler_id})
        return removed

    def _remove(self, handler_id: str) -> bool:
        registration = self._by_id.pop(handler_id, None)
        if registration is None:
            return False
        handlers = self._registrations[registration.event_type]
        handlers[:] = [r for r in handlers if r.id != handler_id]
        if not handlers:
            del self._registrations[registration.event_type]
        return True

    def clear_handlers(self, event_type: Optional[str] = None) -> None:
        """Remove all handlers, or only those for ``event_type``."""
        with self._lock:
            if event_type is None:
                self._registrations.clear()
                self._by_id.clear()
            else:
                for registration in self._registrations.pop(event_type, []):
                    self._by_id.pop(registration.id, None)

    def handler_count(self, event_type: str) -> int:
        """Number of handlers currently registered for ``event_type``."""
        with self._lock:
            return len(self._registrations.get(event_type, ()))

    # ---------- Event type catalog ----------
    def register_event_type(
        self, name: str, description: str = "", category: str = "uncategorized"
    ) -> EventTypeInfo:
        """Document an event type. Registration is optional for publishing."""
        info = EventTypeInfo(name=name, description=description, category=category)
        with self._lock:
            self._event_types[name] = info
        self._log.debug(f"Event type registered: {name}", extra={"category": category})
        return info

    def get_event_types(self) -> dict[str, EventTypeInfo]:
        """Registered event type catalog."""
        with self._lock:
            return dict(self._event_types)

    # ---------- Publishing ----------
    async def publish(
        self,
        event_type: str,
        data: Optional[Mapping[str, Any]] = None,
        *,
        correlation_id: Optional[str] = None,
        source_id: Optional[str] = None,
    ) -> list[Any]:
        """Publish a new event to every handler registered for ``event_type``.

        Returns:
            One entry per handler in registration order: the handler's return
            value, or None if the handler raised
        """
        event = DomainEvent(
            type=event_type,
            data=dict(data or {}),
            correlation_id=correlation_id,
            source_id=source_id,
        )
        return await self.publish_event(event)

    async def publish_event(self, event: DomainEvent) -> list[Any]:
        """Publish an already constructed event."""
        with self._lock:
            registrations = list(self._registrations.get(event.type, ()))
            for registration in registrations:
                if registration.once:
                    self._remove(registration.id)
            if self.record_history:
                self._history.appendleft(event)
            self._published_events += 1

        EVENTS_PUBLISHED.labels(event_type=event.type).inc()
        self._log.info(
            f"Publishing event: {event.type}",
            extra={
                "event_id": event.event_id,
                "correlation_id": event.correlation_id,
                "source_id": event.source_id,
                "handlers": len(registrations),
            },
        )

        results: list[Any] = []
        for registration in registrations:
            results.append(await self._deliver(registration, event))
        return results

    async def _deliver(self, registration: HandlerRegistration, event: DomainEvent) -> Any:
        start = time.perf_counter()
        try:
            result = registration.handler(event)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            duration_ms = (time.perf_counter() - start) * 1000
            with self._lock:
                self._failed_handlers += 1
            EVENT_HANDLER_FAILURES.labels(event_type=event.type).inc()
            failure = HandlerError(
                f"Error in event handler for {event.type}: {e}",
                event_type=event.type,
                handler_id=registration.id,
                cause=e,
            )
            self._log.error(
                failure.message,
                exc_info=e,
                extra={
                    "handler_id": registration.id,
                    "event_id": event.event_id,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            return None

        duration_ms = (time.perf_counter() - start) * 1000
        with self._lock:
            self._processing_times[event.type].add(duration_ms)
        self._log.debug(
            f"Handler completed for {event.type}",
            extra={"handler_id": registration.id, "duration_ms": round(duration_ms, 2)},
        )
        return result

    # ---------- Introspection ----------
    def get_event_history(
        self,
        *,
        event_type: Optional[str] = None,
        correlation_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[DomainEvent]:
        """Recently published events, most recent first.

        Purely observational: the history is bounded and is not a replay log.
        """
        with self._lock:
            history = list(self._history)
        if event_type is not None:
            history = [e for e in history if e.type == event_type]
        if correlation_id is not None:
            history = [e for e in history if e.correlation_id == correlation_id]
        if limit is not None and limit > 0:
            history = history[:limit]
        return history

    def get_metrics(self) -> dict[str, Any]:
        """Counters and average handler durations for monitoring."""
        with self._lock:
            return {
                "published_events": self._published_events,
                "failed_handlers": self._failed_handlers,
                "handler_counts": {
                    event_type: len(handlers)
                    for event_type, handlers in self._registrations.items()
                },
                "average_processing_times_ms": {
                    event_type: timing.average_ms
                    for event_type, timing in self._processing_times.items()
                    if timing.count
                },
            }

    def reset(self) -> None:
        """Clear history and metrics. Registrations are kept."""
        with self._lock:
            self._history.clear()
            self._published_events = 0
            self._failed_handlers = 0
            self._processing_times.clear()
        self._log.debug("Event bus history and metrics reset")


__all__ = ["DEFAULT_HISTORY_LIMIT", "HandlerRegistration", "InMemoryEventBus"]
