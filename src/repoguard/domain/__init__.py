# SPDX-License-Identifier: Apache-2.0
"""Domain layer for RepoGuard.

Holds the pieces that have no infrastructure dependency: domain events, the
error taxonomy, error mapping and the event-buffering entity base class.
"""

from __future__ import annotations

from .entities import AggregateRoot, collect_domain_events
from .error_mapping import ErrorFamily, create_error_mapper, make_error_family
from .errors import (
    AppError,
    DatabaseError,
    DomainError,
    EntityNotFoundError,
    ErrorKind,
    HandlerError,
    PermanentDatabaseError,
    TransientDatabaseError,
    ValidationError,
)
from .events import DomainEvent, EventTypeInfo, EventTypes, IEventBus

__all__ = [
    # Events
    "DomainEvent",
    "EventTypeInfo",
    "EventTypes",
    "IEventBus",
    # Entities
    "AggregateRoot",
    "collect_domain_events",
    # Errors
    "AppError",
    "DatabaseError",
    "DomainError",
    "EntityNotFoundError",
    "ErrorKind",
    "HandlerError",
    "PermanentDatabaseError",
    "TransientDatabaseError",
    "ValidationError",
    # Error mapping
    "ErrorFamily",
    "create_error_mapper",
    "make_error_family",
]
