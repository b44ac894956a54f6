# SPDX-License-Identifier: Apache-2.0
"""Error taxonomy for the data-access layer.

Every error that leaves the repository layer is an :class:`AppError`. Each
error class carries an :class:`ErrorKind`, a stable ``error_code`` and an
HTTP-equivalent ``status_code`` so the outer HTTP layer can render it without
knowing where it came from.

Per-domain errors are flat: a domain error class derives from
:class:`DomainError` and declares which generic kind it represents instead of
inheriting from the generic class.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar, Optional


class ErrorKind(str, Enum):
    """Generic error kinds used as keys in error mapping tables."""

    NOT_FOUND = "EntityNotFoundError"
    VALIDATION = "ValidationError"
    DATABASE = "DatabaseError"
    TRANSIENT_DATABASE = "TransientDatabaseError"
    PERMANENT_DATABASE = "PermanentDatabaseError"
    HANDLER = "HandlerError"
    UNKNOWN = "AppError"


class AppError(Exception):
    """Base class for all errors raised by RepoGuard.

    Args:
        message: Human readable description
        status_code: HTTP-equivalent status hint (class default if omitted)
        error_code: Stable machine readable code (class default if omitted)
        cause: The underlying error, if any
        metadata: Additional context for logging and error responses
    """

    kind: ClassVar[ErrorKind] = ErrorKind.UNKNOWN
    default_status_code: ClassVar[int] = 500
    default_error_code: ClassVar[str] = "INTERNAL_ERROR"
    transient: ClassVar[bool] = False

    def __init__(
        self,
        message: str = "",
        *,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        cause: Optional[BaseException] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code if status_code is not None else self.default_status_code
        self.error_code = error_code or self.default_error_code
        self.cause = cause
        self.metadata: dict[str, Any] = dict(metadata or {})
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Serializable form for error responses."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "error_code": self.error_code,
            "status_code": self.status_code,
            "metadata": self.metadata,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, error_code={self.error_code!r})"


def _entity_code(entity_type: str, suffix: str) -> Optional[str]:
    if not entity_type or entity_type == "unknown":
        return None
    return f"{entity_type.upper()}_{suffix}"


class EntityNotFoundError(AppError):
    """Raised when a requested entity does not exist."""

    kind = ErrorKind.NOT_FOUND
    default_status_code = 404
    default_error_code = "NOT_FOUND"

    def __init__(
        self,
        message: str = "Entity not found",
        *,
        entity_type: str = "unknown",
        entity_id: Any = None,
        **kwargs: Any,
    ) -> None:
        metadata = {
            "entity_type": entity_type,
            "entity_id": entity_id,
            **(kwargs.pop("metadata", None) or {}),
        }
        kwargs.setdefault("error_code", _entity_code(entity_type, "NOT_FOUND"))
        super().__init__(message, metadata=metadata, **kwargs)
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationError(AppError):
    """Raised when input fails validation. Never retried."""

    kind = ErrorKind.VALIDATION
    default_status_code = 400
    default_error_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "Validation failed",
        *,
        entity_type: str = "unknown",
        validation_errors: Any = None,
        **kwargs: Any,
    ) -> None:
        metadata = {
            "entity_type": entity_type,
            "validation_errors": validation_errors,
            **(kwargs.pop("metadata", None) or {}),
        }
        kwargs.setdefault("error_code", _entity_code(entity_type, "VALIDATION_ERROR"))
        super().__init__(message, metadata=metadata, **kwargs)
        self.entity_type = entity_type
        self.validation_errors = validation_errors


class DatabaseError(AppError):
    """Database failure that is neither clearly transient nor a constraint issue."""

    kind = ErrorKind.DATABASE
    default_status_code = 500
    default_error_code = "DATABASE_ERROR"

    def __init__(
        self,
        message: str = "Database error",
        *,
        operation: Optional[str] = None,
        entity_type: str = "unknown",
        **kwargs: Any,
    ) -> None:
        metadata = {
            "operation": operation,
            "entity_type": entity_type,
            **(kwargs.pop("metadata", None) or {}),
        }
        super().__init__(message, metadata=metadata, **kwargs)
        self.operation = operation
        self.entity_type = entity_type


class TransientDatabaseError(DatabaseError):
    """Connection, timeout or lock contention failure. Safe to retry."""

    kind = ErrorKind.TRANSIENT_DATABASE
    default_status_code = 503
    default_error_code = "DATABASE_UNAVAILABLE"
    transient = True


class PermanentDatabaseError(DatabaseError):
    """Constraint violation or similar failure that a retry cannot fix."""

    kind = ErrorKind.PERMANENT_DATABASE
    default_status_code = 409
    default_error_code = "DATABASE_CONSTRAINT_VIOLATION"


class HandlerError(AppError):
    """Failure of an event handler during delivery.

    Created by the event bus for logging and metrics only; it is never raised
    to the publisher.
    """

    kind = ErrorKind.HANDLER
    default_error_code = "EVENT_HANDLER_ERROR"

    def __init__(
        self,
        message: str = "Event handler failed",
        *,
        event_type: str = "unknown",
        handler_id: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        metadata = {
            "event_type": event_type,
            "handler_id": handler_id,
            **(kwargs.pop("metadata", None) or {}),
        }
        super().__init__(message, metadata=metadata, **kwargs)
        self.event_type = event_type
        self.handler_id = handler_id


class DomainError(AppError):
    """Base class for per-domain error families.

    Subclasses set ``domain``, ``kind`` and their default codes; see
    :func:`repoguard.domain.error_mapping.make_error_family`.
    """

    domain: ClassVar[str] = "generic"


__all__ = [
    "AppError",
    "DatabaseError",
    "DomainError",
    "EntityNotFoundError",
    "ErrorKind",
    "HandlerError",
    "PermanentDatabaseError",
    "TransientDatabaseError",
    "ValidationError",
]
