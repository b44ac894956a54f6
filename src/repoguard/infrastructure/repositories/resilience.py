# SPDX-License-Identifier: Apache-2.0
"""Repository resilience wrapper.

Every public repository method runs through
:func:`with_repository_error_handling`, which

* validates required and identifier parameters before any I/O,
* retries transient storage failures with a bounded attempt budget,
* classifies every other failure into the generic error taxonomy and maps it
  onto the calling domain's error family,
* logs each attempt with redacted parameters and records Prometheus metrics.

Callers of a wrapped method only ever see :class:`~repoguard.domain.errors.AppError`
subclasses.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import re
from collections.abc import Awaitable, Iterable, Mapping, Sequence
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, NoReturn, Optional

from repoguard.config.settings import (
    DEFAULT_CONSTRAINT_MARKERS,
    DEFAULT_NOT_FOUND_MARKERS,
    DEFAULT_TRANSIENT_MARKERS,
    DEFAULT_VALIDATION_MARKERS,
)
from repoguard.domain.errors import (
    AppError,
    DatabaseError,
    EntityNotFoundError,
    PermanentDatabaseError,
    TransientDatabaseError,
    ValidationError,
)
from repoguard.infrastructure.database.client import (
    DATABASE_BUSY,
    INTEGRITY_VIOLATION,
    NO_SINGLE_ROW,
    UNIQUE_VIOLATION,
    DataAccessError,
)
from repoguard.log import LoggerLike, get_logger
from repoguard.metrics import REPOSITORY_CALLS, REPOSITORY_ERRORS, REPOSITORY_RETRIES
from repoguard.security.mask import redact_params

if TYPE_CHECKING:
    from repoguard.config.settings import RetryConfig

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE
)

ErrorMapperFn = Callable[..., AppError]


# ---------- Call context ----------
@dataclass(frozen=True)
class RepositoryCallContext:
    """Identity of the repository call currently executing.

    Set for the duration of each attempt so lower layers (the monitored data
    client) can attribute their work to a repository method.
    """

    method_name: str
    domain_name: str
    repository: str = "unknown"
    params: Mapping[str, Any] = field(default_factory=dict)
    attempt: int = 1


_CALL_CONTEXT: ContextVar[Optional[RepositoryCallContext]] = ContextVar(
    "repoguard_repository_call", default=None
)


def current_call_context() -> Optional[RepositoryCallContext]:
    """The repository call running in the current task, if any."""
    return _CALL_CONTEXT.get()


# ---------- Parameter validation ----------
def validate_required_params(
    params: Mapping[str, Any], required: Iterable[str], entity_type: str = "unknown"
) -> None:
    """Raise :class:`ValidationError` if any required parameter is missing or None."""
    missing = [name for name in required if params.get(name) is None]
    if missing:
        raise ValidationError(
            f"Missing required parameters: {', '.join(missing)}",
            entity_type=entity_type,
            validation_errors={"missing": missing},
        )


def validate_id(
    value: Any, *, name: str = "id", validate_uuid: bool = False, entity_type: str = "unknown"
) -> None:
    """Raise :class:`ValidationError` unless ``value`` is a usable identifier.

    Identifiers are non-empty strings or integers; with ``validate_uuid``
    strings must also be UUID-shaped.
    """
    if value is None or value == "":
        raise ValidationError(
            f"{name} is required",
            entity_type=entity_type,
            validation_errors={name: "required"},
        )
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValidationError(
            f"Invalid {name} format: expected a string or integer",
            entity_type=entity_type,
            validation_errors={name: "invalid_type"},
        )
    if validate_uuid and isinstance(value, str) and not UUID_PATTERN.match(value):
        raise ValidationError(
            f"Invalid {name} format: {value!r} is not a valid UUID",
            entity_type=entity_type,
            validation_errors={name: "invalid_uuid"},
        )


# ---------- Classification ----------
class ErrorClassifier:
    """Sorts raw failures into the generic error taxonomy.

    Errors that already are :class:`AppError` keep their class. Everything
    else is matched by backend error code first, since a code is never
    ambiguous, then by type, and finally by case-insensitive message markers
    in the order transient, not found, constraint, validation. Anything
    unmatched is a :class:`DatabaseError`.
    """

    def __init__(
        self,
        transient_markers: Optional[Sequence[str]] = None,
        not_found_markers: Optional[Sequence[str]] = None,
        constraint_markers: Optional[Sequence[str]] = None,
        validation_markers: Optional[Sequence[str]] = None,
    ) -> None:
        self.transient_markers = _lower(transient_markers or DEFAULT_TRANSIENT_MARKERS)
        self.not_found_markers = _lower(not_found_markers or DEFAULT_NOT_FOUND_MARKERS)
        self.constraint_markers = _lower(constraint_markers or DEFAULT_CONSTRAINT_MARKERS)
        self.validation_markers = _lower(validation_markers or DEFAULT_VALIDATION_MARKERS)

    @classmethod
    def from_config(cls, config: RetryConfig) -> ErrorClassifier:
        return cls(
            transient_markers=config.transient_markers,
            not_found_markers=config.not_found_markers,
            constraint_markers=config.constraint_markers,
            validation_markers=config.validation_markers,
        )

    def is_transient(self, error: BaseException) -> bool:
        return self.classify(error).transient

    def classify(
        self,
        error: BaseException,
        *,
        entity_type: str = "unknown",
        operation: Optional[str] = None,
    ) -> AppError:
        """Return the :class:`AppError` that represents ``error``."""
        if isinstance(error, AppError):
            return error

        message = str(error) or type(error).__name__
        lowered = message.lower()
        code = getattr(error, "code", None) if isinstance(error, DataAccessError) else None

        # Known codes decide before any message marker can
        if code in (UNIQUE_VIOLATION, INTEGRITY_VIOLATION):
            return PermanentDatabaseError(
                message, operation=operation, entity_type=entity_type, cause=error
            )
        if code == NO_SINGLE_ROW:
            return EntityNotFoundError(message, entity_type=entity_type, cause=error)
        if (
            code == DATABASE_BUSY
            or isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError))
            or _matches(lowered, self.transient_markers)
        ):
            return TransientDatabaseError(
                message, operation=operation, entity_type=entity_type, cause=error
            )
        if _matches(lowered, self.not_found_markers):
            return EntityNotFoundError(message, entity_type=entity_type, cause=error)
        if _matches(lowered, self.constraint_markers):
            return PermanentDatabaseError(
                message, operation=operation, entity_type=entity_type, cause=error
            )
        if _matches(lowered, self.validation_markers):
            return ValidationError(
                message, entity_type=entity_type, validation_errors=message, cause=error
            )
        return DatabaseError(message, operation=operation, entity_type=entity_type, cause=error)


def _lower(markers: Sequence[str]) -> tuple[str, ...]:
    return tuple(m.lower() for m in markers)


def _matches(message: str, markers: Sequence[str]) -> bool:
    return any(marker in message for marker in markers)


# ---------- Wrapper ----------
def _signature(method: Callable[..., Any]) -> Optional[inspect.Signature]:
    try:
        return inspect.signature(method)
    except (TypeError, ValueError):
        return None


def _bind_params(
    signature: Optional[inspect.Signature],
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
    method_name: str,
    entity_type: str,
) -> dict[str, Any]:
    if signature is None:
        params = {f"arg{i}": value for i, value in enumerate(args)}
        params.update(kwargs)
        return params
    try:
        bound = signature.bind(*args, **kwargs)
    except TypeError as e:
        raise ValidationError(
            f"Invalid arguments for {method_name}: {e}", entity_type=entity_type
        ) from e
    bound.apply_defaults()
    params: dict[str, Any] = {}
    for name, value in bound.arguments.items():
        kind = signature.parameters[name].kind
        if kind is inspect.Parameter.VAR_KEYWORD:
            params.update(value)
        elif kind is not inspect.Parameter.VAR_POSITIONAL and name not in ("self", "cls"):
            params[name] = value
    return params


def _owner(method: Callable[..., Any]) -> str:
    owner = getattr(method, "__self__", None)
    if owner is not None:
        return owner.__name__ if isinstance(owner, type) else type(owner).__name__
    qualname = getattr(method, "__qualname__", "")
    return qualname.rsplit(".", 1)[0] if "." in qualname else "unknown"


def with_repository_error_handling(
    method: Callable[..., Any],
    *,
    domain_name: str,
    method_name: Optional[str] = None,
    logger: Optional[LoggerLike] = None,
    error_mapper: Optional[ErrorMapperFn] = None,
    max_retries: int = 3,
    retry_delay: float = 0.5,
    backoff_factor: float = 1.0,
    required_params: Sequence[str] = (),
    id_params: Sequence[str] = (),
    validate_uuids: bool = False,
    classifier: Optional[ErrorClassifier] = None,
) -> Callable[..., Awaitable[Any]]:
    """Wrap a repository method with validation, retries and error mapping.

    Args:
        method: Sync or async callable to wrap (usually a bound method)
        domain_name: Domain the repository belongs to, used in errors and logs
        method_name: Name used in logs and metrics (defaults to ``method.__name__``)
        logger: Logger or adapter to use
        error_mapper: Maps generic errors onto the domain's error family
        max_retries: Total attempts, including the first one
        retry_delay: Seconds to wait before the second attempt
        backoff_factor: Multiplier applied to the delay for each further attempt
        required_params: Parameters that must be present and not None
        id_params: Parameters that must be usable identifiers
        validate_uuids: Also require identifier strings to be UUIDs
        classifier: Classification rules (defaults to the built-in markers)

    Returns:
        Async callable with the same parameters as ``method``
    """
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")
    if retry_delay < 0:
        raise ValueError("retry_delay must be non-negative")

    name = method_name or getattr(method, "__name__", "anonymous")
    repository = _owner(method)
    signature = _signature(method)
    rules = classifier or ErrorClassifier()
    log = get_logger("repository", logger, domain=domain_name, method=name)

    def _translate(error: AppError) -> AppError:
        if error_mapper is None:
            return error
        return error_mapper(error, {"method": name, "domain": domain_name})

    def _raise(error: AppError, original: BaseException) -> NoReturn:
        mapped = _translate(error)
        if mapped is original:
            raise original
        raise mapped from original

    @functools.wraps(method)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            params = _bind_params(signature, args, kwargs, name, domain_name)
            validate_required_params(params, required_params, entity_type=domain_name)
            for id_name in id_params:
                validate_id(
                    params.get(id_name),
                    name=id_name,
                    validate_uuid=validate_uuids,
                    entity_type=domain_name,
                )
        except ValidationError as e:
            REPOSITORY_CALLS.labels(domain=domain_name, method=name, outcome="invalid").inc()
            REPOSITORY_ERRORS.labels(domain=domain_name, method=name, kind=e.kind.value).inc()
            log.warning(f"Validation failed for {name}: {e.message}")
            _raise(e, e)

        safe_params = redact_params(params)
        attempt = 1
        while True:
            token = _CALL_CONTEXT.set(
                RepositoryCallContext(
                    method_name=name,
                    domain_name=domain_name,
                    repository=repository,
                    params=safe_params,
                    attempt=attempt,
                )
            )
            try:
                log.debug(f"Executing {name}", extra={"attempt": attempt, "params": safe_params})
                result = method(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as exc:
                error = rules.classify(exc, entity_type=domain_name, operation=name)
                if not error.transient or attempt >= max_retries:
                    outcome = "exhausted" if error.transient else "error"
                    REPOSITORY_CALLS.labels(domain=domain_name, method=name, outcome=outcome).inc()
                    REPOSITORY_ERRORS.labels(
                        domain=domain_name, method=name, kind=error.kind.value
                    ).inc()
                    log.error(
                        f"Error in {domain_name}.{name}: {error.message}",
                        extra={
                            "attempt": attempt,
                            "max_retries": max_retries,
                            "error_type": type(exc).__name__,
                            "error_code": error.error_code,
                            "params": safe_params,
                        },
                    )
                    _raise(error, exc)
                log.warning(
                    f"{name} failed transiently",
                    extra={
                        "attempt": attempt,
                        "max_retries": max_retries,
                        "error": error.message,
                        "params": safe_params,
                    },
                )
            else:
                REPOSITORY_CALLS.labels(domain=domain_name, method=name, outcome="success").inc()
                log.debug(f"{name} succeeded", extra={"attempt": attempt})
                return result
            finally:
                _CALL_CONTEXT.reset(token)

            REPOSITORY_RETRIES.labels(domain=domain_name, method=name).inc()
            delay = retry_delay * backoff_factor ** (attempt - 1)
            if delay > 0:
                await asyncio.sleep(delay)
            attempt += 1

    return wrapper


__all__ = [
    "ErrorClassifier",
    "RepositoryCallContext",
    "UUID_PATTERN",
    "current_call_context",
    "validate_id",
    "validate_required_params",
    "with_repository_error_handling",
]
