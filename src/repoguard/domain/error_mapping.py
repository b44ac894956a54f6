# SPDX-License-Identifier: Apache-2.0
"""Mapping of generic errors onto per-domain error types.

A repository declares once which domain error represents each generic
:class:`~repoguard.domain.errors.ErrorKind`; the mapper then translates any
error raised below the repository boundary into that vocabulary.

Example:
    >>> progress = make_error_family("progress")
    >>> mapper = progress.mapper()
    >>> err = mapper(EntityNotFoundError("no such row"))
    >>> type(err).__name__, err.error_code, err.status_code
    ('ProgressNotFoundError', 'PROGRESS_NOT_FOUND', 404)
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from .errors import AppError, DomainError, ErrorKind

ErrorKey = Union[ErrorKind, str]
ErrorMapper = Callable[..., AppError]


def _key(kind: ErrorKey) -> str:
    return kind.value if isinstance(kind, ErrorKind) else str(kind)


def _lookup_keys(error: BaseException) -> Iterator[str]:
    """Yield the names under which ``error`` may be registered.

    The declared kind comes first, then class names from the most to the
    least specific, so an unmapped ``TransientDatabaseError`` falls back to a
    ``DatabaseError`` entry.
    """
    kind = getattr(error, "kind", None)
    if isinstance(kind, ErrorKind):
        yield kind.value
    for cls in type(error).__mro__:
        yield cls.__name__


def create_error_mapper(
    mappings: Mapping[ErrorKey, type[AppError]],
    default_error: type[AppError],
) -> ErrorMapper:
    """Create a function mapping generic errors to domain-specific ones.

    Args:
        mappings: Generic error kind (or class name) to domain error class
        default_error: Class used when no mapping applies

    Returns:
        ``mapper(error, context=None) -> AppError``. The mapped error keeps the
        original message and references the original as ``cause``.
    """
    table = {_key(kind): error_cls for kind, error_cls in mappings.items()}

    def mapper(error: BaseException, context: Optional[Mapping[str, Any]] = None) -> AppError:
        if isinstance(error, default_error):
            return error

        target = default_error
        for key in _lookup_keys(error):
            if key in table:
                target = table[key]
                break

        message = str(error) or "An error occurred"
        metadata = dict(getattr(error, "metadata", None) or {})
        metadata.update(context or {})
        return target(message, cause=error, metadata=metadata)

    return mapper


@dataclass(frozen=True)
class ErrorFamily:
    """The flat set of error classes for one domain."""

    domain: str
    base: type[DomainError]
    not_found: type[DomainError]
    validation: type[DomainError]
    processing: type[DomainError]

    def mapper(self) -> ErrorMapper:
        """Mapper that routes generic kinds onto this family."""
        return create_error_mapper(
            {
                ErrorKind.NOT_FOUND: self.not_found,
                ErrorKind.VALIDATION: self.validation,
                ErrorKind.DATABASE: self.processing,
            },
            self.base,
        )


def _camel(domain: str) -> str:
    return "".join(part.capitalize() for part in domain.replace("-", "_").split("_") if part)


def make_error_family(domain: str) -> ErrorFamily:
    """Build ``<Domain>Error`` and its not-found, validation and processing variants.

    All variants derive from the family base, so callers may catch the whole
    family with one ``except`` clause. Each variant records the generic kind it
    stands for, which lets another domain's mapper translate it again.
    """
    name = _camel(domain)
    prefix = domain.upper().replace("-", "_")

    base = type(
        f"{name}Error",
        (DomainError,),
        {
            "domain": domain,
            "kind": ErrorKind.UNKNOWN,
            "default_status_code": 500,
            "default_error_code": f"{prefix}_ERROR",
            "__doc__": f"Base error for the {domain} domain.",
        },
    )

    def variant(suffix: str, kind: ErrorKind, status: int, code: str) -> type[DomainError]:
        return type(
            f"{name}{suffix}",
            (base,),
            {
                "kind": kind,
                "default_status_code": status,
                "default_error_code": f"{prefix}_{code}",
                "__doc__": f"{kind.value} in the {domain} domain.",
            },
        )

    return ErrorFamily(
        domain=domain,
        base=base,
        not_found=variant("NotFoundError", ErrorKind.NOT_FOUND, 404, "NOT_FOUND"),
        validation=variant("ValidationError", ErrorKind.VALIDATION, 400, "VALIDATION_ERROR"),
        processing=variant("ProcessingError", ErrorKind.DATABASE, 500, "PROCESSING_ERROR"),
    )


__all__ = ["ErrorFamily", "ErrorMapper", "create_error_mapper", "make_error_family"]
