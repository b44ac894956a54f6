# SPDX-License-Identifier: Apache-2.0
"""Base class for data-access repositories."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any, Optional

from repoguard.domain.events import IEventBus
from repoguard.infrastructure.database.client import IDataClient, QueryResult
from repoguard.log import LoggerLike, get_logger

from .resilience import (
    ErrorClassifier,
    ErrorMapperFn,
    validate_id,
    validate_required_params,
    with_repository_error_handling,
)
from .unit_of_work import WorkFn, with_transaction

_CAMEL_BOUNDARY = re.compile(r"([A-Z])")
_SNAKE_BOUNDARY = re.compile(r"_([a-z])")

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def _upper_first(match: re.Match[str]) -> str:
    return match.group(1).upper()


class BaseRepository:
    """Shared plumbing for repositories of one domain.

    Subclasses implement plain async methods against ``self.client`` and call
    :meth:`_apply_error_handling` in their constructor to run those methods
    through the resilience wrapper.

    Example:
        class ProgressRepository(BaseRepository):
            def __init__(self, client, event_bus=None):
                super().__init__(
                    client,
                    table_name="progress",
                    domain_name="progress",
                    error_mapper=make_error_family("progress").mapper(),
                    event_bus=event_bus,
                )
                self._apply_error_handling(
                    "find_by_user_id", required_params={"find_by_user_id": ["user_id"]}
                )

    Args:
        client: Data-access client
        table_name: Primary table of the repository
        domain_name: Domain used in logs and error metadata
        logger: Logger or adapter to use
        error_mapper: Maps generic errors onto the domain's error family
        event_bus: Bus that receives events from :meth:`with_transaction`
        max_retries: Total attempts per call
        retry_delay: Seconds before the second attempt
        backoff_factor: Delay multiplier for each further attempt
        validate_uuids: Require identifier parameters to be UUIDs
        classifier: Error classification rules
    """

    def __init__(
        self,
        client: IDataClient,
        *,
        table_name: str,
        domain_name: str = "generic",
        logger: Optional[LoggerLike] = None,
        error_mapper: Optional[ErrorMapperFn] = None,
        event_bus: Optional[IEventBus] = None,
        max_retries: int = 3,
        retry_delay: float = 0.5,
        backoff_factor: float = 1.0,
        validate_uuids: bool = False,
        classifier: Optional[ErrorClassifier] = None,
    ) -> None:
        if client is None:
            raise ValueError("Database client is required for BaseRepository")
        if not table_name:
            raise ValueError("Table name is required for BaseRepository")

        self.client = client
        self.table_name = table_name
        self.domain_name = domain_name
        self.error_mapper = error_mapper
        self.event_bus = event_bus
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.backoff_factor = backoff_factor
        self.validate_uuids = validate_uuids
        self.classifier = classifier or ErrorClassifier()
        self.logger = get_logger(
            f"repository.{domain_name}", logger, domain=domain_name, table=table_name
        )
        self._wrapped: set[str] = set()

    # ---------- Logging ----------
    def _log(self, level: str, message: str, **metadata: Any) -> None:
        """Log with the repository's table and domain attached."""
        try:
            levelno = _LOG_LEVELS[level.lower()]
        except KeyError:
            raise ValueError(f"Unknown log level: {level!r}") from None
        self.logger.log(levelno, message, extra=metadata)

    # ---------- Key conversion ----------
    @classmethod
    def _camel_to_snake(cls, obj: Any) -> Any:
        """Convert mapping keys from camelCase to snake_case, recursively.

        Example:
            >>> BaseRepository._camel_to_snake({"firstName": "Ada", "lastLoginAt": None})
            {'first_name': 'Ada', 'last_login_at': None}
        """
        if isinstance(obj, list):
            return [cls._camel_to_snake(item) for item in obj]
        if isinstance(obj, Mapping):
            return {
                _CAMEL_BOUNDARY.sub(r"_\1", str(key)).lower(): cls._camel_to_snake(value)
                for key, value in obj.items()
            }
        return obj

    @classmethod
    def _snake_to_camel(cls, obj: Any) -> Any:
        """Convert mapping keys from snake_case to camelCase, recursively."""
        if isinstance(obj, list):
            return [cls._snake_to_camel(item) for item in obj]
        if isinstance(obj, Mapping):
            return {
                _SNAKE_BOUNDARY.sub(_upper_first, str(key)): cls._snake_to_camel(value)
                for key, value in obj.items()
            }
        return obj

    # ---------- Validation ----------
    def _validate_id(self, value: Any, name: str = "id") -> None:
        validate_id(
            value, name=name, validate_uuid=self.validate_uuids, entity_type=self.domain_name
        )

    def _validate_required_params(self, params: Mapping[str, Any], required: Sequence[str]) -> None:
        validate_required_params(params, required, entity_type=self.domain_name)

    # ---------- Results ----------
    @staticmethod
    def _unwrap(result: QueryResult) -> Any:
        """Return ``result.data`` or raise the client's error."""
        if result.error is not None:
            raise result.error
        return result.data

    # ---------- Resilience ----------
    def _apply_error_handling(
        self,
        *method_names: str,
        required_params: Optional[Mapping[str, Sequence[str]]] = None,
        id_params: Optional[Mapping[str, Sequence[str]]] = None,
    ) -> None:
        """Replace the named methods on this instance with wrapped versions.

        Args:
            *method_names: Methods to wrap
            required_params: Per method, parameters that must not be None
            id_params: Per method, parameters that must be valid identifiers
        """
        required_params = required_params or {}
        id_params = id_params or {}
        for name in method_names:
            if name in self._wrapped:
                continue
            method = getattr(self, name, None)
            if method is None or not callable(method):
                raise AttributeError(f"{type(self).__name__} has no method {name!r}")
            wrapped = with_repository_error_handling(
                method,
                method_name=name,
                domain_name=self.domain_name,
                logger=self.logger,
                error_mapper=self.error_mapper,
                max_retries=self.max_retries,
                retry_delay=self.retry_delay,
                backoff_factor=self.backoff_factor,
                required_params=tuple(required_params.get(name, ())),
                id_params=tuple(id_params.get(name, ())),
                validate_uuids=self.validate_uuids,
                classifier=self.classifier,
            )
            setattr(self, name, wrapped)
            self._wrapped.add(name)

    # ---------- Unit of work ----------
    async def with_transaction(self, work_fn: WorkFn, publish_events: bool = True) -> Any:
        """Run ``work_fn`` as a unit of work on this repository's client and bus."""
        return await with_transaction(
            work_fn,
            publish_events=publish_events,
            event_bus=self.event_bus,
            client=self.client,
            logger=self.logger,
        )


__all__ = ["BaseRepository"]
