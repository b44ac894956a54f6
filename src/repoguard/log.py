# SPDX-License-Identifier: Apache-2.0
"""Logging helpers.

RepoGuard logs through the standard :mod:`logging` module under the
``repoguard`` logger hierarchy. Components that want structured context use
:func:`get_logger`, which returns an adapter that renders context as
``key=value`` pairs and also exposes it on the record as ``record.context``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, MutableMapping
from typing import Any, Optional, Union

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

LoggerLike = Union[logging.Logger, logging.LoggerAdapter]


def _render(context: Mapping[str, Any]) -> str:
    return " ".join(f"{key}={value!r}" for key, value in context.items() if value is not None)


class ContextLogger(logging.LoggerAdapter):
    """Adapter that merges bound context with per-call metadata.

    Usage:
        log = get_logger("repository", domain="progress")
        log.debug("Fetching progress", extra={"user_id": "u1"})
    """

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        context = dict(self.extra or {})
        context.update(kwargs.pop("extra", None) or {})
        kwargs["extra"] = {"context": context}
        rendered = _render(context)
        return (f"{msg} | {rendered}" if rendered else msg), kwargs

    def bind(self, **context: Any) -> ContextLogger:
        """Child adapter with additional bound context."""
        merged = dict(self.extra or {})
        merged.update(context)
        return ContextLogger(self.logger, merged)


def get_logger(
    component: str, logger: Optional[LoggerLike] = None, **context: Any
) -> ContextLogger:
    """Return a context-carrying logger for ``component``.

    Args:
        component: Dotted name below ``repoguard`` (e.g. ``"query_monitor"``)
        logger: Existing logger or adapter to wrap instead of the default
        **context: Values attached to every record
    """
    if isinstance(logger, ContextLogger):
        return logger.bind(**context)
    if isinstance(logger, logging.LoggerAdapter):
        merged = dict(logger.extra or {})
        merged.update(context)
        return ContextLogger(logger.logger, merged)
    base = logger or logging.getLogger(f"repoguard.{component}")
    return ContextLogger(base, {"component": component, **context})


def configure_logging(level: Union[int, str] = logging.INFO, fmt: str = DEFAULT_FORMAT) -> None:
    """Attach a stream handler to the ``repoguard`` logger.

    Idempotent: calling it again only updates the level and format.
    """
    root = logging.getLogger("repoguard")
    root.setLevel(level if isinstance(level, int) else level.upper())
    formatter = logging.Formatter(fmt)
    for handler in root.handlers:
        if getattr(handler, "_repoguard", False):
            handler.setFormatter(formatter)
            return
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler._repoguard = True  # type: ignore[attr-defined]
    root.addHandler(handler)


__all__ = ["ContextLogger", "DEFAULT_FORMAT", "LoggerLike", "configure_logging", "get_logger"]
