# SPDX-License-Identifier: Apache-2.0
"""Masking utilities that keep credentials out of log output."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any, Optional

_SENSITIVE_KEY = re.compile(
    r"passw(or)?d|passphrase|secret|token|api[_-]?key|authorization"
    r"|credential|private[_-]?key|cookie",
    re.IGNORECASE,
)

# Nested structures are summarized below this depth
_MAX_DEPTH = 3


def mask(value: Optional[str], show: int = 4) -> str:
    """Mask a secret string, showing only the last `show` characters.

    Args:
        value: The secret string to mask
        show: Number of characters to show at the end (default: 4)

    Returns:
        Masked string with asterisks, or "***" for short/empty strings

    Examples:
        >>> mask("ABCD1234EFGH")
        '********EFGH'
        >>> mask("short")
        '***'
        >>> mask(None)
        '***'
    """
    if not value or len(value) <= show + 2:
        return "***"

    if show == 0:
        return "*" * len(value)

    return "*" * (len(value) - show) + value[-show:]


def is_sensitive_key(key: Any) -> bool:
    """True if a parameter name looks like it carries a credential."""
    return isinstance(key, str) and bool(_SENSITIVE_KEY.search(key))


def redact_value(value: Any, depth: int = 0) -> Any:
    """Return a log-safe rendering of ``value``.

    Mappings are redacted key by key, sequences are redacted element-wise and
    arbitrary objects are reduced to their type name so entity state never
    ends up in logs wholesale.
    """
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return value if len(value) <= 200 else value[:200] + "..."
    if depth >= _MAX_DEPTH:
        return f"<{type(value).__name__}>"
    if isinstance(value, Mapping):
        return redact_params(value, depth + 1)
    if isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
        rendered = [redact_value(item, depth + 1) for item in items[:10]]
        if len(items) > 10:
            rendered.append(f"... {len(items) - 10} more")
        return rendered
    return f"<{type(value).__name__}>"


def redact_params(params: Mapping[Any, Any], depth: int = 0) -> dict[str, Any]:
    """Redact a mapping of call parameters for logging.

    Values under credential-like keys are masked; everything else goes
    through :func:`redact_value`.

    Examples:
        >>> redact_params({"user_id": "u1", "password": "hunter2hunter2"})
        {'user_id': 'u1', 'password': '**********nter'}
    """
    redacted: dict[str, Any] = {}
    for key, value in params.items():
        if is_sensitive_key(key):
            redacted[str(key)] = mask(value if isinstance(value, str) else None)
        else:
            redacted[str(key)] = redact_value(value, depth)
    return redacted


__all__ = ["is_sensitive_key", "mask", "redact_params", "redact_value"]
