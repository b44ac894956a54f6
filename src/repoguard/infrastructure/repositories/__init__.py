# SPDX-License-Identifier: Apache-2.0
"""Repository infrastructure: resilience wrapper, unit of work and base class."""

from __future__ import annotations

from .base import BaseRepository
from .resilience import (
    ErrorClassifier,
    RepositoryCallContext,
    current_call_context,
    validate_id,
    validate_required_params,
    with_repository_error_handling,
)
from .unit_of_work import UnitOfWorkResult, supports_transactions, with_transaction

__all__ = [
    "BaseRepository",
    "ErrorClassifier",
    "RepositoryCallContext",
    "UnitOfWorkResult",
    "current_call_context",
    "supports_transactions",
    "validate_id",
    "validate_required_params",
    "with_repository_error_handling",
    "with_transaction",
]
