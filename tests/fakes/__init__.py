# SPDX-License-Identifier: Apache-2.0
"""Fake implementations and sample domain code for tests."""

from __future__ import annotations

from .clients import FlakyOperation, PlainDataClient
from .progress import PROGRESS_SCHEMA, Progress, ProgressRepository, progress_errors

__all__ = [
    "FlakyOperation",
    "PROGRESS_SCHEMA",
    "PlainDataClient",
    "Progress",
    "ProgressRepository",
    "progress_errors",
]
