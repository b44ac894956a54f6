# SPDX-License-Identifier: Apache-2.0
"""Infrastructure layer for messaging and event bus implementations.

This package contains the concrete event bus, keeping delivery concerns
separate from the domain layer.
"""

from __future__ import annotations

from .in_memory_bus import HandlerRegistration, InMemoryEventBus

__all__ = ["HandlerRegistration", "InMemoryEventBus"]
