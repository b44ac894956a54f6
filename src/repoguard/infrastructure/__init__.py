# SPDX-License-Identifier: Apache-2.0
"""Infrastructure package for RepoGuard.

Contains the concrete data-access client, the event bus, the query monitor
and the repository resilience machinery built on the domain interfaces.
"""

from __future__ import annotations
