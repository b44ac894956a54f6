# SPDX-License-Identifier: Apache-2.0
"""RepoGuard: resilience and observability for the data-access layer."""

__version__ = "0.1.0"

__all__ = ["__version__"]
