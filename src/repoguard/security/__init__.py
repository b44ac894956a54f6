# SPDX-License-Identifier: Apache-2.0
"""Security helpers."""

from .mask import is_sensitive_key, mask, redact_params, redact_value

__all__ = ["is_sensitive_key", "mask", "redact_params", "redact_value"]
