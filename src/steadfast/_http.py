"""Small HTTP-related constants shared across Steadfast.

This module is intentionally tiny to avoid circular imports and drift.
"""

from __future__ import annotations

# Status codes mapped onto specific error kinds; any other status >= 400 is
# a Service fault.
NOT_FOUND_STATUS_CODES: frozenset[int] = frozenset({404, 410})
VALIDATION_STATUS_CODES: frozenset[int] = frozenset({400, 422})
TIMEOUT_STATUS_CODES: frozenset[int] = frozenset({408, 504})
