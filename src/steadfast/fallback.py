"""Fallback combinator: substitute a default when an operation fails."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from steadfast.operation import invoke
from steadfast.result import Ok

if TYPE_CHECKING:
    from collections.abc import Callable

    from steadfast.operation import Operation
    from steadfast.result import Result

logger = logging.getLogger(__name__)


def with_fallback[T, E](
    op: Operation[T, E],
    fallback: Any,
    *,
    on_error: Callable[[E], None] | None = None,
) -> Operation[T, Any]:
    """Replace a failure of *op* with *fallback*.

    A callable *fallback* is treated as an operation and its outcome becomes
    the final result; anything else is a constant wrapped in ``Ok``. The
    original error is discarded. Pass *on_error* to observe it first. On
    success the fallback is never evaluated.

    Any callable counts as an operation, classes and plain functions
    included. To fall back to a callable *value*, wrap it:
    ``with_fallback(op, succeed(handler))``.
    """

    async def _with_fallback() -> Result[T, Any]:
        outcome = await invoke(op)
        if isinstance(outcome, Ok):
            return outcome

        logger.debug("Falling back after failure: %s", outcome.error)
        if on_error is not None:
            on_error(outcome.error)
        if callable(fallback):
            return await invoke(fallback)
        return Ok(fallback)

    return _with_fallback
