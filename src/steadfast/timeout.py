"""Timeout guard: bound an operation's wall-clock duration."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from steadfast.operation import invoke
from steadfast.result import Err
from steadfast.taxonomy import Timeout

if TYPE_CHECKING:
    from steadfast.operation import Operation
    from steadfast.result import Result

logger = logging.getLogger(__name__)


def with_timeout[T, E](op: Operation[T, E], timeout_s: float) -> Operation[T, E | Timeout]:
    """Race *op* against a deadline of *timeout_s* seconds.

    When the deadline wins, the wrapped operation is cancelled (it sees
    ``CancelledError`` at its current suspension point, so ``finally`` blocks
    and resource scopes still run) and the guard yields
    ``Err(Timeout(elapsed_s=timeout_s))``. A late result from an operation that
    swallowed the cancellation is discarded, so each invocation observes
    exactly one outcome.
    """
    if timeout_s <= 0:
        raise ValueError(f"timeout_s must be > 0, got {timeout_s}")

    def _timed_out() -> Err[Timeout]:
        logger.debug("Operation exceeded %.3fs deadline", timeout_s)
        return Err(
            Timeout(f"Operation timed out after {timeout_s:g}s", elapsed_s=timeout_s)
        )

    async def _guarded() -> Result[T, Any]:
        try:
            async with asyncio.timeout(timeout_s) as deadline:
                outcome = await invoke(op)
        except TimeoutError:
            return _timed_out()
        if deadline.expired():
            return _timed_out()
        return outcome

    return _guarded
