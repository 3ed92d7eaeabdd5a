"""Retry combinator: re-run an operation under a bounded backoff policy.

Retry decisions look at the error kind only, never at message text. All
per-run bookkeeping lives in a fresh ``RetryState``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import random
import time
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from steadfast.operation import invoke
from steadfast.result import Ok
from steadfast.taxonomy import RETRIABLE_KINDS, ErrorKind

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from steadfast.operation import Operation
    from steadfast.result import Result

logger = logging.getLogger(__name__)

# 2**62 already exceeds any sane max_delay_s; clamp to avoid float overflow.
_MAX_EXPONENT = 62


@runtime_checkable
class RetryDecider(Protocol):
    """Anything that can drive ``with_retry``."""

    def should_retry(self, attempt: int, error: Any) -> bool: ...  # noqa: D102
    def delay_for(self, retry_index: int) -> float: ...  # noqa: D102


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy with exponential backoff and optional jitter.

    ``max_attempts`` counts every invocation, the first one included;
    ``0`` and ``1`` both mean "run once, never retry".
    """

    max_attempts: int = 3
    base_delay_s: float = 0.1
    max_delay_s: float = 5.0
    jitter: bool = True  # "full jitter" when enabled
    retry_on: frozenset[ErrorKind] = RETRIABLE_KINDS
    #: Total budget for backoff waits; None means unbounded.
    max_elapsed_s: float | None = None
    rng: random.Random | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        """Validate invariants to keep retry behavior predictable."""
        if self.max_attempts < 0:
            raise ValueError("RetryPolicy.max_attempts must be >= 0")
        if self.base_delay_s < 0:
            raise ValueError("RetryPolicy.base_delay_s must be >= 0")
        if self.max_delay_s < 0:
            raise ValueError("RetryPolicy.max_delay_s must be >= 0")
        if self.max_elapsed_s is not None and self.max_elapsed_s < 0:
            raise ValueError("RetryPolicy.max_elapsed_s must be >= 0 or None")
        if not isinstance(self.retry_on, frozenset):
            object.__setattr__(self, "retry_on", frozenset(self.retry_on))

    def should_retry(self, attempt: int, error: Any) -> bool:
        """Return True when another attempt is allowed.

        *attempt* is the number of attempts already made. Errors without a
        ``kind`` (not from the taxonomy) are never retried.
        """
        if attempt >= self.max_attempts:
            return False
        return getattr(error, "kind", None) in self.retry_on

    def backoff_ceiling(self, retry_index: int) -> float:
        """Return ``min(max_delay, base * 2**retry_index)`` before jitter."""
        exponent = min(max(0, retry_index), _MAX_EXPONENT)
        return min(self.max_delay_s, self.base_delay_s * (2**exponent))

    def delay_for(self, retry_index: int) -> float:
        """Return the wait before retry number *retry_index* (zero-based)."""
        ceiling = self.backoff_ceiling(retry_index)
        if ceiling <= 0:
            return 0.0
        if not self.jitter:
            return ceiling
        # Full jitter: random in [0, ceiling] to avoid thundering herd.
        rng = self.rng or random
        return rng.uniform(0.0, ceiling)  # noqa: S311

    def __and__(self, other: RetryDecider) -> AllOf:
        return AllOf((self, other))


@dataclass(frozen=True)
class AllOf:
    """Logical AND of several retry deciders.

    Retries only when every member agrees; waits for the longest of the
    members' delays.
    """

    policies: tuple[RetryDecider, ...]

    def __post_init__(self) -> None:
        if not self.policies:
            raise ValueError("AllOf requires at least one policy")

    def should_retry(self, attempt: int, error: Any) -> bool:
        return all(p.should_retry(attempt, error) for p in self.policies)

    def delay_for(self, retry_index: int) -> float:
        return max(p.delay_for(retry_index) for p in self.policies)

    def __and__(self, other: RetryDecider) -> AllOf:
        return AllOf((*self.policies, other))


@dataclass
class RetryState:
    """Per-invocation retry bookkeeping; never shared between runs."""

    attempt: int = 0
    next_delay_s: float = 0.0


def _budget_exhausted(policy: RetryDecider, state: RetryState, start: float) -> bool:
    max_elapsed_s = getattr(policy, "max_elapsed_s", None)
    if max_elapsed_s is None:
        return False
    remaining = max_elapsed_s - (time.monotonic() - start)
    if remaining <= 0:
        return True
    state.next_delay_s = min(state.next_delay_s, remaining)
    return False


def with_retry[T, E](
    op: Operation[T, E],
    policy: RetryDecider,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    on_retry: Callable[[RetryState, E], None] | None = None,
) -> Operation[T, E]:
    """Wrap *op* so failures the policy deems retriable are re-run.

    Attempts are strictly sequential: attempt N+1 starts only after attempt
    N has produced its outcome and the backoff wait has elapsed. The final
    outcome is the first ``Ok`` or the last ``Err``.
    """

    async def _retrying() -> Result[T, E]:
        state = RetryState()
        start = time.monotonic()
        while True:
            outcome = await invoke(op)
            state.attempt += 1
            if isinstance(outcome, Ok):
                if state.attempt > 1:
                    logger.debug("Succeeded on attempt %d", state.attempt)
                return outcome

            error = outcome.error
            if not policy.should_retry(state.attempt, error):
                logger.debug(
                    "Giving up after %d attempt(s): %s", state.attempt, error
                )
                return outcome

            state.next_delay_s = policy.delay_for(state.attempt - 1)
            if _budget_exhausted(policy, state, start):
                logger.debug("Retry budget exhausted after %d attempt(s)", state.attempt)
                return outcome

            logger.debug(
                "Attempt %d failed (%s); retrying in %.3fs",
                state.attempt,
                error,
                state.next_delay_s,
            )
            if on_retry is not None:
                on_retry(state, error)
            if state.next_delay_s > 0:
                await sleep(state.next_delay_s)

    return _retrying
