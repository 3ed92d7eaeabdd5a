"""Operation runner: the composition root for resilience policies.

Each combinator takes and returns an ``Operation``, so composition order is
up to the caller. ``compose`` applies a ``RunPolicy`` in one fixed, documented
order::

    fallback( overall_timeout( retry( attempt_timeout( op ) ) ) )

so a per-attempt deadline is retried as a whole window, and the overall
deadline bounds every attempt plus every backoff wait.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from steadfast.concurrency import run_all, run_all_settled
from steadfast.config import Config
from steadfast.errors import ConfigurationError
from steadfast.fallback import with_fallback
from steadfast.operation import invoke
from steadfast.retry import with_retry
from steadfast.timeout import with_timeout

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from steadfast.concurrency import TicketPool
    from steadfast.config import RunMode
    from steadfast.operation import Operation
    from steadfast.result import Result
    from steadfast.retry import RetryDecider
    from steadfast.taxonomy import AppError


class _NoFallback:
    def __repr__(self) -> str:
        return "<no fallback>"


_NO_FALLBACK: Any = _NoFallback()


@dataclass(frozen=True)
class RunPolicy:
    """Which combinators wrap an operation, and with what settings.

    Every field is optional; an empty policy runs the operation once.
    """

    retry: RetryDecider | None = None
    timeout_s: float | None = None
    attempt_timeout_s: float | None = None
    #: Operation (any callable) or constant used when everything else failed.
    #: ``None`` is a valid constant; leave unset for no fallback.
    fallback: Any = _NO_FALLBACK
    on_fallback: Callable[[AppError], None] | None = None

    @property
    def has_fallback(self) -> bool:
        return self.fallback is not _NO_FALLBACK

    @classmethod
    def from_config(cls, config: Config) -> RunPolicy:
        return cls(
            retry=config.retry,
            timeout_s=config.request_timeout_s,
            attempt_timeout_s=config.attempt_timeout_s,
        )


def compose[T](op: Operation[T, AppError], policy: RunPolicy) -> Operation[T, AppError]:
    """Wrap *op* with the combinators *policy* asks for."""
    if policy.attempt_timeout_s is not None:
        op = with_timeout(op, policy.attempt_timeout_s)
    if policy.retry is not None:
        op = with_retry(op, policy.retry)
    if policy.timeout_s is not None:
        op = with_timeout(op, policy.timeout_s)
    if policy.has_fallback:
        op = with_fallback(op, policy.fallback, on_error=policy.on_fallback)
    return op


class OperationRunner:
    """Run operations under a default ``RunPolicy`` derived from ``Config``.

    Stateless between calls: each ``run`` starts a fresh retry loop.
    """

    def __init__(self, config: Config | None = None, *, policy: RunPolicy | None = None) -> None:
        self.config = config or Config()
        self.policy = policy or RunPolicy.from_config(self.config)

    async def run[T](
        self, op: Operation[T, AppError], policy: RunPolicy | None = None
    ) -> Result[T, AppError]:
        """Run one operation and return its final ``Result``.

        Never raises for operation failures; only cancellation and internal
        invariant violations propagate.
        """
        return await invoke(compose(op, policy or self.policy))

    async def run_all[T](
        self,
        ops: Iterable[Operation[T, AppError]],
        *,
        concurrency: int | None = None,
        mode: RunMode | None = None,
        policy: RunPolicy | None = None,
        pool: TicketPool | None = None,
    ) -> Result[list[T], AppError] | list[Result[T, AppError]]:
        """Run several operations, each under *policy*, with bounded concurrency.

        ``mode="fail_fast"`` returns ``Ok([...])`` or the first ``Err``;
        ``mode="settled"`` returns every ``Result`` in input order.

        Without *policy* each operation runs under the runner's default
        policy, which for a plain ``Config()`` means 3 jittered attempts inside
        a 10s deadline. A fail-fast error therefore arrives only after its
        retries are spent. Pass ``policy=RunPolicy()`` to run each operation
        exactly once.
        """
        effective = policy or self.policy
        limit = concurrency if concurrency is not None else self.config.concurrency
        chosen = mode or self.config.mode
        composed = [compose(op, effective) for op in ops]

        if chosen == "fail_fast":
            return await run_all(composed, limit, pool=pool)
        if chosen == "settled":
            return await run_all_settled(composed, limit, pool=pool)
        raise ConfigurationError(
            f"Unknown mode: {chosen!r}",
            hint="Supported modes: 'fail_fast', 'settled'",
        )
