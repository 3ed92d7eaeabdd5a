"""Steadfast: resilient execution of fallible async operations.

Public API:
    - run(): Run one operation under a retry/timeout/fallback policy
    - run_all(): Run many operations with bounded concurrency
    - with_retry / with_timeout / with_fallback / with_resource: Combinators
    - Ok / Err: The Result variants every operation yields
    - Transport / Timeout / Decode / NotFound / Validation / Service: Error kinds
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from steadfast.concurrency import ConcurrencyTicket, TicketPool, run_all_settled
from steadfast.config import Config
from steadfast.envelope import ResultEnvelope, http_status_for, to_envelope
from steadfast.errors import (
    ConfigurationError,
    InternalError,
    OperationError,
    SteadfastError,
)
from steadfast.fallback import with_fallback
from steadfast.operation import Operation, attempt, fail, invoke, succeed
from steadfast.result import Err, Ok, Result
from steadfast.retry import AllOf, RetryPolicy, RetryState, with_retry
from steadfast.runner import OperationRunner, RunPolicy, compose
from steadfast.scope import ResourceHandle, use_resource, with_resource
from steadfast.taxonomy import (
    AppError,
    Decode,
    NotFound,
    Service,
    Timeout,
    Transport,
    Validation,
    classify,
)
from steadfast.timeout import with_timeout

if TYPE_CHECKING:
    from collections.abc import Iterable

    from steadfast.config import RunMode

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("steadfast")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("steadfast").addHandler(logging.NullHandler())


async def run[T](
    op: Operation[T, AppError],
    policy: RunPolicy | None = None,
    *,
    config: Config | None = None,
) -> Result[T, AppError]:
    """Run a single operation and return its final Result.

    Args:
        op: The operation to run.
        policy: Combinators to apply; defaults to the config's retry and timeout.
        config: Execution defaults; ``Config()`` when omitted.

    Example:
        result = await run(attempt(lambda: client.get(url)))
        match result:
            case Ok(value=response): ...
            case Err(error=error): print(error.kind, error.message)
    """
    return await OperationRunner(config).run(op, policy)


async def run_all[T](
    ops: Iterable[Operation[T, AppError]],
    concurrency: int | None = None,
    mode: RunMode | None = None,
    *,
    policy: RunPolicy | None = None,
    config: Config | None = None,
) -> Result[list[T], AppError] | list[Result[T, AppError]]:
    """Run operations with at most *concurrency* in flight.

    ``mode="fail_fast"`` (default) returns ``Ok([...])`` or the first error;
    ``mode="settled"`` returns every Result in input order.

    Every operation is wrapped in *policy*, or in the config's retry and
    timeout when *policy* is omitted (3 jittered attempts and a 10s deadline
    for ``Config()``). Pass ``policy=RunPolicy()`` for single attempts.
    """
    return await OperationRunner(config).run_all(
        ops, concurrency=concurrency, mode=mode, policy=policy
    )


__all__ = [
    "AllOf",
    "AppError",
    "ConcurrencyTicket",
    "Config",
    "ConfigurationError",
    "Decode",
    "Err",
    "InternalError",
    "NotFound",
    "Ok",
    "Operation",
    "OperationError",
    "OperationRunner",
    "ResourceHandle",
    "Result",
    "ResultEnvelope",
    "RetryPolicy",
    "RetryState",
    "RunPolicy",
    "Service",
    "SteadfastError",
    "TicketPool",
    "Timeout",
    "Transport",
    "Validation",
    "attempt",
    "classify",
    "compose",
    "fail",
    "http_status_for",
    "invoke",
    "run",
    "run_all",
    "run_all_settled",
    "succeed",
    "to_envelope",
    "use_resource",
    "with_fallback",
    "with_resource",
    "with_retry",
    "with_timeout",
]
