"""Bounded-concurrency execution of independent operations.

Operations are dispatched in input order. Each running operation holds one
``ConcurrencyTicket`` from a ``TicketPool``; dispatch waits for a free ticket,
so at most ``concurrency`` operations run at once. Results always come back
in input order, whatever the completion order.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import itertools
import logging
from typing import TYPE_CHECKING, Any

from steadfast.errors import InternalError
from steadfast.operation import invoke
from steadfast.result import Err, Ok

if TYPE_CHECKING:
    from collections.abc import Iterable

    from steadfast.operation import Operation
    from steadfast.result import Result

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ConcurrencyTicket:
    """Opaque permit held by one running operation."""

    serial: int
    released: bool = field(default=False, repr=False)


class TicketPool:
    """Fixed-size ticket pool.

    Acquire and release happen on the event loop thread only, so the
    semaphore plus the counters below change together, with no interleaving.
    Releasing the same ticket twice is a no-op.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"concurrency must be >= 1, got {capacity}")
        self.capacity = capacity
        self._sem = asyncio.Semaphore(capacity)
        self._serials = itertools.count(1)
        self.in_use = 0
        self.peak = 0

    async def acquire(self) -> ConcurrencyTicket:
        await self._sem.acquire()
        self.in_use += 1
        if self.in_use > self.capacity:
            raise InternalError(
                f"Ticket pool over capacity: {self.in_use} > {self.capacity}",
                hint="This is a Steadfast internal error. Please report it.",
            )
        self.peak = max(self.peak, self.in_use)
        return ConcurrencyTicket(next(self._serials))

    def release(self, ticket: ConcurrencyTicket) -> None:
        if ticket.released:
            return
        ticket.released = True
        self.in_use -= 1
        self._sem.release()


async def _dispatch(
    ops: list[Operation[Any, Any]],
    pool: TicketPool,
    *,
    fail_fast: bool,
) -> tuple[list[Result[Any, Any] | None], Err[Any] | None]:
    results: list[Result[Any, Any] | None] = [None] * len(ops)
    first_failure: Err[Any] | None = None
    tasks: list[asyncio.Task[None]] = []

    async def _run_one(idx: int, op: Operation[Any, Any]) -> None:
        nonlocal first_failure
        outcome = await invoke(op)
        results[idx] = outcome
        if isinstance(outcome, Err) and first_failure is None:
            first_failure = outcome

    try:
        for idx, op in enumerate(ops):
            ticket = await pool.acquire()
            if fail_fast and first_failure is not None:
                pool.release(ticket)
                logger.debug(
                    "Stopped dispatch after failure; %d of %d operation(s) not started",
                    len(ops) - idx,
                    len(ops),
                )
                break
            task = asyncio.create_task(_run_one(idx, op))
            # A done-callback runs even for tasks cancelled before their
            # first step, so no ticket can leak.
            task.add_done_callback(lambda _t, ticket=ticket: pool.release(ticket))
            tasks.append(task)
        await asyncio.gather(*tasks)
    finally:
        pending = [t for t in tasks if not t.done()]
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    return results, first_failure


async def run_all[T, E](
    ops: Iterable[Operation[T, E]],
    concurrency: int,
    *,
    pool: TicketPool | None = None,
) -> Result[list[T], E]:
    """Run *ops* with at most *concurrency* in flight; fail fast.

    On the first ``Err`` no further operations are dispatched; those already
    running finish (they are not cancelled) and that first error is returned.
    Completed successes are discarded in that case.
    A caller-supplied *pool* replaces the one built from *concurrency*.
    """
    op_list = list(ops)
    if pool is None:
        pool = TicketPool(concurrency)
    if not op_list:
        return Ok([])
    logger.debug("Running %d operation(s) fail-fast, concurrency=%d", len(op_list), pool.capacity)

    results, first_failure = await _dispatch(op_list, pool, fail_fast=True)
    if first_failure is not None:
        return first_failure

    values: list[T] = []
    for item in results:
        if not isinstance(item, Ok):
            raise InternalError(
                "run_all finished without a result for every operation",
                hint="This is a Steadfast internal error. Please report it.",
            )
        values.append(item.value)
    return Ok(values)


async def run_all_settled[T, E](
    ops: Iterable[Operation[T, E]],
    concurrency: int,
    *,
    pool: TicketPool | None = None,
) -> list[Result[T, E]]:
    """Run every operation in *ops* with at most *concurrency* in flight.

    Always waits for all of them and returns their results in input order.
    """
    op_list = list(ops)
    if pool is None:
        pool = TicketPool(concurrency)
    if not op_list:
        return []
    logger.debug("Running %d operation(s) settled, concurrency=%d", len(op_list), pool.capacity)

    results, _ = await _dispatch(op_list, pool, fail_fast=False)
    settled: list[Result[T, E]] = []
    for item in results:
        if item is None:
            raise InternalError(
                "run_all_settled finished without a result for every operation",
                hint="This is a Steadfast internal error. Please report it.",
            )
        settled.append(item)
    return settled
