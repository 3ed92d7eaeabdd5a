"""Operations: re-invocable deferred computations that yield a ``Result``.

An ``Operation`` is a zero-argument callable returning an awaitable
``Result``. Nothing runs until it is called, and it can be called again,
which is what retry relies on.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import inspect
from typing import Any

from steadfast.errors import InternalError
from steadfast.result import Err, Ok, Result, is_result
from steadfast.taxonomy import AppError, classify

type Operation[T, E] = Callable[[], Awaitable[Result[T, E]]]


def succeed[T](value: T) -> Operation[T, Any]:
    """Return an operation that always yields ``Ok(value)``."""

    async def _succeed() -> Result[T, Any]:
        return Ok(value)

    return _succeed


def fail[E](error: E) -> Operation[Any, E]:
    """Return an operation that always yields ``Err(error)``."""

    async def _fail() -> Result[Any, E]:
        return Err(error)

    return _fail


def attempt[T](
    fn: Callable[[], T | Awaitable[T]], *, in_thread: bool = False
) -> Operation[T, AppError]:
    """Adapt a plain callable that raises on failure into an operation.

    Coroutine functions and sync callables are both accepted. With
    ``in_thread=True`` a blocking sync callable runs in a worker thread so the
    event loop stays responsive; cancellation then stops waiting for the
    thread but cannot interrupt it.
    """

    async def _attempt() -> Result[T, AppError]:
        try:
            if in_thread:
                value = await asyncio.to_thread(fn)
            else:
                value = fn()
            if inspect.isawaitable(value):
                value = await value
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            return Err(classify(exc))
        return Ok(value)  # type: ignore[arg-type]

    return _attempt


async def invoke[T](op: Operation[T, Any]) -> Result[T, Any]:
    """Run *op* once, converting any escaping exception into ``Err``.

    ``CancelledError`` always propagates. An operation that returns something
    other than ``Ok``/``Err`` is a bug and raises ``InternalError``.
    """
    try:
        outcome = await op()
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        return Err(classify(exc))

    if not is_result(outcome):
        raise InternalError(
            f"Operation returned {type(outcome).__name__}, expected Ok or Err",
            hint="Wrap plain callables with steadfast.attempt().",
        )
    return outcome
