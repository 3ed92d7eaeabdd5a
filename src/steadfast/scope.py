"""Scoped resource acquisition: acquire, use, and always release.

``release`` runs exactly once on every exit path of ``body``: success,
failure, an exception, and cancellation coming from an outer timeout guard.
Release failures are logged and never replace the body's outcome.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import inspect
import logging
from typing import TYPE_CHECKING, Any

from steadfast.operation import invoke
from steadfast.result import Err

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from steadfast.operation import Operation
    from steadfast.result import Result

logger = logging.getLogger(__name__)

type Release[R] = Callable[[R], Awaitable[Any] | None]


@dataclass(eq=False)
class ResourceHandle[R]:
    """An acquired resource, owned by one scope until released."""

    value: R
    released: bool = False


async def _release[R](handle: ResourceHandle[R], release: Release[R]) -> None:
    if handle.released:
        return
    handle.released = True
    try:
        pending = release(handle.value)
        if inspect.isawaitable(pending):
            await pending
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        # Cleanup should never mask the primary outcome.
        logger.warning("Resource release failed: %s", exc)


async def use_resource[R, T](
    acquire: Operation[R, Any],
    body: Callable[[R], Awaitable[Result[T, Any]]],
    release: Release[R],
) -> Result[T, Any]:
    """Acquire a resource, run *body* with it, then release it.

    If *acquire* fails, neither *body* nor *release* runs and the failure is
    returned as-is. Exceptions raised by *body* are classified into ``Err``;
    cancellation propagates after release has run.
    """
    acquired = await invoke(acquire)
    if isinstance(acquired, Err):
        return acquired

    handle = ResourceHandle(acquired.value)
    try:
        return await invoke(lambda: body(handle.value))
    finally:
        await _release(handle, release)


def with_resource[R, T](
    acquire: Operation[R, Any],
    body: Callable[[R], Awaitable[Result[T, Any]]],
    release: Release[R],
) -> Operation[T, Any]:
    """Return ``use_resource`` as an operation, so a whole scope can be retried or guarded."""

    async def _scoped() -> Result[T, Any]:
        return await use_resource(acquire, body, release)

    return _scoped
