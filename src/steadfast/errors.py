"""Exception hierarchy for Steadfast.

These are *raised* errors: misconfiguration, invariant violations, and the
escape hatch used when a caller unwraps a failed ``Result``. Domain failures
travel as values (see ``steadfast.taxonomy``).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator


class SteadfastError(Exception):
    """Base exception for all Steadfast errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(SteadfastError):
    """Configuration validation or resolution failed."""


class InternalError(SteadfastError):
    """A Steadfast internal error (bug) or invariant violation."""


class OperationError(SteadfastError):
    """A failed operation surfaced as an exception.

    Raised by ``Err.unwrap()``. ``classify`` recognises it and returns the
    carried error unchanged, so raising and re-capturing is lossless.
    """

    def __init__(self, error: Any, *, hint: str | None = None) -> None:
        message = getattr(error, "message", None)
        super().__init__(message if isinstance(message, str) else str(error), hint=hint)
        self.error = error


def _walk_cause_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its explicit ``__cause__`` chain, with cycle protection.

    Implicit ``__context__`` links are not followed: an exception raised while
    another was being handled is a new failure, not a wrapper around it.
    """
    seen: set[int] = set()
    cur: BaseException | None = exc
    while cur is not None and id(cur) not in seen:
        seen.add(id(cur))
        yield cur
        cur = cur.__cause__
