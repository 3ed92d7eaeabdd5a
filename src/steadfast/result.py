"""Result type for explicit error handling.

Every combinator returns one of two frozen variants. Failures are a
predictable part of the data flow, never a broad ``try/except`` at the
call site.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any, Literal, NoReturn

from steadfast.errors import OperationError

if TYPE_CHECKING:
    from collections.abc import Callable


@dataclasses.dataclass(frozen=True, slots=True)
class Ok[T]:
    """A successful outcome."""

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: Any) -> T:
        del default
        return self.value

    def map[U](self, fn: Callable[[T], U]) -> Ok[U]:
        return Ok(fn(self.value))

    def map_err(self, fn: Callable[[Any], Any]) -> Ok[T]:
        del fn
        return self


@dataclasses.dataclass(frozen=True, slots=True)
class Err[E]:
    """A failed outcome, carrying the error value."""

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> NoReturn:
        """Raise ``OperationError`` carrying this error."""
        raise OperationError(self.error)

    def unwrap_or[D](self, default: D) -> D:
        return default

    def map(self, fn: Callable[[Any], Any]) -> Err[E]:
        del fn
        return self

    def map_err[F](self, fn: Callable[[E], F]) -> Err[F]:
        return Err(fn(self.error))


type Result[T, E] = Ok[T] | Err[E]


def is_result(value: object) -> bool:
    """Return True when *value* is an ``Ok`` or ``Err``."""
    return isinstance(value, (Ok, Err))
