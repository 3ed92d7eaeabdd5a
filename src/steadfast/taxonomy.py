"""Error taxonomy: the closed set of failure kinds and how raw failures map onto it.

Every failure that leaves a Steadfast combinator is one of six immutable
value objects. ``classify`` is the single place that understands
collaborator-specific error shapes (httpx, pydantic, stdlib); everything
else in the library is kind-agnostic.

Consumers match exhaustively::

    match error:
        case NotFound(identifier=ident):
            ...
        case Transport() | Timeout() | Decode() | Validation() | Service():
            ...
        case _:
            assert_never(error)
"""

from __future__ import annotations

import asyncio
from dataclasses import KW_ONLY, dataclass, field
import json
from typing import ClassVar, Literal

import httpx
import pydantic

from steadfast._http import (
    NOT_FOUND_STATUS_CODES,
    TIMEOUT_STATUS_CODES,
    VALIDATION_STATUS_CODES,
)
from steadfast.errors import OperationError, _walk_cause_chain

ErrorKind = Literal["Transport", "Timeout", "Decode", "NotFound", "Validation", "Service"]


@dataclass(frozen=True)
class _AppErrorBase:
    message: str
    _: KW_ONLY
    #: Original failure, kept for context. Excluded from equality.
    cause: BaseException | None = field(default=None, compare=False, repr=False)

    kind: ClassVar[ErrorKind]

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


@dataclass(frozen=True)
class Transport(_AppErrorBase):
    """Connection or protocol failure."""

    kind: ClassVar[ErrorKind] = "Transport"
    _: KW_ONLY
    status_code: int | None = None


@dataclass(frozen=True)
class Timeout(_AppErrorBase):
    """Deadline exceeded."""

    kind: ClassVar[ErrorKind] = "Timeout"
    message: str = "Request timed out"
    _: KW_ONLY
    #: Configured deadline for guard-produced timeouts; None when a
    #: collaborator reported the timeout without a duration.
    elapsed_s: float | None = None


@dataclass(frozen=True)
class Decode(_AppErrorBase):
    """Payload shape mismatch."""

    kind: ClassVar[ErrorKind] = "Decode"
    _: KW_ONLY
    location: str | None = None


@dataclass(frozen=True)
class NotFound(_AppErrorBase):
    """Entity absent."""

    kind: ClassVar[ErrorKind] = "NotFound"
    _: KW_ONLY
    identifier: str | int | None = None


@dataclass(frozen=True)
class Validation(_AppErrorBase):
    """Caller input malformed."""

    kind: ClassVar[ErrorKind] = "Validation"
    _: KW_ONLY
    field: str | None = None


@dataclass(frozen=True)
class Service(_AppErrorBase):
    """Catch-all internal fault."""

    kind: ClassVar[ErrorKind] = "Service"
    _: KW_ONLY
    status_code: int | None = None


type AppError = Transport | Timeout | Decode | NotFound | Validation | Service

APP_ERROR_TYPES: tuple[type[_AppErrorBase], ...] = (
    Transport,
    Timeout,
    Decode,
    NotFound,
    Validation,
    Service,
)

RETRIABLE_KINDS: frozenset[ErrorKind] = frozenset({"Transport", "Timeout", "Service"})


def is_app_error(value: object) -> bool:
    """Return True when *value* is one of the six taxonomy variants."""
    return isinstance(value, APP_ERROR_TYPES)


def from_status(
    status_code: int,
    message: str,
    *,
    identifier: str | int | None = None,
    cause: BaseException | None = None,
) -> AppError:
    """Map an HTTP status (>= 400) onto an error kind."""
    if status_code in NOT_FOUND_STATUS_CODES:
        return NotFound(message, identifier=identifier, cause=cause)
    if status_code in VALIDATION_STATUS_CODES:
        return Validation(message, cause=cause)
    if status_code in TIMEOUT_STATUS_CODES:
        return Timeout(message, cause=cause)
    return Service(message, status_code=status_code, cause=cause)


def extract_status_code(exc: BaseException) -> int | None:
    """Walk the explicit cause chain to find an HTTP status code."""
    for e in _walk_cause_chain(exc):
        for attr in ("status_code", "status"):
            value = getattr(e, attr, None)
            if isinstance(value, int) and 100 <= value <= 599:
                return value
        response = getattr(e, "response", None)
        value = getattr(response, "status_code", None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
    return None


def _pydantic_location(exc: pydantic.ValidationError) -> str | None:
    errors = exc.errors()
    if not errors:
        return None
    loc = errors[0].get("loc", ())
    return ".".join(str(p) for p in loc) or None


def _classify_one(exc: BaseException, *, message: str, cause: BaseException) -> AppError | None:
    if isinstance(exc, OperationError) and is_app_error(exc.error):
        return exc.error
    # httpx timeouts are transport errors too; check them first.
    if isinstance(exc, (TimeoutError, httpx.TimeoutException)):
        return Timeout(message, cause=cause)
    if isinstance(exc, httpx.HTTPStatusError):
        return from_status(
            exc.response.status_code,
            message,
            identifier=str(exc.request.url),
            cause=cause,
        )
    if isinstance(exc, httpx.DecodingError):
        return Decode(message, cause=cause)
    if isinstance(exc, (httpx.RequestError, ConnectionError)):
        return Transport(message, cause=cause)
    if isinstance(exc, pydantic.ValidationError):
        return Decode(message, location=_pydantic_location(exc), cause=cause)
    # JSONDecodeError and UnicodeDecodeError are ValueErrors; match them first.
    if isinstance(exc, (json.JSONDecodeError, UnicodeDecodeError)):
        return Decode(message, cause=cause)
    if isinstance(exc, KeyError):
        identifier = exc.args[0] if exc.args else None
        return NotFound(
            message,
            identifier=identifier if isinstance(identifier, (str, int)) else None,
            cause=cause,
        )
    if isinstance(exc, ValueError):
        return Validation(message, cause=cause)
    return None


def classify(failure: BaseException | AppError) -> AppError:
    """Map a raw failure onto exactly one error kind.

    Taxonomy values pass through unchanged. Exceptions are matched on
    themselves first, then along their explicit ``__cause__`` chain, then on
    any HTTP status code found along that chain. Implicit ``__context__`` is
    ignored, so a fault raised inside an ``except`` block keeps its own kind. Anything unrecognised
    becomes ``Service`` with the original message preserved.

    Cancellation is never classified: ``asyncio.CancelledError`` is re-raised.
    """
    if is_app_error(failure):
        return failure  # type: ignore[return-value]
    if isinstance(failure, asyncio.CancelledError):
        raise failure
    if not isinstance(failure, BaseException):
        return Service(f"Unrecognised failure: {failure!r}")

    message = str(failure) or type(failure).__name__
    for e in _walk_cause_chain(failure):
        mapped = _classify_one(e, message=message, cause=failure)
        if mapped is not None:
            return mapped

    status_code = extract_status_code(failure)
    if status_code is not None and status_code >= 400:
        return from_status(status_code, message, cause=failure)

    return Service(f"{type(failure).__name__}: {message}", cause=failure)
