"""Render a ``Result`` as a plain success/error envelope for callers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypedDict, assert_never

from steadfast.result import Err, Ok
from steadfast.taxonomy import (
    Decode,
    NotFound,
    Service,
    Timeout,
    Transport,
    Validation,
)

if TYPE_CHECKING:
    from steadfast.result import Result
    from steadfast.taxonomy import AppError


class ErrorInfo(TypedDict):
    """Error half of an envelope: enough to render a specific message."""

    type: str
    message: str


class ResultEnvelope(TypedDict, total=False):
    """``{"success": True, "data": ...}`` or ``{"success": False, "error": ...}``."""

    success: bool
    data: Any
    error: ErrorInfo


def to_envelope(result: Result[Any, AppError]) -> ResultEnvelope:
    match result:
        case Ok(value=value):
            return ResultEnvelope(success=True, data=value)
        case Err(error=error):
            return ResultEnvelope(
                success=False,
                error=ErrorInfo(type=error.kind, message=error.message),
            )
        case _:
            assert_never(result)


def http_status_for(error: AppError) -> int:
    """HTTP status a web layer should use for *error*."""
    match error:
        case NotFound():
            return 404
        case Validation():
            return 400
        case Timeout():
            return 504
        case Transport() | Decode():
            return 502
        case Service():
            return 500
        case _:
            assert_never(error)
