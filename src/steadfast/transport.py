"""HTTP transport collaborator.

``TransportClient.send`` returns a ``Result`` rather than raising, so it plugs
straight into the combinators. ``HttpxTransport`` is the stock
implementation over ``httpx.AsyncClient``; tests and callers can swap in
anything with the same ``send`` shape.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import json
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx

from steadfast.result import Err, Ok
from steadfast.taxonomy import classify, from_status

if TYPE_CHECKING:
    from collections.abc import Mapping

    from steadfast.result import Result
    from steadfast.taxonomy import AppError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Request:
    """An outgoing request: method, url, headers."""

    url: str
    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RawResponse:
    """Transport-level response before decoding."""

    status_code: int
    url: str
    content: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)

    def json(self) -> Any:
        return json.loads(self.content)


@runtime_checkable
class TransportClient(Protocol):
    """Anything that can send a ``Request``."""

    async def send(self, request: Request) -> Result[RawResponse, AppError]: ...  # noqa: D102


class HttpxTransport:
    """``TransportClient`` over ``httpx.AsyncClient``.

    Responses with status >= 400 become errors via the taxonomy's status
    mapping; httpx exceptions are classified. The client is owned (and
    closed by ``aclose``) only when this transport created it.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        default_headers: Mapping[str, str] | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()
        self._default_headers = dict(default_headers or {})

    async def send(self, request: Request) -> Result[RawResponse, AppError]:
        headers = {**self._default_headers, **request.headers}
        try:
            response = await self._client.request(
                request.method, request.url, headers=headers
            )
        except asyncio.CancelledError:
            raise
        except httpx.HTTPError as exc:
            logger.debug("%s %s failed: %s", request.method, request.url, exc)
            return Err(classify(exc))

        raw = RawResponse(
            status_code=response.status_code,
            url=str(response.url),
            content=response.content,
            headers=dict(response.headers),
        )
        if response.status_code >= 400:
            return Err(
                from_status(
                    response.status_code,
                    f"HTTP error: {request.method} {request.url} returned {response.status_code}",
                    identifier=request.url,
                )
            )
        return Ok(raw)

    async def aclose(self) -> None:
        if not self._owns_client:
            return
        try:
            await self._client.aclose()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # Cleanup should never mask the primary failure.
            logger.warning("Transport cleanup failed: %s", exc)

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
