"""Decode collaborator: validate raw payloads against a schema."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import pydantic

from steadfast.result import Err, Ok, Result
from steadfast.taxonomy import Decode, classify


@lru_cache(maxsize=128)
def _adapter(schema: Any) -> pydantic.TypeAdapter[Any]:
    return pydantic.TypeAdapter(schema)


def decode[T](schema: type[T] | Any, payload: Any) -> Result[T, Decode]:
    """Validate *payload* against *schema*.

    *schema* is anything pydantic's ``TypeAdapter`` accepts (a ``BaseModel``,
    ``list[Post]``, a dataclass). ``bytes``/``str`` payloads are parsed as JSON
    first. Every failure is a ``Decode`` error.
    """
    try:
        adapter = _adapter(schema)
        if isinstance(payload, (bytes, bytearray, str)):
            return Ok(adapter.validate_json(payload))
        return Ok(adapter.validate_python(payload))
    except (pydantic.ValidationError, ValueError) as exc:
        error = classify(exc)
        if isinstance(error, Decode):
            return Err(error)
        return Err(Decode(f"Failed to decode response: {exc}", cause=exc))
    except TypeError as exc:
        return Err(Decode(f"Unsupported schema {schema!r}: {exc}", cause=exc))
