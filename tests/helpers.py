"""Test doubles shared across the suite."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from steadfast.result import Err, Ok, Result


@dataclass
class ScriptedOperation:
    """Operation that fails with each scripted error in turn, then succeeds.

    Counts invocations so retry bounds can be asserted exactly.
    """

    errors: list[Any] = field(default_factory=list)
    value: Any = "ok"
    delay_s: float = 0.0
    calls: int = 0

    async def __call__(self) -> Result[Any, Any]:
        self.calls += 1
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.calls <= len(self.errors):
            return Err(self.errors[self.calls - 1])
        return Ok(self.value)


@dataclass
class AlwaysFailing:
    """Operation that returns the same error on every call."""

    error: Any
    calls: int = 0

    async def __call__(self) -> Result[Any, Any]:
        self.calls += 1
        return Err(self.error)


@dataclass
class RecordingSleep:
    """Drop-in for ``asyncio.sleep`` that records requested delays."""

    delays: list[float] = field(default_factory=list)

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@dataclass
class ConcurrencyGauge:
    """Instrumented counter of simultaneously running operations."""

    current: int = 0
    peak: int = 0
    finished: list[int] = field(default_factory=list)

    def operation(self, idx: int, *, delay_s: float, error: Any = None):
        async def _op() -> Result[Any, Any]:
            self.current += 1
            self.peak = max(self.peak, self.current)
            try:
                await asyncio.sleep(delay_s)
            finally:
                self.current -= 1
            self.finished.append(idx)
            if error is not None:
                return Err(error)
            return Ok(idx)

        return _op
