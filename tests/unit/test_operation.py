from __future__ import annotations

import asyncio
import threading

import pytest

from steadfast.errors import InternalError, OperationError
from steadfast.operation import attempt, fail, invoke, succeed
from steadfast.result import Err, Ok
from steadfast.taxonomy import NotFound, Service, Transport, Validation

pytestmark = pytest.mark.unit


@pytest.mark.asyncio
async def test_succeed_and_fail_are_reinvocable() -> None:
    ok = succeed(5)
    err = fail(Transport("down"))

    assert await ok() == Ok(5)
    assert await ok() == Ok(5)
    assert await err() == Err(Transport("down"))


@pytest.mark.asyncio
async def test_attempt_is_lazy() -> None:
    calls = []
    op = attempt(lambda: calls.append(1) or "v")

    assert calls == []
    assert await op() == Ok("v")
    assert await op() == Ok("v")
    assert calls == [1, 1]


@pytest.mark.asyncio
async def test_attempt_awaits_coroutine_functions() -> None:
    async def fetch():
        await asyncio.sleep(0)
        return {"id": 1}

    assert await attempt(fetch)() == Ok({"id": 1})


@pytest.mark.asyncio
async def test_attempt_classifies_exceptions() -> None:
    async def missing():
        raise KeyError("user-3")

    def bad_input():
        raise ValueError("age must be positive")

    missing_result = await attempt(missing)()
    bad_result = await attempt(bad_input)()

    assert isinstance(missing_result.error, NotFound)
    assert missing_result.error.identifier == "user-3"
    assert isinstance(bad_result.error, Validation)


@pytest.mark.asyncio
async def test_attempt_in_thread_runs_off_the_loop() -> None:
    main = threading.get_ident()

    result = await attempt(threading.get_ident, in_thread=True)()

    assert isinstance(result, Ok)
    assert result.value != main


@pytest.mark.asyncio
async def test_attempt_unwraps_operation_error() -> None:
    def raises_unwrapped():
        return Err(Transport("inner")).unwrap()

    result = await attempt(raises_unwrapped)()

    assert result == Err(Transport("inner"))


@pytest.mark.asyncio
async def test_attempt_propagates_cancellation() -> None:
    async def hang():
        await asyncio.sleep(10)

    task = asyncio.create_task(attempt(hang)())
    await asyncio.sleep(0)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_invoke_converts_escaping_exceptions() -> None:
    async def raw():
        raise RuntimeError("unexpected")

    result = await invoke(raw)

    assert isinstance(result.error, Service)
    assert result.error.message == "RuntimeError: unexpected"


@pytest.mark.asyncio
async def test_invoke_rejects_non_result_return() -> None:
    async def returns_plain():
        return 42

    with pytest.raises(InternalError) as exc_info:
        await invoke(returns_plain)

    assert "int" in str(exc_info.value)
    assert exc_info.value.hint is not None


def test_operation_error_is_not_an_internal_error() -> None:
    assert not issubclass(OperationError, InternalError)
