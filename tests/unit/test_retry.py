from __future__ import annotations

import asyncio
import random
import time

from hypothesis import given, settings
from hypothesis import strategies as st
import pytest

from steadfast.result import Err, Ok
from steadfast.retry import AllOf, RetryPolicy, RetryState, with_retry
from steadfast.runner import OperationRunner, RunPolicy
from steadfast.taxonomy import (
    Decode,
    NotFound,
    Service,
    Timeout,
    Transport,
    Validation,
)
from tests.helpers import AlwaysFailing, RecordingSleep, ScriptedOperation

pytestmark = pytest.mark.unit


# =============================================================================
# Policy: validation and decisions
# =============================================================================


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": -1},
        {"base_delay_s": -0.1},
        {"max_delay_s": -1.0},
        {"max_elapsed_s": -5.0},
    ],
)
def test_policy_rejects_invalid_values(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


def test_default_policy() -> None:
    policy = RetryPolicy()
    assert policy.max_attempts == 3
    assert policy.jitter is True


def test_retry_on_accepts_any_iterable() -> None:
    policy = RetryPolicy(retry_on={"Transport"})  # type: ignore[arg-type]
    assert policy.retry_on == frozenset({"Transport"})


@pytest.mark.parametrize("error", [Transport("x"), Timeout(), Service("x")])
def test_retriable_kinds(error) -> None:
    assert RetryPolicy().should_retry(1, error)


@pytest.mark.parametrize(
    "error", [Validation("x"), NotFound("x"), Decode("x"), "not-a-taxonomy-error"]
)
def test_non_retriable_errors(error) -> None:
    assert not RetryPolicy().should_retry(1, error)


def test_should_retry_stops_at_max_attempts() -> None:
    policy = RetryPolicy(max_attempts=3)
    assert policy.should_retry(2, Transport("x"))
    assert not policy.should_retry(3, Transport("x"))
    assert not policy.should_retry(4, Transport("x"))


def test_delay_is_exponential_and_capped_without_jitter() -> None:
    policy = RetryPolicy(base_delay_s=0.1, max_delay_s=0.5, jitter=False)
    assert [policy.delay_for(i) for i in range(5)] == pytest.approx(
        [0.1, 0.2, 0.4, 0.5, 0.5]
    )


def test_huge_retry_index_does_not_overflow() -> None:
    policy = RetryPolicy(base_delay_s=0.1, max_delay_s=3.0, jitter=False)
    assert policy.delay_for(10_000) == 3.0


def test_zero_base_delay_never_waits() -> None:
    assert RetryPolicy(base_delay_s=0.0).delay_for(3) == 0.0


@given(
    retry_index=st.integers(min_value=0, max_value=200),
    base=st.floats(min_value=0.0, max_value=10.0, allow_nan=False),
    cap=st.floats(min_value=0.0, max_value=60.0, allow_nan=False),
    seed=st.integers(min_value=0, max_value=2**32 - 1),
)
@settings(max_examples=200, deadline=None, derandomize=True)
def test_jittered_delay_stays_within_bounds(
    retry_index: int, base: float, cap: float, seed: int
) -> None:
    policy = RetryPolicy(
        base_delay_s=base, max_delay_s=cap, jitter=True, rng=random.Random(seed)
    )
    delay = policy.delay_for(retry_index)
    assert 0.0 <= delay <= min(cap, base * 2 ** min(retry_index, 62))


def test_all_of_is_logical_and() -> None:
    kinds_only = RetryPolicy(max_attempts=10, retry_on=frozenset({"Transport"}))
    capped = RetryPolicy(max_attempts=2)
    combined = kinds_only & capped

    assert isinstance(combined, AllOf)
    assert combined.should_retry(1, Transport("x"))
    assert not combined.should_retry(2, Transport("x"))  # cap says no
    assert not combined.should_retry(1, Service("x"))  # kinds say no


def test_all_of_waits_for_the_longest_delay() -> None:
    short = RetryPolicy(base_delay_s=0.1, jitter=False)
    long = RetryPolicy(base_delay_s=0.3, jitter=False)
    assert (short & long).delay_for(0) == pytest.approx(0.3)


def test_all_of_chains_and_requires_members() -> None:
    p = RetryPolicy()
    assert len((p & p & p).policies) == 3
    with pytest.raises(ValueError):
        AllOf(())


# =============================================================================
# with_retry
# =============================================================================


@pytest.mark.asyncio
@pytest.mark.parametrize("max_attempts", [1, 2, 3, 5])
async def test_always_failing_operation_runs_exactly_max_attempts(
    max_attempts: int,
) -> None:
    op = AlwaysFailing(Transport("down"))
    sleep = RecordingSleep()

    result = await with_retry(op, RetryPolicy(max_attempts=max_attempts), sleep=sleep)()

    assert result == Err(Transport("down"))
    assert op.calls == max_attempts
    assert len(sleep.delays) == max_attempts - 1


@pytest.mark.asyncio
async def test_zero_max_attempts_runs_once() -> None:
    op = AlwaysFailing(Transport("down"))
    result = await with_retry(op, RetryPolicy(max_attempts=0), sleep=RecordingSleep())()
    assert isinstance(result, Err)
    assert op.calls == 1


@pytest.mark.asyncio
async def test_non_retriable_error_is_returned_immediately() -> None:
    op = AlwaysFailing(NotFound("gone", identifier=1))
    sleep = RecordingSleep()

    result = await with_retry(op, RetryPolicy(max_attempts=5), sleep=sleep)()

    assert result == Err(NotFound("gone", identifier=1))
    assert op.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_success_after_failures_uses_backoff_sequence() -> None:
    op = ScriptedOperation(errors=[Transport("a"), Transport("b")], value=42)
    sleep = RecordingSleep()
    policy = RetryPolicy(max_attempts=3, base_delay_s=0.1, jitter=False)

    result = await with_retry(op, policy, sleep=sleep)()

    assert result == Ok(42)
    assert op.calls == 3
    assert sleep.delays == pytest.approx([0.1, 0.2])


@pytest.mark.asyncio
async def test_last_error_is_returned_after_exhaustion() -> None:
    op = ScriptedOperation(errors=[Transport("first"), Service("second")])
    result = await with_retry(op, RetryPolicy(max_attempts=2), sleep=RecordingSleep())()
    assert result == Err(Service("second"))


@pytest.mark.asyncio
async def test_raising_operation_is_classified_and_retried() -> None:
    calls = 0

    async def flaky():
        nonlocal calls
        calls += 1
        if calls == 1:
            raise ConnectionResetError("reset by peer")
        return Ok("fine")

    result = await with_retry(flaky, RetryPolicy(), sleep=RecordingSleep())()

    assert result == Ok("fine")
    assert calls == 2



@pytest.mark.asyncio
async def test_fault_raised_while_handling_lookup_miss_is_retried() -> None:
    calls = 0
    cache: dict[str, str] = {}

    async def lookup():
        nonlocal calls
        calls += 1
        try:
            return Ok(cache["post-1"])
        except KeyError:
            raise RuntimeError("pool exhausted")

    result = await with_retry(lookup, RetryPolicy(max_attempts=3), sleep=RecordingSleep())()

    assert isinstance(result, Err)
    assert isinstance(result.error, Service)
    assert calls == 3


@pytest.mark.asyncio
async def test_on_retry_observes_monotonic_attempts() -> None:
    seen: list[tuple[int, float]] = []

    def observe(state: RetryState, error) -> None:
        seen.append((state.attempt, state.next_delay_s))

    op = AlwaysFailing(Timeout())
    policy = RetryPolicy(max_attempts=4, base_delay_s=0.01, jitter=False)
    await with_retry(op, policy, sleep=RecordingSleep(), on_retry=observe)()

    assert [a for a, _ in seen] == [1, 2, 3]
    assert [d for _, d in seen] == pytest.approx([0.01, 0.02, 0.04])


@pytest.mark.asyncio
async def test_each_run_starts_a_fresh_retry_loop() -> None:
    op = AlwaysFailing(Transport("down"))
    guarded = with_retry(op, RetryPolicy(max_attempts=2), sleep=RecordingSleep())

    await guarded()
    await guarded()

    assert op.calls == 4


@pytest.mark.asyncio
async def test_max_elapsed_budget_stops_retrying() -> None:
    op = AlwaysFailing(Transport("down"))
    policy = RetryPolicy(
        max_attempts=100, base_delay_s=0.05, jitter=False, max_elapsed_s=0.12
    )

    start = time.monotonic()
    result = await with_retry(op, policy)()
    elapsed = time.monotonic() - start

    assert isinstance(result, Err)
    assert op.calls < 100
    assert elapsed < 0.5


@pytest.mark.asyncio
async def test_cancelling_run_during_backoff_ends_immediately() -> None:
    op = AlwaysFailing(Transport("down"))
    policy = RetryPolicy(max_attempts=5, base_delay_s=30.0, max_delay_s=30.0, jitter=False)
    runner = OperationRunner(policy=RunPolicy(retry=policy))

    task = asyncio.create_task(runner.run(op))
    await asyncio.sleep(0.05)
    start = time.monotonic()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    elapsed = time.monotonic() - start

    assert task.cancelled()
    assert op.calls == 1
    assert elapsed < 0.5


@pytest.mark.asyncio
async def test_scenario_two_transport_failures_then_success_timing() -> None:
    op = ScriptedOperation(errors=[Transport("a"), Transport("b")], value="value")
    policy = RetryPolicy(max_attempts=3, base_delay_s=0.1, jitter=False)

    start = time.monotonic()
    result = await with_retry(op, policy)()
    elapsed = time.monotonic() - start

    assert result == Ok("value")
    # 100ms + 200ms of backoff, within scheduling tolerance.
    assert 0.29 <= elapsed < 0.6
