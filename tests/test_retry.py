"""Retry policy and predicate tests."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from agentwire.errors import (
    CancelledError,
    DecodeError,
    InvalidOptionError,
    ProviderError,
    ProviderUnreachableError,
    RateLimitError,
    RetryExhaustedError,
)
from agentwire.retry import RetryPolicy, is_retryable, mark_non_retryable, retry_async

pytestmark = pytest.mark.unit

NO_WAIT = RetryPolicy(max_attempts=3, initial_delay_s=0.0)


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"max_attempts": 0}, "max_attempts"),
        ({"initial_delay_s": -1}, "initial_delay_s"),
        ({"backoff_multiplier": 0}, "backoff_multiplier"),
        ({"max_delay_s": -0.5}, "max_delay_s"),
    ],
)
def test_policy_validates_fields(kwargs: dict, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        RetryPolicy(**kwargs)


def test_delay_grows_exponentially_and_caps() -> None:
    policy = RetryPolicy(initial_delay_s=1.0, backoff_multiplier=2.0, max_delay_s=5.0)
    assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]


def test_jittered_delay_stays_within_base() -> None:
    policy = RetryPolicy(initial_delay_s=2.0, jitter=True)
    for _ in range(50):
        assert 0.0 <= policy.delay_for(1) <= 2.0


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (ProviderError("503", status_code=503), True),
        (ProviderError("500", status_code=500), True),
        (ProviderError("400", status_code=400), False),
        (ProviderError("404", status_code=404), False),
        (ProviderError("408", status_code=408), True),
        (RateLimitError("429", status_code=429), True),
        (ProviderError("explicit", status_code=503, retryable=False), False),
        (ProviderUnreachableError("down"), True),
        (ProviderUnreachableError("bad dns", retryable=False), False),
        (httpx.ConnectError("refused"), True),
        (InvalidOptionError("bad"), False),
        (DecodeError("garbled"), False),
        (RetryExhaustedError("gave up", attempts=3, last=RuntimeError("x")), False),
        (CancelledError("deadline"), False),
        (asyncio.CancelledError(), False),
        (RuntimeError("caller failure"), True),
    ],
)
def test_is_retryable(exc: BaseException, expected: bool) -> None:
    assert is_retryable(exc) is expected


def test_mark_non_retryable_short_circuits() -> None:
    exc = mark_non_retryable(ProviderError("503", status_code=503))
    assert is_retryable(exc) is False


@pytest.mark.asyncio
async def test_retry_async_succeeds_after_transient_failures() -> None:
    calls: list[int] = []

    async def attempt(n: int) -> str:
        calls.append(n)
        if n < 3:
            raise ProviderError("busy", status_code=503)
        return "ok"

    assert await retry_async(attempt, policy=NO_WAIT) == "ok"
    assert calls == [1, 2, 3]


@pytest.mark.asyncio
async def test_retry_async_reraises_non_retryable_unchanged() -> None:
    err = ProviderError("bad request", status_code=400)
    calls = 0

    async def attempt(n: int) -> None:
        nonlocal calls
        calls += 1
        raise err

    with pytest.raises(ProviderError) as exc:
        await retry_async(attempt, policy=NO_WAIT)
    assert exc.value is err
    assert calls == 1


@pytest.mark.asyncio
async def test_retry_async_exhaustion_keeps_last_error() -> None:
    async def attempt(n: int) -> None:
        raise ProviderError(f"attempt {n}", status_code=502)

    with pytest.raises(RetryExhaustedError) as exc:
        await retry_async(attempt, policy=NO_WAIT)
    assert exc.value.attempts == 3
    assert isinstance(exc.value.last, ProviderError)
    assert str(exc.value.last) == "attempt 3"
    assert exc.value.__cause__ is exc.value.last


@pytest.mark.asyncio
async def test_retry_after_extends_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    slept: list[float] = []

    async def fake_sleep(delay: float) -> None:
        slept.append(delay)

    monkeypatch.setattr("agentwire.retry.asyncio.sleep", fake_sleep)

    async def attempt(n: int) -> str:
        if n == 1:
            raise RateLimitError("slow down", status_code=429, retry_after_s=7.0)
        return "ok"

    policy = RetryPolicy(max_attempts=2, initial_delay_s=1.0)
    assert await retry_async(attempt, policy=policy) == "ok"
    assert slept == [7.0]


@pytest.mark.asyncio
async def test_custom_predicate_overrides_default() -> None:
    calls = 0

    async def attempt(n: int) -> str:
        nonlocal calls
        calls += 1
        if n == 1:
            raise DecodeError("model replied with prose")
        return "{}"

    result = await retry_async(
        attempt, policy=NO_WAIT, should_retry=lambda e: isinstance(e, DecodeError)
    )
    assert result == "{}"
    assert calls == 2
