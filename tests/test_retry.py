from __future__ import annotations

import asyncio

import pytest

from core.config import RetryPolicy
from core.errors import AuthExpiredError, RateLimitedError, RetriesExhaustedError, TransientNetworkError
from core.retry import call_with_retry


class FakeSleeper:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class Scripted:
    """Raise the scripted errors in order, then return 'ok'."""

    def __init__(self, *errors: Exception) -> None:
        self._errors = list(errors)
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self._errors:
            raise self._errors.pop(0)
        return "ok"


def _run(call: Scripted, policy: RetryPolicy, sleeper: FakeSleeper) -> str:
    return asyncio.run(
        call_with_retry("test call", call, policy, sleep=sleeper, jitter=lambda: 1.0)
    )


def test_transient_failures_back_off_exponentially() -> None:
    call = Scripted(TransientNetworkError("a"), TransientNetworkError("b"))
    sleeper = FakeSleeper()

    assert _run(call, RetryPolicy(max_attempts=5, base_delay=1.0, max_delay=30.0), sleeper) == "ok"
    assert call.calls == 3
    assert sleeper.delays == [1.0, 2.0]


def test_backoff_is_capped_by_max_delay() -> None:
    policy = RetryPolicy(max_attempts=10, base_delay=1.0, max_delay=3.0)
    assert [policy.backoff_ceiling(n) for n in range(1, 5)] == [1.0, 2.0, 3.0, 3.0]


def test_exhausted_transient_budget_raises() -> None:
    call = Scripted(*(TransientNetworkError(str(n)) for n in range(5)))
    sleeper = FakeSleeper()

    with pytest.raises(RetriesExhaustedError) as info:
        _run(call, RetryPolicy(max_attempts=3), sleeper)

    assert call.calls == 3
    assert isinstance(info.value.last_error, TransientNetworkError)
    assert len(sleeper.delays) == 2


def test_rate_limits_do_not_use_transient_budget() -> None:
    call = Scripted(RateLimitedError(7), RateLimitedError(7), TransientNetworkError("x"))
    sleeper = FakeSleeper()

    assert _run(call, RetryPolicy(max_attempts=2, base_delay=0.5), sleeper) == "ok"
    assert call.calls == 4
    assert sleeper.delays == [7.0, 7.0, 0.5]


def test_rate_limit_budget_and_ceiling() -> None:
    policy = RetryPolicy(max_rate_limit_retries=1, max_rate_limit_wait=60)

    with pytest.raises(RetriesExhaustedError):
        _run(Scripted(RateLimitedError(5), RateLimitedError(5)), policy, FakeSleeper())

    sleeper = FakeSleeper()
    with pytest.raises(RetriesExhaustedError):
        _run(Scripted(RateLimitedError(3600)), policy, sleeper)
    assert sleeper.delays == []


def test_auth_failure_is_not_retried() -> None:
    call = Scripted(AuthExpiredError("revoked"))
    sleeper = FakeSleeper()

    with pytest.raises(AuthExpiredError):
        _run(call, RetryPolicy(), sleeper)

    assert call.calls == 1
    assert sleeper.delays == []
