"""Retry loop shared by page fetching and handle lookups."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from core.config import RetryPolicy
from core.errors import RateLimitedError, RetriesExhaustedError, TransientNetworkError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[None]]


async def call_with_retry(
    operation: str,
    call: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Sleeper = asyncio.sleep,
    jitter: Callable[[], float] = random.random,
    on_retry: Optional[Callable[[BaseException], None]] = None,
) -> T:
    """Run `call` until it succeeds or the policy gives up.

    Transient failures back off exponentially with full jitter and count
    against max_attempts. Rate-limit signals sleep for the provider delay
    and have their own budget. Anything else (AuthExpiredError included)
    propagates untouched.
    """

    failures = 0
    waits = 0
    while True:
        try:
            return await call()
        except RateLimitedError as exc:
            waits += 1
            too_long = policy.max_rate_limit_wait is not None and exc.seconds > policy.max_rate_limit_wait
            too_many = policy.max_rate_limit_retries is not None and waits > policy.max_rate_limit_retries
            if too_long or too_many:
                raise RetriesExhaustedError(operation, failures + waits, exc) from exc
            LOGGER.warning("%s rate limited, sleeping %.0fs", operation, exc.seconds)
            if on_retry is not None:
                on_retry(exc)
            await sleep(exc.seconds)
        except TransientNetworkError as exc:
            failures += 1
            if failures >= policy.max_attempts:
                raise RetriesExhaustedError(operation, failures, exc) from exc
            delay = jitter() * policy.backoff_ceiling(failures)
            LOGGER.warning(
                "%s failed (%s), retry %s/%s in %.2fs",
                operation,
                exc,
                failures,
                policy.max_attempts - 1,
                delay,
            )
            if on_retry is not None:
                on_retry(exc)
            await sleep(delay)
