"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff settings for one kind of platform call.

    - max_attempts: total tries for transient failures (first try included)
    - base_delay/max_delay: exponential backoff window, full jitter applied
    - max_rate_limit_retries: rate-limit waits allowed, None for unbounded
    - max_rate_limit_wait: longest provider delay we accept, None for any
    """

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0
    max_rate_limit_retries: Optional[int] = None
    max_rate_limit_wait: Optional[float] = None

    def backoff_ceiling(self, attempt: int) -> float:
        """Upper bound of the jittered delay after the given failed attempt."""

        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], defaults: "RetryPolicy") -> "RetryPolicy":
        def _optional(name: str, cast):
            if name not in raw:
                return getattr(defaults, name)
            value = raw[name]
            return None if value is None else cast(value)

        return cls(
            max_attempts=max(1, int(raw.get("max_attempts", defaults.max_attempts))),
            base_delay=float(raw.get("base_delay", defaults.base_delay)),
            max_delay=float(raw.get("max_delay", defaults.max_delay)),
            max_rate_limit_retries=_optional("max_rate_limit_retries", int),
            max_rate_limit_wait=_optional("max_rate_limit_wait", float),
        )


TRAVERSAL_RETRY = RetryPolicy(max_attempts=5, base_delay=1.0, max_delay=30.0)
LOOKUP_RETRY = RetryPolicy(
    max_attempts=3,
    base_delay=1.0,
    max_delay=10.0,
    max_rate_limit_retries=3,
    max_rate_limit_wait=300.0,
)


@dataclass(frozen=True)
class TraversalConfig:
    page_size: int = 100
    retry: RetryPolicy = field(default_factory=lambda: TRAVERSAL_RETRY)


@dataclass(frozen=True)
class ResolverConfig:
    concurrency: int = 4
    retry: RetryPolicy = field(default_factory=lambda: LOOKUP_RETRY)
