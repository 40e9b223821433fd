"""Error taxonomy shared by the core and the platform adapter.

Adapters translate client-library exceptions into these types so retry and
fallback decisions stay inside the core.
"""

from __future__ import annotations

from typing import Optional


class CrawlerError(Exception):
    """Base class for every error raised by tgcrawler."""


class TransientNetworkError(CrawlerError):
    """Connection drop, timeout or server-side hiccup; safe to retry."""


class RateLimitedError(CrawlerError):
    """The platform asked us to wait before sending more requests."""

    def __init__(self, seconds: float, message: Optional[str] = None) -> None:
        super().__init__(message or f"Rate limited for {seconds}s")
        self.seconds = float(seconds)


class AuthExpiredError(CrawlerError):
    """The session is no longer authorized. Never retried."""


class RetriesExhaustedError(CrawlerError):
    def __init__(self, operation: str, attempts: int, last_error: Optional[BaseException]) -> None:
        super().__init__(f"{operation} failed after {attempts} attempt(s): {last_error}")
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


class EntityNotFoundError(CrawlerError):
    """Lookup target does not exist or is not accessible to this account."""


class MalformedEntityError(CrawlerError):
    """A message entity whose span or payload cannot be read."""
