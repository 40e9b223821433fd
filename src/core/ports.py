"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for the platform client, checkpoint
storage and progress reporting so the core can run against fakes in tests
and against Telethon in production.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence

from core.models import AggregateRecord, Checkpoint, Cursor, Metadata, Page


class PlatformClientPort(Protocol):
    """Platform operations required by traversal and resolution.

    Both calls may raise TransientNetworkError, RateLimitedError or
    AuthExpiredError.
    """

    async def fetch_page(self, chat: Any, cursor: Cursor, limit: int) -> Page:
        """Return up to `limit` messages after `cursor`; empty when exhausted."""
        ...

    async def lookup_handle(self, handle: str) -> Optional[Metadata]:
        """Return metadata for a handle, or None when it does not resolve."""
        ...


class CheckpointStorePort(Protocol):
    """Persistence of the cursor (and matching aggregate) per chat."""

    def load(self, chat_key: str) -> Optional[Checkpoint]:
        ...

    def save(
        self,
        chat_key: str,
        cursor: Cursor,
        records: Sequence[AggregateRecord],
        messages_processed: int,
    ) -> None:
        ...

    def clear(self, chat_key: str) -> None:
        ...


class ProgressPort(Protocol):
    """Receives (processed, total) ticks; total is None when unknown."""

    def tick(self, stage: str, processed: int, total: Optional[int]) -> None:
        ...
