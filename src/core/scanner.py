"""Chat scanning pipeline (core domain).

A ChatScanner owns every piece of mutable state for one run (resolver
cache, aggregation store, cursor) and enforces a strict order per batch:
1) Fetch the next page after the cursor
2) Extract raw references from every message in the page
3) Resolve Username references (bounded concurrency, resolve-once)
4) Record resolved references in message order
5) Checkpoint cursor + aggregate together, then tick progress

A batch is only checkpointed after all of its references are recorded, so
the saved cursor and the saved counts always describe the same prefix of
the chat history.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from core.aggregation import AggregationStore
from core.config import ResolverConfig, TraversalConfig
from core.errors import CrawlerError
from core.extractor import MentionExtractor
from core.models import AggregateRecord, Batch, Cursor
from core.ports import CheckpointStorePort, PlatformClientPort, ProgressPort
from core.resolver import IdentityResolver
from core.retry import Sleeper
from core.traversal import TraversalEngine

LOGGER = logging.getLogger(__name__)


@dataclass
class ScanResult:
    records: List[AggregateRecord]
    messages_processed: int
    completed: bool
    cursor: Cursor
    failure: Optional[BaseException] = None
    warnings: List[str] = field(default_factory=list)


class ChatScanner:
    """Run-scoped context wiring traversal, extraction, resolution and counting."""

    def __init__(
        self,
        platform: PlatformClientPort,
        chat: Any,
        chat_key: str,
        traversal_config: TraversalConfig,
        resolver_config: ResolverConfig,
        *,
        checkpoints: Optional[CheckpointStorePort] = None,
        progress: Optional[ProgressPort] = None,
        sleep: Sleeper = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
    ) -> None:
        self._chat_key = chat_key
        self._checkpoints = checkpoints
        self._progress = progress
        self.store = AggregationStore()
        self.extractor = MentionExtractor()
        self.resolver = IdentityResolver(
            platform, resolver_config, progress=progress, sleep=sleep, jitter=jitter
        )
        self.engine = TraversalEngine(platform, chat, traversal_config, sleep=sleep, jitter=jitter)
        self.cursor = Cursor()
        self.messages_processed = 0
        self.total: Optional[int] = None

    def _resume(self) -> None:
        if self._checkpoints is None:
            return
        checkpoint = self._checkpoints.load(self._chat_key)
        if checkpoint is None:
            return
        self.cursor = checkpoint.cursor
        self.messages_processed = checkpoint.messages_processed
        self.store.restore(checkpoint.records)
        LOGGER.info(
            "Resuming %s after message %s (%s messages, %s identities already counted)",
            self._chat_key,
            self.cursor.encode(),
            self.messages_processed,
            len(self.store),
        )

    async def process_batch(self, batch: Batch) -> None:
        references = [
            reference
            for message in batch.messages
            for reference in self.extractor.extract(message)
        ]
        resolved = await self.resolver.resolve_many(references)
        for item in resolved:
            self.store.record(item.identity, item.metadata)

        self.messages_processed += len(batch.messages)
        self.cursor = batch.next_cursor
        if batch.total is not None:
            self.total = batch.total

        if self._checkpoints is not None:
            self._checkpoints.save(
                self._chat_key,
                self.cursor,
                self.store.finalize(),
                self.messages_processed,
            )
        if self._progress is not None:
            self._progress.tick("messages", self.messages_processed, self.total)

    def result(self, completed: bool, failure: Optional[BaseException] = None) -> ScanResult:
        """Snapshot of the run so far; valid at any point, including after a failure."""

        return ScanResult(
            records=self.store.finalize(),
            messages_processed=self.messages_processed,
            completed=completed,
            cursor=self.cursor,
            failure=failure,
            warnings=list(self.extractor.warnings),
        )

    async def scan(self) -> ScanResult:
        """Walk the whole chat. Fatal platform errors end the run with a partial result."""

        self._resume()
        try:
            async for batch in self.engine.walk(self.cursor):
                await self.process_batch(batch)
        except CrawlerError as exc:
            LOGGER.error(
                "Scan of %s stopped after %s messages: %s",
                self._chat_key,
                self.messages_processed,
                exc,
            )
            return self.result(completed=False, failure=exc)

        if self._checkpoints is not None:
            self._checkpoints.clear(self._chat_key)
        LOGGER.info(
            "Scan of %s complete: messages=%s, identities=%s, lookups=%s",
            self._chat_key,
            self.messages_processed,
            len(self.store),
            self.resolver.lookups,
        )
        return self.result(completed=True)
