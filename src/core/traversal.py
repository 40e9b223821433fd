"""Exhaustive, resumable walk over one chat's message history.

The engine asks the platform client for one page at a time, strictly in
cursor order. A page is only handed out (and the cursor only advanced) once
it has been fetched successfully, so a failure never leaves a gap.
"""

from __future__ import annotations

import asyncio
import logging
import random
from enum import Enum
from typing import Any, AsyncIterator, Callable, Optional

from core.config import TraversalConfig
from core.models import Batch, Cursor
from core.ports import PlatformClientPort
from core.retry import Sleeper, call_with_retry

LOGGER = logging.getLogger(__name__)


class TraversalState(str, Enum):
    FETCHING = "fetching"
    RETRYING = "retrying"
    ADVANCING = "advancing"
    DONE = "done"
    FATAL = "fatal"


class TraversalEngine:
    """Pages through a chat from the oldest message to the newest."""

    def __init__(
        self,
        platform: PlatformClientPort,
        chat: Any,
        config: TraversalConfig,
        *,
        sleep: Sleeper = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
    ) -> None:
        self._platform = platform
        self._chat = chat
        self._config = config
        self._sleep = sleep
        self._jitter = jitter
        self.state = TraversalState.FETCHING
        self.pages_fetched = 0

    def _mark_retrying(self, _exc: BaseException) -> None:
        self.state = TraversalState.RETRYING

    async def next_batch(self, cursor: Cursor) -> Batch:
        """Fetch the page after `cursor`.

        Returns done=True with an empty batch once the platform has nothing
        left. Raises RetriesExhaustedError or AuthExpiredError on fatal
        failure; the cursor passed in stays the valid resume point.
        """

        self.state = TraversalState.FETCHING
        try:
            page = await call_with_retry(
                f"fetch page after {cursor.encode()}",
                lambda: self._platform.fetch_page(self._chat, cursor, self._config.page_size),
                self._config.retry,
                sleep=self._sleep,
                jitter=self._jitter,
                on_retry=self._mark_retrying,
            )
        except BaseException:
            self.state = TraversalState.FATAL
            raise

        self.pages_fetched += 1
        if not page.messages:
            self.state = TraversalState.DONE
            return Batch(messages=(), next_cursor=cursor, done=True, total=page.total)

        self.state = TraversalState.ADVANCING
        # Never move backwards, even if the client returns ids out of order.
        highest = max(message.id for message in page.messages)
        next_cursor = max(cursor, Cursor(highest))
        if next_cursor == cursor:
            LOGGER.warning("Page after %s did not advance the cursor; stopping", cursor.encode())
            self.state = TraversalState.DONE
            return Batch(messages=(), next_cursor=cursor, done=True, total=page.total)

        messages = tuple(m for m in page.messages if m.id > cursor.position)
        return Batch(messages=messages, next_cursor=next_cursor, done=False, total=page.total)

    async def walk(self, cursor: Cursor = Cursor()) -> AsyncIterator[Batch]:
        """Yield non-empty batches until the history is exhausted."""

        while True:
            batch = await self.next_batch(cursor)
            if batch.done:
                return
            yield batch
            cursor = batch.next_cursor
