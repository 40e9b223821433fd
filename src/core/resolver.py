"""Handle resolution with a run-scoped, resolve-once cache.

Only Username references are looked up. The first caller for a handle owns
the lookup; concurrent callers for the same handle await the same future, so
the platform sees exactly one call per distinct handle per run. A handle that
cannot be resolved is downgraded to a Mention of the original text instead of
being dropped.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from core.config import ResolverConfig
from core.errors import AuthExpiredError, CrawlerError, EntityNotFoundError, RetriesExhaustedError
from core.models import Mention, Metadata, RawReference, ResolvedReference, Username
from core.ports import PlatformClientPort, ProgressPort
from core.retry import Sleeper, call_with_retry

LOGGER = logging.getLogger(__name__)


class _NotFound:
    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = _NotFound()

Outcome = Union[Tuple[Username, Metadata], _NotFound]


class IdentityResolver:
    """Resolve Username references against the platform, once per handle."""

    def __init__(
        self,
        platform: PlatformClientPort,
        config: ResolverConfig,
        *,
        progress: Optional[ProgressPort] = None,
        sleep: Sleeper = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
    ) -> None:
        self._platform = platform
        self._config = config
        self._progress = progress
        self._sleep = sleep
        self._jitter = jitter
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._semaphore_loop: Optional[asyncio.AbstractEventLoop] = None
        self._cache: Dict[str, "asyncio.Future[Outcome]"] = {}
        self.lookups = 0

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def cached(self, handle: str) -> Optional[Outcome]:
        """Return the settled outcome for a handle, if any."""

        future = self._cache.get(Username(handle).handle)
        if future is None or not future.done() or future.cancelled():
            return None
        return future.result()

    def _limiter(self) -> asyncio.Semaphore:
        # Semaphores bind to a loop, so build one inside the loop that uses it.
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._semaphore_loop is not loop:
            self._semaphore = asyncio.Semaphore(max(1, self._config.concurrency))
            self._semaphore_loop = loop
        return self._semaphore

    async def _lookup(self, handle: str) -> Outcome:
        async with self._limiter():
            self.lookups += 1
            try:
                metadata = await call_with_retry(
                    f"lookup @{handle}",
                    lambda: self._platform.lookup_handle(handle),
                    self._config.retry,
                    sleep=self._sleep,
                    jitter=self._jitter,
                )
            except AuthExpiredError:
                raise
            except (EntityNotFoundError, RetriesExhaustedError) as exc:
                LOGGER.info("Could not resolve @%s: %s", handle, exc)
                metadata = None
            except CrawlerError as exc:
                LOGGER.warning("Lookup of @%s failed, keeping it unresolved: %s", handle, exc)
                metadata = None
            finally:
                if self._progress is not None:
                    self._progress.tick("lookups", self.lookups, None)

        if metadata is None:
            return NOT_FOUND
        return (Username(handle), metadata)

    async def _outcome(self, handle: str) -> Outcome:
        future = self._cache.get(handle)
        if future is not None:
            return await asyncio.shield(future)

        future = asyncio.get_running_loop().create_future()
        self._cache[handle] = future
        try:
            outcome = await self._lookup(handle)
        except BaseException as exc:
            # Fatal errors (auth) reach every waiter and the handle is not cached.
            del self._cache[handle]
            if isinstance(exc, asyncio.CancelledError):
                future.cancel()
            else:
                future.set_exception(exc)
                future.exception()
            raise
        future.set_result(outcome)
        return outcome

    async def resolve(self, reference: RawReference) -> ResolvedReference:
        identity = reference.identity
        if not isinstance(identity, Username):
            return ResolvedReference(identity=identity, metadata=None, source=reference)

        outcome = await self._outcome(identity.handle)
        if outcome is NOT_FOUND:
            return ResolvedReference(
                identity=_fallback_mention(reference, identity),
                metadata=None,
                source=reference,
            )
        username, metadata = outcome
        return ResolvedReference(identity=username, metadata=metadata, source=reference)

    async def resolve_many(self, references: Sequence[RawReference]) -> List[ResolvedReference]:
        """Resolve a batch concurrently; results keep the input order."""

        if not references:
            return []
        return list(await asyncio.gather(*(self.resolve(reference) for reference in references)))


def _fallback_mention(reference: RawReference, identity: Username) -> Mention:
    """Mention of the text as written; link captions fall back to @handle."""

    mention = Mention(reference.raw_text)
    if mention.normalized == identity.handle:
        return mention
    return Mention(f"@{identity.handle}")
