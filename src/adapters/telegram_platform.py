"""Telethon implementation of the core PlatformClientPort.

Every Telethon failure is translated into the core error taxonomy here, so
the traversal engine and the resolver decide retries without knowing about
Telethon's exception classes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from telethon import TelegramClient, errors

from adapters.telegram_mapper import build_message, build_metadata
from core.errors import (
    AuthExpiredError,
    CrawlerError,
    EntityNotFoundError,
    RateLimitedError,
    TransientNetworkError,
)
from core.models import Cursor, Metadata, Page

LOGGER = logging.getLogger(__name__)

# TimedOutError (-503) is not a ServerError. A FloodError without seconds
# backs off like any other transient failure.
_TRANSIENT = (
    errors.ServerError,
    errors.TimedOutError,
    errors.FloodError,
    ConnectionError,
    OSError,
    asyncio.TimeoutError,
)
_NOT_FOUND = (errors.BadRequestError, errors.ForbiddenError, errors.NotFoundError, ValueError)


def translate_error(exc: BaseException) -> CrawlerError:
    """Map a Telethon/network exception onto the core taxonomy."""

    if isinstance(exc, CrawlerError):
        return exc
    if isinstance(exc, errors.FloodError) and getattr(exc, "seconds", None) is not None:
        return RateLimitedError(exc.seconds, str(exc))
    if isinstance(exc, errors.UnauthorizedError):
        return AuthExpiredError(str(exc))
    if isinstance(exc, _TRANSIENT):
        return TransientNetworkError(str(exc) or type(exc).__name__)
    if isinstance(exc, _NOT_FOUND):
        return EntityNotFoundError(str(exc))
    return CrawlerError(f"{type(exc).__name__}: {exc}")


class TelethonPlatform:
    """Paged history and handle lookups over an authorized TelegramClient."""

    def __init__(self, client: TelegramClient) -> None:
        self._client = client

    async def resolve_chat(self, handle: str) -> Any:
        """Return the Telethon entity for the chat to scan."""

        try:
            return await self._client.get_entity(handle)
        except Exception as exc:
            raise translate_error(exc) from exc

    async def fetch_page(self, chat: Any, cursor: Cursor, limit: int) -> Page:
        # reverse=True walks oldest -> newest and makes offset_id exclusive
        # from below, so the cursor is simply the last id we consumed.
        try:
            messages = await self._client.get_messages(
                chat,
                limit=limit,
                offset_id=cursor.position,
                reverse=True,
            )
        except Exception as exc:
            raise translate_error(exc) from exc
        total = getattr(messages, "total", None)
        return Page(messages=tuple(build_message(message) for message in messages), total=total)

    async def lookup_handle(self, handle: str) -> Optional[Metadata]:
        try:
            entity = await self._client.get_entity(handle)
        except Exception as exc:
            error = translate_error(exc)
            if isinstance(error, EntityNotFoundError):
                LOGGER.debug("Handle @%s not found: %s", handle, exc)
                return None
            raise error from exc
        return build_metadata(entity)
