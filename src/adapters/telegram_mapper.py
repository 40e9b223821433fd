"""Telegram-to-core mapping adapter.

This keeps Telethon-specific details out of the core pipeline: messages
become core Messages with only the entity kinds the extractor reads, and
resolved chats become Metadata.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from telethon.tl.custom import Message as TelethonMessage
from telethon.tl.types import MessageEntityMention, MessageEntityTextUrl, MessageEntityUrl

from core.models import EntityKind, IdentityType, Message, MessageEntity, Metadata

LOGGER = logging.getLogger(__name__)


def map_entity(entity: Any) -> Optional[MessageEntity]:
    """Map one Telethon entity; kinds the extractor does not read map to None."""

    if isinstance(entity, MessageEntityMention):
        return MessageEntity(entity.offset, entity.length, EntityKind.MENTION)
    if isinstance(entity, MessageEntityTextUrl):
        return MessageEntity(entity.offset, entity.length, EntityKind.TEXT_LINK, entity.url)
    if isinstance(entity, MessageEntityUrl):
        return MessageEntity(entity.offset, entity.length, EntityKind.URL)
    # Bold, custom emoji, bot commands, MentionName (no handle), etc.
    return None


def build_message(message: TelethonMessage) -> Message:
    """Build a core Message from Telethon's Message object.

    `message.message` is the text the entity offsets refer to; service
    messages have none and map to an empty text.
    """

    text = getattr(message, "message", None) or ""
    entities = []
    for entity in getattr(message, "entities", None) or []:
        mapped = map_entity(entity)
        if mapped is not None:
            entities.append(mapped)
    return Message(id=message.id, text=text, entities=tuple(entities))


def chat_type(entity: Any) -> IdentityType:
    # Channels with broadcast set are channels; megagroups and basic chats
    # carry a title and count as groups; everything else is a user.
    if getattr(entity, "broadcast", False):
        return IdentityType.CHANNEL
    if getattr(entity, "megagroup", False) or getattr(entity, "title", None) is not None:
        return IdentityType.GROUP
    return IdentityType.USER


def chat_title(entity: Any) -> str:
    title = getattr(entity, "title", None)
    if title:
        return str(title)
    first = getattr(entity, "first_name", None)
    last = getattr(entity, "last_name", None)
    if first or last:
        return " ".join(part for part in [first, last] if part)
    username = getattr(entity, "username", None)
    if username:
        return str(username)
    entity_id = getattr(entity, "id", None)
    return str(entity_id or "unknown")


def build_metadata(entity: Any) -> Metadata:
    return Metadata(name=chat_title(entity), type=chat_type(entity))
