"""Reference extraction from a single message (core domain).

Extraction order:
1) mention entities -> Username
2) text link entities pointing at t.me / telegram.me -> Username or Hash
3) plain-text scan for @handles and bare t.me links -> Mention, but only
   where no entity span from steps 1-2 already covers the text

Entity offsets are UTF-16 code units, so plain-text match positions are
converted into the same units before overlap checks.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence, Tuple

from core.errors import MalformedEntityError
from core.models import (
    EntityKind,
    Hash,
    Identity,
    Message,
    MessageEntity,
    Mention,
    RawReference,
    Username,
)

LOGGER = logging.getLogger(__name__)

# t.me paths that are service pages rather than handles.
RESERVED_PATHS = frozenset(
    {
        "addemoji",
        "addlist",
        "addstickers",
        "addtheme",
        "bg",
        "boost",
        "c",
        "confirmphone",
        "contact",
        "invoice",
        "iv",
        "joinchat",
        "login",
        "path",
        "proxy",
        "s",
        "setlanguage",
        "share",
        "socks",
    }
)

_LINK_RE = re.compile(
    r"^(?:https?://)?(?:www\.)?(?:t|telegram)\.me/(?P<path>[^?#\s]*)",
    re.IGNORECASE,
)
_HANDLE_RE = re.compile(r"^[A-Za-z0-9_]+$")
_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_TEXT_RE = re.compile(
    r"(?<![\w@/.])@[A-Za-z0-9_]{1,32}"
    r"|(?<![\w.])(?:https?://)?(?:www\.)?(?:t|telegram)\.me/[A-Za-z0-9_+\-/]+",
    re.IGNORECASE,
)


def parse_telegram_link(url: str) -> Optional[Identity]:
    """Classify a link as Username, Hash, or None for non-handle links.

    Raises MalformedEntityError for an invite link without a token.
    """

    match = _LINK_RE.match(url.strip())
    if not match:
        return None
    path = match.group("path")

    if path.startswith("+"):
        token = path[1:].split("/", 1)[0]
        if not _TOKEN_RE.match(token):
            raise MalformedEntityError(f"invite link without token: {url!r}")
        return Hash(token)

    segments = path.split("/")
    head = segments[0]
    if head.lower() == "joinchat":
        token = segments[1] if len(segments) > 1 else ""
        if not _TOKEN_RE.match(token):
            raise MalformedEntityError(f"invite link without token: {url!r}")
        return Hash(token)

    if not head or head.lower() in RESERVED_PATHS or not _HANDLE_RE.match(head):
        return None
    return Username(head)


class _Utf16Text:
    """Message text addressable by UTF-16 offsets."""

    def __init__(self, text: str) -> None:
        self.text = text
        self._encoded = text.encode("utf-16-le")
        self._wide = len(self._encoded) // 2 != len(text)
        self._units: List[int] = []
        if self._wide:
            total = 0
            for char in text:
                self._units.append(total)
                total += 2 if ord(char) > 0xFFFF else 1
            self._units.append(total)

    @property
    def length(self) -> int:
        return len(self._encoded) // 2

    def slice(self, offset: int, length: int) -> str:
        if offset < 0 or length <= 0 or offset + length > self.length:
            raise MalformedEntityError(f"span {offset}+{length} outside text of {self.length} units")
        chunk = self._encoded[offset * 2 : (offset + length) * 2]
        try:
            return chunk.decode("utf-16-le")
        except UnicodeDecodeError as exc:
            raise MalformedEntityError(f"span {offset}+{length} splits a character") from exc

    def to_units(self, index: int) -> int:
        """Convert a str index into a UTF-16 offset."""

        if not self._wide:
            return index
        return self._units[index]


class MentionExtractor:
    """Turns one message into an ordered list of raw references."""

    def __init__(self) -> None:
        self.warnings: List[str] = []

    def _warn(self, message: Message, entity: MessageEntity, exc: Exception) -> None:
        note = f"message {message.id}: skipped {entity.kind.value} entity at {entity.offset}: {exc}"
        self.warnings.append(note)
        LOGGER.warning("Malformed entity in %s", note)

    def _from_entity(self, text: _Utf16Text, entity: MessageEntity) -> Optional[RawReference]:
        raw = text.slice(entity.offset, entity.length)
        end = entity.offset + entity.length

        if entity.kind == EntityKind.MENTION:
            handle = raw.strip().lstrip("@")
            if not raw.startswith("@") or not _HANDLE_RE.match(handle):
                raise MalformedEntityError(f"not a handle: {raw!r}")
            return RawReference(Username(handle), entity.offset, end, raw)

        if entity.kind in (EntityKind.TEXT_LINK, EntityKind.URL):
            url = raw if entity.kind == EntityKind.URL else entity.url
            if not url:
                raise MalformedEntityError("text link without url")
            identity = parse_telegram_link(url)
            if identity is None:
                return None
            return RawReference(identity, entity.offset, end, raw)

        return None

    def _scan_text(self, text: _Utf16Text, claimed: Sequence[Tuple[int, int]]) -> List[RawReference]:
        found: List[RawReference] = []
        for match in _TEXT_RE.finditer(text.text):
            raw = match.group(0).rstrip("/")
            if raw.lower().endswith(".me"):
                continue
            start = text.to_units(match.start())
            end = text.to_units(match.start() + len(raw))
            if any(start < claim_end and claim_start < end for claim_start, claim_end in claimed):
                continue
            found.append(RawReference(Mention(raw), start, end, raw))
        return found

    def extract(self, message: Message) -> List[RawReference]:
        text = _Utf16Text(message.text or "")
        references: List[RawReference] = []
        # Every readable link entity claims its span, even when it is not a
        # handle (t.me/c/..., other sites), so the scan cannot re-read it.
        claimed: List[Tuple[int, int]] = []

        for entity in message.entities:
            try:
                reference = self._from_entity(text, entity)
            except MalformedEntityError as exc:
                self._warn(message, entity, exc)
                continue
            if reference is not None:
                references.append(reference)
            claimed.append((entity.offset, entity.offset + entity.length))

        references.extend(self._scan_text(text, claimed))
        references.sort(key=lambda ref: (ref.span_start, ref.span_end))
        return references
