"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to Telethon types. Identity is a closed union of three variants:
Username, Hash and Mention.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

_LINK_PREFIXES = (
    "https://www.t.me/",
    "https://t.me/",
    "http://t.me/",
    "https://telegram.me/",
    "http://telegram.me/",
    "t.me/",
    "telegram.me/",
)


def strip_reference_prefix(value: str) -> str:
    """Drop surrounding whitespace, a t.me link prefix and a leading @."""

    value = value.strip()
    lowered = value.lower()
    for prefix in _LINK_PREFIXES:
        if lowered.startswith(prefix):
            value = value[len(prefix) :]
            break
    return value.lstrip("@")


def normalize_handle(value: str) -> str:
    return strip_reference_prefix(value).lower()


class IdentityType(str, Enum):
    """Kind of chat a resolved handle points at."""

    GROUP = "Group"
    CHANNEL = "Channel"
    USER = "User"


@dataclass(frozen=True)
class Metadata:
    name: str
    type: IdentityType


@dataclass(frozen=True)
class Username:
    """Resolvable platform handle, stored normalized."""

    handle: str

    label = "Username"

    def __post_init__(self) -> None:
        object.__setattr__(self, "handle", normalize_handle(self.handle))

    @property
    def key(self) -> Tuple[str, str]:
        return (self.label, self.handle)

    @property
    def value(self) -> str:
        return self.handle


@dataclass(frozen=True)
class Hash:
    """Invite-link hash. Tokens are case-sensitive, so only the prefix is cut."""

    token: str

    label = "Hash"

    def __post_init__(self) -> None:
        token = strip_reference_prefix(self.token)
        if token.lower().startswith("joinchat/"):
            token = token[len("joinchat/") :]
        object.__setattr__(self, "token", token.lstrip("+"))

    @property
    def key(self) -> Tuple[str, str]:
        return (self.label, self.token)

    @property
    def value(self) -> str:
        return self.token


@dataclass(frozen=True)
class Mention:
    """Free-text reference kept as written; equality uses the normalized form."""

    text: str = field(compare=False)
    normalized: str = field(init=False)

    label = "Mention"

    def __post_init__(self) -> None:
        object.__setattr__(self, "text", self.text.strip())
        object.__setattr__(self, "normalized", normalize_handle(self.text))

    @property
    def key(self) -> Tuple[str, str]:
        return (self.label, self.normalized)

    @property
    def value(self) -> str:
        return self.text


Identity = Union[Username, Hash, Mention]

# Fixed variant order used for deterministic output.
IDENTITY_ORDER = {"Username": 0, "Hash": 1, "Mention": 2}


def identity_from_label(label: str, value: str) -> Identity:
    """Rebuild an identity from its serialized (label, value) pair."""

    if label == "Username":
        return Username(value)
    if label == "Hash":
        return Hash(value)
    if label == "Mention":
        return Mention(value)
    raise ValueError(f"Unknown identity kind: {label}")


@dataclass(frozen=True)
class AggregateRecord:
    identity: Identity
    count: int
    metadata: Optional[Metadata] = None


@dataclass(frozen=True, order=True)
class Cursor:
    """Opaque traversal position: the last processed message id.

    Position 0 means "nothing processed yet". The core only relies on
    equality and ordering; the platform adapter decides what the number
    means for the request it builds.
    """

    position: int = 0

    def encode(self) -> str:
        return str(self.position)

    @classmethod
    def decode(cls, raw: str) -> "Cursor":
        return cls(int(raw))


class EntityKind(str, Enum):
    """Entity kinds the extractor reads. URL is a bare link whose url is its text."""

    MENTION = "mention"
    TEXT_LINK = "text_link"
    URL = "url"


@dataclass(frozen=True)
class MessageEntity:
    """Annotated span in a message; offsets are UTF-16 code units."""

    offset: int
    length: int
    kind: EntityKind
    url: Optional[str] = None


@dataclass(frozen=True)
class Message:
    id: int
    text: str
    entities: Tuple[MessageEntity, ...] = ()


@dataclass(frozen=True)
class RawReference:
    identity: Identity
    span_start: int
    span_end: int
    raw_text: str


@dataclass(frozen=True)
class ResolvedReference:
    identity: Identity
    metadata: Optional[Metadata]
    source: RawReference


@dataclass(frozen=True)
class Page:
    """One page of history as returned by the platform client."""

    messages: Tuple[Message, ...]
    total: Optional[int] = None


@dataclass(frozen=True)
class Batch:
    messages: Tuple[Message, ...]
    next_cursor: Cursor
    done: bool
    total: Optional[int] = None


@dataclass(frozen=True)
class Checkpoint:
    """Resume point for one chat: cursor plus the aggregate it corresponds to."""

    cursor: Cursor
    records: Tuple[AggregateRecord, ...]
    messages_processed: int = 0
