from __future__ import annotations

import asyncio
from typing import Optional, Sequence

from adapters.json_report import record_to_dict
from core.config import ResolverConfig, RetryPolicy, TraversalConfig
from core.errors import AuthExpiredError, CrawlerError, EntityNotFoundError
from core.models import (
    AggregateRecord,
    Checkpoint,
    Cursor,
    EntityKind,
    IdentityType,
    Message,
    MessageEntity,
    Metadata,
    Page,
    Username,
)
from core.scanner import ChatScanner

CODENIGHT = Metadata(name="CodeNight", type=IdentityType.GROUP)


def _mention(message_id: int, text: str, handle: str) -> Message:
    offset = text.index(handle)
    return Message(
        id=message_id,
        text=text,
        entities=(MessageEntity(offset, len(handle), EntityKind.MENTION),),
    )


class FakePlatform:
    def __init__(
        self,
        messages: Sequence[Message],
        directory: dict[str, Metadata],
        fail_at: Optional[int] = None,
    ) -> None:
        self._messages = list(messages)
        self._directory = directory
        self._fail_at = fail_at
        self.lookups: dict[str, int] = {}

    async def fetch_page(self, chat, cursor: Cursor, limit: int) -> Page:
        if self._fail_at is not None and cursor.position >= self._fail_at:
            raise AuthExpiredError("session revoked")
        after = [m for m in self._messages if m.id > cursor.position]
        return Page(messages=tuple(after[:limit]), total=len(self._messages))

    async def lookup_handle(self, handle: str) -> Optional[Metadata]:
        self.lookups[handle] = self.lookups.get(handle, 0) + 1
        if handle not in self._directory:
            raise EntityNotFoundError(handle)
        return self._directory[handle]


class FakeCheckpoints:
    def __init__(self, initial: Optional[Checkpoint] = None) -> None:
        self.saved: dict[str, Checkpoint] = {}
        if initial is not None:
            self.saved["chat"] = initial
        self.history: list[Cursor] = []
        self.cleared: list[str] = []

    def load(self, chat_key: str) -> Optional[Checkpoint]:
        return self.saved.get(chat_key)

    def save(self, chat_key, cursor, records, messages_processed) -> None:
        self.history.append(cursor)
        self.saved[chat_key] = Checkpoint(cursor, tuple(records), messages_processed)

    def clear(self, chat_key: str) -> None:
        self.cleared.append(chat_key)
        self.saved.pop(chat_key, None)


class FakeProgress:
    def __init__(self) -> None:
        self.ticks: list[tuple[str, int, Optional[int]]] = []

    def tick(self, stage: str, processed: int, total: Optional[int]) -> None:
        self.ticks.append((stage, processed, total))


async def _noop_sleep(_seconds: float) -> None:
    return None


def _scanner(platform: FakePlatform, page_size: int = 100, **kwargs) -> ChatScanner:
    return ChatScanner(
        platform,
        "chat",
        "chat",
        TraversalConfig(page_size=page_size, retry=RetryPolicy(max_attempts=2)),
        ResolverConfig(concurrency=2, retry=RetryPolicy(max_attempts=2)),
        sleep=_noop_sleep,
        jitter=lambda: 0.0,
        **kwargs,
    )


def test_repeated_handle_is_counted_with_metadata() -> None:
    platform = FakePlatform(
        [
            _mention(1, "welcome to @codenight", "@codenight"),
            _mention(2, "see you at @codenight tonight", "@codenight"),
        ],
        {"codenight": CODENIGHT},
    )

    result = asyncio.run(_scanner(platform).scan())

    assert result.completed
    assert result.messages_processed == 2
    assert [record_to_dict(record) for record in result.records] == [
        {
            "username": {"Username": "codenight"},
            "count": 2,
            "metadata": {"name": "CodeNight", "type": "Group"},
        }
    ]
    assert platform.lookups == {"codenight": 1}


def test_unresolved_handle_is_kept_as_mention() -> None:
    platform = FakePlatform([_mention(1, "ask @GhostUser", "@GhostUser")], {})

    result = asyncio.run(_scanner(platform).scan())

    assert [record_to_dict(record) for record in result.records] == [
        {"username": {"Mention": "@GhostUser"}, "count": 1}
    ]


def test_handle_resolved_once_across_pages() -> None:
    messages = [_mention(n, f"{n}: ping @alice", "@alice") for n in range(1, 8)]
    platform = FakePlatform(messages, {"alice": Metadata("Alice", IdentityType.USER)})

    result = asyncio.run(_scanner(platform, page_size=2).scan())

    assert platform.lookups == {"alice": 1}
    assert result.records == [AggregateRecord(Username("alice"), 7, Metadata("Alice", IdentityType.USER))]


def test_fatal_error_returns_partial_result() -> None:
    messages = [_mention(n, f"hi @alice {n}", "@alice") for n in range(1, 6)]
    platform = FakePlatform(messages, {"alice": CODENIGHT}, fail_at=2)
    checkpoints = FakeCheckpoints()

    result = asyncio.run(_scanner(platform, page_size=2, checkpoints=checkpoints).scan())

    assert not result.completed
    assert isinstance(result.failure, AuthExpiredError)
    assert result.messages_processed == 2
    assert result.cursor == Cursor(2)
    assert result.records[0].count == 2
    assert checkpoints.saved["chat"].cursor == Cursor(2)
    assert checkpoints.cleared == []


def test_resume_continues_after_checkpoint() -> None:
    messages = [_mention(n, f"hi @alice {n}", "@alice") for n in range(1, 6)]
    platform = FakePlatform(messages, {"alice": CODENIGHT})
    checkpoints = FakeCheckpoints(
        Checkpoint(
            cursor=Cursor(3),
            records=(AggregateRecord(Username("alice"), 3, CODENIGHT),),
            messages_processed=3,
        )
    )

    result = asyncio.run(_scanner(platform, page_size=2, checkpoints=checkpoints).scan())

    assert result.completed
    assert result.messages_processed == 5
    assert result.records == [AggregateRecord(Username("alice"), 5, CODENIGHT)]
    assert checkpoints.history[0] == Cursor(5)
    assert checkpoints.cleared == ["chat"]
    assert "chat" not in checkpoints.saved


def test_checkpoint_saved_after_every_batch() -> None:
    messages = [Message(id=n, text=f"plain {n}") for n in range(1, 6)]
    checkpoints = FakeCheckpoints()

    asyncio.run(_scanner(FakePlatform(messages, {}), page_size=2, checkpoints=checkpoints).scan())

    assert checkpoints.history == [Cursor(2), Cursor(4), Cursor(5)]


def test_progress_ticks_messages_and_lookups() -> None:
    progress = FakeProgress()
    platform = FakePlatform(
        [_mention(1, "@a here", "@a"), _mention(2, "@b there", "@b")],
        {"a": CODENIGHT},
    )

    asyncio.run(_scanner(platform, page_size=1, progress=progress).scan())

    message_ticks = [tick for tick in progress.ticks if tick[0] == "messages"]
    lookup_ticks = [tick for tick in progress.ticks if tick[0] == "lookups"]
    assert message_ticks == [("messages", 1, 2), ("messages", 2, 2)]
    assert len(lookup_ticks) == 2


def test_malformed_entity_is_reported_not_fatal() -> None:
    message = Message(
        id=1,
        text="short",
        entities=(MessageEntity(3, 40, EntityKind.MENTION),),
    )

    result = asyncio.run(_scanner(FakePlatform([message], {})).scan())

    assert result.completed
    assert result.records == []
    assert len(result.warnings) == 1


class OddLookupPlatform(FakePlatform):
    async def lookup_handle(self, handle: str) -> Optional[Metadata]:
        if handle == "weird":
            raise CrawlerError("RPCError 406: SOMETHING")
        return await super().lookup_handle(handle)


def test_unexpected_lookup_error_does_not_stop_the_scan() -> None:
    text = "@codenight meets @weird"
    message = Message(
        id=1,
        text=text,
        entities=(
            MessageEntity(0, 10, EntityKind.MENTION),
            MessageEntity(text.index("@weird"), 6, EntityKind.MENTION),
        ),
    )
    platform = OddLookupPlatform([message], {"codenight": CODENIGHT})

    result = asyncio.run(_scanner(platform).scan())

    assert result.completed
    assert result.messages_processed == 1
    assert [record_to_dict(record) for record in result.records] == [
        {
            "username": {"Username": "codenight"},
            "count": 1,
            "metadata": {"name": "CodeNight", "type": "Group"},
        },
        {"username": {"Mention": "@weird"}, "count": 1},
    ]
