"""SQLite checkpoint adapter.

Implements the core CheckpointStorePort using a simple SQLite database.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Optional, Sequence

from core.models import (
    AggregateRecord,
    Checkpoint,
    Cursor,
    IdentityType,
    Metadata,
    identity_from_label,
)


class SQLiteCheckpointStore:
    """Thin SQLite wrapper that satisfies the CheckpointStorePort contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - checkpoints: per-chat cursor for resumable scans
        - occurrences: aggregate counts that match the stored cursor
        """

        with self._connect() as conn:
            # checkpoints keeps a single cursor per chat so an interrupted
            # scan can continue without reprocessing or skipping messages.
            # Fields:
            # - chat_key: normalized chat handle (PRIMARY KEY)
            # - cursor: encoded Cursor of the last fully recorded batch
            # - messages_processed: messages counted up to that cursor
            # - updated_at: timestamp of the last save
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS checkpoints (
                    chat_key TEXT PRIMARY KEY,
                    cursor TEXT NOT NULL,
                    messages_processed INTEGER NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
                """
            )
            # occurrences mirrors the aggregation store at the saved cursor.
            # Fields:
            # - chat_key: chat the counts belong to
            # - kind: Username / Hash / Mention
            # - payload: identity value as it is reported
            # - count: occurrences so far
            # - name/type: resolved metadata, NULL when unresolved
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS occurrences (
                    chat_key TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    count INTEGER NOT NULL,
                    name TEXT,
                    type TEXT,
                    PRIMARY KEY (chat_key, kind, payload)
                )
                """
            )

    def load(self, chat_key: str) -> Optional[Checkpoint]:
        """Return the saved checkpoint for a chat, if any."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT cursor, messages_processed FROM checkpoints WHERE chat_key = ?",
                (chat_key,),
            ).fetchone()
            if row is None:
                return None
            rows = conn.execute(
                "SELECT kind, payload, count, name, type FROM occurrences WHERE chat_key = ?",
                (chat_key,),
            ).fetchall()

        records = []
        for item in rows:
            metadata = None
            if item["name"] is not None and item["type"] is not None:
                metadata = Metadata(name=item["name"], type=IdentityType(item["type"]))
            records.append(
                AggregateRecord(
                    identity=identity_from_label(item["kind"], item["payload"]),
                    count=int(item["count"]),
                    metadata=metadata,
                )
            )
        return Checkpoint(
            cursor=Cursor.decode(row["cursor"]),
            records=tuple(records),
            messages_processed=int(row["messages_processed"]),
        )

    def save(
        self,
        chat_key: str,
        cursor: Cursor,
        records: Sequence[AggregateRecord],
        messages_processed: int,
    ) -> None:
        """Replace the chat's cursor and counts in a single transaction."""

        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            conn.execute("DELETE FROM occurrences WHERE chat_key = ?", (chat_key,))
            conn.executemany(
                """
                INSERT INTO occurrences (chat_key, kind, payload, count, name, type)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        chat_key,
                        record.identity.label,
                        record.identity.value,
                        record.count,
                        record.metadata.name if record.metadata else None,
                        record.metadata.type.value if record.metadata else None,
                    )
                    for record in records
                ],
            )
            conn.execute(
                """
                INSERT INTO checkpoints (chat_key, cursor, messages_processed, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(chat_key) DO UPDATE SET
                    cursor = excluded.cursor,
                    messages_processed = excluded.messages_processed,
                    updated_at = excluded.updated_at
                """,
                (chat_key, cursor.encode(), messages_processed, now.isoformat()),
            )

    def clear(self, chat_key: str) -> None:
        """Forget a chat's checkpoint after a completed scan."""

        with self._connect() as conn:
            conn.execute("DELETE FROM occurrences WHERE chat_key = ?", (chat_key,))
            conn.execute("DELETE FROM checkpoints WHERE chat_key = ?", (chat_key,))

