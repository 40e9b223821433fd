"""Per-identity occurrence counting (core domain)."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from core.models import IDENTITY_ORDER, AggregateRecord, Identity, Mention, Metadata


@dataclass
class _Entry:
    identity: Identity
    count: int
    metadata: Optional[Metadata]


def record_sort_key(record: AggregateRecord) -> Tuple[int, int, str]:
    """Count descending, then Username/Hash/Mention, then normalized key."""

    label, value = record.identity.key
    return (-record.count, IDENTITY_ORDER[label], value)


class AggregationStore:
    """Single-writer map from canonical identity to (count, metadata).

    Writes go through a lock so a record is only visible once `record`
    returns. Final counts do not depend on the order references arrive in.
    """

    def __init__(self) -> None:
        self._entries: Dict[Tuple[str, str], _Entry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def record(self, identity: Identity, metadata: Optional[Metadata] = None, count: int = 1) -> None:
        """Count one occurrence (or `count` occurrences when restoring).

        Metadata is attached only if the entry has none yet; resolved
        metadata is never overwritten.
        """

        if count < 1:
            raise ValueError("count must be >= 1")
        key = identity.key
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._entries[key] = _Entry(identity=identity, count=count, metadata=metadata)
                return
            entry.count += count
            if entry.metadata is None and metadata is not None:
                entry.metadata = metadata
            # Keep the smallest spelling so the shown text is order-independent.
            if isinstance(identity, Mention) and identity.text < entry.identity.value:
                entry.identity = identity

    def restore(self, records: Iterable[AggregateRecord]) -> None:
        """Seed the store from a checkpoint snapshot."""

        for record in records:
            self.record(record.identity, record.metadata, count=record.count)

    def get(self, identity: Identity) -> Optional[AggregateRecord]:
        with self._lock:
            entry = self._entries.get(identity.key)
            if entry is None:
                return None
            return AggregateRecord(entry.identity, entry.count, entry.metadata)

    def finalize(self) -> List[AggregateRecord]:
        """Return a stable snapshot ordered by `record_sort_key`."""

        with self._lock:
            records = [
                AggregateRecord(identity=entry.identity, count=entry.count, metadata=entry.metadata)
                for entry in self._entries.values()
            ]
        records.sort(key=record_sort_key)
        return records
