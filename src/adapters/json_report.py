"""JSON report writer.

Output is a JSON array of records shaped as
{"username": {"Username"|"Hash"|"Mention": value}, "count": n, "metadata": {...}}.
`metadata` is omitted entirely for identities that were never resolved.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable, Union

from core.models import AggregateRecord, Hash, Mention, Username


def identity_to_dict(identity: Union[Username, Hash, Mention]) -> dict[str, str]:
    if isinstance(identity, Username):
        return {"Username": identity.handle}
    if isinstance(identity, Hash):
        return {"Hash": identity.token}
    if isinstance(identity, Mention):
        return {"Mention": identity.text}
    raise TypeError(f"Unsupported identity: {identity!r}")


def record_to_dict(record: AggregateRecord) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "username": identity_to_dict(record.identity),
        "count": record.count,
    }
    if record.metadata is not None:
        payload["metadata"] = {
            "name": record.metadata.name,
            "type": record.metadata.type.value,
        }
    return payload


def records_to_json(records: Iterable[AggregateRecord], resolved_only: bool = False) -> str:
    """Serialize records; `resolved_only` drops records without metadata."""

    rows = [
        record_to_dict(record)
        for record in records
        if not resolved_only or record.metadata is not None
    ]
    return json.dumps(rows, indent=2, ensure_ascii=False)


def report_path(directory: Union[str, Path], chat_key: str, partial: bool = False) -> Path:
    suffix = ".partial.json" if partial else ".json"
    return Path(directory) / f"{chat_key}{suffix}"


def write_report(
    path: Union[str, Path],
    records: Iterable[AggregateRecord],
    resolved_only: bool = False,
) -> Path:
    """Write the report atomically (temp file in the same directory, then rename)."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    body = records_to_json(records, resolved_only=resolved_only)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(body)
            handle.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    return path
