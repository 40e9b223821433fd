"""Terminal progress adapter built on rich.

Implements the core ProgressPort: one task line per stage, switching from a
spinner to a bar once the stage total is known.
"""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

STAGE_LABELS = {
    "messages": "Scanning messages",
    "lookups": "Resolving handles",
}


class RichProgressReporter:
    """Progress display for a scan; use as a context manager."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        )
        self._tasks: dict[str, TaskID] = {}

    def __enter__(self) -> "RichProgressReporter":
        self._progress.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self._progress.stop()

    def tick(self, stage: str, processed: int, total: Optional[int]) -> None:
        task_id = self._tasks.get(stage)
        if task_id is None:
            task_id = self._progress.add_task(STAGE_LABELS.get(stage, stage), total=total)
            self._tasks[stage] = task_id
        self._progress.update(task_id, completed=processed, total=total)
