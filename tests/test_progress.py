from __future__ import annotations

import io

from rich.console import Console

from adapters.progress import RichProgressReporter


def test_one_task_per_stage_tracks_latest_tick() -> None:
    console = Console(file=io.StringIO(), force_terminal=False)

    with RichProgressReporter(console=console) as progress:
        progress.tick("messages", 3, None)
        progress.tick("messages", 8, 20)
        progress.tick("lookups", 1, None)
        tasks = {task.description: task for task in progress._progress.tasks}

    assert set(tasks) == {"Scanning messages", "Resolving handles"}
    assert tasks["Scanning messages"].completed == 8
    assert tasks["Scanning messages"].total == 20
    assert tasks["Resolving handles"].total is None
