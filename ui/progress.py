# ui/progress.py
from __future__ import annotations

from config import settings
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)


class RichProgressReporter:
    """Progress callback that renders ``(done, total, label)`` updates."""

    def __init__(self, console: Console | None = None, enabled: bool | None = None) -> None:
        self.enabled = settings.ENABLE_RICH_PROGRESS if enabled is None else enabled
        self.progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("{task.fields[label]}"),
            TimeElapsedColumn(),
            console=console,
            disable=not self.enabled,
        )
        self._tasks: dict[str, TaskID] = {}
        self._phase = "generation"

    def __enter__(self) -> RichProgressReporter:
        self.progress.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.progress.stop()

    def phase(self, name: str) -> RichProgressReporter:
        """Route subsequent updates to a task named ``name``."""
        self._phase = name
        return self

    def __call__(self, done: int, total: int, label: str) -> None:
        task_id = self._tasks.get(self._phase)
        if task_id is None:
            task_id = self.progress.add_task(self._phase, total=total, label=label)
            self._tasks[self._phase] = task_id
        self.progress.update(task_id, completed=done, total=total, label=label)
