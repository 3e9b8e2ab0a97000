# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Progress rendering helpers for the download and lint stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from types import TracebackType

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)


@dataclass(slots=True)
class StageProgress:
    """Rich progress bar for one pipeline stage.

    A disabled instance accepts every call and renders nothing, so callers
    never branch on whether output is interactive.
    """

    description: str
    console: Console | None = None
    enabled: bool = True
    progress_factory: type[Progress] = Progress
    _progress: Progress | None = field(init=False, default=None)
    _task_id: TaskID | None = field(init=False, default=None)
    _lock: Lock = field(init=False, default_factory=Lock)

    def start(self, total: int) -> None:
        """Show the bar with ``total`` steps."""

        if not self.enabled or total <= 0:
            return
        self._progress = self.progress_factory(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            TimeElapsedColumn(),
            TextColumn("{task.fields[current]}", justify="right"),
            console=self.console,
            transient=True,
        )
        self._task_id = self._progress.add_task(self.description, total=total, current="")
        self._progress.start()

    def advance(self, current: str = "") -> None:
        """Advance by one step, showing ``current`` next to the bar."""

        if self._progress is None or self._task_id is None:
            return
        with self._lock:
            self._progress.update(self._task_id, advance=1, current=current)

    def stop(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
            self._task_id = None

    def __enter__(self) -> StageProgress:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.stop()


def disabled_progress(description: str = "") -> StageProgress:
    """Return a progress object that renders nothing."""

    return StageProgress(description=description, enabled=False)


__all__ = ["StageProgress", "disabled_progress"]
