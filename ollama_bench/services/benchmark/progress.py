"""
Progress Reporting

Per-trial progress events for live rendering. Reporters are plain callables
taking a ProgressEvent; they are dispatched without being awaited so a slow
or failing reporter never holds up a trial.

Reporters are also context managers so a live display can be started before
the run and torn down after it.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from .metrics import TrialRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted each time a measured trial completes"""

    model: str
    completed: int
    total: int
    record: TrialRecord | None = None

    @property
    def finished(self) -> bool:
        return self.completed >= self.total


ProgressCallback = Callable[[ProgressEvent], None]


def _invoke(callback: ProgressCallback, event: ProgressEvent) -> None:
    try:
        callback(event)
    except Exception as e:
        logger.warning(f"Progress callback failed: {e}")


def emit(callback: ProgressCallback | None, event: ProgressEvent) -> None:
    """Schedule ``callback(event)`` on the running loop, fire-and-forget"""
    if callback is None:
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        _invoke(callback, event)
        return
    loop.call_soon(_invoke, callback, event)


class ProgressReporter:
    """Base reporter: ignores events, nothing to start or stop"""

    def __enter__(self) -> "ProgressReporter":
        return self

    def __exit__(self, *exc_info) -> None:
        return None

    def __call__(self, event: ProgressEvent) -> None:
        return None


class QuietProgress(ProgressReporter):
    """Discards all progress events"""


class LoggingProgress(ProgressReporter):
    """Logs each completed trial"""

    def __call__(self, event: ProgressEvent) -> None:
        record = event.record
        if record is None:
            return
        if record.success:
            logger.info(
                f"[{event.model}] trial {event.completed}/{event.total}: "
                f"{record.tokens_per_second:.1f} tok/s, TTFT={record.ttft_ms:.0f}ms"
            )
        else:
            logger.info(
                f"[{event.model}] trial {event.completed}/{event.total} failed: {record.error}"
            )


class TerminalProgress(ProgressReporter):
    """Live progress bar per model, rendered with rich.

    Log records sent through a ``RichHandler`` on the same console are
    printed above the bars instead of breaking them.
    """

    def __init__(self, console: Console | None = None):
        self.console = console or Console(stderr=True)
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("Testing [cyan]{task.description}[/cyan]"),
            BarColumn(),
            TaskProgressColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self.console,
        )
        self._tasks: dict[str, TaskID] = {}

    def __enter__(self) -> "TerminalProgress":
        self._progress.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self._progress.stop()

    def __call__(self, event: ProgressEvent) -> None:
        task_id = self._tasks.get(event.model)
        if task_id is None:
            task_id = self._progress.add_task(event.model, total=event.total)
            self._tasks[event.model] = task_id

        self._progress.update(task_id, completed=event.completed)
        if event.finished:
            self._progress.update(task_id, description=f"{event.model} [green]✓ Complete[/green]")
