"""Terminal progress helpers with Rich-based rendering."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock

from rich.console import Console
from rich.errors import LiveError
from rich.progress import (
    BarColumn,
    Progress,
    ProgressColumn,
    SpinnerColumn,
    Task,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.text import Text


@dataclass
class ProgressState:
    total: int
    completed: int = 0
    success: int = 0
    failed: int = 0
    current_url: str | None = None


class RateColumn(ProgressColumn):
    """Render processed URLs per second as ``X.X url/s``."""

    def render(self, task: Task) -> Text:
        speed = task.finished_speed or task.speed
        if speed is None:
            return Text("", style="progress.percentage")
        return Text(f"{speed:.1f} url/s", style="progress.percentage")


class ProgressReporter:
    """Render job progress and maintain counters for CLI feedback."""

    def __init__(self, enabled: bool = True, console: Console | None = None) -> None:
        self.enabled = enabled
        self._console = console
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None
        self.state: ProgressState | None = None
        self._label: str = "extract"
        self._lock = Lock()

    def set_label(self, label: str) -> None:
        self._label = label
        if self._progress is not None and self._task_id is not None:
            self._progress.update(self._task_id, job=label)

    def start(self, total: int, completed: int = 0) -> None:
        self.state = ProgressState(total=total, completed=completed)
        if not self.enabled:
            return
        if self._console is None:
            self._console = Console()
        if not self._console.is_terminal:
            # Non-interactive console: stay silent
            self.enabled = False
            return
        self._progress = Progress(
            SpinnerColumn(style="cyan"),
            TextColumn("[bold blue]{task.fields[job]:<14}", justify="left"),
            BarColumn(bar_width=None, complete_style="green", finished_style="green"),
            TaskProgressColumn(show_speed=False),
            TimeElapsedColumn(),
            RateColumn(),
            TextColumn("[green]✓{task.fields[success]:>3}", justify="right"),
            TextColumn("[red]✗{task.fields[failed]:>3}", justify="right"),
            TextColumn("[dim]{task.fields[current_url]}", justify="left"),
            refresh_per_second=12,
            expand=True,
            transient=True,
            console=self._console,
        )
        try:
            self._progress.__enter__()
        except LiveError:
            self.enabled = False
            self._progress = None
            return
        self._task_id = self._progress.add_task(
            "extract",
            total=total,
            completed=completed,
            job=self._label,
            success=0,
            failed=0,
            current_url="waiting…",
        )

    def advance(self, success: bool, current_url: str | None = None) -> None:
        """Count one finished URL; safe to call from executor worker threads."""

        if not self.state:
            raise RuntimeError("ProgressReporter.start must be called before advance")
        with self._lock:
            self.state.completed += 1
            if success:
                self.state.success += 1
            else:
                self.state.failed += 1
            if current_url:
                self.state.current_url = current_url
            display_url = self.state.current_url or ""
            succeeded, failed = self.state.success, self.state.failed
        if self._progress is not None and self._task_id is not None:
            if len(display_url) > 60:
                display_url = display_url[:57] + "..."
            self._progress.update(
                self._task_id,
                advance=1,
                success=succeeded,
                failed=failed,
                current_url=display_url,
            )

    def print(self, *renderables) -> None:
        """Print above the live bar (or straight to the console when disabled)."""

        if self._progress is not None:
            self._progress.console.print(*renderables)
        else:
            (self._console or Console()).print(*renderables)

    def close(self) -> None:
        if self._progress is not None:
            try:
                self._progress.stop()
            finally:
                self._progress.__exit__(None, None, None)
            self._progress = None
        self._task_id = None

    def summary(self) -> dict[str, int]:
        if not self.state:
            return {"completed": 0, "success": 0, "failed": 0}
        with self._lock:
            return {
                "completed": self.state.completed,
                "success": self.state.success,
                "failed": self.state.failed,
            }


__all__ = ["ProgressReporter", "ProgressState", "RateColumn"]
