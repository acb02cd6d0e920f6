"""Rich progress display for the analysis pipeline."""

from __future__ import annotations

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

console = Console()


class PipelineProgress:
    """Tracks the reasoning categories of one run using Rich."""

    def __init__(self) -> None:
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TimeElapsedColumn(),
            console=console,
        )
        self._task_ids: dict[str, int] = {}
        self.input_tokens = 0
        self.output_tokens = 0

    def __enter__(self) -> "PipelineProgress":
        self._progress.__enter__()
        return self

    def __exit__(self, *args: object) -> None:
        self._progress.__exit__(*args)

    def start_step(self, name: str) -> None:
        """Register and start tracking a step."""
        tid = self._progress.add_task(f"[cyan]{name}[/]", total=None)
        self._task_ids[name] = tid

    def finish_step(self, name: str, detail: str = "") -> None:
        if name in self._task_ids:
            suffix = f" — {detail}" if detail else ""
            self._progress.update(
                self._task_ids[name],
                description=f"[green]✓ {name}[/]{suffix}",
                completed=True,
            )

    def fail_step(self, name: str, error: str) -> None:
        if name in self._task_ids:
            self._progress.update(
                self._task_ids[name],
                description=f"[red]✗ {name}: {error}[/]",
                completed=True,
            )

    def log_event(self, name: str, message: str, style: str = "dim") -> None:
        """Print a persistent log line above the spinner (not overwritten)."""
        self._progress.console.print(f"  [{style}]{name}:[/] {message}")

    def record_tokens(self, input_tokens: int, output_tokens: int) -> None:
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens
