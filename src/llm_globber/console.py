"""
Verbosity-aware console output for llm-globber.

Components receive a `Reporter` explicitly instead of consulting global
quiet/verbose state.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager

from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from .config import Verbosity


class Reporter:
    """
    Log sink shared by the writer, reader and scanner.

    Errors are always printed; `QUIET` suppresses everything else and
    `VERBOSE` adds debug lines.
    """

    def __init__(
        self,
        verbosity: Verbosity = Verbosity.NORMAL,
        console: Console | None = None,
        show_progress: bool = False,
    ) -> None:
        self.verbosity = verbosity
        self.console = console or Console()
        self.show_progress = show_progress

    @property
    def quiet(self) -> bool:
        return self.verbosity is Verbosity.QUIET

    @property
    def verbose(self) -> bool:
        return self.verbosity is Verbosity.VERBOSE

    def debug(self, message: str) -> None:
        if self.verbose:
            self.console.print(f"[dim]{escape(message)}[/dim]")

    def info(self, message: str) -> None:
        if not self.quiet:
            self.console.print(escape(message))

    def success(self, message: str) -> None:
        if not self.quiet:
            self.console.print(f"[green]{escape(message)}[/green]")

    def warn(self, message: str) -> None:
        if not self.quiet:
            self.console.print(f"[yellow]Warning: {escape(message)}[/yellow]")

    def error(self, message: str) -> None:
        self.console.print(f"[red]Error: {escape(message)}[/red]")

    @contextmanager
    def progress(self, total: int, description: str) -> Iterator[Callable[[], None]]:
        """Display a progress bar for `total` steps.

        Yields:
            A callable advancing the bar by one step. It is a no-op when progress
            display is disabled or the reporter is quiet.
        """
        if not self.show_progress or self.quiet:
            yield lambda: None
            return

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self.console,
            transient=True,
        ) as progress:
            task = progress.add_task(description, total=total)
            yield lambda: progress.advance(task)


def null_reporter() -> Reporter:
    """Reporter that prints nothing but errors."""
    return Reporter(verbosity=Verbosity.QUIET)
