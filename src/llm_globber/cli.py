"""
CLI entry point for llm-globber.

`glob` packs files into a bundle; `unglob` restores files from one.
"""

from __future__ import annotations

import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console

from . import __version__
from .config import ExitCode, ScanOptions, Verbosity, WriteStatus
from .config_loader import load_config, merge_cli_with_config
from .console import Reporter
from .errors import (
    GlobberIOError,
    MalformedBundleError,
    PathEscapeError,
    RunInterruptedError,
    SignatureMismatchError,
)
from .reader import read
from .scanner import collect_files
from .writer import write

# Initialize CLI app
app = typer.Typer(
    name="llm-globber",
    help="Collect files into a single LLM-friendly text bundle, and restore them again.",
    add_completion=False,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"llm-globber version {__version__}")
        raise typer.Exit()


def make_reporter(verbose: bool, quiet: bool, show_progress: bool = False) -> Reporter:
    """Build the reporter for one command; quiet wins over verbose."""
    if quiet:
        verbosity = Verbosity.QUIET
    elif verbose:
        verbosity = Verbosity.VERBOSE
    else:
        verbosity = Verbosity.NORMAL
    return Reporter(verbosity=verbosity, console=console, show_progress=show_progress)


@contextmanager
def stop_on_interrupt(cancel: threading.Event, reporter: Reporter) -> Iterator[None]:
    """Turn the first SIGINT into a cancellation request honoured between files.

    A second SIGINT raises `KeyboardInterrupt` immediately.
    """

    def handler(signum: int, frame: object) -> None:
        if cancel.is_set():
            raise KeyboardInterrupt
        cancel.set()
        reporter.warn("Interrupt received; stopping after the current file")

    try:
        previous = signal.signal(signal.SIGINT, handler)
    except ValueError:
        # Not the main thread; cancellation stays available through the event
        yield
        return

    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Collect files into a single LLM-friendly text bundle, and restore them again."""


@app.command("glob")
def glob_command(
    paths: Optional[List[str]] = typer.Argument(
        None,
        help="Files or directories to process.",
        show_default=False,
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output directory path.",
    ),
    name: Optional[str] = typer.Option(
        None,
        "--name", "-n",
        help="Output filename (without extension); a timestamp is appended.",
    ),
    types: Optional[str] = typer.Option(
        None,
        "--types", "-t",
        help="File types to include (comma separated, e.g. '.c,.h,.txt').",
    ),
    all_files: bool = typer.Option(
        False,
        "--all", "-a",
        help="Include all files (no filtering by type).",
    ),
    recursive: bool = typer.Option(
        False,
        "--recursive", "-r",
        help="Recursively process directories.",
    ),
    pattern: Optional[str] = typer.Option(
        None,
        "--pattern",
        help="Filter files by name pattern (glob syntax, e.g. 'test*.c').",
    ),
    skip_pattern: Optional[List[str]] = typer.Option(
        None,
        "--skip-pattern",
        help="Skip files whose name matches this glob (repeatable, e.g. '*.log').",
    ),
    size: Optional[int] = typer.Option(
        None,
        "--size", "-s",
        min=1,
        help="Maximum file size in MB (default: 1024).",
    ),
    dot_files: bool = typer.Option(
        False,
        "--dot", "-d",
        help="Include dot files (hidden files).",
    ),
    progress: bool = typer.Option(
        False,
        "--progress", "-p",
        help="Show progress indicators.",
    ),
    abort_on_error: bool = typer.Option(
        False,
        "--abort-on-error", "-e",
        help="Abort on errors (default is to continue).",
    ),
    signature: bool = typer.Option(
        False,
        "--signature",
        help="Sign every file with a per-run key so tampering can be detected.",
    ),
    git: Optional[Path] = typer.Option(
        None,
        "--git",
        help="Process a git repository recursively, honouring its .gitignore files.",
    ),
    threads: Optional[int] = typer.Option(
        None,
        "--threads", "-j",
        hidden=True,
        help="[Deprecated] Number of worker threads (always 1).",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        help="Read defaults from this config file instead of searching the working directory.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Quiet mode (suppress all output)."),
) -> None:
    """
    Collect files into a single bundle.

    Examples:

        # Bundle two files
        llm-globber glob -o out -n notes a.txt b.txt

        # Bundle all C sources under src/, signed
        llm-globber glob -o out -n src -r -t .c,.h --signature src

        # Bundle a git repository
        llm-globber glob -o out --git ./repo

        # Bundle a tree, leaving out logs and temp files
        llm-globber glob -o out -n src -r --skip-pattern '*.log' --skip-pattern '*.tmp' src
    """
    reporter = make_reporter(verbose, quiet, show_progress=progress)

    if threads is not None:
        reporter.warn("The -j option is deprecated and has no effect")

    try:
        project_config = load_config(Path.cwd(), config_file)
    except ValueError as e:
        reporter.error(str(e))
        raise typer.Exit(ExitCode.ERROR)
    if project_config.config_file is not None:
        reporter.debug(f"Loaded config from {project_config.config_file}")

    settings = merge_cli_with_config(
        project_config,
        output_dir=output,
        name=name,
        file_types=types,
        all_files=all_files,
        recursive=recursive,
        name_pattern=pattern,
        skip_patterns=skip_pattern,
        include_dot_files=dot_files,
        max_file_size_mb=size,
        abort_on_error=abort_on_error,
        sign=signature,
    )

    inputs = list(paths or [])
    if git is not None:
        if not git.is_dir():
            reporter.error(f"Git repository path is not a directory: {git}")
            raise typer.Exit(ExitCode.ERROR)
        inputs.insert(0, str(git))
        settings["recursive"] = True
        settings["respect_gitignore"] = True
        if settings["name"] is None:
            settings["name"] = git.resolve().name

    if settings["output_dir"] is None:
        reporter.error("Output path (-o) is required")
        raise typer.Exit(ExitCode.ERROR)
    if not settings["name"]:
        reporter.error("Output filename (-n) is required")
        raise typer.Exit(ExitCode.ERROR)
    if not inputs:
        reporter.error("No input files or directories specified")
        raise typer.Exit(ExitCode.ERROR)

    options = ScanOptions(
        file_types=settings["file_types"],
        filter_files=not settings["all_files"],
        recursive=settings["recursive"],
        name_pattern=settings["name_pattern"],
        skip_patterns=settings["skip_patterns"],
        include_dot_files=settings["include_dot_files"],
        max_file_size=settings["max_file_size"],
        respect_gitignore=settings["respect_gitignore"],
    )
    files, stats = collect_files(inputs, options, reporter)
    reporter.debug(f"Scan statistics: {stats.to_dict()}")

    if not files:
        reporter.warn("No files found matching criteria")
        raise typer.Exit(ExitCode.NOTHING_TO_DO)

    output_dir = Path(settings["output_dir"])
    reporter.debug(f"Output path set to: '{output_dir}'")

    cancel = threading.Event()
    try:
        with stop_on_interrupt(cancel, reporter):
            result = write(
                output_dir,
                settings["name"],
                files,
                sign=settings["sign"],
                abort_on_error=settings["abort_on_error"],
                reporter=reporter,
                cancel=cancel,
            )
    except (RunInterruptedError, KeyboardInterrupt):
        reporter.error("Interrupted; no bundle was written")
        raise typer.Exit(ExitCode.INTERRUPTED)
    except GlobberIOError as e:
        reporter.error(str(e))
        raise typer.Exit(ExitCode.ERROR)

    if result.status is WriteStatus.NOTHING_TO_DO:
        raise typer.Exit(result.exit_code)

    if not quiet:
        console.print(str(result.bundle_path), highlight=False, soft_wrap=True)
    raise typer.Exit(result.exit_code)


@app.command("unglob")
def unglob_command(
    bundle: Path = typer.Argument(
        ...,
        help="Bundle file produced by 'glob'.",
    ),
    output: Path = typer.Option(
        ...,
        "--output", "-o",
        help="Directory to extract files into.",
    ),
    signature: bool = typer.Option(
        False,
        "--signature",
        help="Verify every file's signature; nothing is extracted if any check fails.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Quiet mode (suppress all output)."),
) -> None:
    """
    Restore files from a bundle.

    Binary files were omitted when the bundle was written and are not restored.
    """
    reporter = make_reporter(verbose, quiet)

    try:
        read(bundle, output, verify=signature, reporter=reporter)
    except SignatureMismatchError as e:
        reporter.error(f"{e}; no files were extracted")
        raise typer.Exit(ExitCode.TAMPERED)
    except (MalformedBundleError, PathEscapeError) as e:
        reporter.error(f"{e}; no files were extracted")
        raise typer.Exit(ExitCode.ERROR)
    except GlobberIOError as e:
        reporter.error(str(e))
        raise typer.Exit(ExitCode.ERROR)
    except KeyboardInterrupt:
        reporter.error("Interrupted")
        raise typer.Exit(ExitCode.INTERRUPTED)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
