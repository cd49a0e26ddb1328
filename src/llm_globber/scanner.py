"""
Input file collection for llm-globber.

Turns command-line inputs (files and directories) into the ordered, filtered
list of paths the writer consumes.
"""

from __future__ import annotations

import fnmatch
import os
from collections.abc import Iterator, Sequence
from pathlib import Path

import pathspec

from .config import MAX_FILES, ScanOptions, ScanStats
from .console import Reporter, null_reporter
from .utils import is_dot_file

# Never descended into, regardless of options
ALWAYS_SKIPPED_DIRS = {".git"}


class GitIgnoreParser:
    """
    Parser for .gitignore files.

    Supports nested .gitignore files in subdirectories.
    """

    def __init__(self, root_path: Path):
        """
        Initialize the parser.

        Args:
            root_path: Root directory of the repository
        """
        self.root_path = root_path.resolve()
        self._specs: dict[Path, pathspec.PathSpec] = {}
        self._load_gitignores()

    def _load_gitignores(self) -> None:
        """Load all .gitignore files below the root."""
        for gitignore_path in sorted(self.root_path.rglob(".gitignore")):
            if ".git" in gitignore_path.relative_to(self.root_path).parts[:-1]:
                continue
            self._load_gitignore_file(gitignore_path, gitignore_path.parent)

    def _load_gitignore_file(self, gitignore_path: Path, base_path: Path) -> None:
        """Load a single .gitignore file."""
        try:
            with open(gitignore_path, "r", encoding="utf-8", errors="replace") as f:
                patterns = f.read().splitlines()
        except OSError:
            return  # unreadable .gitignore files are ignored

        patterns = [
            p.strip() for p in patterns
            if p.strip() and not p.strip().startswith("#")
        ]
        if patterns:
            self._specs[base_path] = pathspec.PathSpec.from_lines(
                pathspec.patterns.GitWildMatchPattern,
                patterns,
            )

    def is_ignored(self, path: Path) -> bool:
        """
        Check if a file or directory is ignored by .gitignore.

        Args:
            path: Path to the file or directory

        Returns:
            True if the path should be ignored
        """
        path = path.resolve()
        is_dir = path.is_dir()

        # Most specific .gitignore first
        for base_path, spec in sorted(
            self._specs.items(),
            key=lambda x: len(x[0].parts),
            reverse=True,
        ):
            try:
                rel_path = path.relative_to(base_path).as_posix()
            except ValueError:
                continue  # not under this base path
            if spec.match_file(rel_path):
                return True
            if is_dir and spec.match_file(rel_path + "/"):
                return True

        return False


class FileCollector:
    """
    Collects input files in command-line order.

    Directories are walked only when `options.recursive` is set; entries are
    visited sorted by name so output order is deterministic.
    """

    def __init__(self, options: ScanOptions, reporter: Reporter | None = None):
        self.options = options
        self.reporter = reporter or null_reporter()
        self.stats = ScanStats()
        self._files: list[str] = []
        self._limit_warned = False

    @property
    def files(self) -> list[str]:
        return list(self._files)

    def add_input(self, input_path: str) -> None:
        """Add one command-line input (file or directory)."""
        path = Path(input_path)

        if not path.exists():
            self.stats.files_skipped_missing += 1
            self.reporter.warn(f"Could not access path {input_path}: Path does not exist")
            return

        if path.is_dir():
            if not self.options.recursive:
                self.stats.files_skipped_directory += 1
                self.reporter.warn(f"{input_path} is a directory. Use -r to process recursively.")
                return
            gitignore = GitIgnoreParser(path) if self.options.respect_gitignore else None
            for file_path in self._walk(input_path, gitignore):
                self._consider(file_path)
            return

        if path.is_file():
            self._consider(input_path)

    def _walk(self, dir_path: str, gitignore: GitIgnoreParser | None) -> Iterator[str]:
        try:
            with os.scandir(dir_path) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            self.reporter.warn(f"Failed to read directory {dir_path}: {e}")
            return

        for entry in entries:
            entry_path = os.path.join(dir_path, entry.name)
            try:
                if entry.is_symlink():
                    continue
                is_dir = entry.is_dir()
            except OSError:
                continue

            if is_dir:
                if entry.name in ALWAYS_SKIPPED_DIRS:
                    continue
                if entry.name.startswith(".") and not self.options.include_dot_files:
                    continue
                if gitignore is not None and gitignore.is_ignored(Path(entry_path)):
                    continue
                yield from self._walk(entry_path, gitignore)
            elif entry.is_file():
                if gitignore is not None and gitignore.is_ignored(Path(entry_path)):
                    self.stats.files_scanned += 1
                    self.stats.files_skipped_gitignore += 1
                    continue
                yield entry_path

    def _consider(self, file_path: str) -> None:
        self.stats.files_scanned += 1
        if not self.should_process_file(file_path):
            return

        if len(self._files) >= MAX_FILES:
            self.stats.files_skipped_limit += 1
            if not self._limit_warned:
                self.reporter.warn(f"Maximum file limit reached ({MAX_FILES})")
                self._limit_warned = True
            return

        self._files.append(file_path)
        self.stats.files_included += 1

    def should_process_file(self, file_path: str) -> bool:
        """Apply the dot-file, size, name-pattern, skip-pattern and extension filters."""
        path = Path(file_path)
        base_name = path.name

        if is_dot_file(path) and not self.options.include_dot_files:
            self.stats.files_skipped_dot += 1
            self.reporter.debug(f"Skipping dot file: {file_path}")
            return False

        try:
            size = path.stat().st_size
        except OSError:
            self.stats.files_skipped_missing += 1
            return False

        if size > self.options.max_file_size:
            self.stats.files_skipped_size += 1
            self.reporter.warn(
                f"Skipping file {file_path}: size exceeds limit "
                f"({size} > {self.options.max_file_size})"
            )
            return False

        if self.options.name_pattern and not fnmatch.fnmatchcase(
            base_name, self.options.name_pattern
        ):
            self.stats.files_skipped_pattern += 1
            return False

        for skip_pattern in self.options.skip_patterns:
            if fnmatch.fnmatchcase(base_name, skip_pattern):
                self.stats.files_skipped_skip_pattern += 1
                self.reporter.debug(f"Skipping {file_path}: matches skip pattern '{skip_pattern}'")
                return False

        if (
            self.options.filter_files
            and self.options.file_types
            and path.suffix not in self.options.file_types
        ):
            self.stats.files_skipped_extension += 1
            return False

        return True


def collect_files(
    inputs: Sequence[str],
    options: ScanOptions | None = None,
    reporter: Reporter | None = None,
) -> tuple[list[str], ScanStats]:
    """
    Convenience function to collect files from command-line inputs.

    Returns:
        Tuple of (ordered list of file paths, ScanStats)
    """
    collector = FileCollector(options or ScanOptions(), reporter)
    for input_path in inputs:
        collector.add_input(input_path)
    return collector.files, collector.stats
