"""
Configuration models, constants and defaults for llm-globber.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path
from typing import Any

# Record framing
MARKER = "'''"
HEADER_PREFIX = f"{MARKER}--- "
HEADER_SUFFIX = " ---"
BINARY_SENTINEL = "[Binary file - contents omitted]"
KEY_HEADER_PATH = "PUBLIC_KEY"
KEY_ANNOTATION = "KEY"
SIGNATURE_ANNOTATION = "SIGNATURE"

# Substituted for every byte outside the plain-text subset
PLACEHOLDER = "\ufffd"

# Classifier
CLASSIFIER_SAMPLE_SIZE = 4096
BINARY_RATIO_PERCENT = 10

# Writer
DEFAULT_MAX_FILE_SIZE = 1 << 30  # 1 GiB
MAX_FILES = 100_000
MAX_CONSECUTIVE_BLANK_LINES = 2
OUTPUT_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
OUTPUT_FILE_MODE = 0o600


class Verbosity(str, Enum):
    """How much the tool reports while running."""

    QUIET = "quiet"
    NORMAL = "normal"
    VERBOSE = "verbose"


class ExitCode(IntEnum):
    """Process exit status reported by the CLI."""

    SUCCESS = 0
    ERROR = 1
    USAGE = 2
    NOTHING_TO_DO = 3
    TAMPERED = 4
    INTERRUPTED = 130


class WriteStatus(str, Enum):
    """Outcome of a glob run."""

    WRITTEN = "written"
    NOTHING_TO_DO = "nothing_to_do"


@dataclass
class Record:
    """One packaged file.

    Attributes:
        source_path: Path exactly as supplied to the writer; used verbatim as header text.
        content: Raw bytes when writing; the (transliterated) body bytes after parsing.
        is_binary: Classifier verdict, decided once per file.
        signature: Raw Ed25519 signature bytes, present iff the bundle is signed.
    """

    source_path: str
    content: bytes = b""
    is_binary: bool = False
    signature: bytes | None = None

    def __post_init__(self) -> None:
        if not self.source_path:
            raise ValueError("Record source_path cannot be empty")

    @property
    def signed_payload(self) -> bytes:
        """Bytes covered by the record signature (empty for binary records)."""
        return b"" if self.is_binary else self.content


@dataclass
class ScanOptions:
    """Filtering options applied when turning CLI inputs into a file list.

    Attributes:
        file_types: Extensions to include (with leading dot). Empty means no filter.
        filter_files: Whether the extension filter applies at all (`-a` turns it off).
        recursive: Walk directories given as inputs.
        name_pattern: Glob matched against each file's base name.
        skip_patterns: Globs matched against each file's base name; any match excludes the file.
        include_dot_files: Include files and directories whose name starts with a dot.
        max_file_size: Files larger than this many bytes are skipped.
        respect_gitignore: Honour `.gitignore` files while walking directories.
    """

    file_types: set[str] = field(default_factory=set)
    filter_files: bool = True
    recursive: bool = False
    name_pattern: str | None = None
    skip_patterns: list[str] = field(default_factory=list)
    include_dot_files: bool = False
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    respect_gitignore: bool = False

    def __post_init__(self) -> None:
        self.file_types = {
            ext if ext.startswith(".") else f".{ext}" for ext in self.file_types if ext
        }


@dataclass
class ScanStats:
    """Statistics from collecting input files."""

    files_scanned: int = 0
    files_included: int = 0
    files_skipped_missing: int = 0
    files_skipped_directory: int = 0
    files_skipped_dot: int = 0
    files_skipped_size: int = 0
    files_skipped_extension: int = 0
    files_skipped_pattern: int = 0
    files_skipped_skip_pattern: int = 0
    files_skipped_gitignore: int = 0
    files_skipped_limit: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "files_included": self.files_included,
            "files_scanned": self.files_scanned,
            "files_skipped": {
                "directory": self.files_skipped_directory,
                "dot": self.files_skipped_dot,
                "extension": self.files_skipped_extension,
                "gitignore": self.files_skipped_gitignore,
                "limit": self.files_skipped_limit,
                "missing": self.files_skipped_missing,
                "pattern": self.files_skipped_pattern,
                "size": self.files_skipped_size,
                "skip_pattern": self.files_skipped_skip_pattern,
            },
        }


@dataclass
class WriteResult:
    """Outcome of a glob run.

    Attributes:
        status: Whether a bundle was produced.
        bundle_path: Path of the produced bundle, None when nothing was processed.
        processed: Files written into the bundle.
        failed: Files that could not be read.
        skipped: Inputs that were not regular files.
        binary: Processed files whose content was omitted as binary.
        lossy: Processed text files that needed placeholder substitution.
        elapsed_seconds: Wall-clock duration of the run.
    """

    status: WriteStatus
    bundle_path: Path | None = None
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    binary: int = 0
    lossy: int = 0
    elapsed_seconds: float = 0.0

    @property
    def exit_code(self) -> ExitCode:
        if self.status is WriteStatus.NOTHING_TO_DO:
            return ExitCode.NOTHING_TO_DO
        return ExitCode.SUCCESS
