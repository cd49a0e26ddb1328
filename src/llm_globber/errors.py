"""
Error types for llm-globber.

Write-side I/O problems are recoverable per file; every read-side integrity
problem (framing, signatures, hostile paths) aborts the whole run.
"""

from __future__ import annotations


class GlobberError(Exception):
    """Base class for all llm-globber errors."""

    pass


class GlobberIOError(GlobberError):
    """A file could not be read or written."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class FileReadError(GlobberIOError):
    """An input file could not be read while globbing."""

    pass


class BundleReadError(GlobberIOError):
    """A bundle file could not be opened or read."""

    pass


class BundleWriteError(GlobberIOError):
    """A bundle, or a file extracted from one, could not be written."""

    pass


class MalformedBundleError(GlobberError):
    """The bundle text violates the record framing.

    Attributes:
        reason: Human-readable description of the violation.
        line_number: 1-indexed line where the problem was detected, if known.
    """

    def __init__(self, reason: str, line_number: int | None = None) -> None:
        self.reason = reason
        self.line_number = line_number
        msg = f"Malformed bundle: {reason}"
        if line_number is not None:
            msg += f" (line {line_number})"
        super().__init__(msg)


class SignatureMismatchError(GlobberError):
    """A record's signature is missing or does not match its content."""

    def __init__(self, path: str, reason: str = "signature does not match content") -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Signature verification failed for '{path}': {reason}")


class PathEscapeError(GlobberError):
    """A record path would resolve outside the extraction root."""

    def __init__(self, path: str, reason: str = "path escapes the output directory") -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Unsafe path '{path}': {reason}")


class RunInterruptedError(GlobberError):
    """The run was cancelled before it finished."""

    pass
