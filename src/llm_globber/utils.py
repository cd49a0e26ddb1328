"""
Utility functions for llm-globber.

Includes encoding detection for diagnostics and path helpers shared by the
scanner and the reader.
"""

from __future__ import annotations

from pathlib import Path

import chardet


def detect_encoding(sample: bytes, sample_size: int = 8192) -> str:
    """Detect a likely text encoding for a byte sample.

    Used to explain lossy transliteration in verbose output. Prefers UTF-8 and only
    asks `chardet` when strict UTF-8 decoding fails, which avoids misreporting UTF-8
    as Latin-1/CP1252.

    Args:
        sample: Leading bytes of a file.
        sample_size: Number of bytes considered.

    Returns:
        A normalized encoding label (e.g., `"utf-8"`, `"utf-8-sig"`, `"utf-16-le"`).
    """
    sample = sample[:sample_size]
    if not sample:
        return "utf-8"

    # Check for BOM markers first (most reliable)
    if sample.startswith(b"\xef\xbb\xbf"):
        return "utf-8-sig"
    if sample.startswith(b"\xff\xfe"):
        return "utf-16-le"
    if sample.startswith(b"\xfe\xff"):
        return "utf-16-be"

    try:
        sample.decode("utf-8")
        return "utf-8"
    except UnicodeDecodeError:
        pass

    result = chardet.detect(sample)
    encoding_any = result.get("encoding")

    if not isinstance(encoding_any, str) or not encoding_any:
        return "unknown"

    encoding = encoding_any.lower()
    if encoding in ("ascii", "utf-8", "utf8"):
        return "utf-8"

    return encoding


def normalize_path(path: str) -> str:
    """Normalize a path for consistent cross-platform comparisons.

    Args:
        path: Path string that may contain platform-specific separators.

    Returns:
        Normalized path using forward slashes.
    """
    return path.replace("\\", "/")


def is_dot_file(path: Path) -> bool:
    """Return True if the final path component is hidden (starts with a dot)."""
    return path.name.startswith(".")
