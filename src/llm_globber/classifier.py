"""
Binary/text classification of file content.

A sample is binary when more than 10% of its bytes are NUL or control
characters other than newline, carriage return and tab.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from .config import BINARY_RATIO_PERCENT, CLASSIFIER_SAMPLE_SIZE

_ALLOWED_CONTROL = frozenset((0x09, 0x0A, 0x0D))


class Verdict(str, Enum):
    """Classifier verdict for one file."""

    BINARY = "binary"
    TEXT = "text"


def _is_suspicious(byte: int) -> bool:
    return byte < 0x20 and byte not in _ALLOWED_CONTROL


def _exceeds_ratio(count: int, total: int) -> bool:
    return count * 100 > total * BINARY_RATIO_PERCENT


def classify(sample: bytes) -> Verdict:
    """Classify a byte sample, stopping as soon as the verdict is certain.

    Only the first 4096 bytes are considered. The suspicious-byte count never
    decreases during the scan, so once it exceeds the threshold for the full
    sample length the verdict cannot change.

    Args:
        sample: Leading bytes of a file (may be longer than the sample size).

    Returns:
        `Verdict.BINARY` or `Verdict.TEXT`. Empty input is text.
    """
    window = sample[:CLASSIFIER_SAMPLE_SIZE]
    total = len(window)
    count = 0
    for byte in window:
        if _is_suspicious(byte):
            count += 1
            if _exceeds_ratio(count, total):
                return Verdict.BINARY
    return Verdict.TEXT


def classify_full_scan(sample: bytes) -> Verdict:
    """Classify a byte sample by counting every byte in the window."""
    window = sample[:CLASSIFIER_SAMPLE_SIZE]
    count = sum(1 for byte in window if _is_suspicious(byte))
    if window and _exceeds_ratio(count, len(window)):
        return Verdict.BINARY
    return Verdict.TEXT


def classify_file(file_path: Path) -> Verdict:
    """Read the leading sample of a file and classify it.

    Raises:
        OSError: If the file cannot be opened or read.
    """
    with open(file_path, "rb") as f:
        return classify(f.read(CLASSIFIER_SAMPLE_SIZE))


def is_binary(sample: bytes) -> bool:
    """Return True if `sample` classifies as binary."""
    return classify(sample) is Verdict.BINARY
