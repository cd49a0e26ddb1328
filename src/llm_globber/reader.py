"""
Bundle reader ("unglob").

Reconstructs a file tree from an untrusted bundle. Extraction is all or
nothing: the whole bundle is parsed, every signature checked and every
target path validated before the first file is written.
"""

from __future__ import annotations

import os
import re
from collections.abc import Sequence
from pathlib import Path, PurePosixPath
from typing import Union

from .codec import BundleParser
from .config import Record
from .console import Reporter, null_reporter
from .errors import BundleReadError, BundleWriteError, PathEscapeError, SignatureMismatchError
from .signing import PublicKey, verify as verify_signature
from .utils import normalize_path

PathLike = Union[str, os.PathLike]

_DRIVE_RE = re.compile(r"^[A-Za-z]:$")
_DRIVE_PREFIX_RE = re.compile(r"^[A-Za-z]:[\\/]")


def _split_record_path(source_path: str) -> list[str]:
    # A backslash is a separator only on Windows or after a drive prefix; elsewhere it
    # is an ordinary file name character
    if os.sep == "\\" or _DRIVE_PREFIX_RE.match(source_path):
        source_path = normalize_path(source_path)
    return list(PurePosixPath(source_path).parts)


def resolve_output_path(source_path: str, output_root: Path) -> Path:
    """Map a record path onto a location inside `output_root`.

    Backslashes are treated as separators on Windows and in paths with a drive
    prefix; on POSIX they stay part of the file name. Absolute paths (including
    Windows drive prefixes) are re-rooted under `output_root`. Paths whose `..` segments
    climb above the root, or that resolve outside it through existing symlinks,
    are rejected.

    Args:
        source_path: Path text from a record header.
        output_root: Extraction root.

    Returns:
        The resolved absolute target path.

    Raises:
        PathEscapeError: If the path is unusable or would leave `output_root`.
    """
    if "\x00" in source_path:
        raise PathEscapeError(source_path, "path contains a NUL byte")

    parts = _split_record_path(source_path)
    if parts and parts[0].startswith("/"):
        parts = parts[1:]
    if parts and _DRIVE_RE.match(parts[0]):
        parts = parts[1:]

    depth = 0
    for part in parts:
        if part == "..":
            depth -= 1
            if depth < 0:
                raise PathEscapeError(source_path, "path traverses above the output directory")
        else:
            depth += 1

    if depth == 0:
        raise PathEscapeError(source_path, "path does not name a file")

    root = output_root.resolve()
    target = root.joinpath(*parts).resolve()
    try:
        target.relative_to(root)
    except ValueError:
        raise PathEscapeError(source_path, "path resolves outside the output directory") from None
    if target == root:
        raise PathEscapeError(source_path, "path does not name a file")
    return target


def load_records(bundle_path: PathLike) -> tuple[list[Record], PublicKey | None]:
    """Parse a bundle file completely.

    Returns:
        Tuple `(records, public_key)`; `public_key` is None for unsigned bundles.

    Raises:
        BundleReadError: If the file cannot be read.
        MalformedBundleError: On any framing violation.
    """
    path = Path(bundle_path)
    try:
        with open(path, "rb") as stream:
            parser = BundleParser(stream)
            records = list(parser.records())
    except OSError as e:
        raise BundleReadError(str(path), e.strerror or str(e)) from e
    return records, parser.public_key


def verify_records(records: Sequence[Record], public_key: PublicKey | None) -> None:
    """Check every record signature against the bundle's public key.

    Raises:
        SignatureMismatchError: On the first record that is unsigned or whose
            signature does not match its content, or if records exist but the
            bundle carries no key header.
    """
    if not records:
        return
    if public_key is None:
        raise SignatureMismatchError(records[0].source_path, "bundle has no public key header")

    for record in records:
        if record.signature is None:
            raise SignatureMismatchError(record.source_path, "record is not signed")
        if not verify_signature(public_key, record.signed_payload, record.signature):
            raise SignatureMismatchError(record.source_path)


def extract(
    records: Sequence[Record], output_root: PathLike, reporter: Reporter | None = None
) -> list[Path]:
    """Write records under `output_root` in bundle order.

    All target paths are validated before anything is written. Binary records
    carry no content and are skipped. Existing files are overwritten.

    Returns:
        Written paths in the order they were written (a path repeated in the
        bundle appears once per write).

    Raises:
        PathEscapeError: If any record path would leave `output_root`.
        BundleWriteError: If a directory or file cannot be written.
    """
    reporter = reporter or null_reporter()
    root = Path(output_root)
    plan = [(record, resolve_output_path(record.source_path, root)) for record in records]

    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise BundleWriteError(str(root), f"could not create output directory: {e}") from e

    written: list[Path] = []
    seen: set[Path] = set()
    for record, target in plan:
        if record.is_binary:
            reporter.info(f"Skipping binary file (contents omitted): {record.source_path}")
            continue

        if target in seen:
            reporter.warn(f"{record.source_path} appears more than once; later copy wins")
        seen.add(target)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(record.content)
        except OSError as e:
            raise BundleWriteError(str(target), e.strerror or str(e)) from e

        reporter.debug(f"Extracted {record.source_path} -> {target} ({len(record.content)} bytes)")
        written.append(target)

    return written


def read(
    bundle_path: PathLike,
    output_root: PathLike,
    verify: bool = False,
    reporter: Reporter | None = None,
) -> set[Path]:
    """Extract a bundle into `output_root`.

    Args:
        bundle_path: Bundle file to read.
        output_root: Directory that receives the extracted tree.
        verify: Require a valid signature on every record.
        reporter: Output sink (defaults to a quiet reporter).

    Returns:
        The set of written file paths.

    Raises:
        BundleReadError: If the bundle cannot be read.
        MalformedBundleError: If the bundle framing is invalid.
        SignatureMismatchError: If `verify` is set and any record fails verification.
        PathEscapeError: If any record path would leave `output_root`.
        BundleWriteError: If an extracted file cannot be written.
    """
    reporter = reporter or null_reporter()

    records, public_key = load_records(bundle_path)
    reporter.debug(f"Parsed {len(records)} records from {bundle_path}")

    if verify:
        verify_records(records, public_key)
        reporter.info(f"Verified signatures of {len(records)} records")
    elif public_key is not None:
        reporter.debug("Bundle is signed; signatures not checked")

    written = extract(records, output_root, reporter)
    reporter.success(f"Extracted {len(written)} files to {output_root}")
    return set(written)
