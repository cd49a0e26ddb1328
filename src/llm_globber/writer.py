"""
Bundle writer ("glob").

Packs an ordered list of files into a single bundle. Records are appended
strictly in input order; the bundle only appears under its final name once
the run has completed.
"""

from __future__ import annotations

import os
import tempfile
import threading
import time
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Union

from .classifier import Verdict, classify
from .codec import collapse_blank_lines, encode_key_header, encode_record, transliterate
from .config import (
    CLASSIFIER_SAMPLE_SIZE,
    OUTPUT_FILE_MODE,
    OUTPUT_TIMESTAMP_FORMAT,
    Record,
    WriteResult,
    WriteStatus,
)
from .console import Reporter, null_reporter
from .errors import BundleWriteError, FileReadError, RunInterruptedError
from .signing import Keypair, encode_public_key, generate_keypair
from .utils import detect_encoding

PathLike = Union[str, os.PathLike]


def bundle_file_name(base_name: str, now: datetime | None = None) -> str:
    """Return `<base_name>_<YYYYMMDDHHMMSS>.txt` for the given (or current) time."""
    stamp = (now or datetime.now()).strftime(OUTPUT_TIMESTAMP_FORMAT)
    return f"{base_name}_{stamp}.txt"


class BundleWriter:
    """
    Appends records to one bundle stream.

    The writer exclusively owns its stream for the duration of a run. When a
    keypair is given the key header is written immediately, so it is always
    the first thing in the bundle.
    """

    def __init__(
        self,
        stream: BinaryIO,
        keypair: Keypair | None = None,
        reporter: Reporter | None = None,
    ) -> None:
        self._stream = stream
        self._keypair = keypair
        self._reporter = reporter or null_reporter()
        self.records_written = 0
        self.binary_records = 0
        self.lossy_records = 0

        if keypair is not None:
            self._stream.write(encode_key_header(encode_public_key(keypair.public_key)))

    def add(self, source_path: str, data: bytes) -> Record:
        """Classify, optionally sign, and append one file's content.

        Args:
            source_path: Path text recorded in the header, exactly as supplied.
            data: Raw file bytes.

        Returns:
            The record that was written (with its signature, if signing).

        Raises:
            ValueError: If `source_path` cannot be framed (empty or multi-line).
        """
        verdict = classify(data[:CLASSIFIER_SAMPLE_SIZE])
        record = Record(source_path=source_path, content=data, is_binary=verdict is Verdict.BINARY)

        if self._keypair is not None:
            record.signature = self._keypair.sign(record.signed_payload)

        self._stream.write(encode_record(record))
        self.records_written += 1

        if record.is_binary:
            self.binary_records += 1
            self._reporter.debug(f"{source_path}: binary, contents omitted")
        else:
            _, replaced = transliterate(data)
            if replaced:
                self.lossy_records += 1
                self._reporter.debug(
                    f"{source_path}: {replaced} non-ASCII byte(s) replaced "
                    f"(detected encoding: {detect_encoding(data)})"
                )
                if record.signature is not None:
                    self._reporter.warn(
                        f"{source_path} was transliterated; its signature covers the original "
                        "bytes and will not verify on extraction"
                    )
        return record


def _read_input(path: Path) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def _handle_failure(
    error: FileReadError, cause: Exception, abort_on_error: bool, reporter: Reporter
) -> None:
    if abort_on_error:
        raise error from cause
    reporter.warn(f"Failed to process {error}")


def _collapse_in_place(bundle: Path, reporter: Reporter) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=bundle.parent, prefix=f".{bundle.name}.", suffix=".clean")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as dst, open(bundle, "rb") as src:
            removed = collapse_blank_lines(src, dst)
        os.replace(tmp, bundle)
        if removed:
            reporter.debug(f"Collapsed {removed} surplus blank line(s)")
    except OSError as e:
        _remove_quietly(tmp)
        reporter.warn(f"Could not clean up {bundle}: {e}")


def write(
    output_root: PathLike,
    base_name: str,
    paths: Sequence[PathLike],
    sign: bool = False,
    abort_on_error: bool = False,
    reporter: Reporter | None = None,
    cancel: threading.Event | None = None,
    now: datetime | None = None,
) -> WriteResult:
    """Write a bundle containing `paths` in the given order.

    The finished bundle goes through `collapse_blank_lines` before it is moved
    into place. That pass only touches blank runs between records, and every
    record this writer emits ends with exactly one blank line, so a bundle
    produced here comes out of it byte-for-byte unchanged.

    Args:
        output_root: Directory that receives the bundle (created if missing).
        base_name: Bundle name prefix; the file is `<base_name>_<timestamp>.txt`.
        paths: Input files, in the order their records should appear.
        sign: Generate a per-run keypair and sign every record.
        abort_on_error: Treat the first unreadable file as fatal.
        reporter: Output sink (defaults to a quiet reporter).
        cancel: Event checked between records; when set the run is abandoned.
        now: Timestamp used for the file name (defaults to the current time).

    Returns:
        A `WriteResult`. When no file could be processed, no bundle exists and
        `status` is `WriteStatus.NOTHING_TO_DO`.

    Raises:
        FileReadError: If an input cannot be read and `abort_on_error` is set.
        BundleWriteError: If the bundle itself cannot be written.
        RunInterruptedError: If `cancel` was set during the run.
    """
    reporter = reporter or null_reporter()
    start = time.monotonic()

    if not paths:
        reporter.info("No files to process")
        return WriteResult(status=WriteStatus.NOTHING_TO_DO)

    root = Path(output_root)
    try:
        if not root.exists():
            root.mkdir(parents=True, exist_ok=True)
            reporter.info(f"Created output directory: {root}")
    except OSError as e:
        raise BundleWriteError(str(root), f"could not create output directory: {e}") from e

    bundle_path = root / bundle_file_name(base_name, now)
    try:
        fd, tmp_name = tempfile.mkstemp(dir=root, prefix=f".{bundle_path.name}.", suffix=".tmp")
    except OSError as e:
        raise BundleWriteError(str(bundle_path), str(e)) from e
    tmp_path = Path(tmp_name)

    keypair = generate_keypair() if sign else None
    failed = 0
    skipped = 0

    try:
        with os.fdopen(fd, "wb") as stream:
            writer = BundleWriter(stream, keypair, reporter)

            with reporter.progress(len(paths), "Globbing files...") as advance:
                for path in paths:
                    if cancel is not None and cancel.is_set():
                        raise RunInterruptedError("Glob run was cancelled")

                    source = os.fspath(path)
                    file_path = Path(source)
                    advance()

                    if not file_path.is_file():
                        reporter.warn(f"Skipping invalid file path: {source}")
                        skipped += 1
                        continue

                    try:
                        data = _read_input(file_path)
                    except OSError as e:
                        failed += 1
                        _handle_failure(FileReadError(source, e.strerror or str(e)), e,
                                        abort_on_error, reporter)
                        continue

                    reporter.debug(f"Processing file {source}: size {len(data)} bytes")
                    try:
                        writer.add(source, data)
                    except ValueError as e:
                        failed += 1
                        _handle_failure(FileReadError(source, str(e)), e, abort_on_error, reporter)

        processed = writer.records_written
        if processed == 0:
            _remove_quietly(tmp_path)
            reporter.warn("No files were processed")
            return WriteResult(
                status=WriteStatus.NOTHING_TO_DO,
                failed=failed,
                skipped=skipped,
                elapsed_seconds=time.monotonic() - start,
            )

        _collapse_in_place(tmp_path, reporter)
        os.chmod(tmp_path, OUTPUT_FILE_MODE)
        os.replace(tmp_path, bundle_path)
    except OSError as e:
        _remove_quietly(tmp_path)
        raise BundleWriteError(str(bundle_path), str(e)) from e
    except BaseException:
        _remove_quietly(tmp_path)
        raise
    finally:
        if keypair is not None:
            keypair.discard()

    elapsed = time.monotonic() - start
    rate = processed / elapsed if elapsed > 0 else float(processed)
    reporter.success(
        f"Done. Processed {processed} files in {elapsed:.2f} seconds "
        f"({rate:.1f} files/sec). Output: {bundle_path}"
    )
    if failed:
        reporter.warn(f"Failed to process {failed} files")

    return WriteResult(
        status=WriteStatus.WRITTEN,
        bundle_path=bundle_path,
        processed=processed,
        failed=failed,
        skipped=skipped,
        binary=writer.binary_records,
        lossy=writer.lossy_records,
        elapsed_seconds=elapsed,
    )
