"""
Record framing for llm-globber bundles.

A record is a header line, a body and a footer line followed by one blank
line::

    '''--- path/to/file.txt --- [SIGNATURE:<base64>]
    <transliterated content>
    '''

The body of a text record is its transliterated content plus one terminating
newline, which the parser strips again; binary records carry a fixed sentinel
line instead. Markers are not escaped: content containing a bare `'''` line
ends its record early.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from typing import BinaryIO

from .config import (
    BINARY_SENTINEL,
    HEADER_PREFIX,
    HEADER_SUFFIX,
    KEY_ANNOTATION,
    KEY_HEADER_PATH,
    MARKER,
    MAX_CONSECUTIVE_BLANK_LINES,
    PLACEHOLDER,
    SIGNATURE_ANNOTATION,
    Record,
)
from .errors import MalformedBundleError
from .signing import PublicKey, decode_public_key, decode_signature, encode_signature

PATH_ENCODING = "utf-8"
PATH_ERRORS = "surrogateescape"

_HEADER_PREFIX_BYTES = HEADER_PREFIX.encode("ascii")
_FOOTER_BYTES = MARKER.encode("ascii")
_SENTINEL_BYTES = BINARY_SENTINEL.encode("ascii")
_PLACEHOLDER_BYTES = PLACEHOLDER.encode("utf-8")

_NON_TEXT_BYTES = re.compile(rb"[^\x20-\x7e\t\n\r]")

_HEADER_RE = re.compile(
    r"^" + re.escape(HEADER_PREFIX) + r"(?P<path>.*?)" + re.escape(HEADER_SUFFIX)
    + r"(?: \[(?P<kind>[A-Z]+):(?P<value>[A-Za-z0-9+/=]*)\])?$",
    re.DOTALL,
)


def transliterate(data: bytes) -> tuple[bytes, int]:
    """Replace every byte outside printable ASCII, tab, LF and CR.

    Args:
        data: Raw file content.

    Returns:
        Tuple `(text_bytes, replaced)` where `replaced` is the number of bytes substituted
        with the placeholder character.
    """
    return _NON_TEXT_BYTES.subn(_PLACEHOLDER_BYTES, data)


def encode_header(path: str, annotation: tuple[str, str] | None = None) -> bytes:
    """Encode one header line.

    Raises:
        ValueError: If the path is empty or contains a line break.
    """
    if not path:
        raise ValueError("Record path cannot be empty")
    if "\n" in path or "\r" in path:
        raise ValueError(f"Record path contains a line break: {path!r}")

    line = f"{HEADER_PREFIX}{path}{HEADER_SUFFIX}"
    if annotation is not None:
        kind, value = annotation
        line += f" [{kind}:{value}]"
    return (line + "\n").encode(PATH_ENCODING, PATH_ERRORS)


def encode_key_header(public_key_b64: str) -> bytes:
    """Encode the key header pseudo-record that opens a signed bundle."""
    return (
        encode_header(KEY_HEADER_PATH, (KEY_ANNOTATION, public_key_b64))
        + _FOOTER_BYTES + b"\n\n"
    )


def encode_record(record: Record) -> bytes:
    """Encode one record: header, body, footer and the separating blank line.

    Text content is transliterated here; `record.content` itself is left untouched
    so callers can sign the raw bytes.
    """
    annotation = None
    if record.signature is not None:
        annotation = (SIGNATURE_ANNOTATION, encode_signature(record.signature))

    if record.is_binary:
        body = _SENTINEL_BYTES
    else:
        body, _ = transliterate(record.content)

    return encode_header(record.source_path, annotation) + body + b"\n" + _FOOTER_BYTES + b"\n\n"


def _is_footer(line: bytes) -> bool:
    return line == _FOOTER_BYTES + b"\n" or line == _FOOTER_BYTES


def _is_blank(line: bytes) -> bool:
    return not line.strip()


class _PendingRecord:
    """Header fields of a record whose footer has not been reached yet."""

    def __init__(
        self, path: str, kind: str | None, value: str | None, line_number: int
    ) -> None:
        self.path = path
        self.kind = kind
        self.value = value
        self.line_number = line_number
        self.body: list[bytes] = []


class BundleParser:
    """
    Streaming parser for bundle files.

    Records are yielded one at a time in file order. The key header, if
    present, is consumed internally and exposed as `public_key` before the
    first record is yielded.
    """

    def __init__(self, stream: BinaryIO) -> None:
        """
        Initialize the parser.

        Args:
            stream: Binary stream positioned at the start of the bundle
        """
        self._stream = stream
        self.public_key: PublicKey | None = None
        self.records_parsed = 0
        self._iterator: Iterator[Record] | None = None

    def records(self) -> Iterator[Record]:
        """
        Parse the stream and yield each record.

        Raises:
            MalformedBundleError: On any framing violation
        """
        pending: _PendingRecord | None = None
        line_number = 0

        for line_number, line in enumerate(self._stream, start=1):
            if pending is None:
                if _is_blank(line):
                    continue
                if not line.startswith(_HEADER_PREFIX_BYTES):
                    raise MalformedBundleError("unexpected text outside a record", line_number)
                pending = self._parse_header(line, line_number)
                continue

            if _is_footer(line):
                record = self._finish(pending, line_number)
                pending = None
                if record is not None:
                    self.records_parsed += 1
                    yield record
                continue

            pending.body.append(line)

        if pending is not None:
            raise MalformedBundleError(
                f"record '{pending.path}' has no closing marker before end of bundle",
                pending.line_number,
            )

    def next_record(self) -> Record | None:
        """Parse exactly one record, or return None at end of bundle."""
        if self._iterator is None:
            self._iterator = self.records()
        return next(self._iterator, None)

    def _parse_header(self, line: bytes, line_number: int) -> _PendingRecord:
        text = line[:-1] if line.endswith(b"\n") else line
        match = _HEADER_RE.match(text.decode(PATH_ENCODING, PATH_ERRORS))
        if match is None:
            raise MalformedBundleError("invalid record header", line_number)

        path = match.group("path")
        if not path.strip():
            raise MalformedBundleError("empty path in record header", line_number)

        kind = match.group("kind")
        if kind is not None and kind not in (KEY_ANNOTATION, SIGNATURE_ANNOTATION):
            raise MalformedBundleError(f"unknown header annotation '{kind}'", line_number)

        if kind == KEY_ANNOTATION:
            if path != KEY_HEADER_PATH:
                raise MalformedBundleError("key annotation on a regular record", line_number)
            if self.public_key is not None:
                raise MalformedBundleError("duplicate key header", line_number)
            if self.records_parsed:
                raise MalformedBundleError("key header must be the first record", line_number)
        elif kind == SIGNATURE_ANNOTATION and self.public_key is None:
            raise MalformedBundleError("signed record without a key header", line_number)

        return _PendingRecord(path, kind, match.group("value"), line_number)

    def _finish(self, pending: _PendingRecord, line_number: int) -> Record | None:
        if pending.kind == KEY_ANNOTATION:
            if any(not _is_blank(b) for b in pending.body):
                raise MalformedBundleError("key header must have an empty body", line_number)
            self.public_key = decode_public_key(pending.value or "", pending.line_number)
            return None

        body = b"".join(pending.body)
        if body.endswith(b"\n"):
            body = body[:-1]

        signature = None
        if pending.kind == SIGNATURE_ANNOTATION:
            signature = decode_signature(pending.value or "", pending.line_number)

        if body == _SENTINEL_BYTES:
            return Record(source_path=pending.path, is_binary=True, signature=signature)
        return Record(source_path=pending.path, content=body, signature=signature)


def parse_bundle(stream: BinaryIO) -> Iterator[Record]:
    """Convenience generator over the records of a bundle stream."""
    return BundleParser(stream).records()


def collapse_blank_lines(
    src: BinaryIO, dst: BinaryIO, max_consecutive: int = MAX_CONSECUTIVE_BLANK_LINES
) -> int:
    """Copy a bundle, collapsing long runs of blank lines between records.

    Only the regions outside records are touched; headers, footers and body
    bytes are copied verbatim.

    Returns:
        Number of blank lines removed.
    """
    inside = False
    blank_run = 0
    removed = 0

    for line in src:
        if inside:
            dst.write(line)
            if _is_footer(line):
                inside = False
                blank_run = 0
            continue

        if _is_blank(line):
            blank_run += 1
            if blank_run > max_consecutive:
                removed += 1
                continue
        else:
            blank_run = 0
            if line.startswith(_HEADER_PREFIX_BYTES):
                inside = True
        dst.write(line)

    return removed
