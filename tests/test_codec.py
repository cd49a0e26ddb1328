"""Tests for the codec module."""

import io

import pytest

from llm_globber.codec import (
    BundleParser,
    collapse_blank_lines,
    encode_header,
    encode_key_header,
    encode_record,
    parse_bundle,
    transliterate,
)
from llm_globber.config import Record
from llm_globber.errors import MalformedBundleError
from llm_globber.signing import encode_public_key, generate_keypair, verify

PLACEHOLDER = "\ufffd".encode("utf-8")


def parse(data: bytes) -> list[Record]:
    return list(parse_bundle(io.BytesIO(data)))


class TestTransliterate:
    """Tests for transliterate."""

    def test_ascii_is_unchanged(self):
        data = b"int main(void) {\r\n\treturn 0;\r\n}\n"
        assert transliterate(data) == (data, 0)

    def test_each_offending_byte_becomes_one_placeholder(self):
        text, replaced = transliterate("café\n".encode("utf-8"))
        assert replaced == 2
        assert text == b"caf" + PLACEHOLDER * 2 + b"\n"

    def test_control_characters_are_replaced(self):
        text, replaced = transliterate(b"a\x1bb\x7f")
        assert replaced == 2
        assert text == b"a" + PLACEHOLDER + b"b" + PLACEHOLDER


class TestEncoding:
    """Tests for header and record encoding."""

    def test_text_record(self):
        record = Record(source_path="src/a.txt", content=b"hello\n")
        assert encode_record(record) == b"'''--- src/a.txt ---\nhello\n\n'''\n\n"

    def test_text_record_without_trailing_newline(self):
        record = Record(source_path="b.txt", content=b"world")
        assert encode_record(record) == b"'''--- b.txt ---\nworld\n'''\n\n"

    def test_binary_record_uses_sentinel(self):
        record = Record(source_path="logo.png", content=b"\x89PNG\x00\x00", is_binary=True)
        assert encode_record(record) == (
            b"'''--- logo.png ---\n[Binary file - contents omitted]\n'''\n\n"
        )

    def test_signed_record_header(self):
        record = Record(source_path="a.txt", content=b"x", signature=b"\x01" * 64)
        header = encode_record(record).split(b"\n", 1)[0]
        assert header.startswith(b"'''--- a.txt --- [SIGNATURE:")
        assert header.endswith(b"]")

    def test_key_header_has_empty_body(self):
        assert encode_key_header("QUJD") == b"'''--- PUBLIC_KEY --- [KEY:QUJD]\n'''\n\n"

    def test_empty_path_rejected(self):
        with pytest.raises(ValueError):
            encode_header("")
        with pytest.raises(ValueError):
            Record(source_path="")

    def test_multiline_path_rejected(self):
        with pytest.raises(ValueError):
            encode_header("evil\n'''--- other.txt ---")


class TestParser:
    """Tests for BundleParser."""

    def test_empty_bundle(self):
        assert parse(b"") == []
        assert parse(b"\n\n\n") == []

    def test_two_records_in_order(self):
        data = (
            encode_record(Record(source_path="a.txt", content=b"hello\n"))
            + encode_record(Record(source_path="b.txt", content=b"world"))
        )
        records = parse(data)
        assert [r.source_path for r in records] == ["a.txt", "b.txt"]
        assert records[0].content == b"hello\n"
        assert records[1].content == b"world"
        assert not records[0].is_binary

    def test_next_record_one_at_a_time(self):
        data = (
            encode_record(Record(source_path="a.txt", content=b"1"))
            + encode_record(Record(source_path="b.txt", content=b"2"))
        )
        parser = BundleParser(io.BytesIO(data))

        assert parser.next_record().source_path == "a.txt"
        assert parser.records_parsed == 1
        assert parser.next_record().source_path == "b.txt"
        assert parser.next_record() is None

    def test_blank_lines_and_crlf_preserved(self):
        content = b"line one\r\n\r\n\n\n\nline two\n\n"
        records = parse(encode_record(Record(source_path="a.txt", content=content)))
        assert records[0].content == content

    def test_empty_content(self):
        records = parse(encode_record(Record(source_path="empty.txt", content=b"")))
        assert records[0].content == b""

    def test_binary_record(self):
        data = encode_record(Record(source_path="a.bin", content=b"\x00" * 8, is_binary=True))
        records = parse(data)
        assert records[0].is_binary
        assert records[0].content == b""

    def test_final_footer_without_newline(self):
        records = parse(b"'''--- a.txt ---\nhello\n'''")
        assert records[0].content == b"hello"

    def test_path_with_spaces(self):
        records = parse(encode_record(Record(source_path="my docs/read me.txt", content=b"x")))
        assert records[0].source_path == "my docs/read me.txt"

    def test_unclosed_record(self):
        with pytest.raises(MalformedBundleError) as exc_info:
            parse(b"'''--- a.txt ---\nhello\n")
        assert exc_info.value.line_number == 1

    def test_text_outside_record(self):
        with pytest.raises(MalformedBundleError):
            parse(b"stray text\n'''--- a.txt ---\nhello\n'''\n")

    def test_empty_path(self):
        with pytest.raises(MalformedBundleError):
            parse(b"'''---  ---\nhello\n'''\n")

    def test_unknown_annotation(self):
        with pytest.raises(MalformedBundleError):
            parse(b"'''--- a.txt --- [CHECKSUM:abcd]\nhello\n'''\n")

    def test_signed_record_without_key_header(self):
        with pytest.raises(MalformedBundleError):
            parse(b"'''--- a.txt --- [SIGNATURE:AAAA]\nhello\n'''\n")


class TestKeyHeader:
    """Tests for key header handling."""

    @pytest.fixture
    def keypair(self):
        with generate_keypair() as keypair:
            yield keypair

    def test_signed_bundle(self, keypair):
        content = b"signed content\n"
        record = Record(source_path="a.txt", content=content, signature=keypair.sign(content))
        data = encode_key_header(encode_public_key(keypair.public_key)) + encode_record(record)

        parser = BundleParser(io.BytesIO(data))
        records = list(parser.records())

        assert parser.public_key is not None
        assert parser.records_parsed == 1
        assert records[0].signature == record.signature
        assert verify(parser.public_key, records[0].content, records[0].signature)

    def test_key_header_after_record(self, keypair):
        data = (
            encode_record(Record(source_path="a.txt", content=b"x"))
            + encode_key_header(encode_public_key(keypair.public_key))
        )
        with pytest.raises(MalformedBundleError):
            parse(data)

    def test_duplicate_key_header(self, keypair):
        key_header = encode_key_header(encode_public_key(keypair.public_key))
        with pytest.raises(MalformedBundleError):
            parse(key_header + key_header)

    def test_key_header_with_body(self, keypair):
        key_b64 = encode_public_key(keypair.public_key)
        data = f"'''--- PUBLIC_KEY --- [KEY:{key_b64}]\nsurprise\n'''\n".encode("ascii")
        with pytest.raises(MalformedBundleError):
            parse(data)

    def test_key_annotation_on_regular_path(self, keypair):
        key_b64 = encode_public_key(keypair.public_key)
        data = f"'''--- a.txt --- [KEY:{key_b64}]\n'''\n".encode("ascii")
        with pytest.raises(MalformedBundleError):
            parse(data)

    def test_invalid_key(self):
        with pytest.raises(MalformedBundleError):
            parse(b"'''--- PUBLIC_KEY --- [KEY:QUJD]\n'''\n")


class TestCollapseBlankLines:
    """Tests for collapse_blank_lines."""

    def test_collapses_runs_between_records(self):
        first = encode_record(Record(source_path="a.txt", content=b"a"))
        second = encode_record(Record(source_path="b.txt", content=b"b"))
        src = io.BytesIO(first + b"\n\n\n\n" + second)
        dst = io.BytesIO()

        removed = collapse_blank_lines(src, dst)

        assert removed == 3
        assert dst.getvalue() == first + b"\n" + second

    def test_record_bodies_untouched(self):
        data = encode_record(Record(source_path="a.txt", content=b"a\n\n\n\n\n\nb"))
        dst = io.BytesIO()

        assert collapse_blank_lines(io.BytesIO(data), dst) == 0
        assert dst.getvalue() == data
