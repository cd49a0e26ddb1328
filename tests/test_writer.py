"""Tests for the writer module."""

import io
import stat
import threading
from datetime import datetime

import pytest

import llm_globber.writer as writer_module
from llm_globber.codec import encode_record, parse_bundle
from llm_globber.config import Record, WriteStatus
from llm_globber.errors import FileReadError, RunInterruptedError
from llm_globber.writer import BundleWriter, bundle_file_name, write

NOW = datetime(2024, 1, 2, 3, 4, 5)


@pytest.fixture
def inputs(tmp_path):
    """Create two small text files and return their paths as strings."""
    src = tmp_path / "src"
    src.mkdir()
    a = src / "a.txt"
    b = src / "b.txt"
    a.write_bytes(b"hello\n")
    b.write_bytes(b"world")
    return [str(a), str(b)]


class TestBundleFileName:
    """Tests for bundle_file_name."""

    def test_timestamp_suffix(self):
        assert bundle_file_name("notes", NOW) == "notes_20240102030405.txt"


class TestBundleWriter:
    """Tests for BundleWriter."""

    def test_appends_in_order(self):
        stream = io.BytesIO()
        writer = BundleWriter(stream)
        writer.add("one.txt", b"1\n")
        writer.add("two.txt", b"2\n")

        assert stream.getvalue() == b"'''--- one.txt ---\n1\n\n'''\n\n'''--- two.txt ---\n2\n\n'''\n\n"
        assert writer.records_written == 2

    def test_binary_counted(self):
        writer = BundleWriter(io.BytesIO())
        record = writer.add("blob.bin", b"\x00\x01\x02" * 10)
        assert record.is_binary
        assert writer.binary_records == 1

    def test_lossy_counted(self):
        writer = BundleWriter(io.BytesIO())
        writer.add("cafe.txt", "café\n".encode("utf-8"))
        assert writer.lossy_records == 1

    def test_rejects_multiline_path(self):
        writer = BundleWriter(io.BytesIO())
        with pytest.raises(ValueError):
            writer.add("bad\nname.txt", b"x")


class TestWrite:
    """Tests for write."""

    def test_two_file_bundle(self, tmp_path, inputs):
        out = tmp_path / "out"
        result = write(out, "bundle", inputs, now=NOW)

        assert result.status is WriteStatus.WRITTEN
        assert result.processed == 2
        assert result.bundle_path == out / "bundle_20240102030405.txt"
        assert result.bundle_path.read_bytes() == (
            f"'''--- {inputs[0]} ---\nhello\n\n'''\n\n"
            f"'''--- {inputs[1]} ---\nworld\n'''\n\n"
        ).encode("utf-8")

    def test_only_bundle_left_in_output_dir(self, tmp_path, inputs):
        out = tmp_path / "out"
        result = write(out, "bundle", inputs, now=NOW)
        assert list(out.iterdir()) == [result.bundle_path]

    def test_output_permissions(self, tmp_path, inputs):
        result = write(tmp_path / "out", "bundle", inputs, now=NOW)
        assert stat.S_IMODE(result.bundle_path.stat().st_mode) == 0o600

    def test_order_follows_input(self, tmp_path, inputs):
        result = write(tmp_path / "out", "bundle", list(reversed(inputs)), now=NOW)
        with open(result.bundle_path, "rb") as f:
            paths = [r.source_path for r in parse_bundle(f)]
        assert paths == list(reversed(inputs))

    def test_empty_input_writes_nothing(self, tmp_path):
        out = tmp_path / "out"
        result = write(out, "bundle", [], now=NOW)

        assert result.status is WriteStatus.NOTHING_TO_DO
        assert result.bundle_path is None
        assert result.processed == 0
        assert not out.exists()

    def test_all_inputs_missing(self, tmp_path):
        out = tmp_path / "out"
        result = write(out, "bundle", [str(tmp_path / "missing.txt"), str(tmp_path)], now=NOW)

        assert result.status is WriteStatus.NOTHING_TO_DO
        assert result.skipped == 2
        assert list(out.iterdir()) == []

    def test_binary_content_omitted(self, tmp_path):
        blob = tmp_path / "blob.bin"
        blob.write_bytes(bytes(range(32)) * 64)

        result = write(tmp_path / "out", "bundle", [str(blob)], now=NOW)

        assert result.binary == 1
        assert result.bundle_path.read_bytes() == (
            f"'''--- {blob} ---\n[Binary file - contents omitted]\n'''\n\n"
        ).encode("utf-8")

    def test_non_ascii_text_is_transliterated(self, tmp_path):
        text = tmp_path / "cafe.txt"
        text.write_bytes("café\n".encode("utf-8"))

        result = write(tmp_path / "out", "bundle", [str(text)], now=NOW)

        assert result.lossy == 1
        assert "caf\ufffd\ufffd\n" in result.bundle_path.read_text(encoding="utf-8")

    def test_signed_bundle(self, tmp_path, inputs):
        result = write(tmp_path / "out", "bundle", inputs, sign=True, now=NOW)
        lines = result.bundle_path.read_bytes().split(b"\n")

        assert lines[0].startswith(b"'''--- PUBLIC_KEY --- [KEY:")
        headers = [line for line in lines if line.startswith(b"'''--- ") and b"PUBLIC_KEY" not in line]
        assert len(headers) == 2
        assert all(b" [SIGNATURE:" in header for header in headers)

    def test_keypair_discarded_after_run(self, tmp_path, inputs, monkeypatch):
        created = []
        original = writer_module.generate_keypair

        def tracking_generate_keypair():
            keypair = original()
            created.append(keypair)
            return keypair

        monkeypatch.setattr(writer_module, "generate_keypair", tracking_generate_keypair)
        write(tmp_path / "out", "bundle", inputs, sign=True, now=NOW)

        assert len(created) == 1
        with pytest.raises(RuntimeError):
            _ = created[0].private_key

    def test_read_failure_is_counted(self, tmp_path, inputs, monkeypatch):
        original = writer_module._read_input

        def failing_read(path):
            if path.name == "a.txt":
                raise PermissionError(13, "Permission denied")
            return original(path)

        monkeypatch.setattr(writer_module, "_read_input", failing_read)
        result = write(tmp_path / "out", "bundle", inputs, now=NOW)

        assert result.status is WriteStatus.WRITTEN
        assert result.processed == 1
        assert result.failed == 1

    def test_read_failure_aborts(self, tmp_path, inputs, monkeypatch):
        def failing_read(path):
            raise PermissionError(13, "Permission denied")

        monkeypatch.setattr(writer_module, "_read_input", failing_read)
        out = tmp_path / "out"
        with pytest.raises(FileReadError):
            write(out, "bundle", inputs, abort_on_error=True, now=NOW)

        assert list(out.iterdir()) == []

    def test_cancelled_run_leaves_no_bundle(self, tmp_path, inputs):
        cancel = threading.Event()
        cancel.set()
        out = tmp_path / "out"

        with pytest.raises(RunInterruptedError):
            write(out, "bundle", inputs, cancel=cancel, now=NOW)

        assert list(out.iterdir()) == []

    def test_blank_line_runs_inside_content_kept(self, tmp_path):
        spaced = tmp_path / "spaced.txt"
        spaced.write_bytes(b"a\n\n\n\n\nb\n")

        result = write(tmp_path / "out", "bundle", [str(spaced)], now=NOW)

        with open(result.bundle_path, "rb") as f:
            records = list(parse_bundle(f))
        assert records[0].content == b"a\n\n\n\n\nb\n"

    def test_cleanup_pass_leaves_bundle_unchanged(self, tmp_path):
        spaced = tmp_path / "spaced.txt"
        spaced.write_bytes(b"a\n\n\n\n\nb\n\n\n")
        plain = tmp_path / "plain.txt"
        plain.write_bytes(b"tail")

        result = write(tmp_path / "out", "bundle", [str(spaced), str(plain)], now=NOW)

        expected = (
            encode_record(Record(source_path=str(spaced), content=b"a\n\n\n\n\nb\n\n\n"))
            + encode_record(Record(source_path=str(plain), content=b"tail"))
        )
        assert result.bundle_path.read_bytes() == expected
