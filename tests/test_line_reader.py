from __future__ import annotations

import codecs
import io

import pytest

from csvimporter.common.errors import CSVImportError, ErrorCode
from csvimporter.core.reader import ChunkedLineReader


def test_reader_emits_lines_and_unterminated_tail() -> None:
    reader = ChunkedLineReader.from_bytes(b"alpha\nbravo\ncharlie")
    assert list(reader) == ["alpha", "bravo", "charlie"]
    assert reader.lines_read == 3


def test_trailing_delimiter_does_not_add_empty_line() -> None:
    assert list(ChunkedLineReader.from_bytes(b"a\nb\n")) == ["a", "b"]
    assert list(ChunkedLineReader.from_bytes(b"a\n\nb")) == ["a", "", "b"]
    assert list(ChunkedLineReader.from_bytes(b"")) == []
    assert list(ChunkedLineReader.from_bytes(b"\n")) == [""]


@pytest.mark.parametrize("chunk_size", [1, 2, 3, 7, 4096])
def test_round_trip_independent_of_chunk_size(chunk_size: int) -> None:
    text = "id,name\n1,Zoë\n2,Łukasz\n3,日本語のテキスト\n\n4,last"
    lines = list(ChunkedLineReader.from_bytes(text.encode("utf-8"), chunk_size=chunk_size))
    assert "\n".join(lines) == text


def test_multi_byte_delimiter_split_across_chunks() -> None:
    payload = b"one\r\ntwo\r\nthree"
    reader = ChunkedLineReader.from_bytes(payload, line_delimiter="\r\n", chunk_size=4)
    assert list(reader) == ["one", "two", "three"]


def test_reader_reads_in_chunks_not_all_at_once() -> None:
    class CountingSource(io.BytesIO):
        def __init__(self, data: bytes) -> None:
            super().__init__(data)
            self.sizes: list[int] = []

        def read(self, size: int = -1) -> bytes:  # type: ignore[override]
            self.sizes.append(size)
            return super().read(size)

    source = CountingSource(b"x" * 10 + b"\n" + b"y" * 10)
    reader = ChunkedLineReader(source, chunk_size=4)
    lines = reader.iter_numbered()
    assert next(lines) == (1, "x" * 10)
    assert all(size == 4 for size in source.sizes)
    # only enough chunks to find the first delimiter were consumed
    assert reader.bytes_read == 12
    assert list(lines) == [(2, "y" * 10)]


def test_source_is_consumed_once() -> None:
    reader = ChunkedLineReader.from_bytes(b"a\nb")
    assert list(reader) == ["a", "b"]
    assert list(reader) == []


def test_undecodable_line_is_dropped_and_reported() -> None:
    issues = []
    reader = ChunkedLineReader.from_bytes(b"good\n\xff\xfe bad\nalso good", issue_callback=issues.append)
    assert list(reader.iter_numbered()) == [(1, "good"), (3, "also good")]
    assert len(issues) == 1
    assert issues[0].code == ErrorCode.DECODE_ERROR
    assert issues[0].line_number == 2


def test_replace_policy_keeps_undecodable_line() -> None:
    reader = ChunkedLineReader.from_bytes(b"ok\n\xffz", decode_policy="replace")
    assert list(reader) == ["ok", "\ufffdz"]


def test_fail_fast_policy_raises_decode_error() -> None:
    reader = ChunkedLineReader.from_bytes(b"ok\n\xffz", decode_policy="fail-fast")
    lines = iter(reader)
    assert next(lines) == "ok"
    with pytest.raises(CSVImportError) as exc:
        next(lines)
    assert exc.value.code == ErrorCode.DECODE_ERROR
    assert exc.value.context["line_number"] == 2


def test_read_error_is_distinguishable_from_end_of_input() -> None:
    class BrokenSource:
        def __init__(self) -> None:
            self.calls = 0

        def read(self, size: int) -> bytes:
            self.calls += 1
            if self.calls == 1:
                return b"first\nsec"
            raise OSError("device went away")

    reader = ChunkedLineReader(BrokenSource(), chunk_size=16)
    lines = iter(reader)
    assert next(lines) == "first"
    with pytest.raises(CSVImportError) as exc:
        next(lines)
    assert exc.value.code == ErrorCode.IO_ERROR


def test_alternative_encoding() -> None:
    payload = "имя;город\nАня;Казань".encode("cp1251")
    assert list(ChunkedLineReader.from_bytes(payload, encoding="cp1251")) == ["имя;город", "Аня;Казань"]


def test_invalid_configuration_rejected() -> None:
    with pytest.raises(CSVImportError):
        ChunkedLineReader.from_bytes(b"", line_delimiter="")
    with pytest.raises(CSVImportError):
        ChunkedLineReader.from_bytes(b"", decode_policy="explode")
    with pytest.raises(CSVImportError):
        ChunkedLineReader.from_bytes(b"", encoding="no-such-codec")


@pytest.mark.parametrize("chunk_size", [1, 3, 4096])
@pytest.mark.parametrize("encoding", ["utf-8-sig", "utf-16", "utf-32"])
def test_byte_order_mark_codecs_split_lines(encoding: str, chunk_size: int) -> None:
    payload = "a,b\n1,2\n3,4".encode(encoding)
    reader = ChunkedLineReader.from_bytes(payload, encoding=encoding, chunk_size=chunk_size)
    assert list(reader) == ["a,b", "1,2", "3,4"]


def test_utf8_sig_without_mark_reads_as_utf8() -> None:
    assert list(ChunkedLineReader.from_bytes(b"a\nb", encoding="utf-8-sig")) == ["a", "b"]


def test_big_endian_mark_selects_byte_order() -> None:
    payload = codecs.BOM_UTF16_BE + "x;y\nz".encode("utf-16-be")
    assert list(ChunkedLineReader.from_bytes(payload, encoding="utf-16", chunk_size=2)) == ["x;y", "z"]


def test_utf16_delimiter_only_matches_on_code_unit_boundary() -> None:
    # U+0A41 U+0100 encode to 41 0A 00 01, which contains the bytes of "\n" off by one
    text = "\u0a41\u0100\nz"
    payload = codecs.BOM_UTF16_LE + text.encode("utf-16-le")
    assert list(ChunkedLineReader.from_bytes(payload, encoding="utf-16")) == ["\u0a41\u0100", "z"]


def test_non_text_codec_rejected() -> None:
    with pytest.raises(CSVImportError) as exc:
        ChunkedLineReader.from_bytes(b"", encoding="rot13")
    assert exc.value.code == ErrorCode.CONFIG_ERROR
