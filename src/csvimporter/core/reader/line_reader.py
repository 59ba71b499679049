"""Chunked logical-line reader with bounded buffering."""
from __future__ import annotations

import codecs
import io
import logging
from typing import BinaryIO, Callable, Iterator, Optional, Tuple, Union

from csvimporter.common.config import ALLOWED_DECODE_POLICIES, error_mode_from_policy, normalize_decode_policy
from csvimporter.common.errors import CSVImportError, ErrorCode
from csvimporter.common.models import LineIssue

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 4096
DEFAULT_LINE_DELIMITER = "\n"

# codecs whose data may start with a byte order mark: (bom, codec) candidates, then the fallback
BOM_CODECS = {
    "utf-8-sig": (((codecs.BOM_UTF8, "utf-8"),), "utf-8"),
    "utf-16": (((codecs.BOM_UTF16_LE, "utf-16-le"), (codecs.BOM_UTF16_BE, "utf-16-be")), "utf-16-le"),
    "utf-32": (((codecs.BOM_UTF32_LE, "utf-32-le"), (codecs.BOM_UTF32_BE, "utf-32-be")), "utf-32-le"),
}
# fixed-width codecs: a delimiter match must start on a code unit boundary
CODE_UNIT_SIZES = {"utf-16-le": 2, "utf-16-be": 2, "utf-32-le": 4, "utf-32-be": 4}
BOM_PROBE_SIZE = 4

IssueCallback = Optional[Callable[[LineIssue], None]]
BufferLike = Union[bytes, bytearray, memoryview]


class ChunkedLineReader:
    """Yields delimiter-terminated lines from a binary source one chunk at a time.

    The source is consumed once: iterating a second time yields nothing. Only the
    bytes of the line being assembled (plus the tail of the last chunk) are held
    in memory.

    For ``utf-8-sig``, ``utf-16`` and ``utf-32`` a leading byte order mark is
    consumed and picks the byte order; lines are then decoded with the matching
    BOM-less codec. Without a mark, UTF-16/32 input is read as little-endian.
    """

    def __init__(
        self,
        source: BinaryIO,
        *,
        line_delimiter: str = DEFAULT_LINE_DELIMITER,
        encoding: str = "utf-8",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        decode_policy: str = "skip",
        issue_callback: IssueCallback = None,
    ) -> None:
        if not line_delimiter:
            raise CSVImportError(ErrorCode.CONFIG_ERROR, "line delimiter must be non-empty")
        policy = decode_policy.strip().lower()
        if policy not in ALLOWED_DECODE_POLICIES:
            raise CSVImportError(ErrorCode.CONFIG_ERROR, f"Unsupported decode policy '{decode_policy}'")
        try:
            codec_name = codecs.lookup(encoding).name
        except LookupError as exc:
            raise CSVImportError(ErrorCode.CONFIG_ERROR, f"Unknown encoding '{encoding}'") from exc
        self.source = source
        self.encoding = encoding
        self.line_delimiter = line_delimiter
        self.chunk_size = max(1, chunk_size)
        self.decode_policy = normalize_decode_policy(policy)
        self.issue_callback = issue_callback
        self._bom_candidates, fallback = BOM_CODECS.get(codec_name, ((), codec_name))
        self._use_codec(fallback)
        self.lines_read = 0
        self.bytes_read = 0
        self._exhausted = False

    @classmethod
    def from_bytes(cls, data: BufferLike, **kwargs) -> "ChunkedLineReader":
        return cls(io.BytesIO(bytes(data)), **kwargs)

    def __iter__(self) -> Iterator[str]:
        for _, line in self.iter_numbered():
            yield line

    def iter_numbered(self) -> Iterator[Tuple[int, str]]:
        """Yield ``(line_number, text)`` pairs; numbers are 1-based and count dropped lines too."""

        buffer = bytearray()
        if self._bom_candidates and not self._exhausted:
            self._consume_bom(buffer)
        search_from = 0
        delimiter = self._delimiter_bytes
        while buffer or not self._exhausted:
            position = self._find_delimiter(buffer, search_from)
            while position < 0 and not self._exhausted:
                # a delimiter may straddle the previous chunk boundary
                search_from = max(0, len(buffer) - len(delimiter) + 1)
                chunk = self._read_chunk()
                if not chunk:
                    break
                buffer += chunk
                position = self._find_delimiter(buffer, search_from)

            if position < 0:
                if not buffer:
                    return
                # unterminated last line
                raw = bytes(buffer)
                buffer.clear()
                line = self._decode(raw)
                if line is not None:
                    yield self.lines_read, line
                return

            raw = bytes(buffer[:position])
            del buffer[: position + len(delimiter)]
            search_from = 0
            line = self._decode(raw)
            if line is not None:
                yield self.lines_read, line

    def _use_codec(self, codec_name: str) -> None:
        self._codec = codec_name
        self._code_unit = CODE_UNIT_SIZES.get(codec_name, 1)
        try:
            self._delimiter_bytes = self.line_delimiter.encode(codec_name)
        except (UnicodeEncodeError, LookupError) as exc:
            raise CSVImportError(
                ErrorCode.CONFIG_ERROR,
                f"line delimiter {self.line_delimiter!r} cannot be encoded as {self.encoding}",
            ) from exc

    def _consume_bom(self, buffer: bytearray) -> None:
        while len(buffer) < BOM_PROBE_SIZE and not self._exhausted:
            buffer += self._read_chunk()
        for bom, codec_name in self._bom_candidates:
            if buffer.startswith(bom):
                del buffer[: len(bom)]
                self._use_codec(codec_name)
                logger.debug("Byte order mark found, decoding as %s", codec_name)
                return

    def _find_delimiter(self, buffer: bytearray, start: int) -> int:
        position = buffer.find(self._delimiter_bytes, start)
        while position >= 0 and position % self._code_unit:
            position = buffer.find(self._delimiter_bytes, position + 1)
        return position

    def _read_chunk(self) -> bytes:
        try:
            chunk = self.source.read(self.chunk_size)
        except OSError as exc:
            self._exhausted = True
            raise CSVImportError(
                ErrorCode.IO_ERROR,
                f"Reading source failed after {self.bytes_read} bytes: {exc}",
                context={"bytes_read": self.bytes_read, "lines_read": self.lines_read},
            ) from exc
        if not chunk:
            self._exhausted = True
            return b""
        self.bytes_read += len(chunk)
        return chunk

    def _decode(self, raw: bytes) -> Optional[str]:
        self.lines_read += 1
        try:
            return raw.decode(self._codec, error_mode_from_policy(self.decode_policy))
        except UnicodeDecodeError as exc:
            message = f"line {self.lines_read} is not valid {self.encoding}: {exc.reason} at byte {exc.start}"
            if self.decode_policy == "fail-fast":
                raise CSVImportError(
                    ErrorCode.DECODE_ERROR,
                    message,
                    context={"line_number": self.lines_read},
                ) from exc
            logger.warning("Dropping undecodable %s", message)
            if self.issue_callback:
                self.issue_callback(
                    LineIssue(
                        line_number=self.lines_read,
                        code=ErrorCode.DECODE_ERROR,
                        message=message,
                        raw=raw.decode(self._codec, errors="replace"),
                    )
                )
            return None
