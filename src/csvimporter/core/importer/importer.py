"""Reader → splitter → mapper pipeline over an in-memory byte buffer."""
from __future__ import annotations

import io
import logging
import os
import time
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from csvimporter.common.errors import CSVImportError, ErrorCode
from csvimporter.common.models import ImportProgress, ImportResult, ImportStatus, LineIssue
from csvimporter.common.progress import ProgressThrottle
from csvimporter.core.reader.line_reader import ChunkedLineReader
from csvimporter.core.splitter.field_splitter import FieldSplitter
from .options import CancellationToken, ImportOptions

logger = logging.getLogger(__name__)

BufferLike = Union[bytes, bytearray, memoryview]
RecordMapper = Callable[[List[str]], Any]
StructuredMapper = Callable[[Dict[str, str]], Any]
ProgressCallback = Optional[Callable[[ImportProgress], None]]
HeaderCallback = Optional[Callable[[List[str]], None]]
IssueCallback = Optional[Callable[[LineIssue], None]]
# returns True when the line produced a record
LineHandler = Callable[[int, List[str]], bool]


class CSVImporter:
    """Maps the lines of a CSV byte buffer to caller-defined records.

    The importer never mutates its options after construction; every import
    call builds a fresh reader over the buffer, so one importer may run
    several imports one after another.
    """

    def __init__(self, data: BufferLike, options: Optional[ImportOptions] = None) -> None:
        if isinstance(data, (str, os.PathLike)):
            raise CSVImportError(
                ErrorCode.CONFIG_ERROR,
                "CSVImporter takes the CSV content as bytes; read the file first",
            )
        self.data = data
        self.options = options or ImportOptions()

    def iter_field_sequences(self, *, issue_callback: IssueCallback = None) -> Iterator[Tuple[int, List[str]]]:
        """Lazily yield ``(line_number, fields)`` for every logical line."""

        reader = self._build_reader(issue_callback)
        splitter = self._build_splitter(issue_callback)
        for line_number, line in reader.iter_numbered():
            if self.options.skip_blank_lines and not line.strip("\r"):
                continue
            yield line_number, splitter.split(line, line_number=line_number)

    def import_records(
        self,
        mapper: RecordMapper,
        *,
        progress_callback: ProgressCallback = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ImportResult:
        """Map every field sequence through ``mapper``; no header line is assumed."""

        result = ImportResult(status=ImportStatus.SUCCEEDED)

        def handle(line_number: int, fields: List[str]) -> bool:
            result.records.append(_apply_mapper(mapper, fields, line_number))
            return True

        return self._run(handle, result, progress_callback, cancel_token)

    def import_structured(
        self,
        mapper: StructuredMapper,
        *,
        header_callback: HeaderCallback = None,
        progress_callback: ProgressCallback = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ImportResult:
        """Treat the first line as header and map each later line as a ``{header: value}`` dict."""

        result = ImportResult(status=ImportStatus.SUCCEEDED)
        skip_mismatched = self.options.schema_policy == "skip"

        def handle(line_number: int, fields: List[str]) -> bool:
            if result.header is None:
                result.header = fields
                logger.debug("header columns: %s", fields)
                if header_callback:
                    header_callback(list(fields))
                return False
            if len(fields) != len(result.header):
                message = (
                    f"line {line_number} has {len(fields)} field(s), "
                    f"header defines {len(result.header)}"
                )
                if not skip_mismatched:
                    raise CSVImportError(
                        ErrorCode.SCHEMA_ERROR,
                        message,
                        context={"line_number": line_number, "fields": fields},
                    )
                logger.warning("Skipping record: %s", message)
                result.issues.append(LineIssue(line_number, ErrorCode.SCHEMA_ERROR, message))
                return False
            record = dict(zip(result.header, fields))
            result.records.append(_apply_mapper(mapper, record, line_number))
            return True

        return self._run(handle, result, progress_callback, cancel_token)

    def _run(
        self,
        handle: LineHandler,
        result: ImportResult,
        progress_callback: ProgressCallback,
        cancel_token: Optional[CancellationToken],
    ) -> ImportResult:
        throttle = ProgressThrottle(self.options.progress_interval)
        start_time = time.perf_counter()
        reader = self._build_reader(result.issues.append)
        splitter = self._build_splitter(result.issues.append)
        try:
            for line_number, line in reader.iter_numbered():
                if cancel_token is not None and cancel_token.cancelled:
                    raise CSVImportError(
                        ErrorCode.CANCELLED,
                        f"import cancelled before line {line_number}",
                        context={"line_number": line_number},
                    )
                if self.options.skip_blank_lines and not line.strip("\r"):
                    continue
                fields = splitter.split(line, line_number=line_number)
                if handle(line_number, fields) and progress_callback and throttle.ready():
                    progress_callback(
                        ImportProgress(
                            imported_records=len(result.records),
                            lines_read=reader.lines_read,
                            bytes_read=reader.bytes_read,
                            elapsed_seconds=time.perf_counter() - start_time,
                        )
                    )
        except CSVImportError as exc:
            result.status = ImportStatus.CANCELLED if exc.code == ErrorCode.CANCELLED else ImportStatus.FAILED
            result.error = exc
            logger.warning("Import stopped: %s", exc)
        result.lines_read = reader.lines_read
        logger.info(
            "Import %s: %d record(s) from %d line(s), %d issue(s) in %.3fs",
            result.status.value.lower(),
            len(result.records),
            result.lines_read,
            len(result.issues),
            time.perf_counter() - start_time,
        )
        return result

    def _build_reader(self, issue_callback: IssueCallback) -> ChunkedLineReader:
        options = self.options
        return ChunkedLineReader(
            io.BytesIO(self.data),
            line_delimiter=options.line_delimiter,
            encoding=options.encoding,
            chunk_size=options.chunk_size,
            decode_policy=options.decode_policy,
            issue_callback=issue_callback,
        )

    def _build_splitter(self, issue_callback: IssueCallback) -> FieldSplitter:
        return FieldSplitter(
            self.options.delimiter,
            quote_policy=self.options.quote_policy,
            issue_callback=issue_callback,
        )


def _apply_mapper(mapper: Callable[[Any], Any], values: Union[Sequence[str], Dict[str, str]], line_number: int) -> Any:
    try:
        return mapper(values)
    except CSVImportError:
        raise
    except Exception as exc:
        raise CSVImportError(
            ErrorCode.MAPPER_ERROR,
            f"record mapper failed on line {line_number}: {exc}",
            context={"line_number": line_number},
        ) from exc
