"""Record writers used by the CLI to export imported records."""
from __future__ import annotations

import csv
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, TextIO, Union

from csvimporter.common.errors import CSVImportError, ErrorCode

try:  # pragma: no cover - optional dependency validated via tests
    import pyarrow as pa
    import pyarrow.parquet as pq
except ImportError:  # pragma: no cover
    pa = None  # type: ignore[assignment]
    pq = None  # type: ignore[assignment]

SUPPORTED_FORMATS = ("jsonl", "csv", "parquet")

Record = Union[Sequence[str], Mapping[str, str]]


@dataclass(slots=True)
class WidthSummary:
    total_rows: int = 0
    short_rows: int = 0
    long_rows: int = 0


class WidthTracker:
    """Pads or truncates rows to the header width and counts how many needed it."""

    def __init__(self, expected_columns: int) -> None:
        self.expected_columns = max(1, expected_columns)
        self.summary = WidthSummary()

    def normalize(self, values: Sequence[str]) -> List[str]:
        normalized = list(values)
        length = len(normalized)
        if length < self.expected_columns:
            self.summary.short_rows += 1
            normalized.extend([""] * (self.expected_columns - length))
        elif length > self.expected_columns:
            self.summary.long_rows += 1
            normalized = normalized[: self.expected_columns]
        self.summary.total_rows += 1
        return normalized


def default_header(width: int) -> List[str]:
    return [f"column_{index + 1}" for index in range(max(1, width))]


class BaseRecordWriter(ABC):
    """Shared header handling for tabular output formats."""

    def __init__(self, header: Sequence[str]) -> None:
        self.header = list(header) or default_header(1)
        self.width = WidthTracker(len(self.header))
        self.rows_written = 0

    def write(self, record: Record) -> None:
        if isinstance(record, Mapping):
            values = [str(record.get(name, "")) for name in self.header]
        else:
            values = [str(value) for value in record]
        self._write_row(self.width.normalize(values))
        self.rows_written += 1

    def write_all(self, records: Sequence[Record]) -> int:
        for record in records:
            self.write(record)
        return self.rows_written

    def close(self) -> None:
        self._before_close()

    def __enter__(self) -> "BaseRecordWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @abstractmethod
    def _write_row(self, values: List[str]) -> None:
        ...

    def _before_close(self) -> None:  # pragma: no cover - optional override
        pass


class JsonLinesRecordWriter(BaseRecordWriter):
    """One JSON document per record: arrays in list mode, objects in header mode."""

    def __init__(self, header: Sequence[str], stream: TextIO) -> None:
        super().__init__(header)
        self.stream = stream

    def write(self, record: Record) -> None:
        # records keep their shape; no padding to the header width
        self._write_row(dict(record) if isinstance(record, Mapping) else list(record))
        self.rows_written += 1

    def _write_row(self, values: Any) -> None:
        self.stream.write(json.dumps(values, ensure_ascii=False))
        self.stream.write("\n")

    def _before_close(self) -> None:
        self.stream.flush()


class CSVRecordWriter(BaseRecordWriter):
    def __init__(self, header: Sequence[str], stream: TextIO, *, write_header: bool = True) -> None:
        super().__init__(header)
        self.stream = stream
        self._csv_writer = csv.writer(stream)
        if write_header:
            self._csv_writer.writerow(self.header)

    def _write_row(self, values: List[str]) -> None:
        self._csv_writer.writerow(values)

    def _before_close(self) -> None:
        self.stream.flush()


class ParquetRecordWriter(BaseRecordWriter):
    FLUSH_ROWS = 2048

    def __init__(self, header: Sequence[str], path: Path) -> None:
        if pa is None or pq is None:  # pragma: no cover - guarded by dependency
            raise CSVImportError(
                ErrorCode.CONFIG_ERROR,
                "pyarrow is required for parquet output. Install the 'pyarrow' dependency.",
            )
        super().__init__(header)
        self.path = path
        path.parent.mkdir(parents=True, exist_ok=True)
        self._arrow_schema = pa.schema([(name, pa.string()) for name in _dedupe(self.header)])
        self._parquet_writer: Optional[Any] = pq.ParquetWriter(str(path), self._arrow_schema)
        self._buffer: List[List[str]] = []

    def _write_row(self, values: List[str]) -> None:
        self._buffer.append(values)
        if len(self._buffer) >= self.FLUSH_ROWS:
            self._flush_buffer()

    def _before_close(self) -> None:
        self._flush_buffer()
        if self._parquet_writer is not None:
            self._parquet_writer.close()
            self._parquet_writer = None

    def _flush_buffer(self) -> None:
        if not self._buffer or not self._parquet_writer:
            return
        columns: Dict[str, List[str]] = {
            name: [row[idx] for row in self._buffer]
            for idx, name in enumerate(self._arrow_schema.names)
        }
        table = pa.table(columns, schema=self._arrow_schema)
        self._parquet_writer.write_table(table)
        self._buffer.clear()


def build_record_writer(
    format_name: str,
    *,
    header: Sequence[str],
    stream: Optional[TextIO] = None,
    path: Optional[Path] = None,
) -> BaseRecordWriter:
    format_name = (format_name or "jsonl").lower()
    if format_name not in SUPPORTED_FORMATS:
        raise CSVImportError(ErrorCode.CONFIG_ERROR, f"Unsupported output format '{format_name}'")
    if format_name == "parquet":
        if path is None:
            raise CSVImportError(ErrorCode.CONFIG_ERROR, "parquet output needs a file path (--output)")
        return ParquetRecordWriter(header, path)
    if stream is None:
        raise CSVImportError(ErrorCode.CONFIG_ERROR, f"{format_name} output needs a text stream")
    if format_name == "csv":
        return CSVRecordWriter(header, stream)
    return JsonLinesRecordWriter(header, stream)


def _dedupe(names: Sequence[str]) -> List[str]:
    # parquet columns must be unique and non-empty
    used: set[str] = set()
    result: List[str] = []
    for index, name in enumerate(names):
        base = name or f"column_{index + 1}"
        candidate = base
        suffix = 1
        while candidate in used:
            suffix += 1
            candidate = f"{base}_{suffix}"
        used.add(candidate)
        result.append(candidate)
    return result
