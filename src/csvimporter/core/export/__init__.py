"""Writers exporting imported records as JSON Lines, CSV or Parquet."""

from .writers import (
    SUPPORTED_FORMATS,
    BaseRecordWriter,
    CSVRecordWriter,
    JsonLinesRecordWriter,
    ParquetRecordWriter,
    build_record_writer,
    default_header,
)

__all__ = [
    "BaseRecordWriter",
    "CSVRecordWriter",
    "JsonLinesRecordWriter",
    "ParquetRecordWriter",
    "SUPPORTED_FORMATS",
    "build_record_writer",
    "default_header",
]
