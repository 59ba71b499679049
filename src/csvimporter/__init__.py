"""Streaming CSV importer: chunked line reading, quote-aware splitting, record mapping."""

from csvimporter.common.errors import CSVImportError, ErrorCode
from csvimporter.common.models import ImportProgress, ImportResult, ImportStatus, LineIssue
from csvimporter.core.importer import CancellationToken, CSVImporter, ImportCallbacks, ImportJob, ImportOptions
from csvimporter.core.reader import ChunkedLineReader
from csvimporter.core.splitter import FieldSplitter, split_fields

__version__ = "0.1.0"

__all__ = [
    "CancellationToken",
    "ChunkedLineReader",
    "CSVImportError",
    "CSVImporter",
    "ErrorCode",
    "FieldSplitter",
    "ImportCallbacks",
    "ImportJob",
    "ImportOptions",
    "ImportProgress",
    "ImportResult",
    "ImportStatus",
    "LineIssue",
    "split_fields",
]
