"""Record assembly on top of the reader and splitter, sync and in the background."""

from .importer import CSVImporter
from .job import ImportJob, call_inline
from .options import CancellationToken, ImportCallbacks, ImportOptions

__all__ = [
    "CancellationToken",
    "CSVImporter",
    "ImportCallbacks",
    "ImportJob",
    "ImportOptions",
    "call_inline",
]
