"""Data models shared across readers, importers, and the CLI."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import CSVImportError, ErrorCode


@dataclass(slots=True)
class LineIssue:
    """Recoverable problem found while reading or splitting one logical line."""

    line_number: int
    code: ErrorCode
    message: str
    raw: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "line_number": self.line_number,
            "code": self.code.value,
            "message": self.message,
            "raw": self.raw,
        }


@dataclass(slots=True)
class ImportProgress:
    """Snapshot handed to progress callbacks while an import is running."""

    imported_records: int
    lines_read: int
    bytes_read: int = 0
    elapsed_seconds: float = 0.0


class ImportStatus(str, Enum):
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


@dataclass(slots=True)
class ImportResult:
    """Outcome of one import run: either all records or the cause of failure."""

    status: ImportStatus
    records: List[Any] = field(default_factory=list)
    header: Optional[List[str]] = None
    issues: List[LineIssue] = field(default_factory=list)
    lines_read: int = 0
    error: Optional[CSVImportError] = None

    @property
    def ok(self) -> bool:
        return self.status == ImportStatus.SUCCEEDED

    def unwrap(self) -> List[Any]:
        """Return the records or raise the stored error."""

        if self.error is not None:
            raise self.error
        return self.records


@dataclass(slots=True)
class GlobalSettings:
    encoding: str = "utf-8"
    decode_policy: str = "skip"
    quote_policy: str = "warn"
    schema_policy: str = "fail-fast"


@dataclass(slots=True)
class ProfileSettings:
    description: str = ""
    delimiter: str = ","
    chunk_size: int = 4096
    progress_interval_ms: int = 100
    skip_blank_lines: bool = False


@dataclass(slots=True)
class RuntimeConfig:
    """Aggregated runtime configuration (global + active profile)."""

    global_settings: GlobalSettings
    profile: ProfileSettings
