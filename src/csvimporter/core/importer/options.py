"""Immutable per-run configuration for importers and background jobs."""
from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, List, Optional

from csvimporter.common.config import (
    ALLOWED_DECODE_POLICIES,
    ALLOWED_QUOTE_POLICIES,
    ALLOWED_SCHEMA_POLICIES,
    normalize_decode_policy,
)
from csvimporter.common.errors import CSVImportError, ErrorCode
from csvimporter.common.models import ImportProgress, RuntimeConfig
from csvimporter.common.progress import DEFAULT_PROGRESS_INTERVAL
from csvimporter.core.reader.line_reader import DEFAULT_CHUNK_SIZE, DEFAULT_LINE_DELIMITER


@dataclass(frozen=True, slots=True)
class ImportOptions:
    delimiter: str = ","
    line_delimiter: str = DEFAULT_LINE_DELIMITER
    encoding: str = "utf-8"
    chunk_size: int = DEFAULT_CHUNK_SIZE
    decode_policy: str = "skip"
    quote_policy: str = "warn"
    schema_policy: str = "fail-fast"
    progress_interval: float = DEFAULT_PROGRESS_INTERVAL
    skip_blank_lines: bool = False

    def __post_init__(self) -> None:
        if not self.delimiter:
            raise CSVImportError(ErrorCode.CONFIG_ERROR, "delimiter must be non-empty")
        if self.chunk_size <= 0:
            raise CSVImportError(ErrorCode.CONFIG_ERROR, "chunk_size must be greater than zero")
        if self.progress_interval < 0:
            raise CSVImportError(ErrorCode.CONFIG_ERROR, "progress_interval must not be negative")
        for name, value, allowed in (
            ("decode_policy", self.decode_policy, ALLOWED_DECODE_POLICIES),
            ("quote_policy", self.quote_policy, ALLOWED_QUOTE_POLICIES),
            ("schema_policy", self.schema_policy, ALLOWED_SCHEMA_POLICIES),
        ):
            if value.lower() not in allowed:
                options = ", ".join(sorted(allowed))
                raise CSVImportError(
                    ErrorCode.CONFIG_ERROR,
                    f"Unsupported {name} '{value}'. Allowed: {options}",
                )
        object.__setattr__(self, "decode_policy", normalize_decode_policy(self.decode_policy))
        object.__setattr__(self, "quote_policy", self.quote_policy.lower())
        object.__setattr__(self, "schema_policy", self.schema_policy.lower())

    @classmethod
    def from_runtime(cls, config: RuntimeConfig, **overrides: Any) -> "ImportOptions":
        """Build options from a loaded profile; keyword overrides win over the profile."""

        settings = config.global_settings
        profile = config.profile
        options = cls(
            delimiter=profile.delimiter,
            encoding=settings.encoding,
            chunk_size=profile.chunk_size,
            decode_policy=settings.decode_policy,
            quote_policy=settings.quote_policy,
            schema_policy=settings.schema_policy,
            progress_interval=profile.progress_interval_ms / 1000.0,
            skip_blank_lines=profile.skip_blank_lines,
        )
        return replace(options, **overrides) if overrides else options


@dataclass(frozen=True, slots=True)
class ImportCallbacks:
    """Notification set for background jobs; every member is optional."""

    on_progress: Optional[Callable[[ImportProgress], None]] = None
    on_finish: Optional[Callable[[List[Any]], None]] = None
    on_fail: Optional[Callable[[CSVImportError], None]] = None
    on_header: Optional[Callable[[List[str]], None]] = None


class CancellationToken:
    """Cooperative cancellation flag checked by importers at every line boundary."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
