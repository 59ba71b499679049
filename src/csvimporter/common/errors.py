"""Shared error codes and exceptions for the import pipeline."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    CONFIG_ERROR = "CONFIG_ERROR"
    DECODE_ERROR = "DECODE_ERROR"
    QUOTE_ERROR = "QUOTE_ERROR"
    SCHEMA_ERROR = "SCHEMA_ERROR"
    MAPPER_ERROR = "MAPPER_ERROR"
    IO_ERROR = "IO_ERROR"
    STATE_ERROR = "STATE_ERROR"
    CANCELLED = "CANCELLED"


class CSVImportError(RuntimeError):
    """Exception carrying a structured error code for importers and the CLI."""

    def __init__(self, code: ErrorCode, message: str, *, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.code = code
        self.context = context or {}

    def __str__(self) -> str:  # pragma: no cover - formatting sugar
        base = super().__str__()
        return f"[{self.code.value}] {base}" if base else self.code.value
