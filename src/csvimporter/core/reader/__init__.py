"""Chunked logical-line reading from byte sources."""

from .line_reader import DEFAULT_CHUNK_SIZE, ChunkedLineReader

__all__ = ["ChunkedLineReader", "DEFAULT_CHUNK_SIZE"]
