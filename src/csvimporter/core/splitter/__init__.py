"""Quote-aware field splitting for single logical lines."""

from .field_splitter import ComponentShape, FieldSplitter, QuoteState, classify_component, split_fields

__all__ = ["ComponentShape", "FieldSplitter", "QuoteState", "classify_component", "split_fields"]
