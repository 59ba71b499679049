"""Quote-aware splitting of one logical line into field values."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, List, Optional

from csvimporter.common.errors import CSVImportError, ErrorCode
from csvimporter.common.models import LineIssue

logger = logging.getLogger(__name__)

QUOTE = '"'
ESCAPED_QUOTE = '""'
SUBSTITUTE = "\x1a"
# fallbacks when the line already contains SUBSTITUTE
PRIVATE_USE_PLACEHOLDERS = ("\ue000", "\ue001", "\ue002", "\ue003")
ALLOWED_QUOTE_POLICIES = {"warn", "ignore", "strict"}

IssueCallback = Optional[Callable[[LineIssue], None]]


class QuoteState(str, Enum):
    """Scanner states while walking the characters of one split component."""

    OUTSIDE = "outside"
    INSIDE_QUOTE = "inside_quote"
    CLOSING_CANDIDATE = "closing_candidate"


class ComponentShape(str, Enum):
    PLAIN = "plain"  # no quote at all
    OPENING = "opening"  # leading quote only: a quoted field cut by a delimiter
    CLOSING = "closing"  # trailing quote only: the end of such a field
    QUOTED = "quoted"  # leading and trailing quote: self-contained field
    MIXED = "mixed"  # a quote somewhere else; never merged


def classify_component(component: str) -> ComponentShape:
    """Run the quote scanner over ``component`` and name its shape."""

    state = QuoteState.OUTSIDE
    opened = False
    for index, char in enumerate(component):
        if state is QuoteState.CLOSING_CANDIDATE:
            # anything after a closing quote candidate breaks the shape
            return ComponentShape.MIXED
        if char != QUOTE:
            continue
        if state is QuoteState.OUTSIDE and index == 0:
            state = QuoteState.INSIDE_QUOTE
            opened = True
        else:
            state = QuoteState.CLOSING_CANDIDATE
    if state is QuoteState.OUTSIDE:
        return ComponentShape.PLAIN
    if state is QuoteState.INSIDE_QUOTE:
        return ComponentShape.OPENING
    return ComponentShape.QUOTED if opened else ComponentShape.CLOSING


def _closes_field(component: str, shape: ComponentShape) -> bool:
    # a lone quote both opens and closes
    return shape is ComponentShape.CLOSING or component == QUOTE


class FieldSplitter:
    """Splits logical lines on a delimiter while honouring double-quoted fields.

    Doubled quotes are swapped for a placeholder character before splitting so
    they cannot be mistaken for field boundaries, quoted fields that the split
    cut apart are merged back, and finally the wrapping quotes are removed and
    the placeholder is turned back into a literal quote.
    """

    def __init__(
        self,
        delimiter: str = ",",
        *,
        quote_policy: str = "warn",
        issue_callback: IssueCallback = None,
    ) -> None:
        if not delimiter:
            raise CSVImportError(ErrorCode.CONFIG_ERROR, "field delimiter must be non-empty")
        if QUOTE in delimiter:
            raise CSVImportError(ErrorCode.CONFIG_ERROR, "field delimiter must not contain a quote character")
        policy = quote_policy.strip().lower()
        if policy not in ALLOWED_QUOTE_POLICIES:
            raise CSVImportError(ErrorCode.CONFIG_ERROR, f"Unsupported quote policy '{quote_policy}'")
        self.delimiter = delimiter
        self.quote_policy = policy
        self.issue_callback = issue_callback

    def split(self, line: str, *, line_number: Optional[int] = None) -> List[str]:
        delimiter = self.delimiter
        text = self._normalize(line)
        placeholder = _pick_placeholder(text)
        text = text.replace(ESCAPED_QUOTE, placeholder)

        merged: List[str] = []
        pending: List[str] = []
        for component in text.split(delimiter):
            shape = classify_component(component)
            if pending:
                if shape is ComponentShape.PLAIN:
                    pending.append(component)
                    continue
                if _closes_field(component, shape):
                    pending.append(component)
                    merged.append(delimiter.join(pending))
                    pending = []
                    continue
                self._report_unclosed(line, line_number, pending[0], placeholder)
                merged.extend(pending)
                pending = []
            if shape is ComponentShape.OPENING:
                pending = [component]
            else:
                merged.append(component)
        if pending:
            self._report_unclosed(line, line_number, pending[0], placeholder)
            merged.extend(pending)

        return [value.replace(QUOTE, "").replace(placeholder, QUOTE) for value in merged]

    __call__ = split

    def _normalize(self, line: str) -> str:
        delimiter = self.delimiter
        text = line.replace("\r\n", "\n")
        if text.endswith(("\n", "\r")):
            text = text[:-1]

        empty_quoted = delimiter + ESCAPED_QUOTE + delimiter
        while empty_quoted in text:
            text = text.replace(empty_quoted, delimiter + delimiter)
        if text.startswith(ESCAPED_QUOTE + delimiter):
            text = text[len(ESCAPED_QUOTE):]
        if text.endswith(delimiter + ESCAPED_QUOTE):
            text = text[: -len(ESCAPED_QUOTE)]
        return text

    def _report_unclosed(
        self,
        line: str,
        line_number: Optional[int],
        opening: str,
        placeholder: str,
    ) -> None:
        if self.quote_policy == "ignore":
            return
        where = f"line {line_number}" if line_number is not None else "line"
        fragment = opening.replace(placeholder, ESCAPED_QUOTE)
        message = f"{where}: opening quote of field starting {fragment[:40]!r} is never closed"
        if self.quote_policy == "strict":
            raise CSVImportError(
                ErrorCode.QUOTE_ERROR,
                message,
                context={"line_number": line_number, "line": line},
            )
        logger.warning("Invalid CSV format, %s", message)
        if self.issue_callback:
            self.issue_callback(
                LineIssue(
                    line_number=line_number or 0,
                    code=ErrorCode.QUOTE_ERROR,
                    message=message,
                    raw=line,
                )
            )


def split_fields(line: str, delimiter: str = ",") -> List[str]:
    """Split a single line with the default (warn) quote policy."""

    return FieldSplitter(delimiter).split(line)


def _pick_placeholder(text: str) -> str:
    if SUBSTITUTE not in text:
        return SUBSTITUTE
    for candidate in PRIVATE_USE_PLACEHOLDERS:
        if candidate not in text:
            return candidate
    raise CSVImportError(
        ErrorCode.QUOTE_ERROR,
        "line contains every placeholder character; escaped quotes cannot be disambiguated",
    )
