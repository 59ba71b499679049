"""CLI shell: parse CSV files into JSON Lines / CSV / Parquet and count their records."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from csvimporter.common.config import load_runtime_config
from csvimporter.common.errors import CSVImportError, ErrorCode
from csvimporter.common.logging_setup import setup_logging
from csvimporter.common.models import ImportProgress, ImportResult
from csvimporter.common.progress import ProgressLogger
from csvimporter.core.export import SUPPORTED_FORMATS, build_record_writer, default_header
from csvimporter.core.importer import CSVImporter, ImportOptions

logger = logging.getLogger(__name__)


def render_progress(progress: ImportProgress) -> None:
    print(
        f"[parse/progress] records={progress.imported_records} lines={progress.lines_read} "
        f"bytes={progress.bytes_read} elapsed={progress.elapsed_seconds:.1f}s",
        file=sys.stderr,
    )


def read_input(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise CSVImportError(ErrorCode.IO_ERROR, f"Cannot read '{path}': {exc.strerror or exc}") from exc


def build_options(args: argparse.Namespace) -> ImportOptions:
    config_path = Path(args.config) if args.config else None
    runtime = load_runtime_config(profile=args.profile, config_path=config_path)
    overrides: Dict[str, Any] = {}
    if args.delimiter is not None:
        overrides["delimiter"] = _unescape_delimiter(args.delimiter)
    if args.encoding:
        overrides["encoding"] = args.encoding
    if args.decode_policy:
        overrides["decode_policy"] = args.decode_policy
    if args.quote_policy:
        overrides["quote_policy"] = args.quote_policy
    if args.schema_policy:
        overrides["schema_policy"] = args.schema_policy
    if args.skip_blank_lines:
        overrides["skip_blank_lines"] = True
    return ImportOptions.from_runtime(runtime, **overrides)


def run_import(args: argparse.Namespace, *, with_progress: bool) -> ImportResult:
    options = build_options(args)
    source = Path(args.input)
    importer = CSVImporter(read_input(source), options)
    progress_logger = ProgressLogger(Path(args.progress_log)) if getattr(args, "progress_log", None) else None

    def on_progress(progress: ImportProgress) -> None:
        if with_progress:
            render_progress(progress)
        if progress_logger:
            progress_logger.emit(progress, source=str(source))

    progress_callback = on_progress if (with_progress or progress_logger) else None
    logger.info("Importing %s (delimiter=%r, header=%s)", source, options.delimiter, args.header)
    if args.header:
        return importer.import_structured(lambda record: record, progress_callback=progress_callback)
    return importer.import_records(lambda fields: fields, progress_callback=progress_callback)


def command_parse(args: argparse.Namespace) -> int:
    result = run_import(args, with_progress=args.progress)
    report_issues(result)
    if not result.ok:
        print(f"[parse] failed: {result.error}", file=sys.stderr)
        return 1

    header = result.header or default_header(_widest(result.records))
    output_path = Path(args.output) if args.output else None
    if args.format == "parquet":
        writer = build_record_writer("parquet", header=header, path=output_path)
        with writer:
            written = writer.write_all(result.records)
    elif output_path is not None:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("w", encoding="utf-8", newline="") as handle:
            with build_record_writer(args.format, header=header, stream=handle) as writer:
                written = writer.write_all(result.records)
    else:
        with build_record_writer(args.format, header=header, stream=sys.stdout) as writer:
            written = writer.write_all(result.records)

    destination = output_path or "stdout"
    print(f"[parse] wrote {written} record(s) as {args.format} to {destination}", file=sys.stderr)
    return 0


def command_count(args: argparse.Namespace) -> int:
    result = run_import(args, with_progress=False)
    report_issues(result)
    status = result.status.value.lower()
    print(
        f"lines={result.lines_read} records={len(result.records)} "
        f"issues={len(result.issues)} status={status}"
    )
    if result.header is not None:
        print(f"header={result.header}")
    if not result.ok:
        print(f"[count] failed: {result.error}", file=sys.stderr)
        return 1
    return 0


def report_issues(result: ImportResult, *, limit: int = 20) -> None:
    for issue in result.issues[:limit]:
        print(f"[issue] line {issue.line_number} {issue.code.value}: {issue.message}", file=sys.stderr)
    hidden = len(result.issues) - limit
    if hidden > 0:
        print(f"[issue] ... {hidden} more", file=sys.stderr)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Streaming CSV importer")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Console log level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--log-file",
        help="Optional file receiving DEBUG-level logs",
    )
    subparsers = parser.add_subparsers(dest="command")

    parse = subparsers.add_parser("parse", help="Import a CSV file and export its records")
    _add_import_arguments(parse)
    parse.add_argument(
        "--format",
        choices=list(SUPPORTED_FORMATS),
        default="jsonl",
        help="Output format (parquet requires --output)",
    )
    parse.add_argument(
        "--output",
        help="Destination file (defaults to stdout for jsonl/csv)",
    )
    parse.add_argument(
        "--progress",
        action="store_true",
        help="Print throttled progress lines to stderr",
    )
    parse.add_argument(
        "--progress-log",
        help="Path to JSONL file for structured progress events",
    )
    parse.set_defaults(func=command_parse)

    count = subparsers.add_parser("count", help="Count logical lines, records and issues")
    _add_import_arguments(count)
    count.set_defaults(func=command_count)

    return parser


def _add_import_arguments(command: argparse.ArgumentParser) -> None:
    command.add_argument("input", help="CSV file to import")
    command.add_argument(
        "--profile",
        default="default",
        help="Profile from the configuration document (e.g., default, semicolon, tab, large_input)",
    )
    command.add_argument("--config", help="Alternative configuration JSON")
    command.add_argument("--delimiter", help="Field delimiter; '\\t' is accepted for tab")
    command.add_argument("--encoding", help="Text encoding of the input")
    command.add_argument(
        "--header",
        action="store_true",
        help="Treat the first line as header and emit objects",
    )
    command.add_argument(
        "--decode-policy",
        choices=["skip", "replace", "fail-fast", "strict"],
        help="What to do with lines that are not valid in the encoding",
    )
    command.add_argument(
        "--quote-policy",
        choices=["warn", "ignore", "strict"],
        help="What to do with quoted fields that are never closed",
    )
    command.add_argument(
        "--schema-policy",
        choices=["fail-fast", "skip"],
        help="Header mode: abort or skip records whose field count differs from the header",
    )
    command.add_argument(
        "--skip-blank-lines",
        action="store_true",
        help="Ignore empty lines",
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 0
    setup_logging(args.log_level, Path(args.log_file) if args.log_file else None)
    try:
        return args.func(args)
    except CSVImportError as exc:
        print(f"[{args.command}] {exc}", file=sys.stderr)
        return 2


def _unescape_delimiter(value: str) -> str:
    return {"\\t": "\t", "tab": "\t"}.get(value, value)


def _widest(records: List[Any]) -> int:
    return max((len(record) for record in records), default=1)


if __name__ == "__main__":
    raise SystemExit(main())
