from __future__ import annotations

import csv
import io
import json
from pathlib import Path

import pytest

from csvimporter.common.errors import CSVImportError
from csvimporter.core.export import build_record_writer, default_header

pq = pytest.importorskip("pyarrow.parquet", reason="pyarrow is required for parquet writer tests")


def test_jsonl_writer_keeps_record_shape() -> None:
    stream = io.StringIO()
    with build_record_writer("jsonl", header=["a", "b"], stream=stream) as writer:
        writer.write_all([{"a": "1", "b": "ä"}, ["x", "y", "z"]])
    lines = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert lines == [{"a": "1", "b": "ä"}, ["x", "y", "z"]]


def test_csv_writer_pads_and_truncates_to_header() -> None:
    stream = io.StringIO()
    writer = build_record_writer("csv", header=["a", "b"], stream=stream)
    writer.write_all([["1"], ["2", "3", "4"], {"b": "with, comma", "a": "5"}])
    writer.close()
    rows = list(csv.reader(io.StringIO(stream.getvalue())))
    assert rows == [["a", "b"], ["1", ""], ["2", "3"], ["5", "with, comma"]]
    assert writer.width.summary.short_rows == 1
    assert writer.width.summary.long_rows == 1


def test_parquet_writer_round_trips_string_columns(tmp_path: Path) -> None:
    path = tmp_path / "out" / "teams.parquet"
    records = [{"name": f"Team {index}", "city": "Kazan"} for index in range(5000)]
    with build_record_writer("parquet", header=["name", "city"], path=path) as writer:
        writer.write_all(records)
    table = pq.read_table(path)
    assert table.num_rows == 5000
    assert table.column_names == ["name", "city"]
    assert table.column("name")[4999].as_py() == "Team 4999"


def test_parquet_writer_dedupes_column_names(tmp_path: Path) -> None:
    path = tmp_path / "dupes.parquet"
    with build_record_writer("parquet", header=["x", "x", ""], path=path) as writer:
        writer.write(["1", "2", "3"])
    assert pq.read_table(path).column_names == ["x", "x_2", "column_3"]


def test_parquet_writer_dedupes_against_generated_names(tmp_path: Path) -> None:
    path = tmp_path / "suffixes.parquet"
    with build_record_writer("parquet", header=["a", "a", "a_2"], path=path) as writer:
        writer.write(["1", "2", "3"])
    assert pq.read_table(path).column_names == ["a", "a_2", "a_2_2"]


def test_writer_argument_validation() -> None:
    with pytest.raises(CSVImportError):
        build_record_writer("xml", header=["a"], stream=io.StringIO())
    with pytest.raises(CSVImportError):
        build_record_writer("parquet", header=["a"])
    with pytest.raises(CSVImportError):
        build_record_writer("csv", header=["a"])


def test_default_header() -> None:
    assert default_header(3) == ["column_1", "column_2", "column_3"]
    assert default_header(0) == ["column_1"]
