"""Tests for runtime configuration loader."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from csvimporter.common.config import error_mode_from_policy, load_runtime_config
from csvimporter.common.errors import CSVImportError, ErrorCode
from csvimporter.core.importer import ImportOptions


def test_load_default_profile() -> None:
    config = load_runtime_config()
    assert config.profile.delimiter == ","
    assert config.profile.chunk_size == 4096
    assert config.profile.progress_interval_ms == 100
    assert config.global_settings.encoding == "utf-8"
    assert config.global_settings.decode_policy == "skip"


def test_shipped_profiles_keep_whitespace_delimiters() -> None:
    assert load_runtime_config("tab").profile.delimiter == "\t"
    assert load_runtime_config("semicolon").profile.delimiter == ";"
    assert load_runtime_config("large_input").profile.skip_blank_lines is True


def test_options_from_runtime_and_overrides() -> None:
    config = load_runtime_config("semicolon")
    options = ImportOptions.from_runtime(config)
    assert options.delimiter == ";"
    assert options.progress_interval == pytest.approx(0.1)
    overridden = ImportOptions.from_runtime(config, delimiter="|", quote_policy="strict")
    assert overridden.delimiter == "|"
    assert overridden.quote_policy == "strict"


def test_overrides_applied_to_selected_profile(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, _document())
    config = load_runtime_config(
        "only",
        config_path=config_path,
        overrides={"global": {"decode_policy": "strict"}, "profile": {"chunk_size": 64}},
    )
    assert config.global_settings.decode_policy == "fail-fast"
    assert config.profile.chunk_size == 64


def test_error_mode_resolution() -> None:
    assert error_mode_from_policy("fail-fast") == "strict"
    assert error_mode_from_policy("skip") == "strict"
    assert error_mode_from_policy("replace") == "replace"


def test_missing_profile_raises_config_error(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, _document())
    with pytest.raises(CSVImportError) as exc:
        load_runtime_config("missing", config_path=config_path)
    assert exc.value.code == ErrorCode.CONFIG_ERROR
    assert exc.value.context["available"] == ["only"]


def test_invalid_quote_policy_rejected(tmp_path: Path) -> None:
    document = _document()
    document["global"]["quote_policy"] = "panic"
    config_path = _write_config(tmp_path, document)
    with pytest.raises(CSVImportError) as exc:
        load_runtime_config("only", config_path=config_path)
    assert "quote_policy" in str(exc.value)


@pytest.mark.parametrize("delimiter", ["", '"', "\n", 5])
def test_bad_delimiter_rejected(tmp_path: Path, delimiter) -> None:
    document = _document()
    document["profiles"]["only"]["delimiter"] = delimiter
    config_path = _write_config(tmp_path, document)
    with pytest.raises(CSVImportError) as exc:
        load_runtime_config("only", config_path=config_path)
    assert exc.value.code == ErrorCode.CONFIG_ERROR


def test_non_positive_chunk_size_rejected(tmp_path: Path) -> None:
    document = _document()
    document["profiles"]["only"]["chunk_size"] = 0
    config_path = _write_config(tmp_path, document)
    with pytest.raises(CSVImportError):
        load_runtime_config("only", config_path=config_path)


def test_invalid_json_reported(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(CSVImportError) as exc:
        load_runtime_config(config_path=path)
    assert "not valid JSON" in str(exc.value)


def _write_config(tmp_path: Path, payload: dict) -> Path:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return path


def _document() -> dict:
    return {
        "version": 1,
        "global": {
            "encoding": "utf-8",
            "decode_policy": "skip",
            "quote_policy": "warn",
            "schema_policy": "fail-fast",
        },
        "profiles": {
            "only": {
                "description": "tmp",
                "delimiter": ",",
                "chunk_size": 1024,
                "progress_interval_ms": 100,
            }
        },
    }
