"""Helpers for loading runtime configuration profiles."""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .errors import CSVImportError, ErrorCode
from .models import GlobalSettings, ProfileSettings, RuntimeConfig

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "defaults.json"
ALLOWED_DECODE_POLICIES = {"skip", "replace", "fail-fast", "strict"}
ALLOWED_QUOTE_POLICIES = {"warn", "ignore", "strict"}
ALLOWED_SCHEMA_POLICIES = {"fail-fast", "skip"}


@dataclass(slots=True)
class ConfigDocument:
    source: Path
    version: int
    global_settings: GlobalSettings
    profiles: Dict[str, ProfileSettings]


def load_runtime_config(
    profile: str = "default",
    *,
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Dict[str, Any]]] = None,
) -> RuntimeConfig:
    """Load configuration JSON, validate it, and resolve a specific profile."""

    document = load_config_document(
        profile_name=profile,
        config_path=config_path,
        overrides=overrides,
    )
    return RuntimeConfig(global_settings=document.global_settings, profile=document.profiles[profile])


def load_config_document(
    *,
    profile_name: Optional[str] = None,
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Dict[str, Any]]] = None,
) -> ConfigDocument:
    cfg_path = config_path or DEFAULT_CONFIG_PATH
    raw = _read_config_json(cfg_path)

    version = _require_positive_int(raw.get("version"), "version", cfg_path)
    global_section = raw.get("global")
    if not isinstance(global_section, Mapping):
        raise CSVImportError(ErrorCode.CONFIG_ERROR, f"'global' section missing in {cfg_path}")

    overrides = overrides or {}
    global_data = {**global_section, **(overrides.get("global") or {})}
    global_settings = _build_global_settings(global_data, cfg_path)

    profiles_section = raw.get("profiles")
    if not isinstance(profiles_section, Mapping) or not profiles_section:
        raise CSVImportError(ErrorCode.CONFIG_ERROR, f"'profiles' section missing in {cfg_path}")

    profile_overrides = overrides.get("profile") or {}
    profiles: Dict[str, ProfileSettings] = {}
    for name, profile_data in profiles_section.items():
        if not isinstance(profile_data, Mapping):
            raise CSVImportError(
                ErrorCode.CONFIG_ERROR,
                f"Profile '{name}' must be an object in {cfg_path}",
            )
        merged = dict(profile_data)
        if profile_name and name == profile_name and profile_overrides:
            merged = {**merged, **profile_overrides}
        profiles[name] = _build_profile_settings(name, merged, cfg_path)

    if profile_name and profile_name not in profiles:
        raise CSVImportError(
            ErrorCode.CONFIG_ERROR,
            f"Profile '{profile_name}' not found in {cfg_path}",
            context={"available": sorted(profiles)},
        )

    return ConfigDocument(
        source=cfg_path,
        version=version,
        global_settings=global_settings,
        profiles=profiles,
    )


def normalize_decode_policy(policy: str) -> str:
    """Collapse policy aliases: 'strict' behaves exactly like 'fail-fast'."""

    policy = policy.strip().lower()
    return "fail-fast" if policy in {"fail-fast", "strict"} else policy


def error_mode_from_policy(policy: str) -> str:
    """Translate a decode policy into Python's codec error handler."""

    return "replace" if normalize_decode_policy(policy) == "replace" else "strict"


# ---------------------------------------------------------------------------
# Internal helpers


def _read_config_json(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except FileNotFoundError as exc:
        raise CSVImportError(ErrorCode.CONFIG_ERROR, f"Config file '{path}' not found") from exc
    except json.JSONDecodeError as exc:
        raise CSVImportError(ErrorCode.CONFIG_ERROR, f"Config file '{path}' is not valid JSON: {exc}") from exc


def _build_global_settings(data: Mapping[str, Any], source: Path) -> GlobalSettings:
    defaults = GlobalSettings()
    encoding = _require_string(data.get("encoding", defaults.encoding), "global.encoding", source)
    decode_policy = _require_choice(
        data.get("decode_policy", defaults.decode_policy),
        "global.decode_policy",
        ALLOWED_DECODE_POLICIES,
        source,
    )
    quote_policy = _require_choice(
        data.get("quote_policy", defaults.quote_policy),
        "global.quote_policy",
        ALLOWED_QUOTE_POLICIES,
        source,
    )
    schema_policy = _require_choice(
        data.get("schema_policy", defaults.schema_policy),
        "global.schema_policy",
        ALLOWED_SCHEMA_POLICIES,
        source,
    )
    return GlobalSettings(
        encoding=encoding,
        decode_policy=normalize_decode_policy(decode_policy),
        quote_policy=quote_policy,
        schema_policy=schema_policy,
    )


def _build_profile_settings(name: str, data: Mapping[str, Any], source: Path) -> ProfileSettings:
    prefix = f"profiles.{name}"
    required_fields = ("description", "delimiter", "chunk_size")
    missing = [field for field in required_fields if field not in data]
    if missing:
        raise CSVImportError(
            ErrorCode.CONFIG_ERROR,
            f"Profile '{name}' missing fields {missing} in {source}",
        )

    description = _require_string(data.get("description"), f"{prefix}.description", source)
    delimiter = _require_delimiter(data.get("delimiter"), f"{prefix}.delimiter", source)
    chunk_size = _require_positive_int(data.get("chunk_size"), f"{prefix}.chunk_size", source)
    progress_interval_ms = _require_non_negative_int(
        data.get("progress_interval_ms", ProfileSettings().progress_interval_ms),
        f"{prefix}.progress_interval_ms",
        source,
    )
    skip_blank_lines = data.get("skip_blank_lines", False)
    if not isinstance(skip_blank_lines, bool):
        raise CSVImportError(
            ErrorCode.CONFIG_ERROR,
            f"{prefix}.skip_blank_lines must be a boolean in {source}",
        )

    return ProfileSettings(
        description=description,
        delimiter=delimiter,
        chunk_size=chunk_size,
        progress_interval_ms=progress_interval_ms,
        skip_blank_lines=skip_blank_lines,
    )


def _require_choice(value: Any, field: str, allowed: set[str], source: Path) -> str:
    choice = _require_string(value, field, source).lower()
    if choice not in allowed:
        options = ", ".join(sorted(allowed))
        raise CSVImportError(
            ErrorCode.CONFIG_ERROR,
            f"Unsupported {field} '{value}' in {source}. Allowed: {options}",
        )
    return choice


def _require_string(value: Any, field: str, source: Path) -> str:
    if not isinstance(value, str):
        raise CSVImportError(ErrorCode.CONFIG_ERROR, f"{field} must be a string in {source}")
    text = value.strip()
    if not text:
        raise CSVImportError(ErrorCode.CONFIG_ERROR, f"{field} must be non-empty in {source}")
    return text


def _require_delimiter(value: Any, field: str, source: Path) -> str:
    # whitespace delimiters (tab) are legal, so no stripping here
    if not isinstance(value, str) or not value:
        raise CSVImportError(ErrorCode.CONFIG_ERROR, f"{field} must be a non-empty string in {source}")
    if '"' in value:
        raise CSVImportError(ErrorCode.CONFIG_ERROR, f"{field} must not contain a quote character in {source}")
    if "\n" in value or "\r" in value:
        raise CSVImportError(ErrorCode.CONFIG_ERROR, f"{field} must not contain line breaks in {source}")
    return value


def _require_positive_int(value: Any, field: str, source: Path) -> int:
    num = _require_non_negative_int(value, field, source)
    if num <= 0:
        raise CSVImportError(
            ErrorCode.CONFIG_ERROR,
            f"{field} must be greater than zero in {source}",
        )
    return num


def _require_non_negative_int(value: Any, field: str, source: Path) -> int:
    if isinstance(value, bool):
        raise CSVImportError(ErrorCode.CONFIG_ERROR, f"{field} must be an integer in {source}")
    try:
        num = int(value)
    except (TypeError, ValueError) as exc:
        raise CSVImportError(
            ErrorCode.CONFIG_ERROR,
            f"{field} must be an integer in {source}",
        ) from exc
    if num < 0:
        raise CSVImportError(
            ErrorCode.CONFIG_ERROR,
            f"{field} must not be negative in {source}",
        )
    return num
