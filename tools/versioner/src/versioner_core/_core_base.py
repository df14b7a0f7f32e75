#!/usr/bin/env python3
from __future__ import annotations

import datetime as dt
import json
import os
import re
import shlex
import shutil
import subprocess
import sys
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

import jsonschema

TOOL_NAME = "versioner"
TOOL_VERSION = "1.0.0"
DEFAULT_JOBS = 8

FUNCTION = "function"
VARIABLE = "variable"
INCONSISTENT = "inconsistent"


class VersionerError(Exception):
    pass


def load_json(path: Path) -> dict[str, Any]:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise VersionerError(f"Unable to read JSON file '{path}': {exc}") from exc
    except json.JSONDecodeError as exc:
        raise VersionerError(f"Invalid JSON in '{path}': {exc}") from exc


def write_json(path: Path, value: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(value, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def get_schema_path(kind: str) -> Path:
    base = Path(__file__).resolve().parent / "schemas"
    mapping = {
        "catalog": base / "catalog.schema.json",
        "report": base / "report.schema.json",
    }
    if kind not in mapping:
        raise VersionerError(f"Unknown schema kind: {kind}")
    return mapping[kind]


def validate_with_jsonschema(kind: str, payload: dict[str, Any]) -> None:
    schema_path = get_schema_path(kind)
    if not schema_path.exists():
        raise VersionerError(f"schema file not found: {schema_path}")
    schema_payload = load_json(schema_path)
    try:
        jsonschema.validate(payload, schema_payload)
    except jsonschema.ValidationError as exc:
        raise VersionerError(f"{kind} failed JSON schema validation: {exc.message}") from exc


def ensure_relative_path(root: Path, value: str) -> Path:
    path = Path(value)
    if path.is_absolute():
        return path
    return root / path


def to_display_path(path: str | Path, base: Path | None = None) -> str:
    root = (base or Path.cwd()).resolve()
    try:
        return str(Path(path).resolve().relative_to(root))
    except (ValueError, OSError):
        return str(path)


def require_directory(path: Path, label: str) -> Path:
    if not path.exists():
        raise VersionerError(f"{label} '{path}' does not exist.")
    if not path.is_dir():
        raise VersionerError(f"{label} '{path}' is not a directory.")
    return path


def collect_files(directory: Path) -> list[Path]:
    require_directory(directory, "directory")
    files: list[Path] = []
    for candidate in directory.rglob("*"):
        if candidate.is_file():
            files.append(candidate)
    return sorted(files)


def list_subdirectories(directory: Path) -> list[Path]:
    try:
        entries = sorted(directory.iterdir())
    except OSError as exc:
        raise VersionerError(f"Unable to list directory '{directory}': {exc}") from exc
    return [entry for entry in entries if entry.is_dir()]


def normalize_string_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise VersionerError(f"Catalog field '{key}' must be an array when specified.")
    out: list[str] = []
    for idx, item in enumerate(value):
        if not isinstance(item, str) or not item:
            raise VersionerError(f"Catalog field '{key}[{idx}]' must be a non-empty string.")
        out.append(item)
    return out


def join_values(values: Iterable[Any], delimiter: str = ", ") -> str:
    return delimiter.join(str(item) for item in values)


def utc_timestamp_now() -> str:
    return dt.datetime.now(tz=dt.timezone.utc).isoformat()


def _dedupe_non_empty_strings(values: list[str]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for raw in values:
        value = raw.strip()
        if not value or value in seen:
            continue
        seen.add(value)
        out.append(value)
    return out


def _default_clang_compiler_candidates() -> list[str]:
    candidates: list[str] = []

    for env_key in ["VERSIONER_CLANG", "LLVM_CLANG", "CC"]:
        value = os.environ.get(env_key)
        if isinstance(value, str) and value.strip():
            candidates.append(value.strip())

    candidates.extend(
        [
            "clang",
            "clang-20",
            "clang-19",
            "clang-18",
            "clang-17",
            "clang-16",
            "clang-15",
            "clang-14",
        ]
    )
    return _dedupe_non_empty_strings(candidates)


def _resolve_executable_candidate(candidate: str) -> str | None:
    expanded = os.path.expanduser(os.path.expandvars(candidate.strip()))
    if not expanded:
        return None

    # Explicit path (absolute or relative with separators).
    if any(sep in expanded for sep in ["/", "\\"]):
        candidate_path = Path(expanded)
        if candidate_path.exists():
            return str(candidate_path)
        return None

    return shutil.which(expanded)


def resolve_compiler(explicit: str | None = None) -> str:
    candidate_sources: list[str] = []
    if explicit and explicit.strip():
        candidate_sources.append(explicit.strip())
    candidate_sources.extend(_default_clang_compiler_candidates())

    candidates = _dedupe_non_empty_strings(candidate_sources)
    for candidate in candidates:
        resolved = _resolve_executable_candidate(candidate)
        if resolved:
            return resolved

    raise VersionerError(
        "clang not found; tried: "
        + ", ".join(candidates)
        + ". Pass --compiler or set VERSIONER_CLANG."
    )


def format_command(command: list[str]) -> str:
    return " ".join(shlex.quote(item) for item in command)
