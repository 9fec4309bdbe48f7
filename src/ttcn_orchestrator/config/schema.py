"""
ttcn-orchestrator — configuration schema and validation.

File: src/ttcn_orchestrator/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for required fields, types, enums, and numeric constraints.
- Named basket definitions and the comma-separated basket selection.
- Deterministic deep-merge helpers.

Functional requirements
- Validate config payloads and return structured errors (field path + message).

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from ttcn_orchestrator.constants import (
    CACHE_DIR,
    CONFIG_SCHEMA_VERSION,
    DEFAULT_HANDOFF_SIZE,
    DEFAULT_TICKER_SECONDS,
    LOG_DIR,
    OUTPUT_FORMATS,
    PASS_VERDICT,
    RESULTS_FILENAME,
)
from ttcn_orchestrator.errors import ConfigError
from ttcn_orchestrator.execution.evaluator import DEFAULT_COMMAND, DEFAULT_VERDICT_PATTERN

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

_BASKET_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")
_BASKET_KEYS: Final[frozenset[str]] = frozenset({"name", "tags", "exclude_name", "exclude_tags"})

# Config paths that should be normalized relative to config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("paths", "cache_dir"),
    ("paths", "log_dir"),
    ("paths", "output_dir"),
)


class MetaConfig(TypedDict):
    schema_version: int


class RunConfig(TypedDict):
    max_workers: int
    max_fail: int
    format: Literal["quiet", "plain", "json", "text"]
    ticker_seconds: float
    policy: str
    expected_verdict: str
    handoff_size: int


class ExecutorConfig(TypedDict):
    command: list[str]
    timeout_seconds: float
    verdict_pattern: str


class DelegateConfig(TypedDict):
    server: str
    executable: str
    flags: str


class PathsConfig(TypedDict):
    cache_dir: str
    results_file: str
    log_dir: str
    output_dir: str


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_to_stdout: bool


class OrchestratorConfig(TypedDict):
    meta: MetaConfig
    run: RunConfig
    executor: ExecutorConfig
    delegate: DelegateConfig
    paths: PathsConfig
    observability: ObservabilityConfig
    baskets: dict[str, object]


DEFAULT_CONFIG: Final[OrchestratorConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "run": {
        "max_workers": 0,
        "max_fail": 0,
        "format": "text",
        "ticker_seconds": DEFAULT_TICKER_SECONDS,
        "policy": "",
        "expected_verdict": PASS_VERDICT,
        "handoff_size": DEFAULT_HANDOFF_SIZE,
    },
    "executor": {
        "command": list(DEFAULT_COMMAND),
        "timeout_seconds": 0.0,
        "verdict_pattern": DEFAULT_VERDICT_PATTERN,
    },
    "delegate": {
        "server": "",
        "executable": "k3s",
        "flags": "",
    },
    "paths": {
        "cache_dir": CACHE_DIR.as_posix(),
        "results_file": RESULTS_FILENAME,
        "log_dir": LOG_DIR.as_posix(),
        "output_dir": "",
    },
    "observability": {
        "log_level": "INFO",
        "log_to_stdout": False,
    },
    "baskets": {
        "selected": "",
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ConfigError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> OrchestratorConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    """Return deterministic migration guidance for schema version mismatch."""

    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade ttrun.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the ttcn-orchestrator runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, issues)
    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def basket_definitions(config: Mapping[str, object]) -> dict[str, dict[str, object]]:
    """Return the named basket tables of a validated config."""

    baskets = config.get("baskets")
    if not isinstance(baskets, Mapping):
        return {}
    return {
        name: dict(table)
        for name, table in sorted(baskets.items())
        if name != "selected" and isinstance(table, Mapping)
    }


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    validators: dict[str, Callable[[dict[str, object], str], dict[str, Any]]] = {
        "meta": lambda section, path: _validate_meta(section, path, issues),
        "run": lambda section, path: _validate_run(section, path, issues),
        "executor": lambda section, path: _validate_executor(section, path, issues),
        "delegate": lambda section, path: _validate_delegate(section, path, issues),
        "paths": lambda section, path: _validate_paths(section, path, issues),
        "observability": lambda section, path: _validate_observability(section, path, issues),
        "baskets": lambda section, path: _validate_baskets(section, path, issues),
    }

    _reject_unknown_keys(payload, set(validators), "", issues)
    _require_keys(payload, set(validators), "", issues)

    out: dict[str, Any] = {}
    for key in sorted(validators):
        raw = payload.get(key)
        if raw is None:
            continue
        section_obj = _as_object(raw, key, issues)
        if section_obj is None:
            continue
        out[key] = validators[key](section_obj, key)
    return out


def _validate_meta(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    _require_keys(payload, {"schema_version"}, path, issues)

    out: dict[str, Any] = {}
    if "schema_version" in payload:
        parsed = _as_int(
            payload["schema_version"], _join(path, "schema_version"), issues, minimum=1
        )
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(_join(path, "schema_version"), migration_guidance(parsed))
    return out


def _validate_run(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {
        "max_workers",
        "max_fail",
        "format",
        "ticker_seconds",
        "policy",
        "expected_verdict",
        "handoff_size",
    }
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key, minimum in (("max_workers", 0), ("max_fail", 0), ("handoff_size", 1)):
        if key in payload:
            parsed_int = _as_int(payload[key], _join(path, key), issues, minimum=minimum)
            if parsed_int is not None:
                out[key] = parsed_int

    if "format" in payload:
        parsed_format = _as_enum(
            payload["format"], _join(path, "format"), issues, allowed_values=OUTPUT_FORMATS
        )
        if parsed_format is not None:
            out["format"] = parsed_format

    if "ticker_seconds" in payload:
        parsed_ticker = _as_float(
            payload["ticker_seconds"], _join(path, "ticker_seconds"), issues, minimum=0.0
        )
        if parsed_ticker is not None:
            out["ticker_seconds"] = parsed_ticker

    if "policy" in payload:
        parsed_policy = _as_text(payload["policy"], _join(path, "policy"), issues)
        if parsed_policy is not None:
            out["policy"] = parsed_policy

    if "expected_verdict" in payload:
        parsed_verdict = _as_str(
            payload["expected_verdict"], _join(path, "expected_verdict"), issues
        )
        if parsed_verdict is not None:
            out["expected_verdict"] = parsed_verdict

    return out


def _validate_executor(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"command", "timeout_seconds", "verdict_pattern"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "command" in payload:
        parsed_command = _as_str_list(payload["command"], _join(path, "command"), issues)
        if parsed_command is not None:
            if not parsed_command:
                issues.add(_join(path, "command"), "must not be empty")
            else:
                out["command"] = parsed_command

    if "timeout_seconds" in payload:
        parsed_timeout = _as_float(
            payload["timeout_seconds"], _join(path, "timeout_seconds"), issues, minimum=0.0
        )
        if parsed_timeout is not None:
            out["timeout_seconds"] = parsed_timeout

    if "verdict_pattern" in payload:
        pattern_path = _join(path, "verdict_pattern")
        parsed_pattern = _as_str(payload["verdict_pattern"], pattern_path, issues)
        if parsed_pattern is not None:
            try:
                compiled = re.compile(parsed_pattern)
            except re.error as exc:
                issues.add(pattern_path, f"invalid regular expression: {exc}")
            else:
                if compiled.groups < 1:
                    issues.add(pattern_path, "must contain a capture group for the verdict")
                else:
                    out["verdict_pattern"] = parsed_pattern
    return out


def _validate_delegate(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"server", "executable", "flags"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in ("server", "flags"):
        if key in payload:
            parsed_text = _as_text(payload[key], _join(path, key), issues)
            if parsed_text is not None:
                out[key] = parsed_text
    if "executable" in payload:
        parsed_exe = _as_path_text(payload["executable"], _join(path, "executable"), issues)
        if parsed_exe is not None:
            out["executable"] = parsed_exe
    return out


def _validate_paths(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"cache_dir", "results_file", "log_dir", "output_dir"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    for key in ("cache_dir", "results_file", "log_dir"):
        if key in payload:
            parsed = _as_path_text(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    if "output_dir" in payload:
        # Empty means "run each job in the suite root".
        parsed_output = _as_text(payload["output_dir"], _join(path, "output_dir"), issues)
        if parsed_output is not None:
            if "\x00" in parsed_output:
                issues.add(_join(path, "output_dir"), "must not contain NUL bytes")
            else:
                out["output_dir"] = parsed_output
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"log_level", "log_to_stdout"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    out: dict[str, Any] = {}
    if "log_level" in payload:
        parsed_level = _as_enum(
            payload["log_level"],
            _join(path, "log_level"),
            issues,
            allowed_values=("DEBUG", "INFO", "WARNING", "ERROR"),
        )
        if parsed_level is not None:
            out["log_level"] = parsed_level
    if "log_to_stdout" in payload:
        parsed_stdout = _as_bool(payload["log_to_stdout"], _join(path, "log_to_stdout"), issues)
        if parsed_stdout is not None:
            out["log_to_stdout"] = parsed_stdout
    return out


def _validate_baskets(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if "selected" in payload:
        parsed_selected = _as_text(payload["selected"], _join(path, "selected"), issues)
        if parsed_selected is not None:
            out["selected"] = parsed_selected

    for name in sorted(payload):
        if name == "selected":
            continue
        basket_path = _join(path, name)
        if not _BASKET_NAME_PATTERN.fullmatch(name):
            issues.add(basket_path, "basket names must start with a letter")
            continue
        table = _as_object(payload[name], basket_path, issues)
        if table is None:
            continue
        _reject_unknown_keys(table, set(_BASKET_KEYS), basket_path, issues)
        basket: dict[str, Any] = {}
        for key in sorted(_BASKET_KEYS):
            if key not in table:
                continue
            raw = table[key]
            if isinstance(raw, str):
                raw = [raw]
            parsed_patterns = _as_str_list(raw, _join(basket_path, key), issues)
            if parsed_patterns is not None:
                basket[key] = parsed_patterns
        out[name] = basket

    selected = out.get("selected", "")
    if isinstance(selected, str):
        for name in (item.strip() for item in selected.split(",")):
            if name and name not in out:
                issues.add(_join(path, "selected"), f"basket {name!r} is not defined")
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    """Like ``_as_str`` but empty strings are allowed."""

    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    return value.strip()


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_str_list(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if isinstance(value, str) or not isinstance(value, Sequence):
        issues.add(path, f"expected list of strings, got {type(value).__name__}")
        return None
    out: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str):
            issues.add(f"{path}[{index}]", f"expected string, got {type(item).__name__}")
            return None
        out.append(item)
    return out


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            if isinstance(existing, dict):
                _merge_into(existing, value)
            else:
                nested: dict[str, Any] = {}
                _merge_into(nested, value)
                target[key] = nested
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in sorted(value):
        out[key] = _deep_copy_value(value[key])
    return out


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        return {key: _deep_copy_value(item) for key, item in value.items() if isinstance(key, str)}
    if isinstance(value, list):
        return [_deep_copy_value(item) for item in value]
    if isinstance(value, tuple):
        return [_deep_copy_value(item) for item in value]
    return copy.deepcopy(value)


__all__ = [
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "OrchestratorConfig",
    "PATH_FIELDS",
    "assert_valid_config",
    "basket_definitions",
    "default_config",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
