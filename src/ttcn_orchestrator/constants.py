"""Stable constants shared across the orchestrator."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
RESULTS_DB_VERSION: Final[str] = "1"
RESULTS_SESSION_ID: Final[str] = "1"

# Default runtime paths (relative to the config file unless overridden).
CACHE_DIR: Final[PurePosixPath] = PurePosixPath(".ttrun/cache")
LOG_DIR: Final[PurePosixPath] = PurePosixPath(".ttrun/logs")
RESULTS_FILENAME: Final[str] = "test_results.json"

# Suite manifest file name searched during discovery.
MANIFEST_FILENAME: Final[str] = "package.yml"
TTCN3_SUFFIXES: Final[tuple[str, ...]] = (".ttcn3", ".ttcn", ".ttcnpp")

# Verdicts.
PASS_VERDICT: Final[str] = "pass"
NONE_VERDICT: Final[str] = "none"
FATAL_VERDICT: Final[str] = "fatal"
WARNING_VERDICTS: Final[frozenset[str]] = frozenset({"inconc", "none"})

# Runtime defaults.
DEFAULT_TICKER_SECONDS: Final[float] = 30.0
DEFAULT_HANDOFF_SIZE: Final[int] = 1
LEGACY_RUN_POLICY: Final[str] = "old"
OUTPUT_FORMATS: Final[tuple[str, ...]] = ("quiet", "plain", "json", "text")

__all__ = [
    "CACHE_DIR",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_HANDOFF_SIZE",
    "DEFAULT_TICKER_SECONDS",
    "FATAL_VERDICT",
    "LEGACY_RUN_POLICY",
    "LOG_DIR",
    "MANIFEST_FILENAME",
    "NONE_VERDICT",
    "OUTPUT_FORMATS",
    "PASS_VERDICT",
    "RESULTS_DB_VERSION",
    "RESULTS_FILENAME",
    "RESULTS_SESSION_ID",
    "TTCN3_SUFFIXES",
    "WARNING_VERDICTS",
]
