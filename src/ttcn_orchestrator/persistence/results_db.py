"""
ttcn-orchestrator — run record persistence

File: src/ttcn_orchestrator/persistence/results_db.py

Purpose
- Remove the previous run record before a run and write the new one after it.

Format
- A single-session ``RunDB`` serialized as indented JSON (see
  ``ttcn_orchestrator.domain.models``), written atomically.

Failure semantics
- Any I/O or encoding failure raises ``PersistenceError``. Callers flush on
  success, on failure and after a circuit break, and report the outcome before
  surfacing a persistence error.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from ttcn_orchestrator.constants import PASS_VERDICT, RESULTS_FILENAME
from ttcn_orchestrator.domain.models import RunDB
from ttcn_orchestrator.errors import PersistenceError
from ttcn_orchestrator.utils.fs import atomic_write, remove_if_exists

if TYPE_CHECKING:
    import os
    from collections.abc import Sequence

    from ttcn_orchestrator.domain.models import Run

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SessionParams:
    """Session-level fields recorded next to the runs."""

    max_jobs: int
    expected_verdict: str = PASS_VERDICT


def results_path(
    cache_dir: str | os.PathLike[str],
    results_file: str | os.PathLike[str] = RESULTS_FILENAME,
) -> Path:
    """Location of the run record; relative ``results_file`` lives in ``cache_dir``."""

    candidate = Path(results_file)
    if candidate.is_absolute():
        return candidate
    return Path(cache_dir) / candidate


class ResultsStore:
    """Reads and writes the run record at one fixed path."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def remove_stale(self) -> bool:
        """Delete a record left by an earlier run; return whether one existed."""

        try:
            removed = remove_if_exists(self._path)
        except OSError as exc:
            raise PersistenceError(
                f"unable to remove stale run record {self._path}: {exc}"
            ) from exc
        if removed:
            logger.debug("stale_results_removed", path=str(self._path))
        return removed

    def flush(self, runs: Sequence[Run], params: SessionParams) -> Path:
        db = RunDB.single_session(
            runs,
            max_jobs=params.max_jobs,
            expected_verdict=params.expected_verdict,
        )
        try:
            payload = json.dumps(db.to_dict(), indent=2, ensure_ascii=False) + "\n"
            self._path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write(self._path, payload)
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"unable to write run record {self._path}: {exc}") from exc
        logger.info("results_flushed", path=str(self._path), runs=len(db.sessions[0].runs))
        return self._path

    def load(self) -> RunDB:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise PersistenceError(f"no run record at {self._path}") from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise PersistenceError(f"unable to read run record {self._path}: {exc}") from exc
        try:
            payload = json.loads(raw)
            if not isinstance(payload, dict):
                raise ValueError("run record root must be an object")
            return RunDB.from_dict(payload)
        except ValueError as exc:
            raise PersistenceError(f"malformed run record {self._path}: {exc}") from exc


__all__ = ["ResultsStore", "SessionParams", "results_path"]
