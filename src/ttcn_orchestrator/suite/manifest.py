"""
ttcn-orchestrator — suite resolution

File: src/ttcn_orchestrator/suite/manifest.py

Purpose
- Turn the paths named on the command line (or the current directory) into a
  read-only ``Suite``.

Resolution
- A directory holding ``package.yml`` (or the manifest file itself) yields a
  manifest suite. Manifest ``sources`` are resolved relative to the manifest.
- Any other list of files and directories yields an ad-hoc suite rooted at the
  working directory.
- Without paths, discovery walks from the working directory towards the
  filesystem root and takes the first ``package.yml`` found.

Manifest keys read here: ``name``, ``sources``, ``timeout`` and ``variables``.
Other keys belong to the build tooling and are ignored.
"""

from __future__ import annotations

import math
from collections.abc import Iterator, Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
import yaml

from ttcn_orchestrator.constants import MANIFEST_FILENAME
from ttcn_orchestrator.domain.models import Suite
from ttcn_orchestrator.errors import SuiteConfigError

if TYPE_CHECKING:
    import os

logger = structlog.get_logger(__name__)


def resolve_suite(
    paths: Sequence[str | os.PathLike[str]] = (),
    *,
    cwd: str | os.PathLike[str] | None = None,
) -> Suite:
    """Resolve the suite for ``paths``; raise ``SuiteConfigError`` when impossible."""

    base = Path(cwd) if cwd is not None else Path.cwd()
    base = base.resolve()
    candidates = [_absolute(Path(item), base) for item in paths]

    if len(candidates) == 1:
        manifest = _manifest_in(candidates[0])
        if manifest is not None:
            return load_manifest(manifest)

    if candidates:
        missing = [str(item) for item in candidates if not item.exists()]
        if missing:
            raise SuiteConfigError(f"no such file or directory: {', '.join(missing)}")
        logger.debug("suite_resolved", kind="ad-hoc", root=str(base), sources=len(candidates))
        return Suite(root=base, sources=tuple(candidates), name=base.name)

    manifest = discover_manifest(base)
    if manifest is None:
        raise SuiteConfigError(
            f"no {MANIFEST_FILENAME} found in {base} or any parent directory; "
            "pass TTCN-3 files or a suite directory"
        )
    return load_manifest(manifest)


def discover_manifest(start: Path) -> Path | None:
    """Return the nearest manifest at or above ``start``."""

    for directory in _walk_up(start):
        candidate = directory / MANIFEST_FILENAME
        if candidate.is_file():
            return candidate
    return None


def load_manifest(path: Path) -> Suite:
    """Read ``package.yml`` at ``path`` into a ``Suite``."""

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SuiteConfigError(f"unable to read suite manifest {path}: {exc}") from exc

    try:
        payload = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise SuiteConfigError(f"invalid YAML in {path}: {exc}") from exc

    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise SuiteConfigError(f"suite manifest root must be a mapping: {path}")

    root = path.parent
    name = payload.get("name", root.name)
    if not isinstance(name, str) or not name.strip():
        raise SuiteConfigError(f"{path}: name must be a non-empty string")

    sources = tuple(_absolute(Path(item), root) for item in _sources(payload.get("sources"), path))
    missing = [str(item) for item in sources if not item.exists()]
    if missing:
        raise SuiteConfigError(f"{path}: sources not found: {', '.join(missing)}")

    suite = Suite(
        root=root,
        sources=sources,
        name=name.strip(),
        timeout_seconds=_timeout(payload.get("timeout"), path),
        variables=_variables(payload.get("variables"), path),
        manifest_path=path,
    )
    logger.debug(
        "suite_resolved",
        kind="manifest",
        manifest=str(path),
        suite_name=suite.name,
        sources=len(suite.sources),
    )
    return suite


def _manifest_in(candidate: Path) -> Path | None:
    if candidate.is_file() and candidate.name == MANIFEST_FILENAME:
        return candidate
    if candidate.is_dir():
        manifest = candidate / MANIFEST_FILENAME
        if manifest.is_file():
            return manifest
    return None


def _walk_up(start: Path) -> Iterator[Path]:
    current = start
    while True:
        yield current
        if current.parent == current:
            return
        current = current.parent


def _absolute(path: Path, base: Path) -> Path:
    expanded = path.expanduser()
    if not expanded.is_absolute():
        expanded = base / expanded
    return expanded


def _sources(value: object, manifest: Path) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return list(value)
    raise SuiteConfigError(f"{manifest}: sources must be a list of paths")


def _timeout(value: object, manifest: Path) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SuiteConfigError(f"{manifest}: timeout must be a number of seconds")
    seconds = float(value)
    if not math.isfinite(seconds) or seconds < 0:
        raise SuiteConfigError(f"{manifest}: timeout must be a finite, non-negative number")
    return seconds or None


def _variables(value: object, manifest: Path) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise SuiteConfigError(f"{manifest}: variables must be a mapping")
    out: dict[str, str] = {}
    for key in sorted(value, key=str):
        item = value[key]
        if isinstance(item, (Mapping, list)):
            raise SuiteConfigError(f"{manifest}: variables.{key} must be a scalar")
        out[str(key)] = "" if item is None else str(item)
    return out


__all__ = ["discover_manifest", "load_manifest", "resolve_suite"]
