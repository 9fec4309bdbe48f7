"""
ttcn-orchestrator — unit tests for suite resolution

File: tests/unit/suite/test_manifest.py

Purpose
- Validate ``package.yml`` loading, upward discovery and ad-hoc suites built
  from command-line paths.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from ttcn_orchestrator.errors import SuiteConfigError
from ttcn_orchestrator.suite.manifest import discover_manifest, load_manifest, resolve_suite


def _suite_dir(root: Path, manifest: str = "sources: [a.ttcn3]\n") -> Path:
    root.mkdir(parents=True, exist_ok=True)
    (root / "a.ttcn3").write_text("module A {}", encoding="utf-8")
    (root / "package.yml").write_text(manifest, encoding="utf-8")
    return root


def test_load_manifest_reads_known_keys(tmp_path: Path) -> None:
    root = _suite_dir(
        tmp_path / "lte",
        "name: lte-core\n"
        "sources:\n  - a.ttcn3\n"
        "timeout: 12.5\n"
        "variables:\n  CELL: 7\n  MODE: fdd\n  EMPTY:\n"
        "before_build: ignored\n",
    )

    suite = load_manifest(root / "package.yml")

    assert suite.name == "lte-core"
    assert suite.root == root
    assert suite.sources == (root / "a.ttcn3",)
    assert suite.timeout_seconds == 12.5
    assert dict(suite.variables) == {"CELL": "7", "EMPTY": "", "MODE": "fdd"}
    assert suite.manifest_path == root / "package.yml"


def test_manifest_name_defaults_to_directory_and_zero_timeout_means_none(tmp_path: Path) -> None:
    root = _suite_dir(tmp_path / "radio", "sources: a.ttcn3\ntimeout: 0\n")

    suite = load_manifest(root / "package.yml")

    assert suite.name == "radio"
    assert suite.timeout_seconds is None


@pytest.mark.parametrize(
    ("manifest", "message"),
    [
        ("sources: [missing.ttcn3]\n", "sources not found"),
        ("- just\n- a list\n", "root must be a mapping"),
        ("sources: [a.ttcn3\n", "invalid YAML"),
        ("timeout: soon\n", "timeout must be a number"),
        ("variables: [1, 2]\n", "variables must be a mapping"),
        ("sources: {a: b}\n", "sources must be a list"),
    ],
)
def test_malformed_manifests_raise_suite_errors(
    tmp_path: Path, manifest: str, message: str
) -> None:
    root = _suite_dir(tmp_path / "bad", manifest)

    with pytest.raises(SuiteConfigError, match=message):
        load_manifest(root / "package.yml")


def test_resolve_suite_accepts_suite_directory_or_manifest(tmp_path: Path) -> None:
    root = _suite_dir(tmp_path / "suite")

    assert resolve_suite([root]).manifest_path == root / "package.yml"
    assert resolve_suite([root / "package.yml"]).manifest_path == root / "package.yml"


def test_resolve_suite_discovers_manifest_upwards(tmp_path: Path) -> None:
    root = _suite_dir(tmp_path / "suite")
    nested = root / "sub" / "deeper"
    nested.mkdir(parents=True)

    suite = resolve_suite(cwd=nested)

    assert suite.manifest_path == (root / "package.yml").resolve()
    assert discover_manifest(nested.resolve()) == (root / "package.yml").resolve()


def test_resolve_suite_builds_ad_hoc_suite_from_files(tmp_path: Path) -> None:
    first = tmp_path / "x.ttcn3"
    second = tmp_path / "y.ttcn3"
    for path in (first, second):
        path.write_text("module X {}", encoding="utf-8")

    suite = resolve_suite(["x.ttcn3", second], cwd=tmp_path)

    assert suite.manifest_path is None
    assert suite.root == tmp_path.resolve()
    assert suite.sources == (tmp_path.resolve() / "x.ttcn3", second)


def test_resolve_suite_rejects_missing_paths(tmp_path: Path) -> None:
    with pytest.raises(SuiteConfigError, match="no such file"):
        resolve_suite(["gone.ttcn3", "also-gone.ttcn3"], cwd=tmp_path)
