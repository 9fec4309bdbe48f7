"""
ttcn-orchestrator — unit tests for filesystem utilities

File: tests/unit/utils/test_fs.py

Purpose
- Validate atomic writes, stale artifact removal and TTCN-3 source expansion.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from ttcn_orchestrator.utils.fs import atomic_write, remove_if_exists, ttcn3_files


def test_atomic_write_replaces_content_without_leftovers(tmp_path: Path) -> None:
    target = tmp_path / "record.json"
    atomic_write(target, "first")
    atomic_write(target, b"second")

    assert target.read_text(encoding="utf-8") == "second"
    assert sorted(item.name for item in tmp_path.iterdir()) == ["record.json"]


def test_atomic_write_requires_existing_parent(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        atomic_write(tmp_path / "missing" / "record.json", "x")


def test_remove_if_exists_reports_whether_a_file_was_removed(tmp_path: Path) -> None:
    target = tmp_path / "stale.json"
    target.write_text("{}", encoding="utf-8")

    assert remove_if_exists(target) is True
    assert remove_if_exists(target) is False
    assert not target.exists()


def test_ttcn3_files_expands_directories_in_sorted_order(tmp_path: Path) -> None:
    suite = tmp_path / "suite"
    suite.mkdir()
    for name in ("b.ttcn3", "a.ttcn", "c.ttcnpp", "notes.txt"):
        (suite / name).write_text("", encoding="utf-8")
    (suite / "nested").mkdir()

    files = ttcn3_files([suite])

    assert [item.name for item in files] == ["a.ttcn", "b.ttcn3", "c.ttcnpp"]


def test_ttcn3_files_keeps_explicit_files_and_drops_duplicates(tmp_path: Path) -> None:
    explicit = tmp_path / "generated.src"
    explicit.write_text("", encoding="utf-8")
    module = tmp_path / "m.ttcn3"
    module.write_text("", encoding="utf-8")

    files = ttcn3_files([explicit, module, tmp_path])

    assert files == [explicit, module]


def test_ttcn3_files_rejects_missing_paths(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError, match="no such file"):
        ttcn3_files([tmp_path / "nope.ttcn3"])
