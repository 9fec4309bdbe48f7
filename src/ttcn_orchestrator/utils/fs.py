"""
ttcn-orchestrator — filesystem utilities

File: src/ttcn_orchestrator/utils/fs.py

Purpose
- Atomic writes for run records, stale-artifact removal, and TTCN-3 source
  expansion for files and directories named on the command line.

Non-functional requirements
- Standard library only and cross-platform behavior where feasible.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from ttcn_orchestrator.constants import TTCN3_SUFFIXES

if TYPE_CHECKING:
    from collections.abc import Iterable

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "remove_if_exists",
    "ttcn3_files",
]


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """
    Atomically write ``data`` to ``path``.

    The write strategy is:
    1. create temp file in the same directory,
    2. write + flush + fsync file data,
    3. replace target via ``os.replace``.
    """

    target = Path(path)
    target_parent = target.parent.resolve(strict=True)
    if not target_parent.is_dir():
        raise NotADirectoryError(f"{target_parent!s} is not a directory")

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target_parent),
    )
    temp_path = Path(temp_name)

    try:
        if isinstance(data, bytes):
            with os.fdopen(fd, "wb") as file_handle:
                file_handle.write(data)
                file_handle.flush()
                os.fsync(file_handle.fileno())
        else:
            with os.fdopen(fd, "w", encoding=encoding) as file_handle:
                file_handle.write(data)
                file_handle.flush()
                os.fsync(file_handle.fileno())

        os.replace(temp_path, target)
        _fsync_directory(target_parent)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def remove_if_exists(path: PathLike) -> bool:
    """Remove a regular file if present; return whether something was removed."""

    target = Path(path)
    if target.is_dir() and not target.is_symlink():
        raise IsADirectoryError(f"refusing to remove directory: {target!s}")
    try:
        target.unlink()
    except FileNotFoundError:
        return False
    return True


def ttcn3_files(paths: Iterable[PathLike]) -> list[Path]:
    """
    Expand ``paths`` into TTCN-3 source files.

    Files are kept as given (whatever their suffix); directories contribute
    their direct children with a TTCN-3 suffix in sorted order. Duplicates are
    dropped keeping the first occurrence. Missing paths raise
    ``FileNotFoundError``.
    """

    seen: set[Path] = set()
    out: list[Path] = []
    for raw in paths:
        candidate = Path(raw)
        if candidate.is_dir():
            children = sorted(
                child
                for child in candidate.iterdir()
                if child.is_file() and child.suffix in TTCN3_SUFFIXES
            )
        elif candidate.is_file():
            children = [candidate]
        else:
            raise FileNotFoundError(f"no such file or directory: {candidate!s}")
        for child in children:
            if child in seen:
                continue
            seen.add(child)
            out.append(child)
    return out


def _fsync_directory(path: Path) -> None:
    """
    Best-effort directory fsync for metadata durability after ``os.replace``.

    Some platforms/filesystems do not support fsync on directories.
    """

    if os.name == "nt":
        return

    flags = os.O_RDONLY
    if hasattr(os, "O_DIRECTORY"):
        flags |= os.O_DIRECTORY

    try:
        dir_fd = os.open(path, flags)
    except OSError:
        return

    try:
        os.fsync(dir_fd)
    except OSError:
        return
    finally:
        os.close(dir_fd)
