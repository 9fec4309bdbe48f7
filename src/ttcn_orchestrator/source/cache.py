"""Content-addressed cache of scanned source files.

Entries are keyed by the file path plus a digest of its bytes, so an edited file
gets a fresh entry. Concurrent requests for the same key share one scan; scans
for different keys run in worker threads behind a gate sized to the host's CPU
count. Failures are cached like successes until the file changes.
"""

from __future__ import annotations

import asyncio
import os
import threading
from collections.abc import Callable
from pathlib import Path

import structlog

from ttcn_orchestrator.source.parser import SourceTree, parse_source
from ttcn_orchestrator.utils.concurrency import BoundedSemaphore
from ttcn_orchestrator.utils.hashing import content_key

ParseFunc = Callable[[str, bytes], SourceTree]


def default_parse_parallelism() -> int:
    return max(1, os.cpu_count() or 1)


class ParsedSourceCache:
    """Memoizes ``parse_source`` by file content with bounded parallelism."""

    def __init__(
        self,
        parse: ParseFunc = parse_source,
        *,
        max_parallel: int | None = None,
    ) -> None:
        limit = max_parallel if max_parallel is not None else default_parse_parallelism()
        if limit <= 0:
            raise ValueError("max_parallel must be > 0")
        self._parse = parse
        self._limit = limit
        self._gate: BoundedSemaphore | None = None
        self._entries: dict[str, SourceTree] = {}
        self._inflight: dict[str, asyncio.Task[SourceTree]] = {}
        self._lock = threading.Lock()
        self._parse_count = 0
        self._logger = structlog.get_logger(__name__)

    @property
    def max_parallel(self) -> int:
        return self._limit

    @property
    def parse_count(self) -> int:
        """Number of scans actually performed (cache misses)."""

        return self._parse_count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    async def get(self, path: str | os.PathLike[str]) -> SourceTree:
        """Return the scan of ``path``, computing it at most once per content."""

        path_text = str(path)
        try:
            data = await asyncio.to_thread(Path(path_text).read_bytes)
        except OSError as exc:
            # Unreadable files cannot be content-addressed; report without caching.
            return SourceTree(path=path_text, error=f"{path_text}: {exc.strerror or exc}")

        key = content_key(path_text, data)
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                return cached
            task = self._inflight.get(key)
            if task is None:
                task = asyncio.create_task(self._compute(key, path_text, data))
                self._inflight[key] = task

        # A cancelled caller leaves the shared scan running to completion.
        return await asyncio.shield(task)

    async def _compute(self, key: str, path: str, data: bytes) -> SourceTree:
        gate = self._ensure_gate()
        try:
            async with gate.permit():
                self._parse_count += 1
                try:
                    tree = await asyncio.to_thread(self._parse, path, data)
                except Exception as exc:  # noqa: BLE001 - scanner bugs become cached parse errors.
                    tree = SourceTree(path=path, error=f"{path}: {type(exc).__name__}: {exc}")
            if tree.error is not None:
                self._logger.warning("source_parse_failed", path=path, error=tree.error)
            with self._lock:
                self._entries[key] = tree
            return tree
        finally:
            with self._lock:
                self._inflight.pop(key, None)

    def _ensure_gate(self) -> BoundedSemaphore:
        if self._gate is None:
            self._gate = BoundedSemaphore(self._limit)
        return self._gate


__all__ = ["ParseFunc", "ParsedSourceCache", "default_parse_parallelism"]
