"""Utility exports for filesystem, hashing, and concurrency helpers."""

from ttcn_orchestrator.utils.concurrency import (
    BoundedSemaphore,
    CancellationToken,
    await_or_cancel,
    iterate_until_cancelled,
)
from ttcn_orchestrator.utils.fs import atomic_write, remove_if_exists, ttcn3_files
from ttcn_orchestrator.utils.hashing import content_key

__all__ = [
    "BoundedSemaphore",
    "CancellationToken",
    "atomic_write",
    "await_or_cancel",
    "content_key",
    "iterate_until_cancelled",
    "remove_if_exists",
    "ttcn3_files",
]
