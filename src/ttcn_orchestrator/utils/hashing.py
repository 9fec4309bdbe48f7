"""
ttcn-orchestrator — hashing utilities

File: src/ttcn_orchestrator/utils/hashing.py

Purpose
- Deterministic SHA-256 helpers used as content identities by the parsed
  source cache.

Non-functional requirements
- Standard library only; behavior is cross-platform deterministic.
"""

from __future__ import annotations

import hashlib

__all__ = ["content_key"]


def content_key(path: str, data: bytes) -> str:
    """Return an identity for ``data`` read from ``path``.

    Two reads of the same path with different bytes produce different keys, and
    identical bytes under different paths stay distinct because parse results
    carry their path.
    """

    digest = hashlib.sha256()
    digest.update(path.encode("utf-8", errors="surrogateescape"))
    digest.update(b"\x00")
    digest.update(data)
    return digest.hexdigest()
