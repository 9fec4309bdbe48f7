"""Shared deterministic builders for persistence tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Final

from ttcn_orchestrator.domain.models import Run

try:
    from datetime import UTC
except ImportError:
    UTC = timezone.utc  # noqa: UP017

_BASE_TS: Final[datetime] = datetime(2026, 2, 1, 12, 0, 0, tzinfo=UTC)


def make_run(
    index: int,
    *,
    verdict: str = "pass",
    seconds: float = 1.5,
    reason: str | None = None,
) -> Run:
    begin = _BASE_TS + timedelta(minutes=index)
    return Run(
        name=f"Suite.tc_{index}",
        verdict=verdict,
        begin=begin,
        end=begin + timedelta(seconds=seconds),
        working_dir=f"/work/{index}",
        reason=reason,
    )
