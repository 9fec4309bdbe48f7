"""Suite, job and run-record models.

Run records serialize to the versioned ``RunDB`` JSON envelope::

    {"version": "1", "sessions": [{"id": "1", "max_jobs": 4,
      "expected_verdict": "pass", "runs": [{"name": ..., "verdict": ...,
      "begin": ..., "end": ..., "working_dir": ..., "reason": ...}]}]}

Timestamps are ISO-8601 UTC strings with a ``Z`` suffix.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from ttcn_orchestrator.constants import RESULTS_DB_VERSION, RESULTS_SESSION_ID

try:
    from datetime import UTC
except ImportError:
    UTC = timezone.utc  # noqa: UP017

if TYPE_CHECKING:
    from collections.abc import Sequence

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


@dataclass(frozen=True, slots=True)
class Suite:
    """Resolved test suite. Read-only for the duration of a run."""

    root: Path
    sources: tuple[Path, ...]
    name: str = ""
    timeout_seconds: float | None = None
    variables: Mapping[str, str] = field(default_factory=dict)
    manifest_path: Path | None = None


@dataclass(frozen=True, slots=True)
class Job:
    """One identifier bound to a suite; the unit of concurrent execution."""

    id: str
    suite: Suite
    sequence: int
    working_dir: Path

    @property
    def name(self) -> str:
        return self.id


@dataclass(frozen=True, slots=True)
class Run:
    """Ledger projection of one terminal result."""

    name: str
    verdict: str
    begin: datetime
    end: datetime
    working_dir: str
    reason: str | None = None

    @property
    def duration_seconds(self) -> float:
        return (self.end - self.begin).total_seconds()

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "name": self.name,
            "verdict": self.verdict,
            "begin": datetime_to_iso8601z(self.begin),
            "end": datetime_to_iso8601z(self.end),
            "working_dir": self.working_dir,
        }
        if self.reason is not None:
            payload["reason"] = self.reason
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Run:
        reason = data.get("reason")
        return cls(
            name=_as_str(data.get("name"), "Run.name"),
            verdict=_as_str(data.get("verdict"), "Run.verdict"),
            begin=parse_iso8601z(_as_str(data.get("begin"), "Run.begin")),
            end=parse_iso8601z(_as_str(data.get("end"), "Run.end")),
            working_dir=_as_str(data.get("working_dir", ""), "Run.working_dir", allow_empty=True),
            reason=None if reason is None else _as_str(reason, "Run.reason", allow_empty=True),
        )


@dataclass(frozen=True, slots=True)
class Session:
    """One orchestrator invocation inside a ``RunDB``."""

    id: str
    max_jobs: int
    expected_verdict: str
    runs: tuple[Run, ...] = ()

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "max_jobs": self.max_jobs,
            "expected_verdict": self.expected_verdict,
            "runs": [run.to_dict() for run in self.runs],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Session:
        raw_runs = data.get("runs") or []
        if not isinstance(raw_runs, list):
            raise ValueError("Session.runs: expected list")
        max_jobs = data.get("max_jobs")
        if isinstance(max_jobs, bool) or not isinstance(max_jobs, int):
            raise ValueError("Session.max_jobs: expected integer")
        return cls(
            id=_as_str(data.get("id"), "Session.id"),
            max_jobs=max_jobs,
            expected_verdict=_as_str(data.get("expected_verdict"), "Session.expected_verdict"),
            runs=tuple(Run.from_dict(_as_mapping(item, "Session.runs[]")) for item in raw_runs),
        )


@dataclass(frozen=True, slots=True)
class RunDB:
    """Versioned envelope persisted at the end of every run."""

    sessions: tuple[Session, ...]
    version: str = RESULTS_DB_VERSION

    @classmethod
    def single_session(
        cls,
        runs: Sequence[Run],
        *,
        max_jobs: int,
        expected_verdict: str,
    ) -> RunDB:
        return cls(
            sessions=(
                Session(
                    id=RESULTS_SESSION_ID,
                    max_jobs=max_jobs,
                    expected_verdict=expected_verdict,
                    runs=tuple(runs),
                ),
            )
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "version": self.version,
            "sessions": [session.to_dict() for session in self.sessions],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> RunDB:
        raw_sessions = data.get("sessions") or []
        if not isinstance(raw_sessions, list):
            raise ValueError("RunDB.sessions: expected list")
        return cls(
            version=_as_str(data.get("version"), "RunDB.version"),
            sessions=tuple(
                Session.from_dict(_as_mapping(item, "RunDB.sessions[]")) for item in raw_sessions
            ),
        )


def datetime_to_iso8601z(value: datetime) -> str:
    if value.tzinfo is None or value.utcoffset() is None:
        normalized = value.replace(tzinfo=UTC)
    else:
        normalized = value.astimezone(UTC)
    return normalized.isoformat(timespec="microseconds").replace("+00:00", "Z")


def parse_iso8601z(raw: str) -> datetime:
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"invalid ISO-8601 timestamp: {raw!r}") from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _as_str(value: object, path: str, *, allow_empty: bool = False) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{path}: expected string, got {type(value).__name__}")
    if not allow_empty and not value:
        raise ValueError(f"{path}: must not be empty")
    return value


def _as_mapping(value: object, path: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{path}: expected object, got {type(value).__name__}")
    return value


__all__ = [
    "Job",
    "JSONValue",
    "Run",
    "RunDB",
    "Session",
    "Suite",
    "datetime_to_iso8601z",
    "parse_iso8601z",
]
