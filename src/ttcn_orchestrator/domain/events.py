"""Job progress events and their classification helpers.

A job emits exactly one ``StartEvent`` followed by exactly one terminal event,
either ``StopEvent`` (a verdict was reached) or ``ErrorEvent`` (the job could not
be evaluated). Verdicts are plain strings; new verdicts never need new types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, TypeAlias

from ttcn_orchestrator.constants import FATAL_VERDICT, NONE_VERDICT, PASS_VERDICT

try:
    from datetime import UTC
except ImportError:
    UTC = timezone.utc  # noqa: UP017

if TYPE_CHECKING:
    from ttcn_orchestrator.domain.models import Job


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""

    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True)
class StartEvent:
    """The job began executing."""

    timestamp: datetime = field(default_factory=utc_now)
    name: str | None = None


@dataclass(frozen=True, slots=True)
class StopEvent:
    """The job reached a verdict."""

    verdict: str
    timestamp: datetime = field(default_factory=utc_now)
    name: str | None = None


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    """The job could not be evaluated to a verdict."""

    reason: str
    timestamp: datetime = field(default_factory=utc_now)
    name: str | None = None


Event: TypeAlias = StartEvent | StopEvent | ErrorEvent
TerminalEvent: TypeAlias = StopEvent | ErrorEvent


@dataclass(frozen=True, slots=True)
class Result:
    """One event observed for one job on the shared result stream."""

    job: Job
    event: Event

    @property
    def display_name(self) -> str:
        if self.event.name:
            return self.event.name
        return self.job.name


def is_terminal(event: Event) -> bool:
    """Return ``True`` for ``StopEvent`` and ``ErrorEvent``."""

    return isinstance(event, (StopEvent, ErrorEvent))


def is_pass(event: Event, expected_verdict: str = PASS_VERDICT) -> bool:
    """Return ``True`` when a terminal event carries the expected verdict.

    Start events are neither passes nor failures and return ``False``.
    """

    match event:
        case StopEvent(verdict=verdict):
            return verdict == expected_verdict
        case _:
            return False


def display_verdict(event: Event) -> str:
    """Verdict label used for rendering and the run ledger."""

    match event:
        case ErrorEvent():
            return FATAL_VERDICT
        case StopEvent(verdict=verdict) if verdict:
            return verdict
        case _:
            return NONE_VERDICT


__all__ = [
    "ErrorEvent",
    "Event",
    "Result",
    "StartEvent",
    "StopEvent",
    "TerminalEvent",
    "display_verdict",
    "is_pass",
    "is_terminal",
    "utc_now",
]
