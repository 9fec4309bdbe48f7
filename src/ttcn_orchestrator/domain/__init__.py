"""
ttcn-orchestrator — domain types

File: src/ttcn_orchestrator/domain/__init__.py

Purpose
- Suite, Job, job events, and run-record types shared by every component.
- Free of IO side effects.
"""

from ttcn_orchestrator.domain.events import (
    ErrorEvent,
    Event,
    Result,
    StartEvent,
    StopEvent,
    TerminalEvent,
    display_verdict,
    is_pass,
    is_terminal,
    utc_now,
)
from ttcn_orchestrator.domain.models import Job, Run, RunDB, Session, Suite

__all__ = [
    "ErrorEvent",
    "Event",
    "Job",
    "Result",
    "Run",
    "RunDB",
    "Session",
    "StartEvent",
    "StopEvent",
    "Suite",
    "TerminalEvent",
    "display_verdict",
    "is_pass",
    "is_terminal",
    "utc_now",
]
