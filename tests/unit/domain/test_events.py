"""
ttcn-orchestrator — unit tests for job events

File: tests/unit/domain/test_events.py

Purpose
- Validate pass classification, verdict labels and display-name overrides.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from ttcn_orchestrator.domain.events import (
    ErrorEvent,
    Result,
    StartEvent,
    StopEvent,
    display_verdict,
    is_pass,
    is_terminal,
)
from ttcn_orchestrator.domain.models import Job, Suite


def _job(identifier: str = "Mod.tc") -> Job:
    suite = Suite(root=Path("/suite"), sources=())
    return Job(id=identifier, suite=suite, sequence=1, working_dir=suite.root)


@pytest.mark.parametrize(
    ("event", "expected"),
    [
        (StopEvent(verdict="pass"), True),
        (StopEvent(verdict="fail"), False),
        (StopEvent(verdict="inconc"), False),
        (StopEvent(verdict=""), False),
        (ErrorEvent(reason="boom"), False),
        (StartEvent(), False),
    ],
)
def test_is_pass_only_for_expected_stop_verdict(event: object, expected: bool) -> None:
    assert is_pass(event) is expected  # type: ignore[arg-type]


def test_is_pass_honours_custom_expected_verdict() -> None:
    assert is_pass(StopEvent(verdict="inconc"), "inconc")
    assert not is_pass(StopEvent(verdict="pass"), "inconc")


def test_display_verdict_labels() -> None:
    assert display_verdict(ErrorEvent(reason="exit status 2")) == "fatal"
    assert display_verdict(StopEvent(verdict="")) == "none"
    assert display_verdict(StopEvent(verdict="inconc")) == "inconc"
    assert display_verdict(StartEvent()) == "none"


def test_is_terminal() -> None:
    assert not is_terminal(StartEvent())
    assert is_terminal(StopEvent(verdict="pass"))
    assert is_terminal(ErrorEvent(reason="x"))


def test_result_display_name_prefers_event_name() -> None:
    job = _job("Mod.control")

    assert Result(job=job, event=StartEvent()).display_name == "Mod.control"
    assert (
        Result(job=job, event=StopEvent(verdict="pass", name="Mod.tc_inner")).display_name
        == "Mod.tc_inner"
    )


def test_event_timestamps_are_timezone_aware() -> None:
    event = StartEvent()
    assert event.timestamp.tzinfo is not None
