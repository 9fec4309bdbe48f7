"""
ttcn-orchestrator — delegate bridge integration

File: tests/integration/test_delegate_bridge.py

Purpose
- Run ``DelegateBackend`` against a scripted executor and check what it
  receives (argv, identifiers on stdin) and how its exit status and
  cancellation are reported.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from ttcn_orchestrator.control_plane.backends import DelegateBackend
from ttcn_orchestrator.errors import OrchestratorError
from ttcn_orchestrator.utils.concurrency import CancellationToken

from . import write, write_shell_wrapper

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

DELEGATE_SCRIPT = """
import json
import os
import sys
import time

ids = [line.strip() for line in sys.stdin if line.strip()]
with open(os.environ["DELEGATE_RECORD"], "w", encoding="utf-8") as handle:
    json.dump({"argv": sys.argv[1:], "ids": ids}, handle)
time.sleep(float(os.environ.get("DELEGATE_SLEEP", "0")))
sys.exit(int(os.environ.get("DELEGATE_EXIT", "0")))
"""


@pytest.fixture
def delegate(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    script = write(tmp_path / "delegate.py", DELEGATE_SCRIPT)
    monkeypatch.setenv("DELEGATE_RECORD", str(tmp_path / "record.json"))
    return write_shell_wrapper(tmp_path / "k3s", script)


async def _ids(*identifiers: str) -> AsyncIterator[str]:
    for identifier in identifiers:
        yield identifier


def _record(tmp_path: Path) -> dict[str, list[str]]:
    payload = json.loads((tmp_path / "record.json").read_text(encoding="utf-8"))
    assert isinstance(payload, dict)
    return payload


async def test_delegate_receives_identifiers_and_arguments(
    tmp_path: Path, delegate: Path
) -> None:
    backend = DelegateBackend(
        str(delegate),
        tmp_path / "results.json",
        3,
        flags="--trace",
        files=[tmp_path / "a.ttcn3"],
    )

    outcome = await backend.execute(_ids("A.tc1", "B.control", "A.tc1"), CancellationToken())

    assert outcome.ok
    assert outcome.returncode == 0
    assert outcome.results_path == tmp_path / "results.json"
    record = _record(tmp_path)
    assert record["ids"] == ["A.tc1", "B.control", "A.tc1"]
    assert record["argv"] == [
        "--no-summary",
        f"--results-file={tmp_path / 'results.json'}",
        "-j3",
        "--trace",
        str(tmp_path / "a.ttcn3"),
    ]


async def test_delegate_exit_status_is_reported(
    tmp_path: Path, delegate: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("DELEGATE_EXIT", "4")
    backend = DelegateBackend(str(delegate), tmp_path / "results.json", 1)

    outcome = await backend.execute(_ids("A.tc1"), CancellationToken())

    assert not outcome.ok
    assert outcome.returncode == 4
    assert outcome.error_count == 1


async def test_cancellation_terminates_the_delegate(
    tmp_path: Path, delegate: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("DELEGATE_SLEEP", "30")
    token = CancellationToken()
    backend = DelegateBackend(
        str(delegate), tmp_path / "results.json", 1, terminate_grace_seconds=5.0
    )

    async def cancel_soon() -> None:
        while not (tmp_path / "record.json").exists():
            await asyncio.sleep(0.02)
        token.cancel()

    canceller = asyncio.create_task(cancel_soon())
    outcome = await asyncio.wait_for(backend.execute(_ids("A.tc1"), token), timeout=20)
    await canceller

    assert outcome.cancelled
    assert outcome.returncode is not None and outcome.returncode != 0
    assert not outcome.ok


async def test_missing_executable_is_an_orchestrator_error(tmp_path: Path) -> None:
    backend = DelegateBackend(str(tmp_path / "no-such-k3s"), tmp_path / "results.json", 1)

    with pytest.raises(OrchestratorError, match="cannot start"):
        await backend.execute(_ids("A.tc1"), CancellationToken())
