"""
ttcn-orchestrator — unit tests for two-stage interrupt handling

File: tests/unit/control_plane/test_signals.py

Purpose
- Validate the ARMED -> CANCELLING -> FORCED transitions, forced exit and
  signal handler installation on a running loop.
"""

from __future__ import annotations

import asyncio
import os
import signal

from ttcn_orchestrator.control_plane.signals import (
    FORCED_EXIT_CODE,
    InterruptController,
    InterruptState,
)
from ttcn_orchestrator.utils.concurrency import CancellationToken


def test_first_interrupt_cancels_and_second_forces_exit() -> None:
    token = CancellationToken()
    exits: list[int] = []
    seen: list[InterruptState] = []
    controller = InterruptController(token, force_exit=exits.append, on_interrupt=seen.append)

    assert controller.state is InterruptState.ARMED

    controller.handle()
    assert token.is_cancelled
    assert controller.state is InterruptState.CANCELLING
    assert exits == []

    controller.handle()
    assert controller.state is InterruptState.FORCED
    assert exits == [FORCED_EXIT_CODE]
    assert seen == [InterruptState.CANCELLING, InterruptState.FORCED]


def test_interrupts_after_forced_exit_are_ignored() -> None:
    exits: list[int] = []
    controller = InterruptController(CancellationToken(), force_exit=exits.append, exit_code=7)

    for _ in range(4):
        controller.handle()

    assert exits == [7]


async def test_context_manager_installs_and_removes_the_handler() -> None:
    controller = InterruptController(CancellationToken(), force_exit=lambda code: None)

    with controller as active:
        assert active.installed

    assert not controller.installed


async def test_install_is_idempotent() -> None:
    controller = InterruptController(CancellationToken(), force_exit=lambda code: None)

    controller.install()
    controller.install()
    assert controller.installed

    controller.uninstall()
    controller.uninstall()
    assert not controller.installed


async def test_real_sigint_cancels_the_run() -> None:
    token = CancellationToken()
    exits: list[int] = []

    with InterruptController(token, force_exit=exits.append) as controller:
        os.kill(os.getpid(), signal.SIGINT)
        await asyncio.wait_for(token.wait(), timeout=2.0)

        assert controller.state is InterruptState.CANCELLING
        assert exits == []
