"""Two-stage SIGINT handling.

The first interrupt cancels the run token: admission stops, started jobs finish
and the run record is still written. The second interrupt exits the process
immediately with ``FORCED_EXIT_CODE`` and skips persistence.
"""

from __future__ import annotations

import asyncio
import os
import signal
from collections.abc import Callable
from enum import StrEnum
from types import FrameType, TracebackType
from typing import Final

import structlog

from ttcn_orchestrator.utils.concurrency import CancellationToken

FORCED_EXIT_CODE: Final[int] = 130


class InterruptState(StrEnum):
    ARMED = "armed"
    CANCELLING = "cancelling"
    FORCED = "forced"


class InterruptController:
    """Explicit ``ARMED -> CANCELLING -> FORCED`` state machine for SIGINT."""

    def __init__(
        self,
        cancel_token: CancellationToken,
        *,
        force_exit: Callable[[int], object] = os._exit,
        on_interrupt: Callable[[InterruptState], None] | None = None,
        exit_code: int = FORCED_EXIT_CODE,
    ) -> None:
        self._token = cancel_token
        self._force_exit = force_exit
        self._on_interrupt = on_interrupt
        self._exit_code = exit_code
        self._state = InterruptState.ARMED
        self._restore: Callable[[], None] | None = None
        self._logger = structlog.get_logger(__name__)

    @property
    def state(self) -> InterruptState:
        return self._state

    @property
    def installed(self) -> bool:
        return self._restore is not None

    def install(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        if self._restore is not None:
            return
        target = loop or asyncio.get_running_loop()
        try:
            target.add_signal_handler(signal.SIGINT, self.handle)
        except (NotImplementedError, RuntimeError):
            self._install_fallback(target)
            return

        def _remove() -> None:
            target.remove_signal_handler(signal.SIGINT)

        self._restore = _remove

    def uninstall(self) -> None:
        restore, self._restore = self._restore, None
        if restore is not None:
            restore()

    def handle(self) -> None:
        """React to one interrupt."""

        if self._state is InterruptState.ARMED:
            self._state = InterruptState.CANCELLING
            self._logger.warning("interrupt_received", action="cancel")
            self._token.cancel()
            self._notify()
            return

        if self._state is InterruptState.CANCELLING:
            self._state = InterruptState.FORCED
            self._logger.warning("interrupt_received", action="force_exit")
            self._notify()
            self._force_exit(self._exit_code)

    def __enter__(self) -> InterruptController:
        self.install()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.uninstall()

    def _notify(self) -> None:
        if self._on_interrupt is not None:
            self._on_interrupt(self._state)

    def _install_fallback(self, loop: asyncio.AbstractEventLoop) -> None:
        def _handler(signum: int, frame: FrameType | None) -> None:
            loop.call_soon_threadsafe(self.handle)

        try:
            previous = signal.signal(signal.SIGINT, _handler)
        except ValueError:
            self._logger.warning("interrupt_handler_unavailable")
            return

        def _restore() -> None:
            signal.signal(signal.SIGINT, previous)

        self._restore = _restore


__all__ = ["FORCED_EXIT_CODE", "InterruptController", "InterruptState"]
