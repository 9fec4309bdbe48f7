"""
Result aggregation for in-process runs.

The aggregator is the only owner of the run ledger and the error counter. It
waits for either the next result or the ticker period, whichever comes first;
both restart the period. Start events record the begin stamp of a job and are
never ledger entries. Terminal events become ``Run`` records, are rendered
exactly once and update the error counter. When ``max_fail`` errors have been
seen the aggregator announces it, requests cancellation and stops reading.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, Callable, Sequence
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

import structlog

from ttcn_orchestrator.constants import DEFAULT_TICKER_SECONDS, PASS_VERDICT
from ttcn_orchestrator.domain.events import (
    ErrorEvent,
    Result,
    StartEvent,
    StopEvent,
    display_verdict,
    is_pass,
)
from ttcn_orchestrator.domain.models import Job, Run

if TYPE_CHECKING:
    from ttcn_orchestrator.utils.concurrency import CancellationToken


class AggregatorState(StrEnum):
    """Lifecycle of one ``Aggregator.consume`` call."""

    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    DONE = "done"


class ResultSink(Protocol):
    """Presentation hooks the aggregator drives."""

    def start(self, name: str) -> None: ...

    def finished(self, run: Run) -> None: ...

    def active(self, jobs: Sequence[Job]) -> None: ...

    def too_many_errors(self) -> None: ...


@dataclass(frozen=True, slots=True)
class Aggregate:
    """Outcome of one aggregation pass."""

    runs: tuple[Run, ...]
    error_count: int
    circuit_broken: bool = False
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.error_count == 0


class Aggregator:
    """Consume a result stream into a ledger, an error count and rendered output."""

    def __init__(
        self,
        renderer: ResultSink,
        *,
        expected_verdict: str = PASS_VERDICT,
        max_fail: int = 0,
        ticker_seconds: float = DEFAULT_TICKER_SECONDS,
        active_jobs: Callable[[], Sequence[Job]] = tuple,
        cancel: Callable[[], None] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        if max_fail < 0:
            raise ValueError("max_fail must be >= 0")
        self._renderer = renderer
        self._expected_verdict = expected_verdict
        self._max_fail = max_fail
        self._ticker_seconds = ticker_seconds if ticker_seconds > 0 else None
        self._active_jobs = active_jobs
        self._cancel_token = cancel_token
        if cancel is None and cancel_token is not None:
            cancel = cancel_token.cancel
        self._cancel = cancel
        self._runs: list[Run] = []
        self._begin: dict[int, datetime] = {}
        self._error_count = 0
        self._circuit_broken = False
        self._state = AggregatorState.IDLE
        self._logger = structlog.get_logger(__name__)

    @property
    def state(self) -> AggregatorState:
        return self._state

    @property
    def runs(self) -> tuple[Run, ...]:
        return tuple(self._runs)

    @property
    def error_count(self) -> int:
        return self._error_count

    @property
    def circuit_broken(self) -> bool:
        return self._circuit_broken

    def snapshot(self) -> Aggregate:
        return Aggregate(
            runs=tuple(self._runs),
            error_count=self._error_count,
            circuit_broken=self._circuit_broken,
            cancelled=self._cancel_token is not None and self._cancel_token.is_cancelled,
        )

    async def consume(self, results: AsyncIterable[Result]) -> Aggregate:
        if self._state is not AggregatorState.IDLE:
            raise RuntimeError("an Aggregator consumes exactly one result stream")
        self._state = AggregatorState.RUNNING
        iterator = aiter(results)
        pending: asyncio.Future[Result] | None = None
        try:
            while True:
                self._observe_cancellation()
                if pending is None:
                    pending = asyncio.ensure_future(anext(iterator))
                done, _ = await asyncio.wait({pending}, timeout=self._ticker_seconds)
                if not done:
                    self._tick()
                    continue

                finished, pending = pending, None
                try:
                    result = finished.result()
                except StopAsyncIteration:
                    break
                self._handle(result)
                if self._should_break():
                    self._trip()
                    break
        finally:
            if pending is not None and not pending.done():
                pending.cancel()
                with suppress(asyncio.CancelledError, StopAsyncIteration):
                    await pending
            self._state = AggregatorState.DONE

        aggregate = self.snapshot()
        self._logger.info(
            "aggregation_finished",
            runs=len(aggregate.runs),
            error_count=aggregate.error_count,
            circuit_broken=aggregate.circuit_broken,
            cancelled=aggregate.cancelled,
        )
        return aggregate

    def _observe_cancellation(self) -> None:
        if (
            self._state is AggregatorState.RUNNING
            and self._cancel_token is not None
            and self._cancel_token.is_cancelled
        ):
            self._state = AggregatorState.DRAINING
            self._logger.info("aggregation_draining", runs=len(self._runs))

    def _tick(self) -> None:
        self._renderer.active(self._active_jobs())

    def _handle(self, result: Result) -> None:
        event = result.event
        match event:
            case StartEvent(timestamp=timestamp):
                self._begin[result.job.sequence] = timestamp
                self._renderer.start(result.display_name)
            case StopEvent() | ErrorEvent():
                end = event.timestamp
                begin = self._begin.pop(result.job.sequence, None)
                if begin is None:
                    self._logger.warning(
                        "terminal_without_start",
                        job_id=result.job.id,
                        sequence=result.job.sequence,
                    )
                    begin = end
                run = Run(
                    name=result.display_name,
                    verdict=display_verdict(event),
                    begin=begin,
                    end=end,
                    working_dir=str(result.job.working_dir),
                    reason=event.reason if isinstance(event, ErrorEvent) else None,
                )
                self._runs.append(run)
                if not is_pass(event, self._expected_verdict):
                    self._error_count += 1
                self._renderer.finished(run)

    def _should_break(self) -> bool:
        return self._max_fail > 0 and self._error_count >= self._max_fail

    def _trip(self) -> None:
        self._circuit_broken = True
        self._renderer.too_many_errors()
        self._logger.warning(
            "circuit_breaker_tripped",
            error_count=self._error_count,
            max_fail=self._max_fail,
        )
        if self._cancel is not None:
            self._cancel()


__all__ = ["Aggregate", "Aggregator", "AggregatorState", "ResultSink"]
