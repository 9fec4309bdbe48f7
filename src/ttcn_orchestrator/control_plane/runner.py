"""
Bounded worker pool for test jobs.

The dispatcher pulls jobs from an async iterator and acquires a worker permit
before admitting each one, so at most ``max_workers`` jobs are active and the
job source only advances as fast as slots free up. Every admitted job yields a
``StartEvent`` followed by exactly one terminal event on the result stream.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import AsyncGenerator, AsyncIterable
from contextlib import aclosing
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Final

import structlog

from ttcn_orchestrator.domain.events import (
    ErrorEvent,
    Event,
    Result,
    StartEvent,
    TerminalEvent,
    is_terminal,
)
from ttcn_orchestrator.domain.models import Job, Suite
from ttcn_orchestrator.observability.logging import correlation_scope
from ttcn_orchestrator.utils.concurrency import (
    BoundedSemaphore,
    CancellationToken,
    await_or_cancel,
    iterate_until_cancelled,
)

if TYPE_CHECKING:
    from ttcn_orchestrator.execution.evaluator import JobEvaluator

CANCELLED_REASON: Final[str] = "job cancelled"

_CLOSED: Final = object()


class JobFactory:
    """Bind identifiers to a suite; sequence numbers follow call order from 1."""

    def __init__(self, output_dir: str | Path | None = None) -> None:
        self._output_dir = Path(output_dir) if output_dir else None
        self._last_sequence = 0

    @property
    def created(self) -> int:
        return self._last_sequence

    def new_job(self, identifier: str, suite: Suite) -> Job:
        self._last_sequence += 1
        working_dir = self._output_dir / identifier if self._output_dir is not None else suite.root
        return Job(
            id=identifier,
            suite=suite,
            sequence=self._last_sequence,
            working_dir=working_dir,
        )

    async def jobs(
        self, identifiers: AsyncIterable[str], suite: Suite
    ) -> AsyncGenerator[Job, None]:
        async for identifier in identifiers:
            yield self.new_job(identifier, suite)


class Runner:
    """Run jobs concurrently with at most ``max_workers`` active at once."""

    def __init__(self, max_workers: int, evaluator: JobEvaluator) -> None:
        if max_workers <= 0:
            raise ValueError("max_workers must be > 0")
        self._max_workers = max_workers
        self._evaluator = evaluator
        self._active: dict[int, Job] = {}
        self._lock = threading.Lock()

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @property
    def evaluator(self) -> JobEvaluator:
        return self._evaluator

    def jobs(self) -> tuple[Job, ...]:
        """Snapshot of currently active jobs in admission order."""

        with self._lock:
            return tuple(self._active[key] for key in sorted(self._active))

    def run(self, jobs: AsyncIterable[Job], cancel_token: CancellationToken) -> ResultStream:
        return ResultStream(self, jobs, cancel_token)

    def _register(self, job: Job) -> None:
        with self._lock:
            self._active[job.sequence] = job

    def _unregister(self, job: Job) -> None:
        with self._lock:
            self._active.pop(job.sequence, None)


class ResultStream:
    """Async iterator over ``Result`` items of one ``Runner.run`` call.

    The stream closes once the job source is exhausted (or admission stopped on
    cancellation) and every admitted job emitted its terminal event.
    ``aclose()`` abandons the run instead: in-flight evaluations are cancelled
    and each one reports ``ErrorEvent("job cancelled")``.
    """

    def __init__(
        self,
        runner: Runner,
        jobs: AsyncIterable[Job],
        cancel_token: CancellationToken,
    ) -> None:
        self._runner = runner
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._gate = BoundedSemaphore(runner.max_workers)
        self._tasks: set[asyncio.Task[TerminalEvent]] = set()
        self._dispatched = 0
        self._exhausted = False
        self._error: Exception | None = None
        self._logger = structlog.get_logger(__name__)
        self._dispatcher = asyncio.create_task(self._dispatch(jobs, cancel_token))

    @property
    def dispatched(self) -> int:
        """Number of jobs admitted so far."""

        return self._dispatched

    def __aiter__(self) -> ResultStream:
        return self

    async def __anext__(self) -> Result:
        if self._exhausted:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._exhausted = True
            if self._error is not None:
                raise self._error
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    async def aclose(self) -> None:
        self._exhausted = True
        pending = [task for task in (self._dispatcher, *self._tasks) if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _dispatch(self, jobs: AsyncIterable[Job], cancel_token: CancellationToken) -> None:
        try:
            async with aclosing(iterate_until_cancelled(jobs, cancel_token)) as source:
                async for job in source:
                    admitted, _ = await await_or_cancel(self._gate.acquire(), cancel_token)
                    if not admitted:
                        self._logger.debug(
                            "job_not_admitted", job_id=job.id, sequence=job.sequence
                        )
                        break
                    self._admit(job)
            if cancel_token.is_cancelled:
                self._logger.info("admission_stopped", dispatched=self._dispatched)
            if self._tasks:
                await asyncio.wait(tuple(self._tasks))
        except Exception as exc:  # noqa: BLE001 - surfaced to the consumer after draining.
            self._error = exc
            if self._tasks:
                await asyncio.wait(tuple(self._tasks))
        finally:
            self._queue.put_nowait(_CLOSED)

    def _admit(self, job: Job) -> None:
        self._runner._register(job)
        self._dispatched += 1
        self._emit(job, StartEvent())
        task = asyncio.create_task(self._evaluate(job), name=f"job-{job.sequence}")
        self._tasks.add(task)
        task.add_done_callback(partial(self._finish, job))

    async def _evaluate(self, job: Job) -> TerminalEvent:
        try:
            with correlation_scope(job_id=f"job-{job.sequence}", test_id=job.id or None):
                event = await self._runner.evaluator.evaluate(job)
        except Exception as exc:  # noqa: BLE001 - evaluator failures are job errors.
            return ErrorEvent(reason=str(exc) or type(exc).__name__)
        if not is_terminal(event):
            return ErrorEvent(reason=f"evaluator returned {type(event).__name__}")
        return event

    def _finish(self, job: Job, task: asyncio.Task[TerminalEvent]) -> None:
        # Runs for every admitted job, including tasks cancelled before they started.
        self._tasks.discard(task)
        if task.cancelled():
            event: Event = ErrorEvent(reason=CANCELLED_REASON)
        elif (exc := task.exception()) is not None:
            event = ErrorEvent(reason=str(exc) or type(exc).__name__)
        else:
            event = task.result()
        try:
            self._emit(job, event)
        finally:
            self._runner._unregister(job)
            self._gate.release()

    def _emit(self, job: Job, event: Event) -> None:
        self._queue.put_nowait(Result(job=job, event=event))


__all__ = ["CANCELLED_REASON", "JobFactory", "ResultStream", "Runner"]
