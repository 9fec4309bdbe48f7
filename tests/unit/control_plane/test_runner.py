"""
ttcn-orchestrator — unit tests for the job factory and runner

File: tests/unit/control_plane/test_runner.py

Purpose
- Validate sequence numbering, the start/terminal event contract, the worker
  bound, evaluator failure mapping and cancellation behaviour.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from ttcn_orchestrator.control_plane.runner import CANCELLED_REASON, JobFactory, Runner
from ttcn_orchestrator.domain.events import ErrorEvent, StartEvent, StopEvent, is_terminal
from ttcn_orchestrator.domain.models import Job, Suite
from ttcn_orchestrator.observability.logging import get_correlation_context
from ttcn_orchestrator.utils.concurrency import CancellationToken

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from ttcn_orchestrator.domain.events import Event, Result


def _suite(root: Path = Path("/suite")) -> Suite:
    return Suite(root=root, sources=())


async def _jobs(count: int) -> AsyncIterator[Job]:
    factory = JobFactory()
    for index in range(count):
        yield factory.new_job(f"M.tc{index}", _suite())


class _Evaluator:
    def __init__(
        self,
        behaviour: Callable[[Job], Event] | None = None,
        *,
        delay: float = 0.0,
        on_enter: Callable[[Job], None] | None = None,
    ) -> None:
        self._behaviour = behaviour or (lambda job: StopEvent(verdict="pass"))
        self._delay = delay
        self._on_enter = on_enter
        self.evaluated: list[str] = []

    async def evaluate(self, job: Job) -> Event:
        self.evaluated.append(job.id)
        if self._on_enter is not None:
            self._on_enter(job)
        await asyncio.sleep(self._delay)
        return self._behaviour(job)


async def _collect(
    runner: Runner, count: int, token: CancellationToken | None = None
) -> list[Result]:
    stream = runner.run(_jobs(count), token or CancellationToken())
    try:
        return [result async for result in stream]
    finally:
        await stream.aclose()


def test_job_factory_numbers_jobs_from_one(tmp_path: Path) -> None:
    factory = JobFactory()
    suite = _suite(tmp_path)

    first = factory.new_job("A.tc1", suite)
    second = factory.new_job("A.tc1", suite)

    assert (first.sequence, second.sequence) == (1, 2)
    assert first.working_dir == tmp_path
    assert first.name == "A.tc1"
    assert factory.created == 2


def test_job_factory_places_jobs_under_output_dir(tmp_path: Path) -> None:
    factory = JobFactory(tmp_path / "out")

    job = factory.new_job("A.tc1", _suite())

    assert job.working_dir == tmp_path / "out" / "A.tc1"


async def test_job_factory_streams_jobs_in_order() -> None:
    async def identifiers() -> AsyncIterator[str]:
        for identifier in ("A.x", "B.y"):
            yield identifier

    jobs = [job async for job in JobFactory().jobs(identifiers(), _suite())]

    assert [(job.id, job.sequence) for job in jobs] == [("A.x", 1), ("B.y", 2)]


def test_runner_requires_a_positive_worker_count() -> None:
    with pytest.raises(ValueError, match="max_workers"):
        Runner(0, _Evaluator())


async def test_every_job_starts_once_then_terminates_once() -> None:
    runner = Runner(3, _Evaluator(delay=0.01))

    results = await _collect(runner, 7)

    per_job: dict[int, list[Event]] = {}
    for result in results:
        per_job.setdefault(result.job.sequence, []).append(result.event)
    assert sorted(per_job) == list(range(1, 8))
    for events in per_job.values():
        assert len(events) == 2
        assert isinstance(events[0], StartEvent)
        assert isinstance(events[1], StopEvent)
    assert runner.jobs() == ()


@settings(max_examples=25, deadline=None)
@given(
    workers=st.integers(min_value=1, max_value=4),
    count=st.integers(min_value=0, max_value=12),
)
def test_active_jobs_never_exceed_worker_count(workers: int, count: int) -> None:
    observed: list[int] = []

    async def scenario() -> list[Result]:
        runner: Runner

        def sample(_: Job) -> None:
            observed.append(len(runner.jobs()))

        runner = Runner(workers, _Evaluator(delay=0.001, on_enter=sample))
        return await _collect(runner, count)

    results = asyncio.run(scenario())

    assert all(active <= workers for active in observed)
    assert len(observed) == count
    assert sum(1 for result in results if is_terminal(result.event)) == count


async def test_evaluator_exceptions_become_error_events() -> None:
    def explode(job: Job) -> Event:
        raise RuntimeError(f"cannot run {job.id}")

    results = await _collect(Runner(2, _Evaluator(explode)), 2)

    reasons = sorted(r.event.reason for r in results if isinstance(r.event, ErrorEvent))
    assert reasons == ["cannot run M.tc0", "cannot run M.tc1"]


async def test_evaluations_carry_job_correlation_fields() -> None:
    seen: dict[str, dict[str, str]] = {}

    def record(job: Job) -> None:
        seen[job.id] = get_correlation_context()

    await _collect(Runner(2, _Evaluator(on_enter=record)), 2)

    assert seen == {
        "M.tc0": {"job_id": "job-1", "test_id": "M.tc0"},
        "M.tc1": {"job_id": "job-2", "test_id": "M.tc1"},
    }
    assert get_correlation_context() == {}


async def test_non_terminal_evaluator_results_become_error_events() -> None:
    results = await _collect(Runner(1, _Evaluator(lambda job: StartEvent())), 1)

    terminal = [r.event for r in results if is_terminal(r.event)]
    assert len(terminal) == 1
    assert isinstance(terminal[0], ErrorEvent)
    assert terminal[0].reason == "evaluator returned StartEvent"


async def test_cancellation_stops_admission_but_drains_admitted_jobs() -> None:
    token = CancellationToken()
    release = asyncio.Event()
    evaluator = _Evaluator(delay=0.0)

    async def slow_evaluate(job: Job) -> Event:
        evaluator.evaluated.append(job.id)
        await release.wait()
        return StopEvent(verdict="pass")

    evaluator.evaluate = slow_evaluate  # type: ignore[method-assign]
    runner = Runner(2, evaluator)
    stream = runner.run(_jobs(10), token)

    first = await anext(stream)
    second = await anext(stream)
    token.cancel()
    release.set()
    rest = [result async for result in stream]

    assert isinstance(first.event, StartEvent)
    assert isinstance(second.event, StartEvent)
    counts = Counter(type(result.event).__name__ for result in (first, second, *rest))
    assert counts["StartEvent"] == counts["StopEvent"] == stream.dispatched
    assert stream.dispatched <= 3
    assert runner.jobs() == ()


async def test_aclose_reports_in_flight_jobs_as_cancelled() -> None:
    never = asyncio.Event()
    evaluator = _Evaluator()

    async def blocked(job: Job) -> Event:
        await never.wait()
        return StopEvent(verdict="pass")

    evaluator.evaluate = blocked  # type: ignore[method-assign]
    runner = Runner(2, evaluator)
    stream = runner.run(_jobs(5), CancellationToken())

    await anext(stream)
    await anext(stream)
    assert len(runner.jobs()) == 2

    await stream.aclose()

    assert runner.jobs() == ()
    with pytest.raises(StopAsyncIteration):
        await anext(stream)


async def test_cancelled_jobs_map_to_cancelled_reason() -> None:
    never = asyncio.Event()
    evaluator = _Evaluator()

    async def blocked(job: Job) -> Event:
        await never.wait()
        return StopEvent(verdict="pass")

    evaluator.evaluate = blocked  # type: ignore[method-assign]
    stream = Runner(1, evaluator).run(_jobs(1), CancellationToken())
    await anext(stream)

    for task in list(stream._tasks):
        task.cancel()
    terminal = await anext(stream)

    assert isinstance(terminal.event, ErrorEvent)
    assert terminal.event.reason == CANCELLED_REASON
    await stream.aclose()
