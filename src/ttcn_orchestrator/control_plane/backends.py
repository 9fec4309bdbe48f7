"""
Execution backends.

``InProcessBackend`` turns identifiers into jobs, runs them on a ``Runner``,
aggregates the results and persists the run record. ``DelegateBackend`` hands
the whole identifier stream to an external executor instead and reports its
exit status. ``select_backend`` picks one of them once per invocation.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncIterable, Mapping, Sequence
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final, Protocol, runtime_checkable

import structlog

from ttcn_orchestrator.constants import DEFAULT_TICKER_SECONDS, PASS_VERDICT, RESULTS_FILENAME
from ttcn_orchestrator.control_plane.aggregator import Aggregator, ResultSink
from ttcn_orchestrator.control_plane.runner import JobFactory, Runner
from ttcn_orchestrator.errors import OrchestratorError, PersistenceError
from ttcn_orchestrator.persistence.results_db import ResultsStore, SessionParams, results_path
from ttcn_orchestrator.utils.concurrency import CancellationToken, iterate_until_cancelled

if TYPE_CHECKING:
    from ttcn_orchestrator.domain.models import Run, Suite
    from ttcn_orchestrator.execution.evaluator import JobEvaluator

IN_PROCESS_SERVER: Final[str] = "ntt"
DELEGATE_OFF: Final[str] = "off"
_TERMINATE_GRACE_SECONDS: Final[float] = 5.0

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RunOutcome:
    """What a backend reports back to the CLI boundary."""

    backend: str
    error_count: int = 0
    circuit_broken: bool = False
    cancelled: bool = False
    runs: tuple[Run, ...] = ()
    results_path: Path | None = None
    returncode: int | None = None
    persistence_error: PersistenceError | None = None

    @property
    def ok(self) -> bool:
        if self.returncode is not None:
            return self.returncode == 0
        return self.error_count == 0


@runtime_checkable
class Backend(Protocol):
    name: str

    async def execute(
        self,
        identifiers: AsyncIterable[str],
        cancel_token: CancellationToken,
    ) -> RunOutcome: ...


class InProcessBackend(Backend):
    """Runner, aggregation loop and run persistence."""

    name = "in-process"

    def __init__(
        self,
        *,
        suite: Suite,
        runner: Runner,
        job_factory: JobFactory,
        renderer: ResultSink,
        store: ResultsStore,
        expected_verdict: str = PASS_VERDICT,
        max_fail: int = 0,
        ticker_seconds: float = DEFAULT_TICKER_SECONDS,
    ) -> None:
        self._suite = suite
        self._runner = runner
        self._job_factory = job_factory
        self._renderer = renderer
        self._store = store
        self._expected_verdict = expected_verdict
        self._max_fail = max_fail
        self._ticker_seconds = ticker_seconds

    @property
    def runner(self) -> Runner:
        return self._runner

    @property
    def store(self) -> ResultsStore:
        return self._store

    async def execute(
        self,
        identifiers: AsyncIterable[str],
        cancel_token: CancellationToken,
    ) -> RunOutcome:
        self._store.remove_stale()
        aggregator = Aggregator(
            self._renderer,
            expected_verdict=self._expected_verdict,
            max_fail=self._max_fail,
            ticker_seconds=self._ticker_seconds,
            active_jobs=self._runner.jobs,
            cancel_token=cancel_token,
        )
        jobs = self._job_factory.jobs(identifiers, self._suite)
        results = self._runner.run(jobs, cancel_token)
        try:
            aggregate = await aggregator.consume(results)
        finally:
            await results.aclose()
            await jobs.aclose()
            path, persistence_error = self._flush(aggregator.runs)

        return RunOutcome(
            backend=self.name,
            error_count=aggregate.error_count,
            circuit_broken=aggregate.circuit_broken,
            cancelled=aggregate.cancelled,
            runs=aggregate.runs,
            results_path=path,
            persistence_error=persistence_error,
        )

    def _flush(self, runs: Sequence[Run]) -> tuple[Path | None, PersistenceError | None]:
        """Write the record; a write failure is returned so the outcome still reaches the CLI."""

        params = SessionParams(
            max_jobs=self._runner.max_workers,
            expected_verdict=self._expected_verdict,
        )
        try:
            return self._store.flush(runs, params), None
        except PersistenceError as exc:
            logger.error("results_flush_failed", path=str(self._store.path), error=str(exc))
            return None, exc


class DelegateBackend(Backend):
    """Pipe identifiers to an external executor, one per line on its stdin."""

    name = "delegate"

    def __init__(
        self,
        executable: str,
        results_file: str | os.PathLike[str],
        max_workers: int,
        *,
        flags: str | Sequence[str] = "",
        files: Sequence[str | os.PathLike[str]] = (),
        terminate_grace_seconds: float = _TERMINATE_GRACE_SECONDS,
    ) -> None:
        self._executable = executable
        self._results_file = Path(results_file)
        self._max_workers = max_workers
        self._flags = tuple(flags.split()) if isinstance(flags, str) else tuple(flags)
        self._files = tuple(str(item) for item in files)
        self._grace = terminate_grace_seconds

    def argv(self) -> list[str]:
        return [
            self._executable,
            "--no-summary",
            f"--results-file={self._results_file}",
            f"-j{self._max_workers}",
            *self._flags,
            *self._files,
        ]

    async def execute(
        self,
        identifiers: AsyncIterable[str],
        cancel_token: CancellationToken,
    ) -> RunOutcome:
        argv = self.argv()
        logger.info("delegate_starting", argv=argv)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=None,
                stderr=None,
            )
        except OSError as exc:
            raise OrchestratorError(f"cannot start {self._executable}: {exc}") from exc

        feeder = asyncio.create_task(self._feed(process, identifiers, cancel_token))
        waiter = asyncio.create_task(process.wait())
        cancel_wait = asyncio.create_task(cancel_token.wait())
        cancelled = False
        try:
            done, _ = await asyncio.wait(
                {waiter, cancel_wait},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if waiter not in done:
                cancelled = True
                await self._terminate(process)
        finally:
            for task in (feeder, waiter, cancel_wait):
                if not task.done():
                    task.cancel()
            await asyncio.gather(feeder, waiter, cancel_wait, return_exceptions=True)

        returncode = process.returncode
        logger.info("delegate_finished", returncode=returncode, cancelled=cancelled)
        return RunOutcome(
            backend=self.name,
            error_count=0 if returncode == 0 else 1,
            cancelled=cancelled,
            results_path=self._results_file,
            returncode=returncode,
        )

    async def _feed(
        self,
        process: asyncio.subprocess.Process,
        identifiers: AsyncIterable[str],
        cancel_token: CancellationToken,
    ) -> int:
        stdin = process.stdin
        if stdin is None:
            return 0
        sent = 0
        try:
            async for identifier in iterate_until_cancelled(identifiers, cancel_token):
                stdin.write(f"{identifier}\n".encode())
                await stdin.drain()
                sent += 1
        except (BrokenPipeError, ConnectionResetError):
            logger.warning("delegate_stdin_closed", sent=sent)
        finally:
            stdin.close()
            with suppress(BrokenPipeError, ConnectionResetError):
                await stdin.wait_closed()
        logger.debug("delegate_identifiers_sent", sent=sent)
        return sent

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        with suppress(ProcessLookupError):
            process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=self._grace)
        except TimeoutError:
            with suppress(ProcessLookupError):
                process.kill()
            await process.wait()


def delegate_enabled(server: str | None) -> bool:
    """Return ``True`` when ``server`` names a delegate executor backend."""

    value = (server or "").strip()
    if not value:
        return False
    return value != IN_PROCESS_SERVER and value.lower() != DELEGATE_OFF


def select_backend(
    config: Mapping[str, Any],
    *,
    suite: Suite,
    files: Sequence[str | os.PathLike[str]],
    evaluator: JobEvaluator,
    renderer: ResultSink,
    max_workers: int,
) -> Backend:
    """Choose the backend for this invocation from the effective config."""

    run_cfg = config.get("run", {})
    paths_cfg = config.get("paths", {})
    delegate_cfg = config.get("delegate", {})
    path = results_path(
        paths_cfg.get("cache_dir", "."),
        paths_cfg.get("results_file", RESULTS_FILENAME),
    )

    if delegate_enabled(delegate_cfg.get("server")):
        backend: Backend = DelegateBackend(
            delegate_cfg.get("executable", "k3s"),
            path,
            max_workers,
            flags=delegate_cfg.get("flags", ""),
            files=files,
        )
    else:
        output_dir = paths_cfg.get("output_dir") or None
        backend = InProcessBackend(
            suite=suite,
            runner=Runner(max_workers, evaluator),
            job_factory=JobFactory(output_dir),
            renderer=renderer,
            store=ResultsStore(path),
            expected_verdict=run_cfg.get("expected_verdict", PASS_VERDICT),
            max_fail=run_cfg.get("max_fail", 0),
            ticker_seconds=run_cfg.get("ticker_seconds", DEFAULT_TICKER_SECONDS),
        )
    logger.debug("backend_selected", backend=backend.name, max_workers=max_workers)
    return backend


__all__ = [
    "Backend",
    "DelegateBackend",
    "InProcessBackend",
    "RunOutcome",
    "delegate_enabled",
    "select_backend",
]
