"""Job evaluators: turn one ``Job`` into exactly one terminal event.

``CommandEvaluator`` launches a configured executable per job. The command
template is a list of argv tokens in which ``{id}``, ``{name}``, ``{suite}``
and ``{root}`` are substituted. The verdict is taken from the last stdout line
matching ``verdict_pattern``; a clean exit without such a line is a pass.
"""

from __future__ import annotations

import asyncio
import os
import re
import time
from collections.abc import Mapping, Sequence
from contextlib import suppress
from typing import Final, Protocol, runtime_checkable

import structlog

from ttcn_orchestrator.constants import PASS_VERDICT
from ttcn_orchestrator.domain.events import ErrorEvent, StopEvent, TerminalEvent
from ttcn_orchestrator.domain.models import Job

DEFAULT_COMMAND: Final[tuple[str, ...]] = ("k3r", "{id}")
DEFAULT_VERDICT_PATTERN: Final[str] = r"^\s*verdict\s*[:=]\s*(\S+)"
_KILL_GRACE_SECONDS: Final[float] = 5.0
_REASON_MAX_CHARS: Final[int] = 500


@runtime_checkable
class JobEvaluator(Protocol):
    """Evaluate one job to a ``StopEvent`` or ``ErrorEvent``."""

    async def evaluate(self, job: Job) -> TerminalEvent: ...


class CommandEvaluator(JobEvaluator):
    """Run one subprocess per job and map its outcome to a terminal event."""

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_COMMAND,
        *,
        timeout_seconds: float | None = None,
        verdict_pattern: str = DEFAULT_VERDICT_PATTERN,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        if not command:
            raise ValueError("command must not be empty")
        if timeout_seconds is not None and timeout_seconds <= 0:
            timeout_seconds = None
        self._command = tuple(command)
        self._timeout_seconds = timeout_seconds
        self._verdict_re = re.compile(verdict_pattern, re.IGNORECASE | re.MULTILINE)
        self._environ = dict(os.environ if environ is None else environ)
        self._logger = structlog.get_logger(__name__)

    @property
    def command(self) -> tuple[str, ...]:
        return self._command

    def argv_for(self, job: Job) -> list[str]:
        fields = {
            "{id}": job.id,
            "{name}": job.name,
            "{suite}": job.suite.name,
            "{root}": str(job.suite.root),
        }
        argv: list[str] = []
        for token in self._command:
            for placeholder, value in fields.items():
                token = token.replace(placeholder, value)
            argv.append(token)
        return argv

    def timeout_for(self, job: Job) -> float | None:
        if self._timeout_seconds is not None:
            return self._timeout_seconds
        return job.suite.timeout_seconds

    async def evaluate(self, job: Job) -> TerminalEvent:
        argv = self.argv_for(job)
        timeout = self.timeout_for(job)
        started = time.monotonic()

        try:
            job.working_dir.mkdir(parents=True, exist_ok=True)
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(job.working_dir),
                env=self._build_env(job),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            return ErrorEvent(reason=f"cannot start {argv[0]}: {exc.strerror or exc}")

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(), timeout=timeout
            )
        except TimeoutError:
            await _stop(process)
            return ErrorEvent(reason=f"timed out after {timeout:.1f}s")
        except asyncio.CancelledError:
            await _stop(process)
            raise

        self._logger.debug(
            "job_process_exited",
            job_id=job.id,
            returncode=process.returncode,
            elapsed_seconds=round(time.monotonic() - started, 3),
        )
        return self.outcome(
            process.returncode,
            stdout_bytes.decode("utf-8", errors="replace"),
            stderr_bytes.decode("utf-8", errors="replace"),
        )

    def outcome(self, returncode: int | None, stdout: str, stderr: str) -> TerminalEvent:
        """Map exit status and captured output to a terminal event."""

        if returncode != 0:
            reason = f"exit status {returncode}"
            detail = _last_line(stderr) or _last_line(stdout)
            if detail:
                reason = f"{reason}: {detail}"
            return ErrorEvent(reason=reason[:_REASON_MAX_CHARS])

        verdicts = [match.group(1) for match in self._verdict_re.finditer(stdout)]
        if not verdicts:
            return StopEvent(verdict=PASS_VERDICT)
        return StopEvent(verdict=verdicts[-1].strip().lower())

    def _build_env(self, job: Job) -> dict[str, str]:
        env = dict(self._environ)
        env.update(job.suite.variables)
        env["TTRUN_TEST_ID"] = job.id
        env["TTRUN_JOB_SEQUENCE"] = str(job.sequence)
        env["TTRUN_SUITE_ROOT"] = str(job.suite.root)
        return env


async def _stop(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    with suppress(ProcessLookupError):
        process.kill()
    with suppress(TimeoutError):
        await asyncio.wait_for(process.wait(), timeout=_KILL_GRACE_SECONDS)


def _last_line(text: str) -> str:
    for line in reversed(text.splitlines()):
        stripped = line.strip()
        if stripped:
            return stripped
    return ""


__all__ = [
    "CommandEvaluator",
    "DEFAULT_COMMAND",
    "DEFAULT_VERDICT_PATTERN",
    "JobEvaluator",
]
