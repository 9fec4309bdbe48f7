"""Output rendering for ttcn-orchestrator.

File: src/ttcn_orchestrator/ui/render.py

Purpose
- Render per-job results while a run is in progress, in one of the formats
  ``quiet``, ``plain``, ``json`` or ``text``.
- Summarize a persisted run record for ``ttrun results``.
- Respect NO_COLOR environment variable and --no-color CLI flag.

Functional requirements
- ``plain`` and ``json`` output are machine-readable: one line per terminal
  result, tabs preserved, no styling.
- ``text`` output is for humans and is styled through ``rich``.
"""

from __future__ import annotations

import json
import os
import sys
from collections import Counter
from typing import TYPE_CHECKING, Final, TextIO

from rich.console import Console
from rich.table import Table
from rich.text import Text

from ttcn_orchestrator.constants import OUTPUT_FORMATS, PASS_VERDICT, WARNING_VERDICTS

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ttcn_orchestrator.domain.models import Job, Run, RunDB

TOO_MANY_ERRORS: Final[str] = "+++ fatal too many errors. Exiting."

_WARNING_STYLE: Final[str] = "bold yellow"
_FAILURE_STYLE: Final[str] = "bold red"


def _color_allowed(no_color_flag: bool) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    return not os.environ.get("NO_COLOR", "")


def verdict_style(verdict: str) -> str | None:
    """Style for a verdict label: pass is plain, inconc and none warn, the rest fail."""

    if verdict == PASS_VERDICT:
        return None
    if verdict in WARNING_VERDICTS:
        return _WARNING_STYLE
    return _FAILURE_STYLE


def create_console(*, no_color: bool = False, stderr: bool = False) -> Console:
    """Create a ``rich`` console honouring ``--no-color`` and ``NO_COLOR``."""

    color = _color_allowed(no_color)
    return Console(
        stderr=stderr,
        no_color=not color,
        color_system="auto" if color else None,
        highlight=False,
        soft_wrap=True,
    )


class ResultRenderer:
    """Presents run progress; implements the aggregator's ``ResultSink`` hooks."""

    def __init__(
        self,
        output_format: str = "text",
        *,
        console: Console | None = None,
        stream: TextIO | None = None,
        no_color: bool = False,
    ) -> None:
        if output_format not in OUTPUT_FORMATS:
            raise ValueError(
                f"unsupported output format {output_format!r}; "
                f"expected one of {', '.join(OUTPUT_FORMATS)}"
            )
        self.output_format = output_format
        self._console = console if console is not None else create_console(no_color=no_color)
        self._stream = stream

    @property
    def console(self) -> Console:
        return self._console

    def start(self, name: str) -> None:
        if self.output_format == "text":
            self._console.print(f"=== RUN {name}", markup=False)

    def finished(self, run: Run) -> None:
        match self.output_format:
            case "plain":
                self._write_line(f"{run.verdict}\t{run.name}\t{run.duration_seconds:.4f}")
            case "json":
                self._write_line(
                    json.dumps(run.to_dict(), sort_keys=True, separators=(",", ":"))
                )
            case "text":
                self._console.print(_text_line(run))
            case _:
                pass

    def active(self, jobs: Sequence[Job]) -> None:
        if self.output_format != "text":
            return
        for job in jobs:
            self._console.print(f"... active {job.name}", markup=False)

    def too_many_errors(self) -> None:
        if self.output_format == "quiet":
            return
        self._console.print(Text(TOO_MANY_ERRORS, style=_FAILURE_STYLE))

    def _write_line(self, line: str) -> None:
        stream = self._stream if self._stream is not None else self._console.file
        stream.write(line + "\n")
        stream.flush()


def _text_line(run: Run) -> Text:
    style = verdict_style(run.verdict)
    if run.reason is not None:
        line = Text("+++ ")
        line.append(run.verdict, style=style)
        line.append(f" {run.name}\t({run.reason})")
        return line
    line = Text("--- ")
    line.append(run.verdict, style=style)
    line.append(f" {run.name}\t(duration={run.duration_seconds:.2f}s)")
    return line


def render_summary(db: RunDB, console: Console, *, verbose: bool = False) -> int:
    """Print a summary of a run record and return the number of non-passing runs."""

    failures = 0
    for session in db.sessions:
        counts = Counter(run.verdict for run in session.runs)
        failing = [run for run in session.runs if run.verdict != session.expected_verdict]
        failures += len(failing)

        console.print(
            f"session {session.id}: {len(session.runs)} run(s), max_jobs={session.max_jobs}",
            markup=False,
        )
        table = Table(title=None, show_edge=False, pad_edge=False)
        table.add_column("verdict")
        table.add_column("count", justify="right")
        for verdict, count in sorted(counts.items()):
            table.add_row(Text(verdict, style=verdict_style(verdict) or ""), str(count))
        if counts:
            console.print(table)

        shown = session.runs if verbose else tuple(failing)
        for run in shown:
            console.print(_text_line(run))
    return failures


def emit_json(payload: object, stream: TextIO | None = None) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    target = stream if stream is not None else sys.stdout
    target.write(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))
    target.write("\n")


__all__ = [
    "TOO_MANY_ERRORS",
    "ResultRenderer",
    "create_console",
    "emit_json",
    "render_summary",
    "verdict_style",
]
