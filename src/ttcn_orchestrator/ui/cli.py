"""Command-line interface router for ttcn-orchestrator."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, TextIO

from ttcn_orchestrator import __version__
from ttcn_orchestrator.config import basket_definitions, load_config
from ttcn_orchestrator.constants import OUTPUT_FORMATS
from ttcn_orchestrator.control_plane import (
    Backend,
    InterruptController,
    RunOutcome,
    generate_identifiers,
    select_backend,
)
from ttcn_orchestrator.domain.models import Suite
from ttcn_orchestrator.errors import DelegateFailedError, SuiteConfigError, TestsFailedError
from ttcn_orchestrator.execution import CommandEvaluator
from ttcn_orchestrator.observability import (
    configure_structlog,
    correlation_scope,
    setup_logging,
    shutdown_logging,
)
from ttcn_orchestrator.persistence import ResultsStore, results_path
from ttcn_orchestrator.selection import Basket, build_basket
from ttcn_orchestrator.source import ParsedSourceCache
from ttcn_orchestrator.suite import resolve_suite
from ttcn_orchestrator.ui.render import ResultRenderer, create_console, emit_json, render_summary
from ttcn_orchestrator.utils.concurrency import CancellationToken
from ttcn_orchestrator.utils.fs import ttcn3_files

IDS_SEPARATOR: Final[str] = "--"
STDIN_MARKER: Final[str] = "-"


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 2

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class RunPlan:
    """Everything resolved before the first identifier is generated."""

    config: Mapping[str, Any]
    suite: Suite
    ids: tuple[str, ...]
    files: tuple[Path, ...]
    basket: Basket
    max_workers: int


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="ttrun",
        description=(
            "ttrun: parallel TTCN-3 test execution.\n\n"
            "Common workflows:\n"
            "  ttrun run                    Run every test case of the suite\n"
            "  ttrun run -j4 suite/         Run a suite directory with 4 workers\n"
            "  ttrun run -- A.tc1 B.tc2     Run explicit test identifiers\n"
            "  ttrun list -R '^Mod\\.'       List what would run\n"
            "  ttrun results                Summarise the last run record\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ./ttrun.toml if present).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output and debug logs.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    selection = argparse.ArgumentParser(add_help=False)
    selection.add_argument("paths", nargs="*", help="Suite directory, manifest or TTCN-3 files")
    selection.add_argument(
        "-R",
        "--run-regex",
        action="append",
        default=[],
        metavar="REGEX",
        help="Only tests whose name matches REGEX (repeatable; any may match).",
    )
    selection.add_argument(
        "-T",
        "--tags",
        action="append",
        default=[],
        metavar="TAG",
        help="Only tests carrying TAG, as 'key' or 'key: value' regexes (repeatable).",
    )
    selection.add_argument(
        "--exclude-regex",
        action="append",
        default=[],
        metavar="REGEX",
        help="Skip tests whose name matches REGEX (repeatable).",
    )
    selection.add_argument(
        "--exclude-tags",
        action="append",
        default=[],
        metavar="TAG",
        help="Skip tests carrying TAG (repeatable).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # run -----------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        parents=[common, selection],
        help="Execute tests",
        description=(
            "Execute tests of a suite in parallel and record the results.\n\n"
            "Identifiers after '--' are run as given instead of being discovered.\n\n"
            "Examples:\n"
            "  ttrun run\n"
            "  ttrun run --max-fail 3 -j8\n"
            "  ttrun run -t failed.txt --format plain\n"
            "  ttrun run -- Mod.control\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    run_parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=None,
        help="Parallel jobs (default: run.max_workers; 0 means CPU count).",
    )
    run_parser.add_argument(
        "--max-fail",
        type=int,
        default=None,
        help="Stop after this many errors (default: run.max_fail; 0 means never).",
    )
    run_parser.add_argument(
        "-o",
        "--output-dir",
        default=None,
        help="Create a working directory per test below this directory.",
    )
    run_parser.add_argument(
        "-t",
        "--tests-file",
        default=None,
        metavar="FILE",
        help="Read test identifiers from FILE, one per line ('-' reads stdin).",
    )
    run_parser.add_argument(
        "--format",
        dest="output_format",
        choices=OUTPUT_FORMATS,
        default=None,
        help="Output format (default: run.format).",
    )
    run_parser.set_defaults(handler=_cmd_run)

    # list ----------------------------------------------------------------
    list_parser = subparsers.add_parser(
        "list",
        parents=[common, selection],
        help="List the test identifiers 'run' would execute",
        description=(
            "Print one identifier per line, after basket filtering.\n\n"
            "Examples:\n"
            "  ttrun list\n"
            "  ttrun list -T 'feature: x2'\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    list_parser.set_defaults(handler=_cmd_list)

    # results -------------------------------------------------------------
    results_parser = subparsers.add_parser(
        "results",
        parents=[common],
        help="Summarise the last run record",
    )
    results_parser.add_argument("--json", action="store_true", help="Emit the raw run record")
    results_parser.set_defaults(handler=_cmd_results)

    return parser


def run_cli(argv: Sequence[str] | None = None, *, stdin: TextIO | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    raw = list(argv) if argv is not None else sys.argv[1:]
    options, ids = split_ids(raw)

    parser = build_parser()
    namespace = parser.parse_args(options)
    namespace.ids = ids
    namespace.stdin = stdin if stdin is not None else sys.stdin
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    configure_structlog()
    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    """Compatibility wrapper for main-module wiring."""

    return run_cli(argv)


def split_ids(argv: Sequence[str]) -> tuple[list[str], tuple[str, ...]]:
    """Split ``argv`` at the first ``--`` into options and explicit identifiers."""

    items = list(argv)
    if IDS_SEPARATOR not in items:
        return items, ()
    index = items.index(IDS_SEPARATOR)
    return items[:index], tuple(item for item in items[index + 1 :] if item.strip())


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_run(args: argparse.Namespace) -> int:
    output_dir = _optional_str(getattr(args, "output_dir", None))
    resolved_output = None
    if output_dir is not None:
        resolved_output = Path(output_dir).expanduser().resolve()
        try:
            resolved_output.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CLIError(f"cannot create output directory {resolved_output}: {exc}") from exc

    config = _load_effective_config(
        args,
        {
            "run.max_workers": getattr(args, "jobs", None),
            "run.max_fail": getattr(args, "max_fail", None),
            "run.format": getattr(args, "output_format", None),
            "paths.output_dir": None if resolved_output is None else resolved_output.as_posix(),
        },
    )
    ids = (*_read_tests_file(args), *args.ids)
    plan = _plan(args, config, ids)

    run_id = new_run_id()
    handle = setup_logging(
        config["observability"],
        run_id=run_id,
        log_dir=config["paths"]["log_dir"],
    )
    try:
        with correlation_scope(run_id=run_id):
            renderer = ResultRenderer(
                config["run"]["format"],
                no_color=_flag(args, "no_color"),
            )
            backend = select_backend(
                config,
                suite=plan.suite,
                files=plan.files,
                evaluator=_evaluator(config),
                renderer=renderer,
                max_workers=plan.max_workers,
            )
            outcome = asyncio.run(_execute(plan, backend))
    finally:
        shutdown_logging(handle)

    return _exit_status(outcome, config)


def _cmd_list(args: argparse.Namespace) -> int:
    config = _load_effective_config(args, {})
    plan = _plan(args, config, args.ids)
    identifiers = asyncio.run(_collect(plan))
    for identifier in identifiers:
        print(identifier)
    return 0


def _cmd_results(args: argparse.Namespace) -> int:
    config = _load_effective_config(args, {})
    paths = config["paths"]
    store = ResultsStore(results_path(paths["cache_dir"], paths["results_file"]))
    db = store.load()

    if _flag(args, "json"):
        emit_json(db.to_dict())
        return 0

    console = create_console(no_color=_flag(args, "no_color"))
    failures = render_summary(db, console, verbose=_flag(args, "verbose"))
    return 0 if failures == 0 else 1


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


async def _execute(plan: RunPlan, backend: Backend) -> RunOutcome:
    token = CancellationToken()
    cache = ParsedSourceCache()
    identifiers = generate_identifiers(
        plan.ids,
        plan.files,
        plan.config["run"]["policy"],
        plan.basket,
        cache,
        token,
        handoff_size=plan.config["run"]["handoff_size"],
    )
    with InterruptController(token):
        try:
            return await backend.execute(identifiers, token)
        finally:
            await identifiers.aclose()


async def _collect(plan: RunPlan) -> list[str]:
    token = CancellationToken()
    identifiers = generate_identifiers(
        plan.ids,
        plan.files,
        plan.config["run"]["policy"],
        plan.basket,
        ParsedSourceCache(),
        token,
        handoff_size=plan.config["run"]["handoff_size"],
    )
    try:
        return [identifier async for identifier in identifiers]
    finally:
        await identifiers.aclose()


def _exit_status(outcome: RunOutcome, config: Mapping[str, Any]) -> int:
    if outcome.returncode is not None:
        if outcome.returncode != 0:
            raise DelegateFailedError(config["delegate"]["executable"], outcome.returncode)
        return 0
    failure = (
        TestsFailedError(outcome.error_count, circuit_broken=outcome.circuit_broken)
        if outcome.error_count
        else None
    )
    if outcome.persistence_error is not None:
        # The test outcome is reported before the write failure ends the run.
        if failure is not None:
            print(f"ttrun: {failure}", file=sys.stderr)
        raise outcome.persistence_error
    if failure is not None:
        raise failure
    return 0


def _evaluator(config: Mapping[str, Any]) -> CommandEvaluator:
    executor = config["executor"]
    return CommandEvaluator(
        executor["command"],
        timeout_seconds=executor["timeout_seconds"] or None,
        verdict_pattern=executor["verdict_pattern"],
    )


def new_run_id() -> str:
    """Sortable identifier for one invocation's log directory."""

    return f"{time.strftime('%Y%m%dT%H%M%SZ', time.gmtime())}-{os.getpid()}"


# ---------------------------------------------------------------------------
# Helpers: config, suite, selection
# ---------------------------------------------------------------------------


def _load_effective_config(
    args: argparse.Namespace,
    overrides: Mapping[str, object],
) -> dict[str, Any]:
    config_path = _optional_str(getattr(args, "config_path", None))
    cli_overrides = dict(overrides)
    if _flag(args, "verbose"):
        cli_overrides["observability.log_level"] = "DEBUG"
    return load_config(config_path, cli_overrides=cli_overrides)


def _plan(
    args: argparse.Namespace,
    config: Mapping[str, Any],
    ids: Sequence[str],
) -> RunPlan:
    suite = resolve_suite(list(getattr(args, "paths", []) or []))
    try:
        files = tuple(ttcn3_files(suite.sources))
    except FileNotFoundError as exc:
        raise SuiteConfigError(str(exc)) from exc

    basket = build_basket(
        names=args.run_regex,
        tags=args.tags,
        exclude_names=args.exclude_regex,
        exclude_tags=args.exclude_tags,
        definitions=basket_definitions(config),
        selected=config["baskets"]["selected"],
    )
    return RunPlan(
        config=config,
        suite=suite,
        ids=tuple(ids),
        files=files,
        basket=basket,
        max_workers=_max_workers(config["run"]["max_workers"]),
    )


def _max_workers(configured: int) -> int:
    if configured > 0:
        return configured
    return max(1, os.cpu_count() or 1)


def _read_tests_file(args: argparse.Namespace) -> tuple[str, ...]:
    raw = _optional_str(getattr(args, "tests_file", None))
    if raw is None:
        return ()
    if raw == STDIN_MARKER:
        return _non_blank_lines(args.stdin.read())
    try:
        text = Path(raw).expanduser().read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"cannot read tests file {raw}: {exc}") from exc
    return _non_blank_lines(text)


def _non_blank_lines(text: str) -> tuple[str, ...]:
    return tuple(line.strip() for line in text.splitlines() if line.strip())


def _optional_str(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


def _flag(args: argparse.Namespace, name: str) -> bool:
    value = getattr(args, name, False)
    return bool(value)


__all__ = [
    "CLIError",
    "RunPlan",
    "build_parser",
    "main",
    "new_run_id",
    "run_cli",
    "split_ids",
]


if __name__ == "__main__":
    raise SystemExit(run_cli())
