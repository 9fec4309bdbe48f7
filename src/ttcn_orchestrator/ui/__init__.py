"""UI package exports for the CLI and result rendering."""

from ttcn_orchestrator.ui.cli import build_parser, main, run_cli
from ttcn_orchestrator.ui.render import ResultRenderer, create_console, render_summary

__all__ = [
    "ResultRenderer",
    "build_parser",
    "create_console",
    "main",
    "render_summary",
    "run_cli",
]
