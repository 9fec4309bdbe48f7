"""
ttcn-orchestrator — integration test helpers

File: tests/integration/__init__.py

Purpose
- Build throwaway suites and scripted executors shared by the integration
  tests. Keep this module free of heavy imports.
"""

from __future__ import annotations

import json
import stat
import sys
from pathlib import Path

# The executor reads its behaviour from the identifier: "fail" yields a fail
# verdict, "crash" a non-zero exit, "slow" sleeps before answering.
EXECUTOR_SCRIPT = """
import sys
import time

test_id = sys.argv[1]
if "slow" in test_id:
    time.sleep(float(sys.argv[2]) if len(sys.argv) > 2 else 1.0)
if "crash" in test_id:
    print("core dumped in " + test_id, file=sys.stderr)
    sys.exit(3)
print("verdict: fail" if "fail" in test_id else "verdict: pass")
"""


def write(path: Path, contents: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents, encoding="utf-8")
    return path


def module_source(module: str, *testcases: str, control: bool = False) -> str:
    body = "".join(f"    testcase {name}() runs on C {{}}\n" for name in testcases)
    if control:
        body += "    control {}\n"
    return f"module {module} {{\n{body}}}\n"


def write_suite(root: Path, modules: dict[str, str], *, name: str = "suite") -> Path:
    """Create ``package.yml`` plus one ``.ttcn3`` file per module below ``root/src``."""

    for module, source in modules.items():
        write(root / "src" / f"{module.lower()}.ttcn3", source)
    write(root / "package.yml", f"name: {name}\nsources: [src]\n")
    return root


def write_executor(root: Path, *extra_args: str) -> list[str]:
    """Write the scripted executor and return its command template."""

    script = write(root / "fake_k3r.py", EXECUTOR_SCRIPT)
    return [sys.executable, str(script), "{id}", *extra_args]


def write_config(root: Path, command: list[str], extra: str = "") -> Path:
    text = f"[executor]\ncommand = {json.dumps(command)}\n\n[run]\nticker_seconds = 0\n{extra}"
    return write(root / "ttrun.toml", text)


def write_shell_wrapper(path: Path, script: Path) -> Path:
    """Make ``script`` runnable as a bare executable name."""

    write(path, f'#!/bin/sh\nexec "{sys.executable}" "{script}" "$@"\n')
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path
