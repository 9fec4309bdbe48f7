"""
ttcn-orchestrator — end-to-end smoke test

File: tests/smoke/test_end_to_end.py

Purpose
- Run a small suite through ``cli_entrypoint`` and read the run record back
  with ``ttrun results --json``.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import pytest

from ttcn_orchestrator.config.loader import LEGACY_ENV_ALIASES
from ttcn_orchestrator.main import ExitCode, cli_entrypoint

SUITE = """
module Handover {
    // @stable
    testcase tc_intra() runs on C {}
    // @stable
    testcase tc_inter() runs on C {}
    testcase tc_inconc_x2() runs on C {}
    control {
        execute(tc_intra());
        execute(tc_inter());
    }
}
"""

EXECUTOR = """
import os
import sys
from pathlib import Path

test_id = sys.argv[1]
Path("ran.txt").write_text(os.environ["TTRUN_TEST_ID"], encoding="utf-8")
print("log line")
print("verdict: inconc" if "inconc" in test_id else "verdict: pass")
"""


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for name, _ in LEGACY_ENV_ALIASES:
        monkeypatch.delenv(name, raising=False)
    for name in [key for key in os.environ if key.startswith("TTRUN_")]:
        monkeypatch.delenv(name)
    monkeypatch.setenv("NO_COLOR", "1")

    (tmp_path / "ttcn3").mkdir()
    (tmp_path / "ttcn3" / "handover.ttcn3").write_text(SUITE, encoding="utf-8")
    (tmp_path / "package.yml").write_text(
        "name: handover\nsources:\n  - ttcn3\nvariables:\n  CELL_ID: 7\n", encoding="utf-8"
    )
    (tmp_path / "k3r.py").write_text(EXECUTOR, encoding="utf-8")
    command = json.dumps([sys.executable, str(tmp_path / "k3r.py"), "{id}"])
    (tmp_path / "ttrun.toml").write_text(
        "[run]\nmax_workers = 2\nticker_seconds = 0\n\n"
        f"[executor]\ncommand = {command}\n\n"
        '[baskets]\nselected = "stable"\n\n[baskets.stable]\ntags = ["@stable"]\n',
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.mark.smoke
def test_end_to_end_run_and_results(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = cli_entrypoint(["run", "--format", "json", "-o", "work"])
    run_output = capsys.readouterr().out

    assert exit_code == ExitCode.SUCCESS
    streamed = [json.loads(line) for line in run_output.splitlines()]
    assert sorted(item["name"] for item in streamed) == ["Handover.tc_inter", "Handover.tc_intra"]
    for name in ("Handover.tc_inter", "Handover.tc_intra"):
        ran = workspace / "work" / name / "ran.txt"
        assert ran.read_text(encoding="utf-8") == name

    assert cli_entrypoint(["results", "--json"]) == ExitCode.SUCCESS
    record = json.loads(capsys.readouterr().out)
    session = record["sessions"][0]
    assert session["max_jobs"] == 2
    assert session["expected_verdict"] == "pass"
    assert {run["verdict"] for run in session["runs"]} == {"pass"}

    log_files = list((workspace / ".ttrun" / "logs").glob("*/ttrun.jsonl"))
    assert len(log_files) == 1
    entries = [json.loads(line) for line in log_files[0].read_text(encoding="utf-8").splitlines()]
    assert any(entry["message"] == "aggregation_finished" for entry in entries)
    assert all(entry["run_id"] == log_files[0].parent.name for entry in entries)


@pytest.mark.smoke
def test_end_to_end_explicit_ids_bypass_baskets(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = cli_entrypoint(["run", "--format", "plain", "--", "Handover.tc_inconc_x2"])

    assert exit_code == ExitCode.TESTS_FAILED
    captured = capsys.readouterr()
    assert captured.out.startswith("inconc\tHandover.tc_inconc_x2\t")
    assert "1 error(s) occurred" in captured.err
