"""
ttcn-orchestrator — unit tests for the CLI router

File: tests/unit/ui/test_cli.py

Purpose
- Validate argument parsing, identifier splitting and the run/list/results
  handlers against a throwaway suite with a scripted executor.
"""

from __future__ import annotations

import io
import json
import os
import sys
from pathlib import Path

import pytest

from ttcn_orchestrator.config.loader import LEGACY_ENV_ALIASES
from ttcn_orchestrator.errors import PersistenceError, SuiteConfigError, TestsFailedError
from ttcn_orchestrator.ui.cli import build_parser, new_run_id, run_cli, split_ids

MODULE = """
module Calls {
    // @stable
    testcase tc_setup() runs on C {}
    testcase tc_fail_release() runs on C {}
    control {
        execute(tc_setup());
    }
}
"""

EXECUTOR = """
import sys

test_id = sys.argv[1]
if "fail" in test_id:
    print("verdict: fail")
else:
    print("verdict: pass")
"""


@pytest.fixture
def suite_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for name, _ in LEGACY_ENV_ALIASES:
        monkeypatch.delenv(name, raising=False)
    for name in [key for key in os.environ if key.startswith("TTRUN_")]:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("NO_COLOR", "1")

    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "calls.ttcn3").write_text(MODULE, encoding="utf-8")
    (tmp_path / "package.yml").write_text("name: calls\nsources: [src]\n", encoding="utf-8")
    script = tmp_path / "fake_k3r.py"
    script.write_text(EXECUTOR, encoding="utf-8")
    command = json.dumps([sys.executable, str(script), "{id}"])
    (tmp_path / "ttrun.toml").write_text(
        f"[executor]\ncommand = {command}\n\n[run]\nmax_workers = 2\nticker_seconds = 0\n",
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _results(root: Path) -> dict[str, object]:
    path = root / ".ttrun" / "cache" / "test_results.json"
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert isinstance(payload, dict)
    return payload


def test_split_ids_uses_first_separator() -> None:
    assert split_ids(["run", "-j2"]) == (["run", "-j2"], ())
    assert split_ids(["run", "--", "A.tc1", "", "--", "B.tc2"]) == (
        ["run"],
        ("A.tc1", "--", "B.tc2"),
    )


def test_parser_accepts_run_options() -> None:
    args = build_parser().parse_args(
        ["run", "-j4", "--max-fail", "2", "-R", "^A", "-R", "^B", "--format", "plain", "suite"]
    )

    assert args.command == "run"
    assert args.jobs == 4
    assert args.max_fail == 2
    assert args.run_regex == ["^A", "^B"]
    assert args.output_format == "plain"
    assert args.paths == ["suite"]


def test_parser_rejects_unknown_format() -> None:
    with pytest.raises(SystemExit) as excinfo:
        build_parser().parse_args(["run", "--format", "xml"])
    assert excinfo.value.code == 2


def test_run_id_is_sortable_and_unique_per_process() -> None:
    run_id = new_run_id()
    assert run_id[8] == "T"
    assert run_id.endswith(f"-{os.getpid()}")


def test_list_prints_discovered_testcases(
    suite_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert run_cli(["list"]) == 0
    assert capsys.readouterr().out.splitlines() == ["Calls.tc_setup", "Calls.tc_fail_release"]


def test_list_applies_tag_and_regex_filters(
    suite_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert run_cli(["list", "-T", "@stable"]) == 0
    assert capsys.readouterr().out.splitlines() == ["Calls.tc_setup"]

    assert run_cli(["list", "--exclude-regex", "setup"]) == 0
    assert capsys.readouterr().out.splitlines() == ["Calls.tc_fail_release"]


def test_list_with_legacy_policy_prints_control_parts(
    suite_dir: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("K3_40_RUN_POLICY", "old")

    assert run_cli(["list"]) == 0
    assert capsys.readouterr().out.splitlines() == ["Calls.control"]


def test_run_success_writes_record_and_plain_output(
    suite_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert run_cli(["run", "--format", "plain", "--", "Calls.tc_setup"]) == 0

    out = capsys.readouterr().out
    verdict, name, duration = out.strip().split("\t")
    assert (verdict, name) == ("pass", "Calls.tc_setup")
    assert float(duration) >= 0.0

    session = _results(suite_dir)["sessions"][0]  # type: ignore[index]
    assert session["max_jobs"] == 2
    assert [run["name"] for run in session["runs"]] == ["Calls.tc_setup"]
    assert list((suite_dir / ".ttrun" / "logs").glob("*/ttrun.jsonl"))


def test_run_with_failures_raises_tests_failed(suite_dir: Path) -> None:
    with pytest.raises(TestsFailedError) as excinfo:
        run_cli(["run", "--format", "quiet"])

    assert excinfo.value.error_count == 1
    verdicts = {
        run["name"]: run["verdict"]
        for run in _results(suite_dir)["sessions"][0]["runs"]  # type: ignore[index]
    }
    assert verdicts == {"Calls.tc_setup": "pass", "Calls.tc_fail_release": "fail"}


def test_run_reads_identifiers_from_stdin(
    suite_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    stdin = io.StringIO("Calls.tc_setup\n\n  Calls.tc_setup  \n")

    assert run_cli(["run", "--format", "plain", "-t", "-"], stdin=stdin) == 0

    assert len(capsys.readouterr().out.splitlines()) == 2


def test_run_creates_output_directories_per_job(suite_dir: Path) -> None:
    assert run_cli(["run", "--format", "quiet", "-o", "out", "--", "Calls.tc_setup"]) == 0

    assert (suite_dir / "out" / "Calls.tc_setup").is_dir()
    run = _results(suite_dir)["sessions"][0]["runs"][0]  # type: ignore[index]
    assert run["working_dir"] == str((suite_dir / "out" / "Calls.tc_setup").resolve())


def test_missing_tests_file_is_a_usage_error(
    suite_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert run_cli(["run", "-t", "missing.txt"]) == 2
    assert "cannot read tests file missing.txt" in capsys.readouterr().err


def test_results_summarises_last_run(
    suite_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    with pytest.raises(TestsFailedError):
        run_cli(["run", "--format", "quiet"])
    capsys.readouterr()

    assert run_cli(["results"]) == 1
    out = capsys.readouterr().out
    assert "session 1: 2 run(s), max_jobs=2" in out
    assert "--- fail Calls.tc_fail_release" in out

    assert run_cli(["results", "--json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["version"] == "1"


def test_results_without_record_raises(suite_dir: Path) -> None:
    with pytest.raises(PersistenceError, match="no run record"):
        run_cli(["results"])


def test_unknown_suite_path_is_a_config_error(suite_dir: Path) -> None:
    with pytest.raises(SuiteConfigError, match="no such file"):
        run_cli(["list", "does-not-exist"])


def test_failed_run_is_reported_before_record_write_error(
    suite_dir: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    record = suite_dir / ".ttrun" / "cache" / "test_results.json"
    script = suite_dir / "blocking_k3r.py"
    script.write_text(
        f"import os\nos.makedirs({str(record)!r}, exist_ok=True)\n" + EXECUTOR,
        encoding="utf-8",
    )
    command = json.dumps([sys.executable, str(script), "{id}"])
    (suite_dir / "ttrun.toml").write_text(
        f"[executor]\ncommand = {command}\n\n[run]\nmax_workers = 2\nticker_seconds = 0\n",
        encoding="utf-8",
    )

    with pytest.raises(PersistenceError, match="unable to write run record"):
        run_cli(["run", "--format", "quiet"])

    assert "ttrun: command failed: 1 error(s) occurred" in capsys.readouterr().err
    assert record.is_dir()
