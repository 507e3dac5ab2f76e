"""End-to-end tests for the usersbench CLI."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from usersbench import __version__
from usersbench.cli.app import app
from usersbench.cli.run import THRESHOLDS_FAILED_EXIT_CODE

if TYPE_CHECKING:
    from pathlib import Path

runner = CliRunner()


# ---------------------------------------------------------------------------
# Tests: version and help
# ---------------------------------------------------------------------------


def test_version_flag():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_version_short_flag():
    result = runner.invoke(app, ["-V"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_help_output():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "usersbench" in result.output.lower()


def test_run_help():
    result = runner.invoke(app, ["run", "--help"])
    assert result.exit_code == 0
    for option in ("--base-url", "--vus", "--duration", "--summary-export", "--log-json"):
        assert option in result.output


# ---------------------------------------------------------------------------
# Tests: usersbench run
# ---------------------------------------------------------------------------


@pytest.mark.timeout(60)
def test_run_passes_thresholds(scenario_file: Path):
    result = runner.invoke(app, ["run", str(scenario_file), "--duration", "2s"])

    assert result.exit_code == 0, result.output
    assert "Thresholds" in result.output
    assert "All thresholds passed" in result.output


@pytest.mark.timeout(60)
def test_run_threshold_failure_exit_code(failing_scenario_file: Path):
    result = runner.invoke(app, ["run", str(failing_scenario_file), "--duration", "1s"])

    assert result.exit_code == THRESHOLDS_FAILED_EXIT_CODE == 99
    assert "http_req_failed" in result.output
    assert "FAIL" in result.output


@pytest.mark.timeout(60)
def test_run_vus_override(scenario_file: Path):
    result = runner.invoke(
        app,
        ["run", str(scenario_file), "--vus", "2", "--duration", "1"],
    )

    assert result.exit_code == 0, result.output
    assert "Constant: 2 users" in result.output


@pytest.mark.timeout(60)
def test_run_base_url_override(make_scenario, sync_users_server: str):
    path = make_scenario("http://127.0.0.1:9")
    result = runner.invoke(
        app,
        ["run", str(path), "--base-url", sync_users_server, "--duration", "1s"],
    )
    assert result.exit_code == 0, result.output


@pytest.mark.timeout(60)
def test_summary_export(scenario_file: Path, tmp_path: Path):
    export = tmp_path / "out" / "summary.json"
    result = runner.invoke(
        app,
        ["run", str(scenario_file), "--duration", "1s", "--summary-export", str(export)],
    )

    assert result.exit_code == 0, result.output
    summary = json.loads(export.read_text())
    assert summary["scenario"] == "Test Users Scenario"
    assert summary["passed"] is True
    assert summary["summary"]["total_requests"] > 0
    assert summary["checks"]["status is 200"]["fails"] == 0
    assert {t["metric"] for t in summary["thresholds"]} == {
        "http_req_failed",
        "http_req_duration",
    }


def test_run_invalid_duration(scenario_file: Path):
    result = runner.invoke(app, ["run", str(scenario_file), "--duration", "soon"])
    assert result.exit_code == 2


def test_run_zero_duration(scenario_file: Path):
    result = runner.invoke(app, ["run", str(scenario_file), "--duration", "0s"])
    assert result.exit_code == 2


def test_run_nonexistent_scenario(tmp_path: Path):
    result = runner.invoke(app, ["run", str(tmp_path / "missing.py")])
    assert result.exit_code == 2


def test_run_invalid_scenario_exits_1(tmp_path: Path):
    path = tmp_path / "bad.py"
    path.write_text("X = 1\n")
    result = runner.invoke(app, ["run", str(path)])
    assert result.exit_code == 1
    assert "No @scenario" in result.output


def test_run_config_error_exits_1(scenario_file: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("USERSBENCH_POOL_SIZE", "zero")
    result = runner.invoke(app, ["run", str(scenario_file), "--duration", "1s"])
    assert result.exit_code == 1
    assert "USERSBENCH_POOL_SIZE" in result.output
