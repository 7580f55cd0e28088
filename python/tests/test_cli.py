"""Tests for the playbook-runner command-line interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import structlog

from playbook_runner.cli import EXIT_ERROR, EXIT_FAILED, EXIT_PASSED, main

PASSING_YAML = """
name: Smoke
description: Quick smoke run
version: 2
inputs:
  scheme:
    type: string
    required: true
    description: Xcode scheme
steps:
  - name: Bump
    action: increment_iteration
  - name: Report
    action: report_status
"""

FAILING_YAML = """
name: Broken
steps:
  - name: Typo
    action: not_an_action
"""


@pytest.fixture(autouse=True)
def _isolate(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Keep artifacts in tmp_path and undo logging configuration."""
    monkeypatch.setenv("PLAYBOOK_RUNNER_ARTIFACTS_ROOT", str(tmp_path / "artifacts"))
    monkeypatch.delenv("PLAYBOOK_RUNNER_PLAYBOOKS_DIR", raising=False)
    yield
    structlog.reset_defaults()


@pytest.fixture
def playbooks_dir(tmp_path: Path, write_playbook) -> str:
    write_playbook("Smoke", PASSING_YAML)
    write_playbook("Broken", FAILING_YAML)
    return str(tmp_path / "playbooks")


class TestListAndInfo:
    """Tests for the list and info commands."""

    def test_list(self, playbooks_dir: str, capsys: pytest.CaptureFixture[str]) -> None:
        code = main(["--playbooks-dir", playbooks_dir, "list"])

        out = capsys.readouterr().out
        assert code == EXIT_PASSED
        assert "  - Broken" in out
        assert "  - Smoke v2" in out
        assert "Quick smoke run" in out

    def test_list_empty(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        code = main(["--playbooks-dir", str(tmp_path / "none"), "list"])

        assert code == EXIT_PASSED
        assert "No playbooks found" in capsys.readouterr().out

    def test_info(self, playbooks_dir: str, capsys: pytest.CaptureFixture[str]) -> None:
        code = main(["--playbooks-dir", playbooks_dir, "info", "Smoke"])

        out = capsys.readouterr().out
        assert code == EXIT_PASSED
        assert "PLAYBOOK: Smoke" in out
        assert "  scheme (string, required)" in out
        assert "Valid: yes" in out

    def test_info_missing(self, playbooks_dir: str, capsys: pytest.CaptureFixture[str]) -> None:
        code = main(["--playbooks-dir", playbooks_dir, "info", "Nope"])

        assert code == EXIT_ERROR
        assert "Playbook not found" in capsys.readouterr().err


class TestRun:
    """Tests for the run command."""

    def test_run_passing(self, playbooks_dir: str, capsys: pytest.CaptureFixture[str]) -> None:
        code = main(
            [
                "--playbooks-dir",
                playbooks_dir,
                "run",
                "Smoke",
                "--inputs",
                '{"scheme": "App"}',
                "--format",
                "compact",
            ]
        )

        out = capsys.readouterr().out
        assert code == EXIT_PASSED
        assert out.startswith("[PASS] Smoke 2/2 steps (")

    def test_run_failing(self, playbooks_dir: str, capsys: pytest.CaptureFixture[str]) -> None:
        code = main(["--playbooks-dir", playbooks_dir, "run", "Broken", "--format", "text"])

        out = capsys.readouterr().out
        assert code == EXIT_FAILED
        assert "Unknown action: not_an_action" in out

    def test_run_continue_flag(self, playbooks_dir: str, capsys: pytest.CaptureFixture[str]) -> None:
        code = main(["--playbooks-dir", playbooks_dir, "run", "Broken", "--continue"])

        assert code == EXIT_PASSED
        assert "## ✅ Playbook: Broken" in capsys.readouterr().out

    def test_run_dry_run_json(self, playbooks_dir: str, capsys: pytest.CaptureFixture[str]) -> None:
        code = main(
            [
                "--playbooks-dir",
                playbooks_dir,
                "run",
                "Smoke",
                "--inputs",
                '{"scheme": "App"}',
                "--dry-run",
                "--format",
                "json",
            ]
        )

        data = json.loads(capsys.readouterr().out)
        assert code == EXIT_PASSED
        assert data["steps_executed"] == 0
        assert data["steps_skipped"] == 2

    def test_run_invalid_inputs(self, playbooks_dir: str, capsys: pytest.CaptureFixture[str]) -> None:
        code = main(["--playbooks-dir", playbooks_dir, "run", "Smoke"])

        assert code == EXIT_ERROR
        assert "INVALID_INPUTS" in capsys.readouterr().err

    def test_run_bad_inputs_json(self, playbooks_dir: str, capsys: pytest.CaptureFixture[str]) -> None:
        code = main(["--playbooks-dir", playbooks_dir, "run", "Smoke", "--inputs", "{nope"])

        assert code == EXIT_ERROR
        assert "Invalid JSON" in capsys.readouterr().err

    def test_run_missing_playbook(self, playbooks_dir: str, capsys: pytest.CaptureFixture[str]) -> None:
        code = main(["--playbooks-dir", playbooks_dir, "run", "Nope"])

        assert code == EXIT_ERROR
        assert "PLAYBOOK_LOAD_FAILED" in capsys.readouterr().err

    def test_no_command(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main([]) == EXIT_FAILED
