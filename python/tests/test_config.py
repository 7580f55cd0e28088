"""Tests for RunnerConfig and artifact directories."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from playbook_runner.artifacts import get_artifact_directory, sanitize_filename
from playbook_runner.config import DEFAULT_PLAYBOOKS_DIR, DEFAULT_STEP_TIMEOUT, RunnerConfig


class TestRunnerConfig:
    """Tests for configuration defaults and environment overrides."""

    def test_defaults(self) -> None:
        config = RunnerConfig()

        assert config.playbooks_dir == DEFAULT_PLAYBOOKS_DIR
        assert config.step_timeout == DEFAULT_STEP_TIMEOUT == 300.0
        assert config.continue_on_error is False
        assert config.dry_run is False
        assert config.write_artifacts is True

    def test_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ValidationError):
            RunnerConfig(step_timeout=0)

    def test_is_frozen(self) -> None:
        with pytest.raises(ValidationError):
            RunnerConfig().dry_run = True

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("PLAYBOOK_RUNNER_PLAYBOOKS_DIR", str(tmp_path / "pb"))
        monkeypatch.setenv("PLAYBOOK_RUNNER_ARTIFACTS_ROOT", str(tmp_path / "art"))
        monkeypatch.setenv("PLAYBOOK_RUNNER_STEP_TIMEOUT", "12.5")
        monkeypatch.setenv("PLAYBOOK_RUNNER_CONTINUE_ON_ERROR", "yes")

        config = RunnerConfig.from_env()

        assert config.playbooks_dir == tmp_path / "pb"
        assert config.artifacts_root == tmp_path / "art"
        assert config.step_timeout == 12.5
        assert config.continue_on_error is True

    def test_from_env_ignores_blank_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PLAYBOOK_RUNNER_STEP_TIMEOUT", "  ")
        monkeypatch.delenv("PLAYBOOK_RUNNER_CONTINUE_ON_ERROR", raising=False)

        config = RunnerConfig.from_env()

        assert config.step_timeout == DEFAULT_STEP_TIMEOUT
        assert config.continue_on_error is False


class TestArtifacts:
    """Tests for artifact directory provisioning."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [("Regression Check", "regression-check"), ("a/b:c", "a-b-c"), ("ok_Name-1", "ok_name-1")],
    )
    def test_sanitize_filename(self, name: str, expected: str) -> None:
        assert sanitize_filename(name) == expected

    def test_get_artifact_directory_creates_it(self, tmp_path: Path) -> None:
        directory = get_artifact_directory("Session 1", tmp_path)

        assert directory == tmp_path / "session-1"
        assert directory.is_dir()

    def test_empty_session_id(self, tmp_path: Path) -> None:
        assert get_artifact_directory("", tmp_path) == tmp_path / "default"
