"""Pytest configuration and shared fixtures for playbook_runner tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from playbook_runner.config import RunnerConfig
from playbook_runner.playbook.actions import ActionResult, create_action_registry
from playbook_runner.playbook.context import ExecutionContext
from playbook_runner.playbook.loader import PlaybookDefinition, PlaybookLoader


def pytest_configure(config):
    """Configure custom markers for pytest."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (deselect with '-m \"not integration\"')",
    )
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow-running (deselect with '-m \"not slow\"')",
    )


@pytest.fixture
def loader(tmp_path: Path) -> PlaybookLoader:
    """Create a playbook loader rooted in a temporary playbooks directory."""
    return PlaybookLoader(tmp_path / "playbooks")


@pytest.fixture
def runner_config(tmp_path: Path) -> RunnerConfig:
    """Runner settings that keep playbooks and artifacts inside tmp_path."""
    return RunnerConfig(
        playbooks_dir=tmp_path / "playbooks",
        artifacts_root=tmp_path / "artifacts",
    )


@pytest.fixture
def write_playbook(tmp_path: Path):
    """Write YAML as <tmp>/playbooks/<name>/playbook.yaml and return its path."""

    def _write(name: str, content: str) -> Path:
        directory = tmp_path / "playbooks" / name
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / "playbook.yaml"
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_context():
    """Build an ExecutionContext around a throwaway playbook definition."""

    def _make(custom_actions: dict[str, Any] | None = None, **kwargs: Any) -> ExecutionContext:
        playbook = PlaybookDefinition(name="test-playbook", steps=[])
        return ExecutionContext(
            playbook=playbook,
            actions=create_action_registry(custom_actions),
            **kwargs,
        )

    return _make


@pytest.fixture
def recorder():
    """Action handler that records its resolved inputs and succeeds."""
    calls: list[dict[str, Any]] = []

    async def handler(context: ExecutionContext, inputs: dict[str, Any]) -> ActionResult:
        calls.append(dict(inputs))
        return ActionResult.ok(dict(inputs))

    handler.calls = calls
    return handler
