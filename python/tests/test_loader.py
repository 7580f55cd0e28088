"""Tests for the playbook loader."""

from __future__ import annotations

from pathlib import Path

import pytest

from playbook_runner.playbook.loader import (
    PlaybookLoader,
    PlaybookNotFoundError,
    PlaybookValidationError,
    parse_timeout,
)

MINIMAL_PLAYBOOK_YAML = """
name: Minimal
steps:
  - name: Bump
    action: increment_iteration
"""

COMPLETE_PLAYBOOK_YAML = """
name: Regression Check
description: Run flows and compare screenshots
version: 1.2
inputs:
  scheme:
    type: string
    required: true
  flows:
    type: array
    default: []
  threshold:
    type: number
    default: null
variables:
  iteration: 0
steps:
  - name: Build
    action: ios.build
    inputs:
      scheme: "{{ inputs.scheme }}"
    store_as: build
    timeout: 5m
  - name: Each flow
    loop: "{{ inputs.flows }}"
    as: flow
    steps:
      - name: Run flow
        action: ios.run_flow
        inputs:
          flow: "{{ flow }}"
        timeout: 500ms
        on_failure:
          - name: Record failure
            action: record_crash
  - name: Poll
    loop_until:
      or: "{{ variables.done }}"
      timeout: 30s
    steps:
      - action: increment_iteration
  - name: Report
    action: report_status
    condition: "{{ outputs.build }}"
    continue_on_error: true
"""


class TestParseTimeout:
    """Tests for timeout strings."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(30, 30.0), (1.5, 1.5), ("30", 30.0), ("30s", 30.0), ("500ms", 0.5), ("5m", 300.0)],
    )
    def test_units(self, value: object, expected: float) -> None:
        assert parse_timeout(value) == expected

    def test_invalid_uses_default(self) -> None:
        assert parse_timeout("soon", 10.0) == 10.0
        assert parse_timeout(None, 10.0) == 10.0
        assert parse_timeout(True, 10.0) == 10.0


class TestPlaybookLoader:
    """Tests for PlaybookLoader parsing."""

    def test_load_from_string_minimal(self, loader: PlaybookLoader) -> None:
        playbook = loader.load_from_string(MINIMAL_PLAYBOOK_YAML)

        assert playbook.name == "Minimal"
        assert len(playbook.steps) == 1
        assert playbook.steps[0].action == "increment_iteration"
        assert playbook.inputs == {}
        assert playbook.variables == {}

    def test_load_from_string_complete(self, loader: PlaybookLoader) -> None:
        playbook = loader.load_from_string(COMPLETE_PLAYBOOK_YAML)

        assert playbook.version == "1.2"
        assert playbook.inputs["scheme"].required is True
        assert playbook.inputs["flows"].has_default is True
        assert playbook.inputs["threshold"].has_default is True
        assert playbook.inputs["scheme"].has_default is False
        assert playbook.variables == {"iteration": 0}

        build, loop, poll, report = playbook.steps
        assert build.timeout == 300.0
        assert build.store_as == "build"
        assert loop.is_loop and loop.as_ == "flow"
        assert loop.steps[0].timeout == 0.5
        assert loop.steps[0].on_failure[0].action == "record_crash"
        assert poll.is_loop and poll.loop_until.or_ == "{{ variables.done }}"
        assert poll.steps[0].as_ == "item"
        assert report.continue_on_error is True
        assert report.condition == "{{ outputs.build }}"

    def test_load_by_name(self, loader: PlaybookLoader, write_playbook) -> None:
        write_playbook("Minimal", MINIMAL_PLAYBOOK_YAML)

        assert loader.load("Minimal").name == "Minimal"
        assert loader.playbook_exists("Minimal") is True
        assert loader.playbook_exists("Other") is False

    def test_load_by_yaml_path(self, loader: PlaybookLoader, tmp_path: Path) -> None:
        path = tmp_path / "custom.yaml"
        path.write_text(MINIMAL_PLAYBOOK_YAML, encoding="utf-8")

        assert loader.load(str(path)).name == "Minimal"

    def test_load_nonexistent(self, loader: PlaybookLoader) -> None:
        with pytest.raises(PlaybookNotFoundError):
            loader.load("Nope")

    def test_load_invalid_yaml(self, loader: PlaybookLoader) -> None:
        with pytest.raises(PlaybookValidationError) as exc_info:
            loader.load_from_string("name: [unclosed")

        assert "Invalid YAML" in str(exc_info.value)

    def test_load_requires_name_and_steps(self, loader: PlaybookLoader) -> None:
        with pytest.raises(PlaybookValidationError, match="'name'"):
            loader.load_from_string("steps: []")
        with pytest.raises(PlaybookValidationError, match="'steps'"):
            loader.load_from_string("name: x")
        with pytest.raises(PlaybookValidationError):
            loader.load_from_string("just a string")

    def test_load_rejects_bad_field_types(self, loader: PlaybookLoader) -> None:
        with pytest.raises(PlaybookValidationError) as exc_info:
            loader.load_from_string(
                "name: x\nsteps:\n  - action: wait\n    timeout: forever\n"
            )

        assert exc_info.value.errors

    def test_load_rejects_non_string_keys(self, loader: PlaybookLoader) -> None:
        with pytest.raises(PlaybookValidationError, match="keys must be strings"):
            loader.load_from_string("name: x\nsteps: []\n1: foo\n")

    def test_load_rejects_undecodable_file(self, loader: PlaybookLoader, write_playbook) -> None:
        path = write_playbook("Binary", "")
        path.write_bytes(b"name: \xff\xfe bad\nsteps: []\n")

        with pytest.raises(PlaybookValidationError, match="not valid UTF-8"):
            loader.load("Binary")


class TestPlaybookValidation:
    """Tests for structural validation."""

    def test_valid_playbook(self, loader: PlaybookLoader) -> None:
        result = loader.validate(loader.load_from_string(COMPLETE_PLAYBOOK_YAML))

        assert result.valid is True
        assert result.errors == []

    def test_empty_steps(self, loader: PlaybookLoader) -> None:
        result = loader.validate(loader.load_from_string("name: x\nsteps: []\n"))

        assert result.valid is False
        assert any("at least one step" in e for e in result.errors)

    def test_step_without_action_or_loop(self, loader: PlaybookLoader) -> None:
        playbook = loader.load_from_string(
            "name: x\nsteps:\n  - name: Nothing\n  - loop: range(2)\n    steps:\n      - name: Inner\n"
        )
        result = loader.validate(playbook)

        assert result.valid is False
        assert any(e.startswith("Nothing:") for e in result.errors)
        assert any(e.startswith("Inner:") for e in result.errors)

    def test_warnings(self, loader: PlaybookLoader) -> None:
        playbook = loader.load_from_string(
            "name: x\n"
            "inputs:\n  a:\n    required: true\n    default: 1\n"
            "steps:\n  - action: wait\n"
        )
        result = loader.validate(playbook)

        assert result.valid is True
        assert any("Input 'a'" in w for w in result.warnings)
        assert any("Step 1" in w for w in result.warnings)


class TestPlaybookDiscovery:
    """Tests for listing playbooks in a directory."""

    def test_list_playbooks(self, loader: PlaybookLoader, write_playbook) -> None:
        write_playbook("Regression-Check", COMPLETE_PLAYBOOK_YAML)
        write_playbook("Minimal", MINIMAL_PLAYBOOK_YAML)
        write_playbook("Broken", "name: [")
        (loader.playbooks_dir / "Common").mkdir()
        (loader.playbooks_dir / "Empty").mkdir()

        playbooks = loader.list_playbooks()

        assert [p.id for p in playbooks] == ["Minimal", "Regression-Check"]
        assert playbooks[1].built_in is True
        assert playbooks[1].name == "Regression Check"
        assert loader.get_playbook_info("Minimal").built_in is False
        assert loader.get_playbook_info("Broken") is None

    def test_list_missing_directory(self, tmp_path: Path) -> None:
        assert PlaybookLoader(tmp_path / "missing").list_playbooks() == []

    def test_ensure_playbooks_directory(self, loader: PlaybookLoader) -> None:
        root = loader.ensure_playbooks_directory()

        assert (root / "Crash-Hunt").is_dir()
        assert (root / "Common" / "flows").is_dir()
