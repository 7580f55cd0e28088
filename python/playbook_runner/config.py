"""Configuration for the playbook runner.

Provides a Pydantic settings model for playbook discovery, artifact storage
and the default step execution policy.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_PLAYBOOKS_DIR = Path.home() / ".maestro" / "playbooks" / "iOS"
DEFAULT_ARTIFACTS_ROOT = Path.home() / ".maestro" / "artifacts"
DEFAULT_STEP_TIMEOUT = 300.0

_TRUTHY = {"1", "true", "yes", "on"}


class RunnerConfig(BaseModel):
    """Configuration for playbook runs."""

    model_config = ConfigDict(frozen=True)

    playbooks_dir: Path = Field(
        default=DEFAULT_PLAYBOOKS_DIR,
        description="Base directory holding <name>/playbook.yaml definitions",
    )
    artifacts_root: Path = Field(
        default=DEFAULT_ARTIFACTS_ROOT,
        description="Root directory for per-session artifact directories",
    )
    step_timeout: float = Field(
        default=DEFAULT_STEP_TIMEOUT,
        gt=0.0,
        description="Default per-step timeout in seconds",
    )
    continue_on_error: bool = Field(
        default=False,
        description="Keep executing sibling steps after a failed step",
    )
    dry_run: bool = Field(
        default=False,
        description="Walk the playbook without dispatching actions",
    )
    write_artifacts: bool = Field(
        default=True,
        description="Write result.json and summary.txt into the run directory",
    )

    @classmethod
    def from_env(cls) -> RunnerConfig:
        """Build a config from PLAYBOOK_RUNNER_* environment variables."""
        values: dict[str, object] = {}

        playbooks_dir = os.environ.get("PLAYBOOK_RUNNER_PLAYBOOKS_DIR", "").strip()
        if playbooks_dir:
            values["playbooks_dir"] = Path(playbooks_dir).expanduser()

        artifacts_root = os.environ.get("PLAYBOOK_RUNNER_ARTIFACTS_ROOT", "").strip()
        if artifacts_root:
            values["artifacts_root"] = Path(artifacts_root).expanduser()

        step_timeout = os.environ.get("PLAYBOOK_RUNNER_STEP_TIMEOUT", "").strip()
        if step_timeout:
            values["step_timeout"] = float(step_timeout)

        continue_on_error = os.environ.get("PLAYBOOK_RUNNER_CONTINUE_ON_ERROR", "").strip()
        if continue_on_error:
            values["continue_on_error"] = continue_on_error.lower() in _TRUTHY

        return cls(**values)
