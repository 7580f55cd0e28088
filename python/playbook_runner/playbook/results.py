"""Result records produced by a playbook run."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

RUN_ERROR_LOAD_FAILED = "PLAYBOOK_LOAD_FAILED"
RUN_ERROR_INVALID_INPUTS = "INVALID_INPUTS"


@dataclass
class StepResult:
    """Outcome of one executed or skipped step."""

    name: str
    success: bool
    duration_ms: int = 0
    action: str | None = None
    result: Any = None
    error: str | None = None
    skipped: bool = False
    skip_reason: str | None = None
    loop_context: dict[str, Any] | None = None
    # Set on the entry a loop step adds after its body results; not tallied
    loop_summary: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "name": self.name,
            "action": self.action,
            "success": self.success,
            "result": self.result,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
            "loop_context": self.loop_context,
        }


@dataclass
class PlaybookRunResult:
    """Full outcome of a playbook run."""

    passed: bool
    playbook_name: str
    start_time: datetime
    end_time: datetime
    artifacts_dir: str
    playbook_version: str | None = None
    playbook_path: str | None = None
    steps_executed: int = 0
    steps_passed: int = 0
    steps_failed: int = 0
    steps_skipped: int = 0
    total_duration_ms: int = 0
    step_results: list[StepResult] = field(default_factory=list)
    final_variables: dict[str, Any] = field(default_factory=dict)
    final_outputs: dict[str, Any] = field(default_factory=dict)
    collected: dict[str, list[Any]] = field(default_factory=dict)
    error: str | None = None

    @classmethod
    def tally(cls, step_results: list[StepResult], **kwargs: Any) -> PlaybookRunResult:
        """Build a result whose counters are computed from ``step_results``.

        A loop that ran is counted through its body results, so its own
        summary entry is left out. Skipped loops still count as one skip.
        """
        counted = [s for s in step_results if not s.loop_summary]
        return cls(
            steps_executed=sum(1 for s in counted if not s.skipped),
            steps_passed=sum(1 for s in counted if s.success and not s.skipped),
            steps_failed=sum(1 for s in counted if not s.success and not s.skipped),
            steps_skipped=sum(1 for s in counted if s.skipped),
            step_results=step_results,
            **kwargs,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "passed": self.passed,
            "playbook": {
                "name": self.playbook_name,
                "version": self.playbook_version,
                "path": self.playbook_path,
            },
            "steps_executed": self.steps_executed,
            "steps_passed": self.steps_passed,
            "steps_failed": self.steps_failed,
            "steps_skipped": self.steps_skipped,
            "total_duration_ms": self.total_duration_ms,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "step_results": [s.to_dict() for s in self.step_results],
            "final_variables": self.final_variables,
            "final_outputs": self.final_outputs,
            "collected": self.collected,
            "artifacts_dir": self.artifacts_dir,
            "error": self.error,
        }


@dataclass
class PlaybookRunResponse:
    """Outer result of ``run_playbook``.

    ``success`` reports whether the run could happen at all (the playbook
    loaded and its inputs validated). Whether the playbook's own steps passed
    is ``data.passed``.
    """

    success: bool
    data: PlaybookRunResult | None = None
    error: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "success": self.success,
            "data": self.data.to_dict() if self.data is not None else None,
            "error": self.error,
            "error_code": self.error_code,
        }
