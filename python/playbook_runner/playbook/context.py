"""Execution state shared by every step of one playbook run.

This module provides:
- ExecutionContext: inputs, variables, outputs and collected data of a run
- LoopFrame: the binding of one active loop iteration
- Progress and step event payloads delivered to run callbacks
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from playbook_runner.playbook.actions import ActionRegistry
    from playbook_runner.playbook.loader import PlaybookDefinition, Step


ProgressPhase = Literal["initializing", "executing", "complete"]
StepEventType = Literal["start", "complete", "skip", "error"]

_MISSING = object()


@dataclass
class PlaybookProgress:
    """Progress update emitted while a playbook runs."""

    phase: ProgressPhase
    step_index: int
    total_steps: int
    message: str
    percent_complete: float
    step_name: str | None = None
    elapsed_ms: int | None = None
    loop: dict[str, Any] | None = None


@dataclass
class StepExecutionEvent:
    """Lifecycle event for a single step, for debugging and live output."""

    step: Step
    index: int
    type: StepEventType
    resolved_inputs: dict[str, Any] | None = None
    result: Any = None
    error: str | None = None
    skip_reason: str | None = None
    duration_ms: int | None = None


@dataclass
class LoopFrame:
    """Binding of one loop iteration.

    ``previous`` holds the value the alias had in ``variables`` before the
    frame was pushed, so popping restores outer bindings.
    """

    alias: str
    item: Any
    index: int
    total: int
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    previous: Any = _MISSING

    def describe(self) -> dict[str, Any]:
        """Summary used in progress updates and step results."""
        return {"as": self.alias, "index": self.index, "total": self.total}


@dataclass
class ExecutionContext:
    """All mutable state of one playbook run.

    The context is created once per run and passed explicitly to every
    component; it is never shared between runs.
    """

    playbook: PlaybookDefinition
    actions: ActionRegistry
    session_id: str = ""
    artifacts_dir: str = ""
    cwd: str = field(default_factory=lambda: str(Path.cwd()))
    inputs: dict[str, Any] = field(default_factory=dict)
    variables: dict[str, Any] = field(default_factory=dict)
    outputs: dict[str, Any] = field(default_factory=dict)
    collected: dict[str, list[Any]] = field(default_factory=dict)
    loop_stack: list[LoopFrame] = field(default_factory=list)
    dry_run: bool = False
    step_timeout: float = 300.0
    continue_on_error: bool = False
    on_progress: Callable[[PlaybookProgress], None] | None = None
    on_step: Callable[[StepExecutionEvent], None] | None = None
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    current_step_index: int = 0
    total_steps: int = 0

    @property
    def current_loop(self) -> LoopFrame | None:
        """Innermost active loop frame, if any."""
        return self.loop_stack[-1] if self.loop_stack else None

    def elapsed_ms(self) -> int:
        """Milliseconds since the run started."""
        return int((datetime.now(timezone.utc) - self.start_time).total_seconds() * 1000)

    def push_loop_frame(self, alias: str, item: Any, index: int, total: int) -> LoopFrame:
        """Enter a loop iteration and bind its alias into ``variables``."""
        frame = LoopFrame(
            alias=alias,
            item=item,
            index=index,
            total=total,
            previous=self.variables.get(alias, _MISSING),
        )
        self.loop_stack.append(frame)
        self.variables[alias] = item
        return frame

    def pop_loop_frame(self) -> LoopFrame:
        """Leave the innermost loop iteration, restoring the alias binding."""
        frame = self.loop_stack.pop()
        if frame.previous is _MISSING:
            self.variables.pop(frame.alias, None)
        else:
            self.variables[frame.alias] = frame.previous
        return frame

    def store_output(self, key: str, value: Any) -> None:
        """Record a step's data under its ``store_as`` key."""
        self.outputs[key] = value

    def collect(self, key: str, value: Any) -> None:
        """Append a value to a named collection."""
        self.collected.setdefault(key, []).append(value)

    def emit_progress(self, progress: PlaybookProgress) -> None:
        """Stamp elapsed time on a progress update and deliver it."""
        progress.elapsed_ms = self.elapsed_ms()
        if self.on_progress is not None:
            self.on_progress(progress)

    def emit_step_event(self, event: StepExecutionEvent) -> None:
        """Deliver a step lifecycle event."""
        if self.on_step is not None:
            self.on_step(event)
