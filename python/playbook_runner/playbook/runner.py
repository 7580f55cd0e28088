"""Run orchestration: load, validate, execute and record a playbook run."""

from __future__ import annotations

import copy
import time
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

from playbook_runner.artifacts import get_artifact_directory, sanitize_filename
from playbook_runner.config import RunnerConfig
from playbook_runner.playbook.actions import ActionHandler, create_action_registry
from playbook_runner.playbook.context import (
    ExecutionContext,
    PlaybookProgress,
    StepExecutionEvent,
)
from playbook_runner.playbook.executor import StepExecutor, count_steps
from playbook_runner.playbook.formatters import (
    format_duration,
    format_playbook_result_as_json,
    format_playbook_result_as_text,
)
from playbook_runner.playbook.loader import (
    InputSpec,
    PlaybookDefinition,
    PlaybookLoader,
    PlaybookValidationError,
)
from playbook_runner.playbook.results import (
    RUN_ERROR_INVALID_INPUTS,
    RUN_ERROR_LOAD_FAILED,
    PlaybookRunResponse,
    PlaybookRunResult,
    StepResult,
)

logger = structlog.get_logger()

ArtifactProvider = Callable[[str], Path]

_TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, (list, tuple)),
    "object": lambda v: isinstance(v, dict),
}


# =============================================================================
# Input Validation
# =============================================================================


def validate_inputs(inputs: Mapping[str, Any], specs: Mapping[str, InputSpec]) -> list[str]:
    """Check supplied inputs against the declared input specs.

    Returns:
        Human-readable errors; empty when the inputs are valid
    """
    errors: list[str] = []

    for key, spec in specs.items():
        if spec.required and key not in inputs and not spec.has_default:
            errors.append(f"Required input '{key}' is missing")

        if key in inputs and spec.type is not None and not _TYPE_CHECKS[spec.type](inputs[key]):
            article = "an" if spec.type in ("array", "object") else "a"
            errors.append(f"Input '{key}' must be {article} {spec.type}")

    return errors


def apply_input_defaults(
    inputs: Mapping[str, Any], specs: Mapping[str, InputSpec]
) -> dict[str, Any]:
    """Fill in declared defaults for inputs that were not supplied."""
    resolved = dict(inputs)
    for key, spec in specs.items():
        if key not in resolved and spec.has_default:
            resolved[key] = copy.deepcopy(spec.default)
    return resolved


# =============================================================================
# Run Orchestration
# =============================================================================


async def run_playbook(
    playbook: str | Path | PlaybookDefinition,
    inputs: Mapping[str, Any] | None = None,
    session_id: str = "default",
    *,
    cwd: str | Path | None = None,
    playbooks_dir: str | Path | None = None,
    custom_actions: Mapping[str, ActionHandler] | None = None,
    on_progress: Callable[[PlaybookProgress], None] | None = None,
    on_step: Callable[[StepExecutionEvent], None] | None = None,
    dry_run: bool | None = None,
    step_timeout: float | None = None,
    continue_on_error: bool | None = None,
    config: RunnerConfig | None = None,
    artifact_provider: ArtifactProvider | None = None,
) -> PlaybookRunResponse:
    """Run a playbook by name, path or already-loaded definition.

    Load and input-validation problems produce ``success=False`` without
    running anything. Step failures never raise; they show up as
    ``data.passed=False`` and in ``data.step_results``.

    Args:
        playbook: Playbook name, YAML path, or a PlaybookDefinition
        inputs: Values for the playbook's declared inputs
        session_id: Session used for artifact storage and templates
        cwd: Working directory exposed as ``{{ cwd }}``
        playbooks_dir: Directory used to resolve playbook names
        custom_actions: Handlers that extend or override the built-ins
        on_progress: Callback for PlaybookProgress updates
        on_step: Callback for StepExecutionEvent notifications
        dry_run: Walk the steps without dispatching actions
        step_timeout: Default per-step timeout in seconds
        continue_on_error: Keep going after failed steps by default
        config: Base settings; explicit arguments take precedence
        artifact_provider: Returns the artifact directory for a session

    Returns:
        PlaybookRunResponse wrapping the PlaybookRunResult
    """
    config = config or RunnerConfig()
    start_time = datetime.now(timezone.utc)
    run_logger = logger.bind(component="playbook_runner", session_id=session_id)
    supplied_inputs = dict(inputs or {})

    run_logger.info("playbook_run_start", playbook=str(getattr(playbook, "name", playbook)))

    playbook_path: str | None = None
    if isinstance(playbook, PlaybookDefinition):
        definition = playbook
    else:
        loader = PlaybookLoader(playbooks_dir or config.playbooks_dir)
        try:
            definition = loader.load(playbook)
        except (PlaybookValidationError, OSError) as e:
            run_logger.error("playbook_load_failed", playbook=str(playbook), error=str(e))
            return PlaybookRunResponse(
                success=False,
                error=f"Failed to load playbook: {e}",
                error_code=RUN_ERROR_LOAD_FAILED,
            )
        playbook_path = str(playbook)

    run_logger.info(
        "playbook_loaded", name=definition.name, version=definition.version or "1.0.0"
    )

    input_errors = validate_inputs(supplied_inputs, definition.inputs)
    if input_errors:
        run_logger.error("playbook_inputs_invalid", name=definition.name, errors=input_errors)
        return PlaybookRunResponse(
            success=False,
            error=f"Invalid inputs: {', '.join(input_errors)}",
            error_code=RUN_ERROR_INVALID_INPUTS,
        )

    provider = artifact_provider or (
        lambda sid: get_artifact_directory(sid, config.artifacts_root)
    )
    run_dir = Path(provider(session_id)) / (
        f"playbook-{sanitize_filename(definition.name)}-{int(time.time() * 1000)}"
    )
    run_dir.mkdir(parents=True, exist_ok=True)

    context = ExecutionContext(
        playbook=definition,
        actions=create_action_registry(custom_actions),
        session_id=session_id,
        artifacts_dir=str(run_dir),
        cwd=str(cwd) if cwd is not None else str(Path.cwd()),
        inputs=apply_input_defaults(supplied_inputs, definition.inputs),
        variables=copy.deepcopy(definition.variables),
        dry_run=config.dry_run if dry_run is None else dry_run,
        step_timeout=config.step_timeout if step_timeout is None else step_timeout,
        continue_on_error=(
            config.continue_on_error if continue_on_error is None else continue_on_error
        ),
        on_progress=on_progress,
        on_step=on_step,
        start_time=start_time,
        total_steps=count_steps(definition.steps),
    )

    context.emit_progress(
        PlaybookProgress(
            phase="initializing",
            step_index=0,
            total_steps=context.total_steps,
            message=f"Initializing playbook: {definition.name}",
            percent_complete=0,
        )
    )

    if context.dry_run:
        run_logger.info("dry_run_enabled", name=definition.name)

    context.emit_progress(
        PlaybookProgress(
            phase="executing",
            step_index=0,
            total_steps=context.total_steps,
            message="Executing playbook steps",
            percent_complete=5,
        )
    )

    step_results: list[StepResult] = []
    try:
        outcome = await StepExecutor(context).execute_steps(definition.steps, step_results)
        passed, error = outcome.success, outcome.error
    except Exception as e:
        run_logger.error("playbook_execution_error", name=definition.name, error=str(e), exc_info=True)
        passed, error = False, str(e)

    end_time = datetime.now(timezone.utc)
    total_duration_ms = int((end_time - start_time).total_seconds() * 1000)

    run_result = PlaybookRunResult.tally(
        step_results,
        passed=passed,
        playbook_name=definition.name,
        playbook_version=definition.version,
        playbook_path=playbook_path,
        start_time=start_time,
        end_time=end_time,
        total_duration_ms=total_duration_ms,
        final_variables=dict(context.variables),
        final_outputs=dict(context.outputs),
        collected={key: list(values) for key, values in context.collected.items()},
        artifacts_dir=str(run_dir),
        error=error,
    )

    if config.write_artifacts:
        write_playbook_result(run_dir, run_result)

    context.emit_progress(
        PlaybookProgress(
            phase="complete",
            step_index=context.total_steps,
            total_steps=context.total_steps,
            message=(
                f"Playbook completed successfully in {format_duration(total_duration_ms)}"
                if passed
                else f"Playbook failed: {error or 'See step results'}"
            ),
            percent_complete=100,
        )
    )

    run_logger.info(
        "playbook_run_complete",
        name=definition.name,
        passed=passed,
        steps_executed=run_result.steps_executed,
        steps_failed=run_result.steps_failed,
        steps_skipped=run_result.steps_skipped,
        duration_ms=total_duration_ms,
    )

    return PlaybookRunResponse(success=True, data=run_result)


def write_playbook_result(directory: Path, result: PlaybookRunResult) -> None:
    """Write result.json and summary.txt; failures are logged, not raised."""
    try:
        (directory / "result.json").write_text(
            format_playbook_result_as_json(result), encoding="utf-8"
        )
        (directory / "summary.txt").write_text(
            format_playbook_result_as_text(result), encoding="utf-8"
        )
    except OSError as e:
        logger.warning("playbook_result_write_failed", path=str(directory), error=str(e))
