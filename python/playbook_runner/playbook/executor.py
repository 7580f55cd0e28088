"""Step executor for walking a playbook's step lists.

This module provides:
- Sequential step execution against a shared ExecutionContext
- Condition gating, loop expansion (arrays, range(N), loop_until)
- Dry-run simulation, per-step timeouts and continue-on-error policy
- on_failure recovery steps and store_as output capture
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any

import structlog

from playbook_runner.playbook.actions import ActionResult
from playbook_runner.playbook.context import (
    ExecutionContext,
    PlaybookProgress,
    StepExecutionEvent,
)
from playbook_runner.playbook.expressions import (
    RANGE_PATTERN,
    evaluate_condition,
    evaluate_expression,
    resolve_object,
    resolve_value,
)
from playbook_runner.playbook.loader import Step, parse_timeout
from playbook_runner.playbook.results import StepResult

logger = structlog.get_logger()

DEFAULT_LOOP_UNTIL_TIMEOUT = 300.0


@dataclass
class StepListOutcome:
    """Whether a step list ran to its end, and the error that stopped it."""

    success: bool
    error: str | None = None


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def count_steps(steps: list[Step]) -> int:
    """Count steps including loop bodies and on_failure handlers."""
    total = 0
    for step in steps:
        total += 1 + count_steps(step.steps) + count_steps(step.on_failure)
    return total


class StepExecutor:
    """Executes step lists sequentially against one ExecutionContext.

    Step failures never raise out of the executor; they are recorded as
    failed StepResults and decide whether the enclosing list halts.

    Example:
        executor = StepExecutor(context)
        results: list[StepResult] = []
        outcome = await executor.execute_steps(playbook.steps, results)
    """

    def __init__(self, context: ExecutionContext) -> None:
        self._context = context
        self._logger = logger.bind(component="step_executor", session_id=context.session_id)

    async def execute_steps(self, steps: list[Step], results: list[StepResult]) -> StepListOutcome:
        """Execute a step list, appending every StepResult to ``results``.

        Returns a failed outcome as soon as a step fails without
        continue_on_error; later siblings are not executed.
        """
        context = self._context

        for index, step in enumerate(steps):
            step_name = step.display_name(index, prefix="Loop" if step.is_loop else "Step")

            if step.condition and not evaluate_condition(context, step.condition):
                skip_reason = f"Condition not met: {step.condition}"
                self._logger.info("step_skipped_condition", step=step_name, condition=step.condition)
                results.append(
                    StepResult(
                        name=step_name,
                        action=step.action,
                        success=True,
                        skipped=True,
                        skip_reason=skip_reason,
                        loop_context=self._loop_context(),
                    )
                )
                context.emit_step_event(
                    StepExecutionEvent(
                        step=step,
                        index=context.current_step_index,
                        type="skip",
                        skip_reason=skip_reason,
                    )
                )
                context.current_step_index += 1
                continue

            step_result = await self.execute_step(step, index, results)
            results.append(step_result)

            if step_result.success or step_result.skipped:
                continue

            if step.on_failure:
                self._logger.debug("executing_on_failure", step=step_name, count=len(step.on_failure))
                # Recovery outcomes are recorded but never halt anything further
                await self.execute_steps(step.on_failure, results)

            if not (context.continue_on_error or step.continue_on_error):
                self._logger.warning("step_list_halted", step=step_name, error=step_result.error)
                return StepListOutcome(success=False, error=step_result.error)

        return StepListOutcome(success=True)

    async def execute_step(self, step: Step, index: int, results: list[StepResult]) -> StepResult:
        """Execute one step whose condition (if any) already passed."""
        context = self._context
        step_name = step.display_name(index, prefix="Loop" if step.is_loop else "Step")
        start = time.monotonic()

        context.emit_step_event(
            StepExecutionEvent(step=step, index=context.current_step_index, type="start")
        )
        self._report_step_progress(step_name)

        if context.dry_run:
            context.current_step_index += 1
            skip_reason = "Dry run"
            context.emit_step_event(
                StepExecutionEvent(
                    step=step,
                    index=context.current_step_index - 1,
                    type="skip",
                    skip_reason=skip_reason,
                )
            )
            return StepResult(
                name=step_name,
                action="loop" if step.is_loop and not step.action else step.action,
                success=True,
                skipped=True,
                skip_reason=skip_reason,
                loop_context=self._loop_context(),
            )

        if step.is_loop:
            loop_result = await self._execute_loop_step(step, step_name, results)
            context.current_step_index += 1
            return loop_result

        if not step.action:
            context.current_step_index += 1
            return StepResult(
                name=step_name,
                success=True,
                duration_ms=_elapsed_ms(start),
                skipped=True,
                skip_reason="No action defined",
                loop_context=self._loop_context(),
            )

        resolved_inputs = resolve_object(context, step.inputs)

        handler = context.actions.get(step.action)
        if handler is None:
            error = f"Unknown action: {step.action}"
            self._logger.warning("unknown_action", step=step_name, action=step.action)
            return self._finish_action(step, step_name, start, resolved_inputs, ActionResult.fail(error))

        timeout = step.timeout if step.timeout is not None else context.step_timeout

        self._logger.debug(
            "step_execution_start",
            step=step_name,
            action=step.action,
            input_keys=list(resolved_inputs.keys()),
            timeout=timeout,
        )

        try:
            raw = await asyncio.wait_for(handler(context, resolved_inputs), timeout=timeout)
            action_result = ActionResult.coerce(raw)
        except asyncio.TimeoutError:
            action_result = ActionResult.fail(f"Step '{step_name}' timed out after {timeout:g}s")
        except Exception as e:
            self._logger.error("step_handler_raised", step=step_name, action=step.action, error=str(e))
            action_result = ActionResult.fail(str(e) or type(e).__name__)

        if action_result.success and step.store_as:
            context.store_output(step.store_as, action_result.data)

        return self._finish_action(step, step_name, start, resolved_inputs, action_result)

    def _finish_action(
        self,
        step: Step,
        step_name: str,
        start: float,
        resolved_inputs: dict[str, Any],
        action_result: ActionResult,
    ) -> StepResult:
        context = self._context
        duration_ms = _elapsed_ms(start)
        context.current_step_index += 1

        if action_result.success:
            self._logger.info(
                "step_execution_success", step=step_name, action=step.action, duration_ms=duration_ms
            )
        else:
            self._logger.error(
                "step_execution_failed",
                step=step_name,
                action=step.action,
                error=action_result.error,
                duration_ms=duration_ms,
            )

        context.emit_step_event(
            StepExecutionEvent(
                step=step,
                index=context.current_step_index - 1,
                type="complete" if action_result.success else "error",
                resolved_inputs=resolved_inputs,
                result=action_result.data,
                error=action_result.error,
                duration_ms=duration_ms,
            )
        )

        return StepResult(
            name=step_name,
            action=step.action,
            success=action_result.success,
            result=action_result.data,
            error=action_result.error,
            duration_ms=duration_ms,
            loop_context=self._loop_context(),
        )

    async def _execute_loop_step(
        self, step: Step, step_name: str, results: list[StepResult]
    ) -> StepResult:
        """Run a loop step's body once per item, appending nested results."""
        context = self._context
        start = time.monotonic()

        if not step.steps:
            return StepResult(
                name=step_name,
                action="loop",
                success=True,
                duration_ms=_elapsed_ms(start),
                skipped=True,
                skip_reason="No nested steps in loop",
            )

        nested: list[StepResult] = []
        if step.loop is not None:
            outcome, iterations = await self._iterate_items(step, self._loop_items(step), nested)
        else:
            outcome, iterations = await self._iterate_until(step, nested)

        results.extend(nested)

        self._logger.info(
            "loop_complete",
            step=step_name,
            iterations=iterations,
            success=outcome.success,
        )

        return StepResult(
            name=step_name,
            action="loop",
            success=outcome.success,
            result={"iterations": iterations, "nested_results": len(nested)},
            error=outcome.error,
            duration_ms=_elapsed_ms(start),
            loop_context=self._loop_context(),
            loop_summary=True,
        )

    async def _iterate_items(
        self, step: Step, items: list[Any], nested: list[StepResult]
    ) -> tuple[StepListOutcome, int]:
        context = self._context
        iterations = 0

        for index, item in enumerate(items):
            context.push_loop_frame(step.as_, item, index, len(items))
            self._logger.debug("loop_iteration_start", alias=step.as_, index=index, total=len(items))
            try:
                outcome = await self.execute_steps(step.steps, nested)
            finally:
                context.pop_loop_frame()
            iterations += 1
            if not outcome.success:
                return outcome, iterations

        return StepListOutcome(success=True), iterations

    async def _iterate_until(
        self, step: Step, nested: list[StepResult]
    ) -> tuple[StepListOutcome, int]:
        """Repeat the body until ``loop_until.or`` holds or the timeout elapses."""
        context = self._context
        loop_until = step.loop_until
        assert loop_until is not None

        timeout = parse_timeout(
            resolve_value(context, loop_until.timeout), DEFAULT_LOOP_UNTIL_TIMEOUT
        )
        deadline = time.monotonic() + (timeout or DEFAULT_LOOP_UNTIL_TIMEOUT)
        iteration = 0

        while time.monotonic() < deadline:
            if loop_until.or_ and evaluate_condition(context, loop_until.or_):
                break

            context.push_loop_frame(step.as_, iteration, iteration, -1)
            try:
                outcome = await self.execute_steps(step.steps, nested)
            finally:
                context.pop_loop_frame()
            iteration += 1

            if not outcome.success:
                return outcome, iteration

            # Let other tasks run between iterations of a tight loop
            await asyncio.sleep(0)
        else:
            self._logger.info("loop_until_timeout", alias=step.as_, iterations=iteration)

        return StepListOutcome(success=True), iteration

    def _loop_items(self, step: Step) -> list[Any]:
        """Resolve a loop expression into the items to iterate."""
        context = self._context
        expression = step.loop

        if isinstance(expression, str) and "{{" not in expression:
            resolved = evaluate_expression(context, expression)
        else:
            resolved = resolve_value(context, expression)

        if isinstance(resolved, (list, tuple)):
            return list(resolved)

        if isinstance(resolved, str):
            match = RANGE_PATTERN.match(resolved.strip())
            if match:
                return list(range(int(match.group(1))))

        if resolved is None:
            self._logger.warning("loop_expression_unresolved", loop=str(expression))
            return []

        return [resolved]

    def _loop_context(self) -> dict[str, Any] | None:
        frame = self._context.current_loop
        return frame.describe() if frame is not None else None

    def _report_step_progress(self, step_name: str) -> None:
        context = self._context
        total = max(context.total_steps, 1)
        frame = context.current_loop
        context.emit_progress(
            PlaybookProgress(
                phase="executing",
                step_index=context.current_step_index,
                total_steps=context.total_steps,
                step_name=step_name,
                message=f"Executing: {step_name}",
                percent_complete=min(95.0, 5 + (context.current_step_index / total) * 90),
                loop=frame.describe() if frame is not None else None,
            )
        )
