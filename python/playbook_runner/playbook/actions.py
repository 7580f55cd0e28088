"""Action handlers and the registry steps dispatch through.

An action handler is an async callable ``(context, inputs) -> ActionResult``.
Handlers may also return a plain mapping with ``success``/``data``/``error``
keys, which is normalized into an ActionResult.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from playbook_runner.playbook.context import ExecutionContext

logger = structlog.get_logger()

IOS_ACTION_PREFIX = "ios."


# =============================================================================
# Action Result
# =============================================================================


@dataclass
class ActionResult:
    """Result of an action handler."""

    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> ActionResult:
        """Create a successful result."""
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, data: Any = None) -> ActionResult:
        """Create a failed result."""
        return cls(success=False, data=data, error=error)

    @classmethod
    def coerce(cls, value: Any) -> ActionResult:
        """Normalize a handler's return value."""
        if isinstance(value, ActionResult):
            return value
        if isinstance(value, Mapping):
            return cls(
                success=bool(value.get("success", False)),
                data=value.get("data"),
                error=value.get("error"),
            )
        raise TypeError(
            f"Action handler must return ActionResult or a mapping, got {type(value).__name__}"
        )


# =============================================================================
# Action Handler Protocol
# =============================================================================


class ActionHandler(Protocol):
    """Protocol for action handlers."""

    async def __call__(
        self, context: ExecutionContext, inputs: dict[str, Any]
    ) -> ActionResult | Mapping[str, Any]:
        """Execute an action with resolved inputs.

        Args:
            context: The run's execution context
            inputs: Step inputs with placeholders already resolved

        Returns:
            ActionResult (or equivalent mapping) describing the outcome
        """
        ...


# =============================================================================
# Action Registry
# =============================================================================


class ActionRegistry:
    """Registry mapping action names to handlers."""

    def __init__(self, handlers: Mapping[str, ActionHandler] | None = None) -> None:
        self._handlers: dict[str, ActionHandler] = dict(handlers or {})

    def register(self, name: str, handler: ActionHandler) -> None:
        """Register (or replace) a handler."""
        logger.debug("action_registered", name=name)
        self._handlers[name] = handler

    def get(self, name: str) -> ActionHandler | None:
        """Look up a handler, falling back to the ``ios.``-prefixed name."""
        handler = self._handlers.get(name)
        if handler is None and not name.startswith(IOS_ACTION_PREFIX):
            handler = self._handlers.get(f"{IOS_ACTION_PREFIX}{name}")
        return handler

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def list_actions(self) -> list[str]:
        """List all registered action names."""
        return sorted(self._handlers)

    def with_overrides(self, custom: Mapping[str, ActionHandler] | None) -> ActionRegistry:
        """Copy of this registry where ``custom`` entries shadow existing ones."""
        merged = ActionRegistry(self._handlers)
        for name, handler in (custom or {}).items():
            merged.register(name, handler)
        return merged


# =============================================================================
# Built-in Actions
# =============================================================================


# Control flow


async def complete_loop(context: ExecutionContext, inputs: dict[str, Any]) -> ActionResult:
    logger.debug("complete_loop_called")
    return ActionResult.ok({"action": "complete_loop"})


async def exit_loop(context: ExecutionContext, inputs: dict[str, Any]) -> ActionResult:
    logger.debug("exit_loop_called", reason=inputs.get("reason") or "No reason")
    return ActionResult.ok({"action": "exit_loop", "reason": inputs.get("reason")})


async def increment_iteration(context: ExecutionContext, inputs: dict[str, Any]) -> ActionResult:
    """Bump ``variables.iteration`` by one."""
    iteration = context.variables.get("iteration") or 0
    context.variables["iteration"] = iteration + 1
    return ActionResult.ok({"iteration": context.variables["iteration"]})


async def wait(context: ExecutionContext, inputs: dict[str, Any]) -> ActionResult:
    """Sleep for ``seconds`` (default 1); returns immediately in dry-run mode."""
    seconds = inputs.get("seconds") or 1
    if not context.dry_run:
        await asyncio.sleep(float(seconds))
    return ActionResult.ok({"waited": seconds})


# Reporting


async def report_status(context: ExecutionContext, inputs: dict[str, Any]) -> ActionResult:
    logger.info("status_reported", passed=inputs.get("passed"), failed=inputs.get("failed"))
    return ActionResult.ok({"reported": True})


async def report_build_errors(context: ExecutionContext, inputs: dict[str, Any]) -> ActionResult:
    logger.info("build_errors_reported")
    return ActionResult.ok({"reported": True})


# Collection


async def record_diff(context: ExecutionContext, inputs: dict[str, Any]) -> ActionResult:
    """Append ``{flow, diffs}`` to ``collected.diffs``."""
    context.collect("diffs", {"flow": inputs.get("flow"), "diffs": inputs.get("diffs")})
    return ActionResult.ok({"recorded": True})


async def record_crash(context: ExecutionContext, inputs: dict[str, Any]) -> ActionResult:
    """Append the step inputs to ``collected.crashes``."""
    context.collect("crashes", dict(inputs))
    return ActionResult.ok({"recorded": True})


# Report generation


async def generate_regression_report(
    context: ExecutionContext, inputs: dict[str, Any]
) -> ActionResult:
    logger.info("generating_regression_report", output=inputs.get("output"))
    return ActionResult.ok({"path": inputs.get("output")})


async def generate_crash_report(context: ExecutionContext, inputs: dict[str, Any]) -> ActionResult:
    logger.info("generating_crash_report")
    return ActionResult.ok({"generated": True})


async def generate_design_sheet(context: ExecutionContext, inputs: dict[str, Any]) -> ActionResult:
    logger.info("generating_design_sheet", output=inputs.get("output"))
    return ActionResult.ok({"path": inputs.get("output")})


async def generate_performance_report(
    context: ExecutionContext, inputs: dict[str, Any]
) -> ActionResult:
    logger.info("generating_performance_report")
    return ActionResult.ok({"generated": True})


# Crash hunt


async def choose_action(context: ExecutionContext, inputs: dict[str, Any]) -> ActionResult:
    return ActionResult.ok({"action": "tap", "target": "random"})


async def execute_action(context: ExecutionContext, inputs: dict[str, Any]) -> ActionResult:
    return ActionResult.ok({"executed": True})


async def check_for_crash(context: ExecutionContext, inputs: dict[str, Any]) -> ActionResult:
    return ActionResult.ok({"crashed": False})


# Performance


async def measure_launch_time(context: ExecutionContext, inputs: dict[str, Any]) -> ActionResult:
    return ActionResult.ok({"launch_time": 0})


async def start_measurements(context: ExecutionContext, inputs: dict[str, Any]) -> ActionResult:
    return ActionResult.ok({"started": True})


async def stop_measurements(context: ExecutionContext, inputs: dict[str, Any]) -> ActionResult:
    return ActionResult.ok({"stopped": True})


BUILTIN_ACTIONS: dict[str, ActionHandler] = {
    "complete_loop": complete_loop,
    "exit_loop": exit_loop,
    "increment_iteration": increment_iteration,
    "wait": wait,
    "report_status": report_status,
    "report_build_errors": report_build_errors,
    "record_diff": record_diff,
    "record_crash": record_crash,
    "generate_regression_report": generate_regression_report,
    "generate_crash_report": generate_crash_report,
    "generate_design_sheet": generate_design_sheet,
    "generate_performance_report": generate_performance_report,
    "choose_action": choose_action,
    "execute_action": execute_action,
    "check_for_crash": check_for_crash,
    "measure_launch_time": measure_launch_time,
    "start_measurements": start_measurements,
    "stop_measurements": stop_measurements,
}


def create_action_registry(
    custom_actions: Mapping[str, ActionHandler] | None = None,
) -> ActionRegistry:
    """Create the built-in registry, with ``custom_actions`` taking precedence."""
    return ActionRegistry(BUILTIN_ACTIONS).with_overrides(custom_actions)
