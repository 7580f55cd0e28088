"""Playbook loading and execution for iOS automation runs.

This package provides:
- YAML playbook parsing and validation
- Template/expression resolution against a run's context
- Sequential step execution with loops, conditions and failure handlers
- Result rendering as markdown, JSON, text or a compact line
"""

from playbook_runner.playbook.actions import (
    BUILTIN_ACTIONS,
    ActionHandler,
    ActionRegistry,
    ActionResult,
    create_action_registry,
)
from playbook_runner.playbook.context import (
    ExecutionContext,
    LoopFrame,
    PlaybookProgress,
    StepExecutionEvent,
)
from playbook_runner.playbook.executor import StepExecutor, count_steps
from playbook_runner.playbook.expressions import (
    evaluate_condition,
    evaluate_expression,
    resolve_object,
    resolve_value,
)
from playbook_runner.playbook.formatters import (
    format_duration,
    format_playbook_result,
    format_playbook_result_as_json,
    format_playbook_result_as_text,
    format_playbook_result_compact,
    get_formatter,
)
from playbook_runner.playbook.loader import (
    InputSpec,
    LoopUntil,
    PlaybookDefinition,
    PlaybookInfo,
    PlaybookLoader,
    PlaybookNotFoundError,
    PlaybookValidationError,
    Step,
    ValidationResult,
)
from playbook_runner.playbook.results import (
    PlaybookRunResponse,
    PlaybookRunResult,
    StepResult,
)
from playbook_runner.playbook.runner import (
    apply_input_defaults,
    run_playbook,
    validate_inputs,
)

__all__ = [
    # Loader
    "PlaybookLoader",
    "PlaybookDefinition",
    "PlaybookInfo",
    "InputSpec",
    "LoopUntil",
    "Step",
    "ValidationResult",
    "PlaybookValidationError",
    "PlaybookNotFoundError",
    # Expressions
    "resolve_value",
    "resolve_object",
    "evaluate_expression",
    "evaluate_condition",
    # Actions
    "ActionHandler",
    "ActionRegistry",
    "ActionResult",
    "BUILTIN_ACTIONS",
    "create_action_registry",
    # Execution
    "ExecutionContext",
    "LoopFrame",
    "PlaybookProgress",
    "StepExecutionEvent",
    "StepExecutor",
    "count_steps",
    "run_playbook",
    "validate_inputs",
    "apply_input_defaults",
    # Results
    "StepResult",
    "PlaybookRunResult",
    "PlaybookRunResponse",
    # Formatters
    "format_duration",
    "format_playbook_result",
    "format_playbook_result_as_json",
    "format_playbook_result_as_text",
    "format_playbook_result_compact",
    "get_formatter",
]
