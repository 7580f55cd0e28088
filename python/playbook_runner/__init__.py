"""
playbook_runner - declarative iOS automation playbooks

Runs YAML playbooks made of named steps: action dispatch through a pluggable
registry, ``{{ ... }}`` templates over inputs/variables/outputs, conditions,
loops over arrays or ``range(N)``, ``loop_until`` polling, failure handlers,
per-step timeouts and dry runs.

Submodules:
    - playbook_runner.playbook: loader, expressions, executor, runner, formatters
    - playbook_runner.config: RunnerConfig settings
    - playbook_runner.artifacts: per-session artifact directories
    - playbook_runner.cli: ``playbook-runner`` command

Example:
    Run a playbook and print a summary::

        import asyncio
        from playbook_runner import run_playbook, format_playbook_result_compact

        response = asyncio.run(run_playbook("Regression-Check", {"scheme": "App"}))
        if response.success:
            print(format_playbook_result_compact(response.data))
"""

from playbook_runner.config import RunnerConfig
from playbook_runner.playbook import (
    ActionRegistry,
    ActionResult,
    PlaybookLoader,
    PlaybookRunResponse,
    PlaybookRunResult,
    StepResult,
    format_playbook_result,
    format_playbook_result_as_json,
    format_playbook_result_as_text,
    format_playbook_result_compact,
    run_playbook,
)

__version__ = "0.1.0"

__all__ = [
    "RunnerConfig",
    "run_playbook",
    "PlaybookLoader",
    "ActionRegistry",
    "ActionResult",
    "StepResult",
    "PlaybookRunResult",
    "PlaybookRunResponse",
    "format_playbook_result",
    "format_playbook_result_as_json",
    "format_playbook_result_as_text",
    "format_playbook_result_compact",
]
