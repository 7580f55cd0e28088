"""Renderers for PlaybookRunResult.

Four pure functions turn a finished run into markdown, JSON, plain text or a
single compact line. ``get_formatter`` looks one up by name.
"""

from __future__ import annotations

import json
from collections.abc import Callable

from playbook_runner.playbook.results import PlaybookRunResult, StepResult

ResultFormatter = Callable[[PlaybookRunResult], str]


def format_duration(ms: int | float) -> str:
    """Render milliseconds as ``850ms``, ``12.3s`` or ``2m 5s``."""
    if ms < 1000:
        return f"{int(ms)}ms"
    if ms < 60000:
        return f"{ms / 1000:.1f}s"
    minutes = int(ms // 60000)
    return f"{minutes}m {(ms % 60000) / 1000:.0f}s"


def _status(passed: bool) -> str:
    return "PASSED" if passed else "FAILED"


def _step_detail(step: StepResult) -> str:
    if step.skipped:
        return f"(skipped: {step.skip_reason})"
    if step.error:
        return f"({step.error})"
    return f"({format_duration(step.duration_ms)})"


def format_playbook_result(result: PlaybookRunResult) -> str:
    """Format a run result as a markdown report."""
    lines: list[str] = []

    lines.append(f"## {'✅' if result.passed else '❌'} Playbook: {result.playbook_name}")
    lines.append("")

    lines.append("| Metric | Value |")
    lines.append("|--------|-------|")
    lines.append(f"| Status | {_status(result.passed)} |")
    lines.append(f"| Steps Executed | {result.steps_executed} |")
    lines.append(f"| Steps Passed | {result.steps_passed} |")
    lines.append(f"| Steps Failed | {result.steps_failed} |")
    lines.append(f"| Steps Skipped | {result.steps_skipped} |")
    lines.append(f"| Duration | {format_duration(result.total_duration_ms)} |")
    lines.append("")

    if result.step_results:
        lines.append("### Step Results")
        lines.append("")
        for step in result.step_results:
            icon = "⏭️" if step.skipped else "✅" if step.success else "❌"
            lines.append(f"- {icon} **{step.name}** {_step_detail(step)}")
        lines.append("")

    if result.error:
        lines.append("### Error")
        lines.append("")
        lines.append("```")
        lines.append(result.error)
        lines.append("```")
        lines.append("")

    lines.append("### Artifacts")
    lines.append("")
    lines.append(f"- Directory: `{result.artifacts_dir}`")
    lines.append("")

    return "\n".join(lines)


def format_playbook_result_as_json(result: PlaybookRunResult) -> str:
    """Format a run result as indented JSON."""
    return json.dumps(result.to_dict(), indent=2, default=str)


def format_playbook_result_as_text(result: PlaybookRunResult) -> str:
    """Format a run result as plain text with section banners."""
    banner = "=" * 60
    rule = "-" * 40
    lines: list[str] = [banner, f"PLAYBOOK: {result.playbook_name}", banner, ""]

    lines.append(f"Status: {_status(result.passed)}")
    lines.append(f"Duration: {format_duration(result.total_duration_ms)}")
    lines.append("")

    lines.extend([rule, "STEPS", rule])
    lines.append(f"  Executed: {result.steps_executed}")
    lines.append(f"  Passed: {result.steps_passed}")
    lines.append(f"  Failed: {result.steps_failed}")
    lines.append(f"  Skipped: {result.steps_skipped}")
    lines.append("")

    if result.step_results:
        lines.extend([rule, "STEP DETAILS", rule])
        for step in result.step_results:
            status = "SKIP" if step.skipped else "PASS" if step.success else "FAIL"
            lines.append(f"  [{status}] {step.name}")
            if step.error:
                lines.append(f"         Error: {step.error}")
            if step.skip_reason:
                lines.append(f"         Reason: {step.skip_reason}")
        lines.append("")

    if result.error:
        lines.extend([rule, "ERROR", rule, result.error, ""])

    lines.append(banner)
    return "\n".join(lines)


def format_playbook_result_compact(result: PlaybookRunResult) -> str:
    """One line: ``[PASS] name 5/5 steps (1.2s)``."""
    status = "PASS" if result.passed else "FAIL"
    return (
        f"[{status}] {result.playbook_name} "
        f"{result.steps_passed}/{result.steps_executed} steps "
        f"({format_duration(result.total_duration_ms)})"
    )


FORMATTERS: dict[str, ResultFormatter] = {
    "markdown": format_playbook_result,
    "json": format_playbook_result_as_json,
    "text": format_playbook_result_as_text,
    "compact": format_playbook_result_compact,
}


def get_formatter(format_name: str) -> ResultFormatter:
    """Get a result formatter by name.

    Args:
        format_name: One of 'markdown', 'json', 'text' or 'compact'

    Returns:
        The matching formatter function

    Raises:
        ValueError: If the format is not supported
    """
    format_lower = format_name.lower()
    if format_lower not in FORMATTERS:
        raise ValueError(
            f"Unsupported format: {format_name}. "
            f"Supported formats: {', '.join(FORMATTERS)}"
        )
    return FORMATTERS[format_lower]
