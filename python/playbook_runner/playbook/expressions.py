"""Template and expression resolution against an execution context.

Placeholders look like ``{{ inputs.scheme }}`` or
``{{ outputs.build.bundle_id | default('unknown') }}``. The grammar is
deliberately small: a dotted path rooted in one of the namespaces below,
followed by optional pipe filters (``default``, ``length``, ``json``).

Missing paths resolve to ``None``; nothing in this module raises on a
lookup miss.
"""

from __future__ import annotations

import json
import re
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from playbook_runner.playbook.context import ExecutionContext

logger = structlog.get_logger()

# {{ expression }} anywhere in a string
TEMPLATE_PATTERN = re.compile(r"\{\{\s*(.+?)\s*\}\}")
# A string that is exactly one placeholder
FULL_TEMPLATE_PATTERN = re.compile(r"\{\{\s*(.+?)\s*\}\}")
RANGE_PATTERN = re.compile(r"^range\(\s*(\d+)\s*\)$")
FILTER_PATTERN = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\s*(?:\((.*)\))?$")
_NUMBER_PATTERN = re.compile(r"^-?\d+(?:\.\d+)?$")


class RootNamespace(str, Enum):
    """Roots a placeholder path may start from."""

    INPUTS = "inputs"
    VARIABLES = "variables"
    OUTPUTS = "outputs"
    COLLECTED = "collected"
    ARTIFACTS_DIR = "artifacts_dir"
    SESSION_ID = "session_id"
    CWD = "cwd"


def _namespace_value(context: ExecutionContext, root: RootNamespace) -> Any:
    if root is RootNamespace.INPUTS:
        return context.inputs
    if root is RootNamespace.VARIABLES:
        return context.variables
    if root is RootNamespace.OUTPUTS:
        return context.outputs
    if root is RootNamespace.COLLECTED:
        return context.collected
    if root is RootNamespace.ARTIFACTS_DIR:
        return context.artifacts_dir
    if root is RootNamespace.SESSION_ID:
        return context.session_id
    return context.cwd


def _walk(value: Any, parts: list[str]) -> Any:
    """Descend into nested mappings and sequences one path segment at a time."""
    if not parts:
        return value
    head, rest = parts[0], parts[1:]
    if isinstance(value, dict):
        if head not in value:
            return None
        return _walk(value[head], rest)
    if isinstance(value, (list, tuple)) and head.lstrip("-").isdigit():
        index = int(head)
        if -len(value) <= index < len(value):
            return _walk(value[index], rest)
    return None


def _lookup_path(context: ExecutionContext, path: str) -> Any:
    parts = [p for p in path.split(".") if p]
    if not parts:
        return None

    head = parts[0]
    try:
        root = RootNamespace(head)
    except ValueError:
        root = None

    if root is not None:
        return _walk(_namespace_value(context, root), parts[1:])

    # Bare names: loop aliases and other variables live in ``variables``
    if head in context.variables:
        return _walk(context.variables[head], parts[1:])

    frame = context.current_loop
    if frame is not None and head == frame.alias:
        return _walk(frame.item, parts[1:])

    return None


def _split_filters(expr: str) -> list[str]:
    """Split on ``|`` characters that are not inside quotes or parentheses."""
    segments: list[str] = []
    current: list[str] = []
    quote: str | None = None
    depth = 0

    for char in expr:
        if quote:
            if char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth = max(depth - 1, 0)
        elif char == "|" and depth == 0:
            segments.append("".join(current).strip())
            current = []
            continue
        current.append(char)

    segments.append("".join(current).strip())
    return segments


def parse_literal(text: str) -> Any:
    """Parse a filter argument: quoted string, boolean, null or number."""
    raw = text.strip()
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in ("'", '"'):
        return raw[1:-1]
    if raw == "true":
        return True
    if raw == "false":
        return False
    if raw in ("null", "none", "None"):
        return None
    if _NUMBER_PATTERN.match(raw):
        return float(raw) if "." in raw else int(raw)
    return raw


def _apply_filter(value: Any, filter_expr: str) -> Any:
    match = FILTER_PATTERN.match(filter_expr)
    if not match:
        logger.warning("invalid_filter_expression", filter=filter_expr)
        return value

    name, args = match.group(1), match.group(2)

    if name == "default":
        if value is None:
            return parse_literal(args) if args is not None else None
        return value

    if name == "length":
        if isinstance(value, (str, list, tuple)):
            return len(value)
        return 0

    if name == "json":
        return json.dumps(value, separators=(",", ":"), default=str)

    logger.warning("unknown_filter", filter=name)
    return value


def evaluate_expression(context: ExecutionContext, expr: str) -> Any:
    """Evaluate a placeholder expression (without the surrounding braces).

    ``range(N)`` is returned unevaluated as the literal text; expanding it
    into a sequence is the job of loop handling.
    """
    trimmed = expr.strip()

    segments = _split_filters(trimmed)
    if len(segments) > 1:
        value = evaluate_expression(context, segments[0])
        for filter_expr in segments[1:]:
            value = _apply_filter(value, filter_expr)
        return value

    if RANGE_PATTERN.match(trimmed):
        return trimmed

    return _lookup_path(context, trimmed)


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def resolve_value(context: ExecutionContext, value: Any) -> Any:
    """Resolve placeholders in a value.

    - A string that is exactly one placeholder resolves to the typed value.
    - Placeholders embedded in other text are interpolated as strings.
    - Lists and dicts are resolved recursively; other values pass through.
    """
    if isinstance(value, str):
        full_match = FULL_TEMPLATE_PATTERN.fullmatch(value)
        if full_match and "{{" not in full_match.group(1):
            return evaluate_expression(context, full_match.group(1))

        if "{{" in value:
            return TEMPLATE_PATTERN.sub(
                lambda m: _stringify(evaluate_expression(context, m.group(1))), value
            )

        return value

    if isinstance(value, list):
        return [resolve_value(context, item) for item in value]

    if isinstance(value, tuple):
        return tuple(resolve_value(context, item) for item in value)

    if isinstance(value, dict):
        return resolve_object(context, value)

    return value


def resolve_object(context: ExecutionContext, obj: dict[str, Any]) -> dict[str, Any]:
    """Resolve every value of a mapping, e.g. a step's ``inputs``."""
    return {key: resolve_value(context, value) for key, value in obj.items()}


def is_truthy(value: Any) -> bool:
    """Truthiness where only None, False, zero, NaN and the empty string are false.

    Empty lists and mappings are true.
    """
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value != 0 and value == value
    if isinstance(value, str):
        return value != ""
    return True


def evaluate_condition(context: ExecutionContext, expr: str) -> bool:
    """Evaluate a condition; unresolved references are false, never errors."""
    try:
        text = expr.strip()
        if not FULL_TEMPLATE_PATTERN.fullmatch(text):
            text = f"{{{{ {text} }}}}"
        return is_truthy(resolve_value(context, text))
    except Exception as e:
        logger.warning("condition_evaluation_error", condition=expr, error=str(e))
        return False
