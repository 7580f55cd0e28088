"""Playbook loader for parsing and validating YAML playbook definitions.

This module provides:
- YAML playbook parsing into Pydantic v2 models
- Resolution of playbook names against a playbooks directory
- Structural validation of steps, loops and failure handlers
- Discovery of the playbooks available in a directory
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Literal

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from playbook_runner.config import DEFAULT_PLAYBOOKS_DIR

logger = structlog.get_logger()

BUILTIN_PLAYBOOKS = (
    "Feature-Ship-Loop",
    "Regression-Check",
    "Crash-Hunt",
    "Design-Review",
    "Performance-Check",
)

PLAYBOOK_FILENAME = "playbook.yaml"
COMMON_DIR = "Common"
COMMON_SUBDIRS = ("flows", "screens", "assertions")

_TIMEOUT_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m)?\s*$")


# =============================================================================
# Exceptions
# =============================================================================


class PlaybookValidationError(Exception):
    """Raised when a playbook cannot be parsed into a definition."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


class PlaybookNotFoundError(FileNotFoundError):
    """Raised when no playbook.yaml exists for a name or path."""


# =============================================================================
# Helpers
# =============================================================================


def parse_timeout(value: Any, default: float | None = None) -> float | None:
    """Convert a timeout value to seconds.

    Numbers are taken as seconds. Strings accept an optional unit suffix:
    ``500ms``, ``30s`` (the default unit) or ``5m``.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)

    match = _TIMEOUT_PATTERN.match(str(value))
    if not match:
        return default

    amount = float(match.group(1))
    unit = match.group(2) or "s"
    if unit == "ms":
        return amount / 1000.0
    if unit == "m":
        return amount * 60.0
    return amount


# =============================================================================
# Playbook Models
# =============================================================================


class InputSpec(BaseModel):
    """Declaration of one playbook input parameter."""

    model_config = ConfigDict(extra="allow")

    type: Literal["string", "number", "boolean", "array", "object"] | None = None
    required: bool = False
    default: Any = None
    description: str = ""

    @property
    def has_default(self) -> bool:
        """Whether the playbook declared a default (an explicit null counts)."""
        return "default" in self.model_fields_set


class LoopUntil(BaseModel):
    """Termination settings for a condition-driven loop."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    timeout: str | float | None = None
    or_: str | None = Field(default=None, alias="or")


class Step(BaseModel):
    """A single step in a playbook."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str | None = None
    action: str | None = None
    inputs: dict[str, Any] = Field(default_factory=dict)
    store_as: str | None = None
    condition: str | None = None
    on_failure: list[Step] = Field(default_factory=list)
    continue_on_error: bool | None = None
    timeout: float | None = None
    loop: Any = None
    as_: str = Field(default="item", alias="as")
    steps: list[Step] = Field(default_factory=list)
    loop_until: LoopUntil | None = None
    message: str | None = None
    reason: str | None = None

    @field_validator("inputs", mode="before")
    @classmethod
    def parse_inputs(cls, v: Any) -> dict[str, Any]:
        """Treat a missing inputs block as empty."""
        return v or {}

    @field_validator("on_failure", "steps", mode="before")
    @classmethod
    def parse_step_list(cls, v: Any) -> list[Any]:
        """Treat a missing step list as empty."""
        return v or []

    @field_validator("timeout", mode="before")
    @classmethod
    def parse_step_timeout(cls, v: Any) -> float | None:
        """Accept timeouts like 30, "30s", "500ms" or "5m"."""
        if v is None:
            return None
        seconds = parse_timeout(v)
        if seconds is None:
            raise ValueError(f"Invalid timeout: {v!r}")
        if seconds <= 0:
            raise ValueError(f"Timeout must be positive, got {v!r}")
        return seconds

    @property
    def is_loop(self) -> bool:
        """Whether this step iterates over nested steps."""
        return self.loop is not None or self.loop_until is not None

    def display_name(self, index: int, prefix: str = "Step") -> str:
        """Name used in results when the step has none."""
        return self.name or f"{prefix} {index + 1}"


Step.model_rebuild()


class PlaybookDefinition(BaseModel):
    """A complete playbook definition."""

    model_config = ConfigDict(extra="allow")

    name: str = Field(description="Playbook name")
    description: str | None = None
    version: str | None = None
    inputs: dict[str, InputSpec] = Field(default_factory=dict)
    variables: dict[str, Any] = Field(default_factory=dict)
    steps: list[Step] = Field(description="Ordered steps to execute")

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        """Ensure playbook name is not empty."""
        if not v or not v.strip():
            raise ValueError("Playbook name cannot be empty")
        return v.strip()

    @field_validator("version", mode="before")
    @classmethod
    def version_as_string(cls, v: Any) -> str | None:
        """YAML reads `version: 1.0` as a float."""
        if v is None:
            return None
        return str(v)

    @field_validator("inputs", "variables", mode="before")
    @classmethod
    def parse_mapping(cls, v: Any) -> dict[str, Any]:
        """Treat a missing mapping as empty."""
        return v or {}


# =============================================================================
# Validation Result
# =============================================================================


class ValidationResult(BaseModel):
    """Result of playbook validation."""

    model_config = ConfigDict(extra="allow")

    valid: bool = Field(description="Whether the playbook is valid")
    errors: list[str] = Field(default_factory=list, description="List of validation errors")
    warnings: list[str] = Field(default_factory=list, description="List of validation warnings")


class PlaybookInfo(BaseModel):
    """Metadata about a playbook found in a playbooks directory."""

    id: str
    name: str
    description: str | None = None
    version: str | None = None
    config_path: Path
    directory: Path
    built_in: bool = False


# =============================================================================
# Playbook Loader
# =============================================================================


class PlaybookLoader:
    """Loader for YAML playbook definitions.

    Example:
        loader = PlaybookLoader("~/.maestro/playbooks/iOS")
        playbook = loader.load("Regression-Check")
        result = loader.validate(playbook)
        if not result.valid:
            print(f"Validation errors: {result.errors}")
    """

    def __init__(self, playbooks_dir: str | Path | None = None) -> None:
        """Initialize the playbook loader.

        Args:
            playbooks_dir: Directory searched when a playbook is given by name
        """
        self.playbooks_dir = (
            Path(playbooks_dir).expanduser() if playbooks_dir is not None else DEFAULT_PLAYBOOKS_DIR
        )
        self._logger = logger.bind(component="playbook_loader")

    def resolve_path(self, name_or_path: str | Path) -> Path:
        """Map a playbook name or YAML path to its config file."""
        candidate = Path(name_or_path).expanduser()
        if candidate.suffix in (".yaml", ".yml"):
            return candidate if candidate.is_absolute() else candidate.resolve()
        return self.playbooks_dir / str(name_or_path) / PLAYBOOK_FILENAME

    def load(self, name_or_path: str | Path) -> PlaybookDefinition:
        """Load a playbook by name or from a YAML file.

        Args:
            name_or_path: Playbook directory name or path to a YAML file

        Returns:
            Parsed PlaybookDefinition

        Raises:
            PlaybookNotFoundError: If the file doesn't exist
            PlaybookValidationError: If the YAML or its structure is invalid
        """
        path = self.resolve_path(name_or_path)

        if not path.exists():
            raise PlaybookNotFoundError(f"Playbook not found: {path}")

        self._logger.info("loading_playbook", path=str(path))

        try:
            with open(path, encoding="utf-8") as f:
                content = f.read()
        except UnicodeDecodeError as e:
            raise PlaybookValidationError(f"Playbook is not valid UTF-8: {path}: {e}") from e

        playbook = self.load_from_string(content, source=str(path))

        self._logger.info(
            "playbook_loaded",
            name=playbook.name,
            version=playbook.version,
            steps=len(playbook.steps),
        )

        return playbook

    def load_from_string(self, content: str, source: str = "<string>") -> PlaybookDefinition:
        """Load a playbook from a YAML string.

        Raises:
            PlaybookValidationError: If the YAML or its structure is invalid
        """
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise PlaybookValidationError(f"Invalid YAML in {source}: {e}") from e

        if not isinstance(data, dict):
            raise PlaybookValidationError(f"Invalid playbook format in {source}")

        bad_keys = [key for key in data if not isinstance(key, str)]
        if bad_keys:
            raise PlaybookValidationError(
                f"Playbook keys must be strings in {source}: {bad_keys!r}"
            )

        if not isinstance(data.get("name"), str) or not data["name"]:
            raise PlaybookValidationError(f"Playbook must have a 'name' field: {source}")

        if not isinstance(data.get("steps"), list):
            raise PlaybookValidationError(f"Playbook must have a 'steps' array: {source}")

        try:
            return PlaybookDefinition.model_validate(data)
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            ]
            raise PlaybookValidationError(
                f"Failed to parse playbook {source}: {'; '.join(errors)}", errors
            ) from e

    def validate(self, playbook: PlaybookDefinition) -> ValidationResult:
        """Validate a playbook's structure.

        Checks:
        - The playbook has at least one step
        - Every step has an action, a loop or a loop_until
        - Nested loop steps and on_failure steps, recursively
        - Required inputs that also declare a default (warning)
        """
        errors: list[str] = []
        warnings: list[str] = []

        if not playbook.steps:
            errors.append("Playbook must have at least one step")

        for index, step in enumerate(playbook.steps):
            self._validate_step(step, step.display_name(index), errors, warnings)

        for key, spec in playbook.inputs.items():
            if spec.required and spec.has_default:
                warnings.append(f"Input '{key}' is marked required but has a default value")

        result = ValidationResult(valid=not errors, errors=errors, warnings=warnings)

        self._logger.info(
            "validation_complete",
            name=playbook.name,
            valid=result.valid,
            error_count=len(errors),
            warning_count=len(warnings),
        )

        return result

    def _validate_step(
        self,
        step: Step,
        step_id: str,
        errors: list[str],
        warnings: list[str],
    ) -> None:
        """Validate a single step and its nested step lists."""
        if not step.action and not step.is_loop:
            errors.append(f"{step_id}: Step must have an 'action', 'loop', or 'loop_until' field")

        for index, nested in enumerate(step.steps):
            nested_id = nested.name or f"{step_id} > Nested Step {index + 1}"
            self._validate_step(nested, nested_id, errors, warnings)

        for index, failure_step in enumerate(step.on_failure):
            failure_id = failure_step.name or f"{step_id} > Failure Step {index + 1}"
            self._validate_step(failure_step, failure_id, errors, warnings)

        if not step.name and step.action:
            warnings.append(f"{step_id}: Consider adding a 'name' field for better readability")

    def list_playbooks(self) -> list[PlaybookInfo]:
        """List the valid playbooks in the playbooks directory."""
        playbooks: list[PlaybookInfo] = []

        if not self.playbooks_dir.is_dir():
            return playbooks

        for entry in sorted(self.playbooks_dir.iterdir()):
            if not entry.is_dir() or entry.name == COMMON_DIR or entry.name.startswith("."):
                continue

            config_path = entry / PLAYBOOK_FILENAME
            if not config_path.exists():
                continue

            try:
                config = self.load(entry.name)
            except (PlaybookValidationError, OSError) as e:
                self._logger.warning("skipping_invalid_playbook", path=str(config_path), error=str(e))
                continue

            playbooks.append(
                PlaybookInfo(
                    id=entry.name,
                    name=config.name,
                    description=config.description,
                    version=config.version,
                    config_path=config_path,
                    directory=entry,
                    built_in=entry.name in BUILTIN_PLAYBOOKS,
                )
            )

        return playbooks

    def get_playbook_info(self, playbook_id: str) -> PlaybookInfo | None:
        """Get metadata for one playbook by directory name."""
        for info in self.list_playbooks():
            if info.id == playbook_id:
                return info
        return None

    def playbook_exists(self, playbook_id: str) -> bool:
        """Check whether <playbooks_dir>/<id>/playbook.yaml exists."""
        return (self.playbooks_dir / playbook_id / PLAYBOOK_FILENAME).exists()

    def ensure_playbooks_directory(self) -> Path:
        """Create the playbooks directory layout, including built-in slots."""
        self.playbooks_dir.mkdir(parents=True, exist_ok=True)
        for playbook_id in BUILTIN_PLAYBOOKS:
            (self.playbooks_dir / playbook_id).mkdir(exist_ok=True)
        for subdir in COMMON_SUBDIRS:
            (self.playbooks_dir / COMMON_DIR / subdir).mkdir(parents=True, exist_ok=True)
        return self.playbooks_dir
