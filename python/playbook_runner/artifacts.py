"""Artifact directory provisioning for playbook sessions."""

from __future__ import annotations

import re
from pathlib import Path

import structlog

from playbook_runner.config import DEFAULT_ARTIFACTS_ROOT

logger = structlog.get_logger()

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def sanitize_filename(name: str) -> str:
    """Make a string safe to use as a single path component."""
    return _UNSAFE_CHARS.sub("-", name).lower()


def get_artifact_directory(session_id: str, root: str | Path | None = None) -> Path:
    """Return the artifact directory for a session, creating it if needed.

    Args:
        session_id: Session the artifacts belong to
        root: Root directory for all sessions (defaults to ~/.maestro/artifacts)

    Returns:
        Path of the session's artifact directory

    Raises:
        OSError: If the directory cannot be created
    """
    base = Path(root) if root is not None else DEFAULT_ARTIFACTS_ROOT
    directory = base / sanitize_filename(session_id or "default")
    directory.mkdir(parents=True, exist_ok=True)
    logger.debug("artifact_directory_ready", session_id=session_id, path=str(directory))
    return directory
