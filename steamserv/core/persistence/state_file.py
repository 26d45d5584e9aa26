"""
State file persistence — atomic read/write for RegistryState.

State is stored as JSON in <state_dir>/servers.json. Writes are atomic
(write to temp file, then rename) so a crash mid-write leaves either
the old file or the new one, never half of each.

Unlike most caches, a state file that exists but cannot be read is an
error: the registry refuses to guess which servers are installed.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from steamserv.core.errors import CorruptStateError
from steamserv.core.models.state import RegistryState

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = "servers.json"


def default_state_path(state_dir: Path) -> Path:
    """Get the default state file path inside a state directory."""
    return state_dir / DEFAULT_STATE_FILE


def atomic_write(path: Path, content: str) -> None:
    """Write text to ``path`` via a temp file in the same directory + rename.

    Args:
        path: Target file.
        content: Full file content.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}_",
        suffix=".tmp",
    )
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        tmp.rename(path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def load_state(path: Path) -> RegistryState:
    """Load registry state from a JSON file.

    Args:
        path: Path to the state JSON file.

    Returns:
        RegistryState. If the file doesn't exist, returns a fresh state.

    Raises:
        CorruptStateError: If the file exists but is unreadable, not JSON,
            or does not match the schema.
    """
    if not path.is_file():
        logger.info("No state file at %s — starting fresh", path)
        return RegistryState()

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CorruptStateError(f"Cannot read state file {path}: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CorruptStateError(f"State file {path} is not valid JSON: {e}") from e

    try:
        state = RegistryState.model_validate(data)
    except ValidationError as e:
        raise CorruptStateError(f"State file {path} does not match the schema: {e}") from e

    logger.debug("Loaded state from %s (%d servers)", path, len(state.servers))
    return state


def save_state(state: RegistryState, path: Path) -> None:
    """Save registry state to a JSON file (atomic write).

    Args:
        state: The state to save.
        path: Target path for the state file.
    """
    state.touch()

    data = state.model_dump(mode="json")
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    try:
        atomic_write(path, content)
        logger.debug("State saved to %s", path)
    except Exception as e:
        logger.error("Failed to save state to %s: %s", path, e)
        raise
