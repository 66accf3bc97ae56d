"""
Live-state snapshot on disk: .state/current.json.

The snapshot is the only record of what an apply created, so it is
handled strictly:

    missing          → fresh, empty state (nothing applied yet)
    unreadable/bad   → StateError; the operation stops before planning
    other stack      → StateError (stack.yml renamed or copied elsewhere)

Saves replace the file atomically and keep the snapshot they replace as
.state/previous.json, so a bad apply can be inspected or rolled back by
hand.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from infraplane.core.errors import StateError
from infraplane.core.models.state import StackState

logger = logging.getLogger(__name__)

STATE_DIR = ".state"
STATE_FILE = "current.json"
BACKUP_FILE = "previous.json"

# Newest snapshot layout this version can read
STATE_SCHEMA_VERSION = 1


def default_state_path(stack_root: Path) -> Path:
    """Snapshot path for the stack rooted at ``stack_root``."""
    return stack_root / STATE_DIR / STATE_FILE


def backup_path(path: Path) -> Path:
    return path.with_name(BACKUP_FILE)


def load_state(path: Path, stack_name: str = "") -> StackState:
    """Read the snapshot at ``path``.

    Args:
        path: Snapshot file.
        stack_name: When given, a snapshot recorded for a different
            stack is rejected.

    Returns:
        The recorded StackState, or an empty one if no file exists yet.

    Raises:
        StateError: The file exists but is unreadable, is not valid
            JSON, has an unknown layout, or belongs to another stack.
    """
    if not path.exists():
        logger.debug("No state snapshot at %s", path)
        return StackState()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise StateError(path, f"cannot read state snapshot: {e}") from e
    except json.JSONDecodeError as e:
        raise StateError(
            path,
            f"state snapshot is not valid JSON ({e}); restore it from "
            f"{BACKUP_FILE} or fix it by hand",
        ) from e

    if not isinstance(data, dict):
        raise StateError(path, "state snapshot must be a JSON object")

    version = data.get("schema_version", 1)
    if not isinstance(version, int) or version > STATE_SCHEMA_VERSION:
        raise StateError(
            path,
            f"state schema_version {version!r} is newer than supported "
            f"({STATE_SCHEMA_VERSION})",
        )

    try:
        state = StackState.model_validate(data)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise StateError(path, f"invalid state snapshot: {problems}") from e

    if stack_name and state.stack_name and state.stack_name != stack_name:
        raise StateError(
            path,
            f"snapshot belongs to stack '{state.stack_name}', not '{stack_name}'",
        )

    logger.debug("Loaded %d resource(s) from %s", len(state.resources), path)
    return state


def save_state(state: StackState, path: Path) -> None:
    """Atomically replace the snapshot, keeping the old one as a backup."""
    state.touch()
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(state.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".current_", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        if path.exists():
            shutil.copy2(path, backup_path(path))
        tmp.replace(path)
    except OSError:
        tmp.unlink(missing_ok=True)
        logger.error("Failed to save state to %s", path)
        raise

    logger.debug("Saved %d resource(s) to %s", len(state.resources), path)
