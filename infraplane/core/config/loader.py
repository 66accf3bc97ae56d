"""
Stack file loader — locate stack.yml and parse it into a Stack.

Accepted layouts:

    name: web-tier              stack:
    resources:                    name: web-tier
      - id: vpc                 resources:
        type: null_vpc            vpc:
                                    type: null_vpc

Resources may be a list of declarations with ``id`` keys or a mapping
keyed by id. Every problem found by the schema is reported with its
location (``resources[1].type: ...``) in ConfigError.errors.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from infraplane.core.errors import ConfigError
from infraplane.core.models.stack import Stack

logger = logging.getLogger(__name__)

STACK_FILENAMES = ("stack.yml", "stack.yaml")

# Keys allowed beside a "stack:" identity block
_TOP_LEVEL_KEYS = ("version", "provider", "variables", "resources")


def find_stack_file(start_dir: Path | None = None) -> Path | None:
    """Nearest stack.yml (or stack.yaml) in ``start_dir`` or a parent."""
    current = (start_dir or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        for name in STACK_FILENAMES:
            candidate = directory / name
            if candidate.is_file():
                return candidate
    return None


def locate_stack(config_path: Path | None = None) -> Path:
    """The explicit ``--config`` path, else the nearest stack file.

    Raises:
        ConfigError: Nothing was given and no stack file was found.
    """
    if config_path is not None:
        return config_path
    found = find_stack_file()
    if found is None:
        raise ConfigError(
            f"No {STACK_FILENAMES[0]} found in this directory or its parents; "
            "create one or pass --config."
        )
    return found


def stack_root(config_path: Path) -> Path:
    """Directory holding the stack file; .state/ lives here."""
    return config_path.parent.resolve()


def _location(loc: tuple[Any, ...]) -> str:
    text = ""
    for part in loc:
        text += f"[{part}]" if isinstance(part, int) else (f".{part}" if text else str(part))
    return text or "stack"


def _normalize_resources(raw: Any, path: Path) -> Any:
    """Turn ``{id: {type: ...}}`` into the list form."""
    if not isinstance(raw, dict):
        return raw

    resources = []
    for rid, body in raw.items():
        if not isinstance(body, dict):
            raise ConfigError(
                f"Invalid stack configuration in {path}",
                [f"resources.{rid}: expected a mapping, got {type(body).__name__}"],
            )
        if "id" in body and body["id"] != rid:
            raise ConfigError(
                f"Invalid stack configuration in {path}",
                [f"resources.{rid}: id '{body['id']}' does not match its key"],
            )
        resources.append({**body, "id": str(rid)})
    return resources


def load_stack(path: Path | None = None) -> Stack:
    """Load and validate a stack file.

    Args:
        path: Stack file; located with :func:`locate_stack` if None.

    Raises:
        ConfigError: The file is missing, is not YAML, or fails the schema.
    """
    path = locate_stack(path)
    if not path.is_file():
        raise ConfigError(f"Stack file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    if isinstance(data.get("stack"), dict):
        stack_data = dict(data["stack"])
        for key in _TOP_LEVEL_KEYS:
            if key in data:
                stack_data.setdefault(key, data[key])
    else:
        stack_data = dict(data)

    if "resources" in stack_data:
        stack_data["resources"] = _normalize_resources(stack_data["resources"], path)

    try:
        stack = Stack.model_validate(stack_data)
    except PydanticValidationError as e:
        raise ConfigError(
            f"Invalid stack configuration in {path}",
            [f"{_location(err['loc'])}: {err['msg']}" for err in e.errors()],
        ) from e

    logger.info("Loaded stack '%s' with %d resources", stack.name, len(stack.resources))
    return stack
