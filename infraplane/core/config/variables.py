"""
Variable resolution — declared defaults, var files, and --var overrides.

Every value is checked against its declared type before planning.
Any problem (unknown name, missing required value, wrong type) is
collected and raised together as one ValidationError.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import yaml

from infraplane.core.errors import ValidationError
from infraplane.core.models.stack import VariableSpec

logger = logging.getLogger(__name__)

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


def type_matches(var_type: str, value: Any) -> bool:
    """Whether ``value`` satisfies the declared variable type."""
    if var_type == "any":
        return True
    if var_type == "string":
        return isinstance(value, str)
    if var_type == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if var_type == "bool":
        return isinstance(value, bool)
    if var_type == "list":
        return isinstance(value, list)
    if var_type == "map":
        return isinstance(value, dict)
    return False


def coerce_cli_value(var_type: str, raw: str) -> Any:
    """Convert a ``--var`` string to the declared type.

    Raises:
        ValueError: If the string can't represent that type.
    """
    if var_type in ("string", "any"):
        return raw
    if var_type == "number":
        try:
            return int(raw)
        except ValueError:
            return float(raw)
    if var_type == "bool":
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ValueError(f"expected a boolean, got '{raw}'")
    # list / map: accept YAML or JSON flow syntax, e.g. [a, b] or {k: v}
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ValueError(f"cannot parse '{raw}' as {var_type}: {e}") from e


def parse_var_args(args: Iterable[str]) -> dict[str, str]:
    """Split repeated ``NAME=VALUE`` flags into a mapping."""
    values: dict[str, str] = {}
    errors: list[str] = []
    for arg in args:
        name, sep, value = arg.partition("=")
        name = name.strip()
        if not sep or not name:
            errors.append(f"Invalid --var '{arg}' (expected NAME=VALUE)")
            continue
        values[name] = value
    if errors:
        raise ValidationError(errors)
    return values


def load_var_file(path: Path) -> dict[str, Any]:
    """Load a YAML mapping of variable overrides."""
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ValidationError(f"Cannot read var file {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ValidationError(f"Invalid YAML in var file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError(
            f"Expected a YAML mapping in var file {path}, got {type(data).__name__}"
        )
    logger.debug("Loaded %d variable overrides from %s", len(data), path)
    return data


def resolve_variables(
    specs: Mapping[str, VariableSpec],
    file_values: Mapping[str, Any] | None = None,
    cli_values: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Resolve final variable values.

    Precedence: ``--var`` flag > var file > declared default.

    Raises:
        ValidationError: Listing every unknown, missing, or mistyped variable.
    """
    file_values = dict(file_values or {})
    cli_values = dict(cli_values or {})
    errors: list[str] = []

    for name in sorted(set(file_values) | set(cli_values)):
        if name not in specs:
            errors.append(f"Unknown variable '{name}'")

    resolved: dict[str, Any] = {}
    for name, spec in specs.items():
        if name in cli_values:
            try:
                value = coerce_cli_value(spec.type, cli_values[name])
            except ValueError as e:
                errors.append(f"Variable '{name}': {e}")
                continue
            source = "--var"
        elif name in file_values:
            value = file_values[name]
            source = "var file"
        elif not spec.required:
            value = spec.default
            source = "default"
        else:
            errors.append(f"Variable '{name}' is required but has no value")
            continue

        # A null default means "unset" and is allowed for any type
        if value is None and source == "default":
            resolved[name] = None
            continue

        if not type_matches(spec.type, value):
            errors.append(
                f"Variable '{name}' ({source}) expects {spec.type}, "
                f"got {type(value).__name__}"
            )
            continue

        resolved[name] = value

    if errors:
        raise ValidationError(errors)

    return resolved
