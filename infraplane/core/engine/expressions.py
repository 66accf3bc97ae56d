"""
Property expressions — ``${var.NAME}`` and ``${RESOURCE_ID.ATTR}``.

Declarations reference variables and other resources' outputs through
``${...}`` expressions embedded in property values. Resource references
double as implicit dependency edges.

Pure functions, no I/O.
"""

from __future__ import annotations

import re
from typing import Any

_EXPR_RE = re.compile(r"\$\{\s*([A-Za-z_][A-Za-z0-9_-]*)\.([A-Za-z0-9_.-]+)\s*\}")

VAR_NAMESPACE = "var"


def _iter_strings(value: Any):
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for v in value.values():
            yield from _iter_strings(v)
    elif isinstance(value, (list, tuple)):
        for v in value:
            yield from _iter_strings(v)


def find_references(value: Any) -> set[str]:
    """Return the resource ids referenced anywhere inside ``value``."""
    refs: set[str] = set()
    for text in _iter_strings(value):
        for m in _EXPR_RE.finditer(text):
            if m.group(1) != VAR_NAMESPACE:
                refs.add(m.group(1))
    return refs


def find_variables(value: Any) -> set[str]:
    """Return the variable names referenced anywhere inside ``value``."""
    names: set[str] = set()
    for text in _iter_strings(value):
        for m in _EXPR_RE.finditer(text):
            if m.group(1) == VAR_NAMESPACE:
                names.add(m.group(2))
    return names


def _lookup(outputs: dict[str, Any], path: str) -> tuple[bool, Any]:
    current: Any = outputs
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return False, None
    return True, current


def _substitute(value: Any, resolve) -> tuple[Any, set[str]]:
    """Walk ``value`` replacing expressions via ``resolve(namespace, path)``.

    ``resolve`` returns ``(found, replacement)``. Unresolved expressions
    are left in place and their namespace is reported back.
    """
    unresolved: set[str] = set()

    def _walk(v: Any) -> Any:
        if isinstance(v, dict):
            return {k: _walk(item) for k, item in v.items()}
        if isinstance(v, list):
            return [_walk(item) for item in v]
        if not isinstance(v, str):
            return v

        # A string that is exactly one expression keeps the value's type
        whole = _EXPR_RE.fullmatch(v.strip())
        if whole:
            found, replacement = resolve(whole.group(1), whole.group(2))
            if found:
                return replacement
            unresolved.add(whole.group(1))
            return v

        def _repl(m: re.Match) -> str:
            found, replacement = resolve(m.group(1), m.group(2))
            if not found:
                unresolved.add(m.group(1))
                return m.group(0)
            return str(replacement)

        return _EXPR_RE.sub(_repl, v)

    return _walk(value), unresolved


def substitute_variables(value: Any, variables: dict[str, Any]) -> tuple[Any, set[str]]:
    """Replace ``${var.NAME}`` expressions. Resource references are untouched.

    Returns:
        (new_value, missing_variable_names)
    """
    missing: set[str] = set()

    def _resolve(namespace: str, path: str) -> tuple[bool, Any]:
        if namespace != VAR_NAMESPACE:
            return False, None
        if path not in variables:
            missing.add(path)
            return False, None
        return True, variables[path]

    new_value, _ = _substitute(value, _resolve)
    return new_value, missing


def resolve_references(
    value: Any,
    outputs_by_id: dict[str, dict[str, Any]],
) -> tuple[Any, set[str]]:
    """Replace ``${ID.ATTR}`` expressions with known resource outputs.

    Returns:
        (new_value, ids_whose_outputs_are_not_known_yet)
    """
    def _resolve(namespace: str, path: str) -> tuple[bool, Any]:
        if namespace == VAR_NAMESPACE:
            return False, None
        outputs = outputs_by_id.get(namespace)
        if outputs is None:
            return False, None
        return _lookup(outputs, path)

    new_value, unresolved = _substitute(value, _resolve)
    unresolved.discard(VAR_NAMESPACE)
    return new_value, unresolved
