"""
Planner — diff declarations against live state into an ApplyPlan.

Flow:
    substitute variables → validate graph → topological order
    → create / update / noop per declaration → deletes (reverse order)

Planning never calls a provider. Structural problems raise
ValidationError, cycles raise CycleError, both before any side effect.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from infraplane.core.engine.expressions import resolve_references, substitute_variables
from infraplane.core.engine.graph import (
    build_graph,
    reverse_graph,
    topological_order,
    validate_graph,
)
from infraplane.core.errors import ValidationError
from infraplane.core.models.plan import ApplyPlan, ChangeAction, PlannedChange
from infraplane.core.models.resource import ResourceDeclaration, ResourceState
from infraplane.core.models.state import StackState

logger = logging.getLogger(__name__)

_MISSING = object()


def _live_resources(
    live_state: StackState | Mapping[str, ResourceState] | None,
) -> dict[str, ResourceState]:
    if live_state is None:
        return {}
    if isinstance(live_state, StackState):
        return dict(live_state.resources)
    return dict(live_state)


def _diff(
    desired: dict[str, Any],
    live: dict[str, Any],
    outputs_by_id: dict[str, dict[str, Any]],
) -> tuple[list[str], list[str]]:
    """Compare desired against live properties.

    Returns:
        (changed_keys, unknown_keys). Unknown keys hold references to
        resources with no live outputs yet: known only after apply.
    """
    changed: list[str] = []
    unknown: list[str] = []
    for key in sorted(set(desired) | set(live)):
        if key not in desired:
            changed.append(key)
            continue
        value, unresolved = resolve_references(desired[key], outputs_by_id)
        if unresolved:
            unknown.append(key)
            changed.append(key)
        elif value != live.get(key, _MISSING):
            changed.append(key)
    return changed, unknown


def substitute_declarations(
    declarations: list[ResourceDeclaration],
    variables: Mapping[str, Any],
) -> dict[str, dict[str, Any]]:
    """Replace ``${var.NAME}`` in every declaration's properties.

    Raises:
        ValidationError: If a declaration uses an undefined variable.
    """
    errors: list[str] = []
    substituted: dict[str, dict[str, Any]] = {}
    for decl in declarations:
        props, missing = substitute_variables(decl.properties, dict(variables))
        if missing:
            errors.append(
                f"Resource '{decl.id}' uses undefined variable(s): "
                f"{', '.join(sorted(missing))}"
            )
        substituted[decl.id] = props
    if errors:
        raise ValidationError(errors)
    return substituted


def plan(
    declarations: list[ResourceDeclaration],
    live_state: StackState | Mapping[str, ResourceState] | None = None,
    variables: Mapping[str, Any] | None = None,
    stack_name: str = "",
) -> ApplyPlan:
    """Compute the ApplyPlan that converges live state to the declarations.

    Args:
        declarations: Desired resources.
        live_state: Snapshot of the provider's actual state.
        variables: Resolved variable values for ``${var.NAME}``.
        stack_name: Recorded on the plan for display.

    Returns:
        ApplyPlan: creates/updates/noops in topological order, then
        deletes in reverse topological order.

    Raises:
        ValidationError: Duplicate ids, unknown references, undefined
            variables, or a resource whose type changed.
        CycleError: The reference graph has a cycle.
    """
    errors = validate_graph(declarations)
    if errors:
        raise ValidationError(errors)

    live = _live_resources(live_state)
    by_id = {d.id: d for d in declarations}

    type_errors = [
        f"Resource '{d.id}' changed type from '{live[d.id].type}' to '{d.type}'; "
        "remove it and apply before declaring the new type"
        for d in declarations
        if d.id in live and live[d.id].type != d.type
    ]
    if type_errors:
        raise ValidationError(type_errors)

    substituted = substitute_declarations(declarations, variables or {})
    graph = build_graph(declarations)
    order = topological_order(graph)

    # Outputs of resources created or updated earlier in this plan are
    # known only after apply, so references to them are unknown here.
    outputs_by_id = {rid: st.outputs for rid, st in live.items() if rid in by_id}
    result = ApplyPlan(stack_name=stack_name)

    for rid in order:
        decl = by_id[rid]
        desired = substituted[rid]
        current = live.get(rid)

        if current is None:
            action = ChangeAction.CREATE
            changed = sorted(desired)
            unknown = [
                k for k in changed
                if resolve_references(desired[k], outputs_by_id)[1]
            ]
        else:
            changed, unknown = _diff(desired, current.properties, outputs_by_id)
            action = ChangeAction.UPDATE if changed else ChangeAction.NOOP

        result.changes.append(PlannedChange(
            resource_id=rid,
            type=decl.type,
            action=action,
            desired=desired,
            live=current.properties if current else None,
            changed_keys=changed,
            unknown_keys=unknown,
            references=graph[rid],
        ))
        if action != ChangeAction.NOOP:
            outputs_by_id.pop(rid, None)

    # ── Deletes: dependents before their dependencies ────────────
    removed = {rid: st for rid, st in live.items() if rid not in by_id}
    if removed:
        delete_graph = {
            rid: [r for r in st.references if r in removed]
            for rid, st in removed.items()
        }
        for rid in topological_order(reverse_graph(delete_graph)):
            st = removed[rid]
            result.changes.append(PlannedChange(
                resource_id=rid,
                type=st.type,
                action=ChangeAction.DELETE,
                live=st.properties,
                references=sorted(st.references),
            ))

    logger.info(
        "Planned %s: %s",
        stack_name or "stack",
        ", ".join(f"{k}={v}" for k, v in result.counts().items()),
    )
    return result


def plan_destroy(
    live_state: StackState | Mapping[str, ResourceState] | None,
    stack_name: str = "",
) -> ApplyPlan:
    """Plan deletion of every live resource (dependents first)."""
    return plan([], live_state, stack_name=stack_name)
