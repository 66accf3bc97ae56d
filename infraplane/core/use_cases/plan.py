"""
Plan use case — load the stack, resolve variables, diff against live state.

No side effects: nothing is written and no provider is called, except
provider reads when ``refresh`` is requested.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from infraplane.adapters.registry import ProviderRegistry
from infraplane.core.config.loader import load_stack, locate_stack, stack_root
from infraplane.core.config.variables import (
    load_var_file,
    parse_var_args,
    resolve_variables,
)
from infraplane.core.engine.planner import plan as build_plan
from infraplane.core.errors import ConfigError, CycleError, StateError, ValidationError
from infraplane.core.models.plan import ApplyPlan
from infraplane.core.models.resource import ProviderConfig
from infraplane.core.models.stack import Stack
from infraplane.core.models.state import StackState
from infraplane.core.persistence.state_file import default_state_path, load_state

logger = logging.getLogger(__name__)


@dataclass
class PlanResult:
    """Result of planning a stack."""

    plan: ApplyPlan | None = None
    stack: Stack | None = None
    stack_root: Path | None = None
    state: StackState | None = None
    config: ProviderConfig | None = None
    variables: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    errors: list[str] = field(default_factory=list)

    def fail(self, message: str, details: list[str] | None = None) -> PlanResult:
        self.error = message
        self.errors = list(details or [])
        return self

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error, "errors": self.errors}
        result: dict = {
            "stack_name": self.stack.name if self.stack else "",
            "stack_root": str(self.stack_root),
            "variables": self.variables,
        }
        if self.plan:
            result["plan"] = self.plan.to_dict()
        return result


def provider_config_for(stack: Stack, stack_root: Path) -> ProviderConfig:
    """The stack's provider config with working_dir anchored at the stack root."""
    config = stack.provider.model_copy(deep=True)
    working_dir = Path(config.working_dir)
    if not working_dir.is_absolute():
        working_dir = stack_root / working_dir
    config.working_dir = str(working_dir)
    return config


def load_stack_context(
    result: PlanResult,
    config_path: Path | None = None,
    var_args: list[str] | None = None,
    var_file: Path | None = None,
    resolve_vars: bool = True,
) -> bool:
    """Fill ``result`` with stack, root, provider config, variables, and state.

    Returns:
        True on success; False with ``result.error`` set otherwise.
    """
    try:
        config_path = locate_stack(config_path)
        stack = load_stack(config_path)
    except ConfigError as e:
        result.fail(str(e), e.errors)
        return False

    result.stack = stack
    result.stack_root = stack_root(config_path)
    result.config = provider_config_for(stack, result.stack_root)

    if resolve_vars:
        try:
            file_values = load_var_file(var_file) if var_file else {}
            cli_values = parse_var_args(var_args or [])
            result.variables = resolve_variables(stack.variables, file_values, cli_values)
        except ValidationError as e:
            result.fail("Invalid variables", e.errors)
            return False

    try:
        result.state = load_state(default_state_path(result.stack_root), stack.name)
    except StateError as e:
        result.fail(str(e))
        return False
    return True


def refresh_state(
    state: StackState,
    registry: ProviderRegistry,
    config: ProviderConfig,
) -> list[str]:
    """Re-read every tracked resource through its provider.

    Resources the provider reports as gone are dropped from ``state``
    (so the next plan recreates them).

    Returns:
        Ids of resources that disappeared.
    """
    gone: list[str] = []
    for resource_id, recorded in list(state.resources.items()):
        current = registry.read(recorded, config)
        if current is None:
            gone.append(resource_id)
            state.remove_resource(resource_id)
        else:
            state.resources[resource_id] = current
    if gone:
        logger.info("Refresh: %d resource(s) no longer exist: %s", len(gone), ", ".join(gone))
    return gone


def run_plan(
    config_path: Path | None = None,
    var_args: list[str] | None = None,
    var_file: Path | None = None,
    refresh: bool = False,
    registry: ProviderRegistry | None = None,
) -> PlanResult:
    """Compute the ApplyPlan for a stack.

    Args:
        config_path: Optional explicit path to stack.yml.
        var_args: ``NAME=VALUE`` overrides.
        var_file: YAML file of overrides.
        refresh: Re-read live state through providers before diffing.
        registry: Provider registry used for refresh.

    Returns:
        PlanResult with the plan, or ``error``/``errors`` set.
    """
    result = PlanResult()
    if not load_stack_context(result, config_path, var_args, var_file):
        return result

    assert result.stack is not None and result.state is not None and result.config is not None

    if refresh:
        if registry is None:
            from infraplane.adapters import default_registry

            registry = default_registry()
        refresh_state(result.state, registry, result.config)

    try:
        result.plan = build_plan(
            result.stack.resources,
            result.state,
            variables=result.variables,
            stack_name=result.stack.name,
        )
    except CycleError as e:
        return result.fail(str(e), e.cycle)
    except ValidationError as e:
        return result.fail("Invalid declarations", e.errors)

    return result
