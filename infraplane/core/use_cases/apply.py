"""
Apply / destroy use cases — plan, execute, persist, audit.

Orchestrates: load stack → resolve variables → load state → plan
→ execute through the provider registry → save state → audit.

State is saved after every non-dry-run pass, including partial ones,
so already-applied resources are not recreated on the next run.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

from infraplane.adapters import default_registry
from infraplane.adapters.registry import ProviderRegistry
from infraplane.core.engine.executor import (
    ApplyReport,
    apply as execute_plan,
    audit_entry,
    generate_operation_id,
    record_results,
)
from infraplane.core.engine.planner import plan as build_plan, plan_destroy
from infraplane.core.errors import CycleError, ValidationError
from infraplane.core.models.plan import ApplyPlan
from infraplane.core.observability.logging_config import operation_context
from infraplane.core.persistence.audit import AuditLedger
from infraplane.core.persistence.state_file import default_state_path, save_state
from infraplane.core.use_cases.plan import PlanResult, load_stack_context, refresh_state

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    """Result of an apply or destroy operation."""

    operation: str = "apply"
    plan: ApplyPlan | None = None
    report: ApplyReport | None = None
    dry_run: bool = False
    error: str | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None and (self.report is None or self.report.all_ok)

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error, "errors": self.errors}
        result: dict = {"operation": self.operation, "dry_run": self.dry_run}
        if self.plan:
            result["plan"] = self.plan.to_dict()
        if self.report:
            result["report"] = self.report.to_dict()
        return result


def _resolve_registry(registry: ProviderRegistry | None, mock_mode: bool) -> ProviderRegistry:
    if registry is None:
        return default_registry(mock_mode=mock_mode)
    if mock_mode:
        registry.set_mock_mode(True)
    return registry


def run_apply(
    config_path: Path | None = None,
    var_args: list[str] | None = None,
    var_file: Path | None = None,
    keep_going: bool = False,
    parallelism: int = 1,
    dry_run: bool = False,
    mock_mode: bool = False,
    refresh: bool = False,
    destroy: bool = False,
    registry: ProviderRegistry | None = None,
) -> ApplyResult:
    """Bring the live system in line with the stack (or tear it down).

    Args:
        config_path: Optional explicit path to stack.yml.
        var_args: ``NAME=VALUE`` overrides.
        var_file: YAML file of overrides.
        keep_going: Continue independent work after a failure.
        parallelism: Max concurrent provider calls for creates/updates.
        dry_run: Validate and report without calling providers.
        mock_mode: Simulate every provider call.
        refresh: Re-read live state through providers before planning.
        destroy: Delete every tracked resource instead of applying.
        registry: Provider registry (default: built-in providers).

    Returns:
        ApplyResult with the plan and execution report.
    """
    operation = "destroy" if destroy else "apply"
    result = ApplyResult(operation=operation, dry_run=dry_run)
    registry = _resolve_registry(registry, mock_mode)

    context = PlanResult()
    # Destroy works from recorded state only; declared variables are irrelevant.
    if not load_stack_context(context, config_path, var_args, var_file, resolve_vars=not destroy):
        result.error = context.error
        result.errors = context.errors
        return result

    stack, state, config, root = context.stack, context.state, context.config, context.stack_root
    assert stack is not None and state is not None and config is not None and root is not None

    if refresh:
        refresh_state(state, registry, config)

    try:
        if destroy:
            result.plan = plan_destroy(state, stack_name=stack.name)
        else:
            result.plan = build_plan(
                stack.resources,
                state,
                variables=context.variables,
                stack_name=stack.name,
            )
    except CycleError as e:
        result.error = str(e)
        result.errors = e.cycle
        return result
    except ValidationError as e:
        result.error = "Invalid declarations"
        result.errors = e.errors
        return result

    if not result.plan.has_changes:
        logger.info("%s: nothing to do, %d resource(s) unchanged", stack.name, len(result.plan.changes))

    operation_id = generate_operation_id()
    start = time.monotonic()
    with operation_context(operation_id):
        report = execute_plan(
            result.plan,
            registry,
            config=config,
            live_state=state,
            keep_going=keep_going,
            parallelism=parallelism,
            dry_run=dry_run,
            operation_id=operation_id,
            operation=operation,
        )
    result.report = report
    duration_ms = int((time.monotonic() - start) * 1000)

    if dry_run:
        return result

    state.stack_name = stack.name
    record_results(report, state)
    save_state(state, default_state_path(root))

    if report.total:
        try:
            AuditLedger.for_stack(root).append(
                audit_entry(report, result.plan, duration_ms=duration_ms)
            )
        except OSError as e:
            # State is already saved; the operation itself stands
            logger.error("Could not record %s in the audit ledger: %s", operation_id, e)
        logger.debug("%s %s took %dms", operation, operation_id, duration_ms)

    return result


def run_destroy(
    config_path: Path | None = None,
    keep_going: bool = False,
    dry_run: bool = False,
    mock_mode: bool = False,
    registry: ProviderRegistry | None = None,
) -> ApplyResult:
    """Delete every tracked resource, dependents first."""
    return run_apply(
        config_path=config_path,
        keep_going=keep_going,
        dry_run=dry_run,
        mock_mode=mock_mode,
        destroy=True,
        registry=registry,
    )
