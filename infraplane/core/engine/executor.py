"""
Engine executor — one apply pass over an ApplyPlan.

The executor walks the plan, dispatches each create/update/delete to
its provider through the registry (exactly one call per resource per
pass), collects receipts, and reports partial application as-is.

Flow:
    creates/updates (topological, optionally parallel)
    → deletes (reverse topological)
    → report → state snapshot → audit

Failure handling:
    - default: the first failure halts the pass; everything not yet
      attempted is recorded as skipped ("not attempted")
    - keep_going: only the failed resource's dependents are skipped
      ("dependency failed"); independent work continues
    - nothing is rolled back
"""

from __future__ import annotations

import concurrent.futures
import contextvars
import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

from infraplane.adapters.registry import ProviderRegistry
from infraplane.core.engine.expressions import resolve_references
from infraplane.core.engine.graph import dependents_of, ready_nodes
from infraplane.core.errors import ProviderCallError
from infraplane.core.models.plan import ApplyPlan, ChangeAction, PlannedChange
from infraplane.core.models.receipt import Receipt
from infraplane.core.models.resource import ProviderConfig, ResourceState
from infraplane.core.models.state import StackState
from infraplane.core.persistence.audit import AuditEntry, ChangeRecord

logger = logging.getLogger(__name__)

SKIP_NOT_ATTEMPTED = "not attempted: apply halted after a failure"
SKIP_DEPENDENCY_FAILED = "dependency failed"
SKIP_DEPENDENT_REMAINS = "a dependent resource failed to delete"


@dataclass
class ApplyReport:
    """Result of one apply pass."""

    operation_id: str = ""
    operation: str = "apply"
    stack_name: str = ""
    receipts: list[Receipt] = field(default_factory=list)
    errors: list[ProviderCallError] = field(default_factory=list)
    states: dict[str, ResourceState] = field(default_factory=dict)
    deleted: list[str] = field(default_factory=list)
    noops: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.receipts)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.receipts if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.receipts if r.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.receipts if r.status == "skipped")

    @property
    def all_ok(self) -> bool:
        return self.failed == 0

    @property
    def failed_ids(self) -> list[str]:
        return [r.resource_id for r in self.receipts if r.failed]

    @property
    def status(self) -> str:
        if self.failed == 0:
            return "ok"
        if self.succeeded > 0:
            return "partial"
        return "failed"

    def receipt_for(self, resource_id: str) -> Receipt | None:
        for receipt in self.receipts:
            if receipt.resource_id == resource_id:
                return receipt
        return None

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "operation": self.operation,
            "stack_name": self.stack_name,
            "status": self.status,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "noops": self.noops,
            "errors": [e.to_dict() for e in self.errors],
            "receipts": [r.model_dump(mode="json") for r in self.receipts],
        }


def _provider_prefix(change: PlannedChange) -> str:
    return change.type.split("_", 1)[0]


def _skip(change: PlannedChange, reason: str) -> Receipt:
    return Receipt.skip(
        provider=_provider_prefix(change),
        resource_id=change.resource_id,
        action=change.action.value,
        reason=reason,
    )


def _log_receipt(receipt: Receipt) -> None:
    status_marker = "✓" if receipt.ok else "✗" if receipt.failed else "⊘"
    logger.info(
        "%s %s:%s → %s",
        status_marker,
        receipt.resource_id,
        receipt.action,
        receipt.status,
    )


class _Pass:
    """Mutable bookkeeping for a single apply pass."""

    def __init__(
        self,
        plan: ApplyPlan,
        registry: ProviderRegistry,
        config: ProviderConfig,
        live: dict[str, ResourceState],
        dry_run: bool,
        report: ApplyReport,
    ):
        self.plan = plan
        self.registry = registry
        self.config = config
        self.live = live
        self.dry_run = dry_run
        self.report = report
        self.outputs: dict[str, dict] = {rid: st.outputs for rid, st in live.items()}
        self.graph = {
            c.resource_id: list(c.references)
            for c in plan.changes
            if c.action != ChangeAction.DELETE
        }
        self.failed: set[str] = set()      # failed or skipped: not applied this pass
        self.blocked: set[str] = set()     # transitive dependents of failed work
        self.halted = False

    def _mark_failed(self, resource_id: str) -> None:
        self.failed.add(resource_id)
        self.blocked |= dependents_of(self.graph, [resource_id])

    def call(self, change: PlannedChange) -> Receipt | None:
        """Resolve references and make the single provider call for ``change``.

        Returns None when an update planned only on unknown references
        resolves to the live properties: nothing to change.
        """
        properties = change.desired
        if change.action != ChangeAction.DELETE:
            properties, unresolved = resolve_references(change.desired, self.outputs)
            if unresolved and self.dry_run:
                # Dependencies were not really created, so their outputs are unknown
                return Receipt.skip(
                    provider=_provider_prefix(change),
                    resource_id=change.resource_id,
                    action=change.action.value,
                    reason=f"[dry-run] Would {change.action.value} {change.resource_id}",
                    metadata={"dry_run": True},
                )
            if unresolved:
                return Receipt.failure(
                    provider=_provider_prefix(change),
                    resource_id=change.resource_id,
                    action=change.action.value,
                    error=(
                        "Unresolved reference(s) to "
                        f"{', '.join(sorted(unresolved))}"
                    ),
                )
            previous = self.live.get(change.resource_id)
            if (
                change.action == ChangeAction.UPDATE
                and change.unknown_keys
                and not self.dry_run
                and previous is not None
                and properties == previous.properties
            ):
                return None

        return self.registry.execute_change(
            resource_id=change.resource_id,
            resource_type=change.type,
            action=change.action.value,
            properties=properties,
            references=change.references,
            previous=self.live.get(change.resource_id),
            config=self.config,
            dry_run=self.dry_run,
        )

    def record(
        self, change: PlannedChange, receipt: Receipt | None, keep_going: bool,
    ) -> None:
        if receipt is None:
            logger.debug("= %s: unchanged after resolving references", change.resource_id)
            self.report.noops.append(change.resource_id)
            return

        self.report.receipts.append(receipt)
        _log_receipt(receipt)

        if receipt.failed:
            self._mark_failed(change.resource_id)
            self.report.errors.append(ProviderCallError(
                change.resource_id,
                change.action.value,
                receipt.error or "unknown error",
            ))
            if not keep_going:
                self.halted = True
            return

        if receipt.status == "skipped":
            if not receipt.metadata.get("dry_run"):
                self._mark_failed(change.resource_id)
            return

        if change.action == ChangeAction.DELETE:
            self.report.deleted.append(change.resource_id)
            self.outputs.pop(change.resource_id, None)
        elif receipt.state is not None:
            self.report.states[change.resource_id] = receipt.state
            self.outputs[change.resource_id] = receipt.state.outputs


def _apply_sequential(
    work: _Pass,
    changes: list[PlannedChange],
    keep_going: bool,
) -> None:
    for change in changes:
        if work.halted:
            work.record(change, _skip(change, SKIP_NOT_ATTEMPTED), keep_going)
            continue
        if change.resource_id in work.blocked:
            work.record(change, _skip(change, SKIP_DEPENDENCY_FAILED), keep_going)
            continue
        work.record(change, work.call(change), keep_going)


def _apply_parallel(
    work: _Pass,
    changes: list[PlannedChange],
    keep_going: bool,
    parallelism: int,
) -> None:
    """Run independent ready changes concurrently, respecting the partial order.

    Receipts are recorded in completion order; all bookkeeping happens on
    the calling thread.
    """
    by_id = {c.resource_id: c for c in changes}
    graph = {
        c.resource_id: [r for r in c.references if r in by_id]
        for c in changes
    }
    completed: set[str] = set()

    with concurrent.futures.ThreadPoolExecutor(max_workers=parallelism) as pool:
        while len(completed) < len(changes):
            ready = ready_nodes(graph, completed, set())
            if not ready:
                break

            runnable: list[PlannedChange] = []
            for rid in ready:
                change = by_id[rid]
                if work.halted:
                    work.record(change, _skip(change, SKIP_NOT_ATTEMPTED), keep_going)
                    completed.add(rid)
                elif rid in work.blocked:
                    work.record(change, _skip(change, SKIP_DEPENDENCY_FAILED), keep_going)
                    completed.add(rid)
                else:
                    runnable.append(change)

            batch = runnable[:parallelism]
            # Worker threads log under the caller's operation context
            futures = {
                pool.submit(contextvars.copy_context().run, work.call, c): c for c in batch
            }
            for future in concurrent.futures.as_completed(futures):
                change = futures[future]
                work.record(change, future.result(), keep_going)
                completed.add(change.resource_id)


def _apply_deletes(work: _Pass, deletes: list[PlannedChange], keep_going: bool) -> None:
    """Deletes run dependents first; a resource is kept while a dependent remains."""
    for change in deletes:
        if work.halted:
            work.record(change, _skip(change, SKIP_NOT_ATTEMPTED), keep_going)
            continue
        blocked = any(
            change.resource_id in other.references
            for other in deletes
            if other.resource_id in work.failed
        )
        if blocked:
            work.record(change, _skip(change, SKIP_DEPENDENT_REMAINS), keep_going)
            continue
        work.record(change, work.call(change), keep_going)


def apply(
    plan: ApplyPlan,
    registry: ProviderRegistry,
    config: ProviderConfig | None = None,
    live_state: StackState | Mapping[str, ResourceState] | None = None,
    keep_going: bool = False,
    parallelism: int = 1,
    dry_run: bool = False,
    operation_id: str | None = None,
    operation: str = "apply",
) -> ApplyReport:
    """Execute an ApplyPlan through the provider registry.

    Args:
        plan: The plan from :func:`infraplane.core.engine.planner.plan`.
        registry: Provider registry for dispatch.
        config: Provider config passed to every call.
        live_state: The snapshot the plan was computed from (supplies
            previous state for updates/deletes and outputs of no-ops).
        keep_going: Continue independent work after a failure.
        parallelism: Max concurrent provider calls for creates/updates.
        dry_run: Validate but don't execute.
        operation_id: Recorded on the report (generated if omitted).
        operation: Operation label (apply, destroy).

    Returns:
        ApplyReport with one receipt per non-noop change.
    """
    if isinstance(live_state, StackState):
        live = dict(live_state.resources)
    else:
        live = dict(live_state or {})

    report = ApplyReport(
        operation_id=operation_id or generate_operation_id(),
        operation=operation,
        stack_name=plan.stack_name,
    )
    work = _Pass(plan, registry, config or ProviderConfig(), live, dry_run, report)

    upserts = [c for c in plan.changes if c.action in (ChangeAction.CREATE, ChangeAction.UPDATE)]
    deletes = plan.changes_for(ChangeAction.DELETE)
    report.noops = [c.resource_id for c in plan.changes_for(ChangeAction.NOOP)]

    if parallelism > 1 and len(upserts) > 1:
        _apply_parallel(work, upserts, keep_going, parallelism)
    else:
        _apply_sequential(work, upserts, keep_going)

    _apply_deletes(work, deletes, keep_going)

    logger.info(
        "Apply %s finished: %s (%d ok, %d failed, %d skipped, %d unchanged)",
        report.operation_id, report.status, report.succeeded,
        report.failed, report.skipped, len(report.noops),
    )
    return report


def record_results(report: ApplyReport, state: StackState) -> None:
    """Write created/updated states and deletions back into the snapshot."""
    for resource_state in report.states.values():
        state.set_resource(resource_state)
    for resource_id in report.deleted:
        state.remove_resource(resource_id)

    state.last_operation.operation_id = report.operation_id
    state.last_operation.operation = report.operation
    state.last_operation.status = report.status
    state.last_operation.changes_total = report.total
    state.last_operation.changes_succeeded = report.succeeded
    state.last_operation.changes_failed = report.failed
    if report.receipts:
        state.last_operation.started_at = report.receipts[0].started_at
        state.last_operation.ended_at = report.receipts[-1].ended_at


def audit_entry(report: ApplyReport, plan: ApplyPlan, duration_ms: int = 0) -> AuditEntry:
    """Ledger entry for one pass: planned counts plus every receipt's outcome."""
    return AuditEntry(
        operation_id=report.operation_id,
        operation_type=report.operation,
        stack=report.stack_name,
        status=report.status,
        duration_ms=duration_ms,
        planned=plan.counts(),
        changes=[
            ChangeRecord(
                resource_id=r.resource_id,
                action=r.action,
                status=r.status,
                detail=(r.error or "") if r.failed else ("" if r.ok else r.output),
            )
            for r in report.receipts
        ],
        errors=[str(e) for e in report.errors],
    )


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"
