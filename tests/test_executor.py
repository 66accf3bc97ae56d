"""
Tests for the executor — apply passes, failure handling, state, and audit.
"""

from pathlib import Path

from infraplane.adapters.mock import MockProvider
from infraplane.adapters.registry import ProviderRegistry
from infraplane.core.engine.executor import (
    SKIP_DEPENDENCY_FAILED,
    SKIP_NOT_ATTEMPTED,
    apply,
    generate_operation_id,
    audit_entry,
    record_results,
)
from infraplane.core.engine.planner import plan
from infraplane.core.models.resource import ResourceDeclaration
from infraplane.core.models.state import StackState
from infraplane.core.persistence.audit import AuditLedger


def _decl(rid: str, depends_on=None, **properties) -> ResourceDeclaration:
    return ResourceDeclaration(
        id=rid, type="null_thing", properties=properties, depends_on=list(depends_on or [])
    )


def _chain() -> list[ResourceDeclaration]:
    """vpc → subnet → lb, plus an independent dns record."""
    return [
        _decl("vpc", cidr="10.0.0.0/16"),
        _decl("subnet", vpc_id="${vpc.id}"),
        _decl("lb", subnet_id="${subnet.id}"),
        _decl("dns", name="example.com"),
    ]


def _apply_all(decls, registry, state=None, **kwargs):
    if state is None:
        state = StackState()
    report = apply(plan(decls, state), registry, live_state=state, **kwargs)
    record_results(report, state)
    return report, state


class TestApply:
    def test_creates_in_dependency_order(self, mock_registry, mock_provider: MockProvider):
        report, _ = _apply_all(_chain(), mock_registry)
        assert report.all_ok
        assert report.status == "ok"
        called = [c.resource_id for c in mock_provider.call_log]
        assert called.index("vpc") < called.index("subnet") < called.index("lb")

    def test_exactly_one_call_per_resource(self, mock_registry, mock_provider: MockProvider):
        _apply_all(_chain(), mock_registry)
        for rid in ("vpc", "subnet", "lb", "dns"):
            assert len(mock_provider.calls_for(rid)) == 1

    def test_references_resolved_from_same_pass(self, mock_registry, mock_provider):
        _apply_all(_chain(), mock_registry)
        subnet_call = mock_provider.calls_for("subnet")[0]
        assert subnet_call.properties == {"vpc_id": "mock-vpc"}
        assert subnet_call.references == ["vpc"]

    def test_second_pass_is_all_noops(self, mock_registry, mock_provider: MockProvider):
        _, state = _apply_all(_chain(), mock_registry)
        second = plan(_chain(), state)
        assert not second.has_changes
        report = apply(second, mock_registry, live_state=state)
        assert report.total == 0
        assert sorted(report.noops) == ["dns", "lb", "subnet", "vpc"]
        assert mock_provider.call_count == 4

    def test_update_propagates_to_dependents(self, mock_registry, mock_provider):
        def decls(cidr):
            return [_decl("vpc", cidr=cidr), _decl("subnet", vpc_cidr="${vpc.cidr}")]

        _, state = _apply_all(decls("10.0.0.0/16"), mock_registry)
        _, state = _apply_all(decls("10.1.0.0/16"), mock_registry, state)

        assert [(c.resource_id, c.action) for c in mock_provider.call_log[2:]] == [
            ("vpc", "update"),
            ("subnet", "update"),
        ]
        assert state.resources["subnet"].properties == {"vpc_cidr": "10.1.0.0/16"}
        assert not plan(decls("10.1.0.0/16"), state).has_changes

    def test_unchanged_reference_skips_dependent_call(self, mock_registry, mock_provider):
        def decls(cidr):
            return [_decl("vpc", cidr=cidr), _decl("subnet", vpc_id="${vpc.id}")]

        _, state = _apply_all(decls("10.0.0.0/16"), mock_registry)
        report, state = _apply_all(decls("10.1.0.0/16"), mock_registry, state)

        assert len(mock_provider.calls_for("subnet")) == 1
        assert report.noops == ["subnet"]
        assert report.total == 1
        assert not plan(decls("10.1.0.0/16"), state).has_changes

    def test_update_receives_previous_state(self, mock_registry, mock_provider):
        _, state = _apply_all([_decl("dns", name="a.com")], mock_registry)
        _apply_all([_decl("dns", name="b.com")], mock_registry, state)
        update = mock_provider.calls_for("dns")[-1]
        assert update.action == "update"
        assert update.previous.properties == {"name": "a.com"}

    def test_removed_resources_deleted_dependents_first(self, mock_registry, mock_provider):
        _, state = _apply_all([_decl("A"), _decl("B", a="${A.id}")], mock_registry)
        mock_provider.reset()

        report, state = _apply_all([], mock_registry, state)
        assert [c.resource_id for c in mock_provider.call_log] == ["B", "A"]
        assert report.deleted == ["B", "A"]
        assert state.resources == {}

    def test_provider_config_threaded_through(self, mock_registry, mock_provider):
        from infraplane.core.models.resource import ProviderConfig

        config = ProviderConfig(region="eu-west-1")
        apply(plan([_decl("vpc")]), mock_registry, config=config)
        assert mock_provider.call_log[0].config.region == "eu-west-1"


class TestPartialFailure:
    def test_halts_on_first_failure(self, mock_registry, mock_provider: MockProvider):
        mock_provider.set_failure("subnet", "quota exceeded")
        report, state = _apply_all(_chain(), mock_registry)

        assert report.status == "partial"
        assert report.failed_ids == ["subnet"]
        assert str(report.errors[0]) == "subnet: create failed: quota exceeded"

        # dns sorts first, vpc before subnet: both applied and kept
        assert set(state.resources) == {"dns", "vpc"}
        assert report.receipt_for("lb").output == SKIP_NOT_ATTEMPTED
        assert mock_provider.calls_for("lb") == []

    def test_keep_going_skips_only_dependents(self, mock_registry, mock_provider):
        mock_provider.set_failure("vpc")
        decls = [_decl("vpc"), _decl("subnet", v="${vpc.id}"), _decl("zone")]
        report, state = _apply_all(decls, mock_registry, keep_going=True)

        assert report.failed_ids == ["vpc"]
        assert report.receipt_for("subnet").output == SKIP_DEPENDENCY_FAILED
        assert set(state.resources) == {"zone"}

    def test_no_rollback(self, mock_registry, mock_provider: MockProvider):
        mock_provider.set_failure("lb")
        _, state = _apply_all(_chain(), mock_registry)
        assert {"vpc", "subnet"} <= set(state.resources)
        assert not any(c.action == "delete" for c in mock_provider.call_log)

    def test_failed_delete_keeps_dependency(self, mock_registry, mock_provider):
        _, state = _apply_all([_decl("A"), _decl("B", a="${A.id}")], mock_registry)
        mock_provider.set_failure("B", action="delete")

        report, state = _apply_all([], mock_registry, state, keep_going=True)
        assert report.failed_ids == ["B"]
        assert set(state.resources) == {"A", "B"}

    def test_rerun_after_failure_only_touches_remaining(self, mock_registry, mock_provider):
        mock_provider.set_failure("subnet")
        _, state = _apply_all(_chain(), mock_registry)
        mock_provider.reset()

        report, state = _apply_all(_chain(), mock_registry, state)
        assert report.all_ok
        assert sorted(c.resource_id for c in mock_provider.call_log) == ["lb", "subnet"]


class TestParallelAndDryRun:
    def test_parallel_respects_order(self, mock_registry, mock_provider: MockProvider):
        decls = _chain() + [_decl(f"bucket{i}") for i in range(6)]
        report, state = _apply_all(decls, mock_registry, parallelism=4)
        assert report.all_ok
        assert len(state.resources) == 10
        called = [c.resource_id for c in mock_provider.call_log]
        assert called.index("vpc") < called.index("subnet") < called.index("lb")

    def test_parallel_keep_going_skips_only_dependents(self, mock_registry, mock_provider):
        mock_provider.set_failure("subnet", "quota exceeded")
        decls = _chain() + [_decl(f"bucket{i}") for i in range(4)]
        report, state = _apply_all(decls, mock_registry, keep_going=True, parallelism=3)

        assert report.failed_ids == ["subnet"]
        assert [str(e) for e in report.errors] == ["subnet: create failed: quota exceeded"]
        assert report.receipt_for("lb").output == SKIP_DEPENDENCY_FAILED
        assert mock_provider.calls_for("lb") == []
        assert set(state.resources) == {"vpc", "dns", "bucket0", "bucket1", "bucket2", "bucket3"}

    def test_parallel_halts_and_marks_rest_not_attempted(self, mock_registry, mock_provider):
        mock_provider.set_failure("vpc", "boom")
        report, state = _apply_all(_chain(), mock_registry, parallelism=2)

        # dns and vpc are both roots and run in the first batch
        assert report.failed_ids == ["vpc"]
        assert str(report.errors[0]) == "vpc: create failed: boom"
        assert report.receipt_for("subnet").output == SKIP_NOT_ATTEMPTED
        assert report.receipt_for("lb").output == SKIP_NOT_ATTEMPTED
        assert mock_provider.calls_for("subnet") == []
        assert set(state.resources) == {"dns"}
        assert report.status == "partial"

    def test_dry_run_makes_no_provider_calls(self, mock_registry, mock_provider):
        report = apply(plan(_chain()), mock_registry, dry_run=True)
        assert mock_provider.call_count == 0
        assert report.skipped == 4
        assert report.all_ok

    def test_dry_run_default_mock(self):
        registry = ProviderRegistry(mock_mode=True)
        report = apply(plan(_chain()), registry, dry_run=True)
        assert report.failed == 0
        assert all(r.metadata.get("dry_run") for r in report.receipts)


class TestAuditAndIds:
    def test_operation_id_format(self):
        op_id = generate_operation_id()
        assert op_id.startswith("op-")
        assert op_id != generate_operation_id()

    def test_audit_entry(self, tmp_path: Path, mock_registry, mock_provider):
        mock_provider.set_failure("lb", "boom")
        applied = plan(_chain())
        report = apply(applied, mock_registry, operation_id="op-test")
        ledger = AuditLedger(tmp_path / "audit.ndjson")
        ledger.append(audit_entry(report, applied, duration_ms=12))

        (entry,) = ledger.entries()
        assert entry.operation_id == "op-test"
        assert entry.status == "partial"
        assert entry.duration_ms == 12
        assert entry.planned["create"] == 4
        assert entry.failed_ids == ["lb"]
        assert entry.errors == ["lb: create failed: boom"]
        assert sorted(entry.resources_affected) == ["dns", "subnet", "vpc"]
        lb = next(c for c in entry.changes if c.resource_id == "lb")
        assert (lb.action, lb.status, lb.detail) == ("create", "failed", "boom")

    def test_report_to_dict(self, mock_registry):
        report, _ = _apply_all(_chain(), mock_registry)
        data = report.to_dict()
        assert data["status"] == "ok"
        assert data["total"] == 4
        assert len(data["receipts"]) == 4
