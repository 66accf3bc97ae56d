"""
Bootstrap use case — install and verify the agent on this host.

Fatal step errors are caught here and reported on the result; the
outcome is appended to the audit ledger (except on dry runs).
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from infraplane.core.engine.executor import generate_operation_id
from infraplane.core.errors import BootstrapError
from infraplane.core.observability.logging_config import operation_context
from infraplane.core.persistence.audit import AuditEntry, AuditLedger, ChangeRecord
from infraplane.core.services.bootstrap import (
    AgentBootstrap,
    BootstrapConfig,
    BootstrapResult,
    ServiceProbe,
)
from infraplane.core.services.bootstrap.agent import ProgressCallback
from infraplane.core.services.bootstrap.runner import CommandRunner, run_command

logger = logging.getLogger(__name__)


def bootstrap_host(
    config: BootstrapConfig | None = None,
    runner: CommandRunner = run_command,
    on_progress: ProgressCallback | None = None,
    dry_run: bool = False,
    audit_root: Path | None = None,
) -> BootstrapResult:
    """Run the bootstrap sequence, never raising for step failures.

    Args:
        config: What to install and verify.
        runner: Command runner (tests pass a fake).
        on_progress: ``(step, status)`` callback for live output.
        dry_run: List the steps without running them.
        audit_root: Directory holding ``.state/`` (no audit if None).
    """
    bootstrap = AgentBootstrap(config, runner, on_progress, dry_run)
    operation_id = generate_operation_id()
    start = time.monotonic()
    with operation_context(operation_id):
        try:
            result = bootstrap.run()
        except BootstrapError as e:
            logger.error("%s", e)
            result = bootstrap.result

    if not dry_run and audit_root is not None:
        entry = AuditEntry(
            operation_id=operation_id,
            operation_type="bootstrap",
            status=result.status,
            duration_ms=int((time.monotonic() - start) * 1000),
            changes=[ChangeRecord(
                resource_id=result.service,
                action="bootstrap",
                status="ok" if result.running else "failed",
                detail="" if result.running else (result.error or result.message),
            )],
            errors=[result.error] if result.error else [],
            context={
                "phase": result.phase.value,
                "message": result.message,
                "steps": {s.name: "ok" if s.ok else "failed" for s in result.steps},
            },
        )
        try:
            AuditLedger.for_stack(audit_root).append(entry)
        except OSError as e:
            logger.error("Could not record bootstrap in the audit ledger: %s", e)

    return result


def probe_service(
    config: BootstrapConfig | None = None,
    runner: CommandRunner = run_command,
) -> ServiceProbe:
    """Check whether the service is running without installing anything."""
    return AgentBootstrap(config, runner).probe()
