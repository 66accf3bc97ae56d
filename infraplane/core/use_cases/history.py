"""
History use case — read the audit ledger.
"""

from __future__ import annotations

from pathlib import Path

from infraplane.core.config.loader import locate_stack, stack_root
from infraplane.core.persistence.audit import AuditEntry, AuditLedger


def get_history(
    config_path: Path | None = None,
    limit: int = 20,
    operation: str | None = None,
    resource_id: str | None = None,
) -> list[AuditEntry]:
    """Most recent audit entries for the stack, oldest first.

    Args:
        config_path: Optional explicit path to stack.yml (locates the ledger).
        limit: Maximum entries to return (0 for all).
        operation: Only entries of this operation type.
        resource_id: Only entries that touched this resource.

    Raises:
        ConfigError: No stack file could be located.
    """
    root = stack_root(locate_stack(config_path))
    return AuditLedger.for_stack(root).entries(
        operation=operation,
        resource_id=resource_id,
        limit=limit,
    )
