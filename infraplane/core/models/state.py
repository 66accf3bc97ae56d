"""
StackState — the live-state snapshot.

Serialized to .state/current.json and read at plan time. It records the
last known state of every resource an apply pass created, which is also
how resources removed from stack.yml are found and deleted.

Disposable only in the sense that deleting it forgets what was created:
the next apply will try to create everything again.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from infraplane.core.models.resource import ResourceState


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class OperationRecord(BaseModel):
    """Summary of the last operation."""

    operation_id: str = ""
    operation: str = ""         # apply, destroy, bootstrap
    started_at: str = ""
    ended_at: str = ""
    status: str = ""            # ok, partial, failed
    changes_total: int = 0
    changes_succeeded: int = 0
    changes_failed: int = 0


class StackState(BaseModel):
    """Root state model — serialized to .state/current.json."""

    # ── Schema ───────────────────────────────────────────────────
    schema_version: int = 1

    # ── Identity ─────────────────────────────────────────────────
    stack_name: str = ""

    # ── Timestamps ───────────────────────────────────────────────
    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)

    # ── Live resources ───────────────────────────────────────────
    resources: dict[str, ResourceState] = Field(default_factory=dict)

    # ── Last operation ───────────────────────────────────────────
    last_operation: OperationRecord = Field(default_factory=OperationRecord)

    # ── Extensible metadata ──────────────────────────────────────
    metadata: dict[str, Any] = Field(default_factory=dict)

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()

    def get_resource(self, resource_id: str) -> ResourceState | None:
        return self.resources.get(resource_id)

    def set_resource(self, state: ResourceState) -> None:
        """Record a created or updated resource, keeping its created_at."""
        previous = self.resources.get(state.id)
        if previous is not None:
            state.created_at = previous.created_at
        self.resources[state.id] = state

    def remove_resource(self, resource_id: str) -> None:
        self.resources.pop(resource_id, None)
