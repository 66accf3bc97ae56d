"""
ApplyPlan — the ordered list of changes an apply pass will make.

Creates, updates and no-ops appear in topological order (dependencies
first). Deletes follow, in reverse topological order (dependents first).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ChangeAction(StrEnum):
    """What an apply pass does to one resource."""

    CREATE = "create"
    UPDATE = "update"
    NOOP = "noop"
    DELETE = "delete"


class PlannedChange(BaseModel):
    """One resource's entry in the plan."""

    resource_id: str
    type: str
    action: ChangeAction
    desired: dict[str, Any] = Field(default_factory=dict)
    live: dict[str, Any] | None = None
    changed_keys: list[str] = Field(default_factory=list)
    unknown_keys: list[str] = Field(default_factory=list)   # known after apply
    references: list[str] = Field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return self.action == ChangeAction.NOOP


@dataclass
class ApplyPlan:
    """Ordered changes for one apply pass."""

    stack_name: str = ""
    changes: list[PlannedChange] = field(default_factory=list)

    @property
    def order(self) -> list[str]:
        return [c.resource_id for c in self.changes]

    @property
    def has_changes(self) -> bool:
        return any(not c.is_noop for c in self.changes)

    def changes_for(self, action: ChangeAction) -> list[PlannedChange]:
        return [c for c in self.changes if c.action == action]

    def counts(self) -> dict[str, int]:
        counts = {a.value: 0 for a in ChangeAction}
        for change in self.changes:
            counts[change.action.value] += 1
        return counts

    def to_dict(self) -> dict:
        return {
            "stack_name": self.stack_name,
            "has_changes": self.has_changes,
            "counts": self.counts(),
            "changes": [c.model_dump(mode="json") for c in self.changes],
        }
