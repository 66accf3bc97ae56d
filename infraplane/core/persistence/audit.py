"""
Audit ledger — one NDJSON line per apply, destroy, or bootstrap.

Each entry records what the operation planned (counts per action) and
what happened to every resource it touched, so ``infraplane history``
can answer "when was X last changed, and did it work" without the
state snapshot. Lines are only ever appended.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

AUDIT_DIR = ".state"
AUDIT_FILE = "audit.ndjson"


class ChangeRecord(BaseModel):
    """Outcome for one resource (or bootstrap target) in an operation."""

    resource_id: str
    action: str                    # create, update, delete, bootstrap
    status: str                    # ok, failed, skipped
    detail: str = ""               # error message or skip reason


class AuditEntry(BaseModel):
    """A single operation in the ledger."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation_id: str = ""
    operation_type: str = ""       # apply, destroy, bootstrap
    stack: str = ""
    status: str = ""               # ok, partial, failed
    duration_ms: int = 0

    planned: dict[str, int] = Field(default_factory=dict)
    changes: list[ChangeRecord] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    context: dict[str, Any] = Field(default_factory=dict)

    @property
    def resources_affected(self) -> list[str]:
        return [c.resource_id for c in self.changes if c.status == "ok"]

    @property
    def failed_ids(self) -> list[str]:
        return [c.resource_id for c in self.changes if c.status == "failed"]

    def touches(self, resource_id: str) -> bool:
        return any(c.resource_id == resource_id for c in self.changes)


class AuditLedger:
    """Append-only ledger at ``<stack root>/.state/audit.ndjson``."""

    def __init__(self, path: Path):
        self.path = path

    @classmethod
    def for_stack(cls, stack_root: Path) -> AuditLedger:
        return cls(stack_root / AUDIT_DIR / AUDIT_FILE)

    def append(self, entry: AuditEntry) -> None:
        """Add ``entry`` as the last line. Raises OSError if it cannot be written."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n")
        logger.debug("Audit: %s %s → %s", entry.operation_type, entry.operation_id, entry.status)

    def entries(
        self,
        operation: str | None = None,
        resource_id: str | None = None,
        limit: int = 0,
    ) -> list[AuditEntry]:
        """Entries oldest first, optionally filtered, keeping the last ``limit``.

        Lines that do not parse are skipped with a warning; one bad line
        does not hide the rest of the history.
        """
        if not self.path.is_file():
            return []

        found: list[AuditEntry] = []
        with self.path.open(encoding="utf-8") as f:
            for line_num, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    entry = AuditEntry.model_validate(json.loads(line))
                except ValueError as e:
                    logger.warning("%s:%d: skipping unreadable audit entry: %s",
                                   self.path, line_num, e)
                    continue
                if operation and entry.operation_type != operation:
                    continue
                if resource_id and not entry.touches(resource_id):
                    continue
                found.append(entry)

        return found[-limit:] if limit > 0 else found
