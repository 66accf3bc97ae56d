"""
Receipt model — the provider execution contract.

The executor sends one change per resource to a provider; the provider
returns a Receipt. Never exceptions: failures are captured here and the
executor turns them into ProviderCallError entries on the report.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from infraplane.core.models.resource import ResourceState


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Receipt(BaseModel):
    """Result of one provider call (or of a change that was never attempted)."""

    provider: str
    resource_id: str
    action: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    output: str = ""
    error: str | None = None
    state: ResourceState | None = None      # new live state (None after delete)

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the call succeeded."""
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        """Whether the call failed."""
        return self.status == "failed"

    @classmethod
    def success(
        cls,
        provider: str,
        resource_id: str,
        action: str,
        state: ResourceState | None = None,
        output: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a success receipt."""
        return cls(
            provider=provider,
            resource_id=resource_id,
            action=action,
            status="ok",
            state=state,
            output=output,
            **kwargs,
        )

    @classmethod
    def failure(
        cls,
        provider: str,
        resource_id: str,
        action: str,
        error: str,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(
            provider=provider,
            resource_id=resource_id,
            action=action,
            status="failed",
            error=error,
            **kwargs,
        )

    @classmethod
    def skip(
        cls,
        provider: str,
        resource_id: str,
        action: str,
        reason: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a skip receipt."""
        return cls(
            provider=provider,
            resource_id=resource_id,
            action=action,
            status="skipped",
            output=reason,
            **kwargs,
        )
