"""
Provider base — the protocol contract between the executor and providers.

This defines the abstract interface every provider implements. The
executor only talks to providers through this protocol (via the
registry), never directly to external APIs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from infraplane.core.models.receipt import Receipt
from infraplane.core.models.resource import ProviderConfig, ResourceState


class ExecutionContext(BaseModel):
    """Everything a provider needs to create, update, or delete a resource.

    ``properties`` are fully resolved: variables substituted and
    references to other resources replaced by their outputs.
    """

    resource_id: str
    type: str
    action: str                                 # create, update, delete
    properties: dict[str, Any] = Field(default_factory=dict)
    references: list[str] = Field(default_factory=list)
    previous: ResourceState | None = None       # live state for update/delete
    config: ProviderConfig = Field(default_factory=ProviderConfig)
    dry_run: bool = False

    @property
    def working_dir(self) -> Path:
        """Resolved working directory for the provider call."""
        return Path(self.config.working_dir)


class Provider(ABC):
    """Abstract base class for all providers.

    Providers perform external side effects and return receipts.
    They NEVER raise exceptions: failures are captured in the Receipt.

    To create a new provider:
        1. Subclass Provider
        2. Implement name, is_available, validate, create, update, delete
        3. Register it in the ProviderRegistry
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The provider identifier and type prefix (e.g., 'local', 'shell')."""

    def handles(self, resource_type: str) -> bool:
        """Whether this provider manages ``resource_type``."""
        return resource_type.startswith(f"{self.name}_")

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider's backing system is reachable.

        Should be fast and never raise.
        """

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Validate that the change can be executed.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    def create(self, context: ExecutionContext) -> Receipt:
        """Create the resource and return a receipt carrying its new state."""

    @abstractmethod
    def update(self, context: ExecutionContext) -> Receipt:
        """Update the resource in place."""

    @abstractmethod
    def delete(self, context: ExecutionContext) -> Receipt:
        """Delete the resource. The receipt carries no state."""

    def read(self, state: ResourceState, config: ProviderConfig) -> ResourceState | None:
        """Refresh live state. ``None`` means the resource no longer exists.

        The default trusts the recorded state.
        """
        return state

    def execute(self, context: ExecutionContext) -> Receipt:
        """Dispatch to create/update/delete by ``context.action``."""
        if context.action == "create":
            return self.create(context)
        if context.action == "update":
            return self.update(context)
        if context.action == "delete":
            return self.delete(context)
        return Receipt.failure(
            provider=self.name,
            resource_id=context.resource_id,
            action=context.action,
            error=f"Unknown action: {context.action}",
        )

    def make_state(
        self,
        context: ExecutionContext,
        outputs: dict[str, Any] | None = None,
    ) -> ResourceState:
        """Build the live state a successful create/update reports."""
        return ResourceState(
            id=context.resource_id,
            type=context.type,
            provider=self.name,
            properties=dict(context.properties),
            outputs=dict(outputs or {}),
            references=list(context.references),
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
