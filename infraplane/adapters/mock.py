"""
Mock provider — universal test double for all provider operations.

Keeps resources in memory and logs every call. Configurable to fail
specific resources, so partial-apply behavior can be exercised without
touching any real system.
"""

from __future__ import annotations

from infraplane.adapters.base import ExecutionContext, Provider
from infraplane.core.models.receipt import Receipt
from infraplane.core.models.resource import ProviderConfig, ResourceState


class MockProvider(Provider):
    """Universal mock provider for testing.

    By default, succeeds for everything and claims every resource type.
    Can be configured with failures per resource id (and optionally per
    action).
    """

    def __init__(
        self,
        provider_name: str = "mock",
        available: bool = True,
        handles_all: bool = True,
    ):
        self._name = provider_name
        self._available = available
        self._handles_all = handles_all
        self._failures: dict[tuple[str, str | None], str] = {}
        self._call_log: list[ExecutionContext] = []
        self.resources: dict[str, ResourceState] = {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        """Number of provider calls made."""
        return len(self._call_log)

    def calls_for(self, resource_id: str) -> list[ExecutionContext]:
        return [c for c in self._call_log if c.resource_id == resource_id]

    def handles(self, resource_type: str) -> bool:
        return self._handles_all or super().handles(resource_type)

    def is_available(self) -> bool:
        return self._available

    def set_failure(
        self,
        resource_id: str,
        error: str = "Mock failure",
        action: str | None = None,
    ) -> None:
        """Configure a resource's calls (or one action on it) to fail."""
        self._failures[(resource_id, action)] = error

    def clear_failures(self) -> None:
        self._failures.clear()

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def _failure_for(self, context: ExecutionContext) -> str | None:
        return self._failures.get(
            (context.resource_id, context.action),
            self._failures.get((context.resource_id, None)),
        )

    def _apply(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)

        error = self._failure_for(context)
        if error is not None:
            return Receipt.failure(
                provider=self._name,
                resource_id=context.resource_id,
                action=context.action,
                error=error,
            )

        if context.action == "delete":
            self.resources.pop(context.resource_id, None)
            return Receipt.success(
                provider=self._name,
                resource_id=context.resource_id,
                action="delete",
                output="[mock] deleted",
                metadata={"mock": True},
            )

        state = self.make_state(
            context,
            outputs={"id": f"mock-{context.resource_id}", **context.properties},
        )
        self.resources[context.resource_id] = state
        return Receipt.success(
            provider=self._name,
            resource_id=context.resource_id,
            action=context.action,
            state=state,
            output=f"[mock] {context.action}d",
            metadata={"mock": True},
        )

    def create(self, context: ExecutionContext) -> Receipt:
        return self._apply(context)

    def update(self, context: ExecutionContext) -> Receipt:
        return self._apply(context)

    def delete(self, context: ExecutionContext) -> Receipt:
        return self._apply(context)

    def read(self, state: ResourceState, config: ProviderConfig) -> ResourceState | None:
        return self.resources.get(state.id)

    def reset(self) -> None:
        """Clear call log, stored resources, and configured failures."""
        self._call_log.clear()
        self._failures.clear()
        self.resources.clear()
