"""
Provider registry — central dispatch for all provider calls.

The registry is the single point of provider management. It handles
registration, lookup by resource type, mock mode, and change
execution. The executor never talks to providers directly.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from infraplane.adapters.base import ExecutionContext, Provider
from infraplane.core.models.receipt import Receipt
from infraplane.core.models.resource import ProviderConfig, ResourceState

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Central registry and dispatcher for providers.

    Features:
        - Register providers by name
        - Resolve the provider for a resource type
        - Mock mode: swap all providers for a mock that always succeeds
        - Execute changes, always returning a Receipt
    """

    def __init__(self, mock_mode: bool = False):
        self._providers: dict[str, Provider] = {}
        self._mock_mode = mock_mode
        self._mock_provider: Provider | None = None

    def set_mock_mode(self, enabled: bool, mock_provider: Provider | None = None) -> None:
        """Enable or disable mock mode.

        Args:
            enabled: Whether to use mock mode.
            mock_provider: Optional custom mock provider. If None, uses default.
        """
        self._mock_mode = enabled
        self._mock_provider = mock_provider

    def register(self, provider: Provider) -> None:
        """Register a provider."""
        name = provider.name
        if name in self._providers:
            logger.warning("Overwriting existing provider: %s", name)
        self._providers[name] = provider
        logger.debug("Registered provider: %s", name)

    def provider_status(self) -> dict[str, dict[str, Any]]:
        """Get availability status of all registered providers."""
        status = {}
        for name, provider in self._providers.items():
            try:
                available = provider.is_available()
            except Exception:
                available = False
            status[name] = {
                "name": name,
                "available": available,
                "type": provider.__class__.__name__,
            }
        return status

    def resolve(self, resource_type: str) -> Provider | None:
        """Find the provider for a resource type.

        Exact prefix match on the provider name first (``local_file`` →
        ``local``), then any provider that claims the type.
        """
        prefix = resource_type.split("_", 1)[0]
        provider = self._providers.get(prefix)
        if provider is not None and provider.handles(resource_type):
            return provider
        for candidate in self._providers.values():
            if candidate.handles(resource_type):
                return candidate
        return None

    def execute_change(
        self,
        resource_id: str,
        resource_type: str,
        action: str,
        properties: dict[str, Any] | None = None,
        references: list[str] | None = None,
        previous: ResourceState | None = None,
        config: ProviderConfig | None = None,
        dry_run: bool = False,
    ) -> Receipt:
        """Execute one change through the appropriate provider.

        This is the main dispatch method. It:
        1. Resolves the provider (or mock)
        2. Builds the execution context
        3. Validates the change
        4. Executes (or dry-runs)
        5. Returns a Receipt (never raises)
        """
        start_time = time.monotonic()

        context = ExecutionContext(
            resource_id=resource_id,
            type=resource_type,
            action=action,
            properties=dict(properties or {}),
            references=list(references or []),
            previous=previous,
            config=config or ProviderConfig(),
            dry_run=dry_run,
        )

        # Resolve provider
        provider: Provider | None = None
        if self._mock_mode and self._mock_provider:
            provider = self._mock_provider
        elif self._mock_mode:
            # Default mock behavior: return success
            if dry_run:
                return Receipt.skip(
                    provider="mock",
                    resource_id=resource_id,
                    action=action,
                    reason=f"[dry-run] Would {action} {resource_id}",
                    metadata={"mock": True, "dry_run": True},
                )
            state = None
            if action != "delete":
                state = ResourceState(
                    id=resource_id,
                    type=resource_type,
                    provider="mock",
                    properties=dict(properties or {}),
                    outputs={"id": f"mock-{resource_id}", **(properties or {})},
                    references=list(references or []),
                )
            return Receipt.success(
                provider="mock",
                resource_id=resource_id,
                action=action,
                state=state,
                output=f"[mock] {action} {resource_id}",
                metadata={"mock": True},
            )
        else:
            provider = self.resolve(resource_type)

        if provider is None:
            return Receipt.failure(
                provider=resource_type.split("_", 1)[0],
                resource_id=resource_id,
                action=action,
                error=f"No provider registered for type '{resource_type}'",
            )

        # Validate (deletes only need the recorded state)
        if action != "delete":
            try:
                is_valid, error_msg = provider.validate(context)
                if not is_valid:
                    return Receipt.failure(
                        provider=provider.name,
                        resource_id=resource_id,
                        action=action,
                        error=f"Validation failed: {error_msg}",
                    )
            except Exception as e:
                return Receipt.failure(
                    provider=provider.name,
                    resource_id=resource_id,
                    action=action,
                    error=f"Validation error: {e}",
                )

        # Dry run: validated, not executed
        if dry_run:
            return Receipt.skip(
                provider=provider.name,
                resource_id=resource_id,
                action=action,
                reason=f"[dry-run] Would {action} {resource_id}",
                metadata={"dry_run": True},
            )

        # Execute
        try:
            receipt = provider.execute(context)
        except Exception as e:
            # Providers should never raise
            logger.error("Provider %s raised during %s of %s: %s",
                         provider.name, action, resource_id, e)
            receipt = Receipt.failure(
                provider=provider.name,
                resource_id=resource_id,
                action=action,
                error=f"Unexpected error: {e}",
            )

        # Add timing
        elapsed_ms = int((time.monotonic() - start_time) * 1000)
        receipt.duration_ms = elapsed_ms

        return receipt

    def read(self, state: ResourceState, config: ProviderConfig) -> ResourceState | None:
        """Refresh one resource's live state through its provider.

        Falls back to the recorded state when no provider can read it.
        """
        if self._mock_mode:
            return state
        provider = self.resolve(state.type)
        if provider is None:
            logger.warning("No provider to refresh '%s' (%s)", state.id, state.type)
            return state
        try:
            return provider.read(state, config)
        except Exception as e:
            logger.warning("Refresh of '%s' failed, keeping recorded state: %s", state.id, e)
            return state
