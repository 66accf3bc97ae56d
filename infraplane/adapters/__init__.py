"""Providers — bindings between the executor and the systems it manages.

Public re-exports for convenient access.
"""

from infraplane.adapters.base import ExecutionContext, Provider
from infraplane.adapters.mock import MockProvider
from infraplane.adapters.registry import ProviderRegistry


def default_registry(mock_mode: bool = False) -> ProviderRegistry:
    """Registry with every built-in provider registered."""
    from infraplane.adapters.local.file import LocalFileProvider
    from infraplane.adapters.null.resource import NullProvider
    from infraplane.adapters.shell.command import ShellCommandProvider

    registry = ProviderRegistry(mock_mode=mock_mode)
    registry.register(NullProvider())
    registry.register(LocalFileProvider())
    registry.register(ShellCommandProvider())
    return registry


__all__ = [
    "ExecutionContext",
    "MockProvider",
    "Provider",
    "ProviderRegistry",
    "default_registry",
]
