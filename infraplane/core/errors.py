"""
Error taxonomy for planning, applying, and host bootstrap.

Planning errors (ValidationError, CycleError) are raised before any
provider call. ConfigError and StateError stop an operation before
planning: a state snapshot that cannot be read is never replaced by an
empty one, since that would recreate every live resource.

Provider failures never propagate as exceptions out of the executor:
they are captured as ProviderCallError values on the ApplyReport so
partial application stays visible.
"""

from __future__ import annotations


class InfraplaneError(Exception):
    """Base class for all infraplane errors."""


class ValidationError(InfraplaneError):
    """A declared value or structure failed validation (pre-plan, fatal)."""

    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class CycleError(InfraplaneError):
    """The declaration reference graph contains a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = list(cycle)
        super().__init__(
            f"Dependency cycle detected between: {', '.join(self.cycle)}"
        )


class ProviderCallError(InfraplaneError):
    """One resource's create/update/delete call failed."""

    def __init__(self, resource_id: str, action: str, message: str):
        self.resource_id = resource_id
        self.action = action
        self.message = message
        super().__init__(f"{resource_id}: {action} failed: {message}")

    def to_dict(self) -> dict:
        return {
            "resource_id": self.resource_id,
            "action": self.action,
            "message": self.message,
        }


class BootstrapError(InfraplaneError):
    """A fatal host bootstrap step failed."""

    def __init__(self, step: str, message: str):
        self.step = step
        self.message = message
        super().__init__(f"{step}: {message}")


class FetchError(BootstrapError):
    """Downloading the vendor installer failed."""


class InstallError(BootstrapError):
    """Package install, installer run, or service start failed."""


class ConfigError(InfraplaneError):
    """stack.yml is missing, unreadable, or does not describe a valid stack."""

    def __init__(self, message: str, errors: list[str] | None = None):
        self.errors = list(errors or [])
        super().__init__(message)


class StateError(InfraplaneError):
    """The live-state snapshot exists but cannot be trusted."""

    def __init__(self, path, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")
