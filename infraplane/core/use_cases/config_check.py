"""
Config check use case — validate stack.yml and report issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from infraplane.adapters import default_registry
from infraplane.core.config.loader import load_stack, locate_stack
from infraplane.core.engine.expressions import find_variables
from infraplane.core.engine.graph import build_graph, topological_order, validate_graph
from infraplane.core.errors import ConfigError, CycleError
from infraplane.core.models.stack import Stack


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    stack: Stack | None = None
    config_path: Path | None = None
    order: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    providers: dict[str, dict] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "stack_name": self.stack.name if self.stack else None,
            "resource_count": len(self.stack.resources) if self.stack else 0,
            "variable_count": len(self.stack.variables) if self.stack else 0,
            "order": self.order,
            "providers": self.providers,
        }


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate stack configuration without touching state or providers.

    Args:
        config_path: Optional explicit path to stack.yml.

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult()

    try:
        config_path = locate_stack(config_path)
        result.config_path = config_path
        stack = load_stack(config_path)
        result.stack = stack
    except ConfigError as e:
        result.errors.append(str(e))
        result.errors.extend(e.errors)
        return result

    if not stack.resources:
        result.warnings.append("No resources declared. The stack has nothing to manage.")

    # Graph structure
    result.errors.extend(validate_graph(stack.resources))
    if not result.errors:
        try:
            result.order = topological_order(build_graph(stack.resources))
        except CycleError as e:
            result.errors.append(str(e))

    # Variables used vs declared
    for decl in stack.resources:
        for name in sorted(find_variables(decl.properties)):
            if name not in stack.variables:
                result.errors.append(
                    f"Resource '{decl.id}' uses undeclared variable '{name}'"
                )

    for name, spec in stack.variables.items():
        if spec.required:
            result.warnings.append(
                f"Variable '{name}' has no default; pass it with --var or --var-file"
            )

    # Provider coverage
    registry = default_registry()
    result.providers = registry.provider_status()
    for decl in stack.resources:
        provider = registry.resolve(decl.type)
        if provider is None:
            result.warnings.append(
                f"No built-in provider handles '{decl.type}' (resource '{decl.id}'); "
                "apply it with --mock or register a provider"
            )
        elif not result.providers[provider.name]["available"]:
            result.warnings.append(
                f"Provider '{provider.name}' for resource '{decl.id}' is not available here"
            )

    result.valid = len(result.errors) == 0
    return result
