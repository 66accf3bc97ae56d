"""
Stack model — the root of a stack.yml declaration file.

A stack bundles provider settings, declared variables, and the resource
declarations an apply pass converges towards.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from infraplane.core.models.resource import ProviderConfig, ResourceDeclaration

VariableType = Literal["string", "number", "bool", "list", "map", "any"]


class VariableSpec(BaseModel):
    """A declared input variable: type, optional description, default."""

    type: VariableType = "string"
    description: str = ""
    default: Any = None

    @property
    def required(self) -> bool:
        """A variable without a declared default must be supplied."""
        return "default" not in self.model_fields_set


class Stack(BaseModel):
    """Root stack identity — loaded from stack.yml."""

    version: int = 1

    name: str
    description: str = ""

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    variables: dict[str, VariableSpec] = Field(default_factory=dict)
    resources: list[ResourceDeclaration] = Field(default_factory=list)

    def get_resource(self, resource_id: str) -> ResourceDeclaration | None:
        """Look up a declaration by id."""
        for decl in self.resources:
            if decl.id == resource_id:
                return decl
        return None

    def resources_by_provider(self, provider: str) -> list[ResourceDeclaration]:
        return [r for r in self.resources if r.provider_name == provider]
