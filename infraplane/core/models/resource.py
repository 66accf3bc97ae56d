"""
Resource models — declared (desired) state and live (actual) state.

A ResourceDeclaration is read from stack.yml. A ResourceState is what a
provider reports back after create/update/read, and what the state file
persists between apply passes.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from infraplane.core.engine.expressions import VAR_NAMESPACE, find_references

_ID_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class ProviderConfig(BaseModel):
    """Provider settings threaded explicitly through plan and apply.

    Nothing here is held as process-wide state: every provider call
    receives the config it should act under.
    """

    region: str = "us-east-1"
    profile: str | None = None
    working_dir: str = "."
    settings: dict[str, Any] = Field(default_factory=dict)


class ResourceDeclaration(BaseModel):
    """Desired state of one resource, as declared in stack.yml."""

    id: str
    type: str
    description: str = ""
    properties: dict[str, Any] = Field(default_factory=dict)
    depends_on: list[str] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        if not _ID_RE.match(value):
            raise ValueError(
                f"invalid resource id '{value}' "
                "(letters, digits, '_' and '-', not starting with a digit)"
            )
        if value == VAR_NAMESPACE:
            raise ValueError(f"'{VAR_NAMESPACE}' is reserved for variables")
        return value

    @field_validator("type")
    @classmethod
    def _check_type(cls, value: str) -> str:
        if not value or "_" not in value:
            raise ValueError(
                f"invalid resource type '{value}' (expected '<provider>_<kind>')"
            )
        return value

    @property
    def implicit_references(self) -> set[str]:
        """Resource ids referenced through ``${ID.ATTR}`` in properties."""
        return find_references(self.properties)

    @property
    def references(self) -> set[str]:
        """All dependencies: explicit ``depends_on`` plus implicit references."""
        return set(self.depends_on) | self.implicit_references

    @property
    def provider_name(self) -> str:
        """Provider prefix of the type (``null_vpc`` → ``null``)."""
        return self.type.split("_", 1)[0]


class ResourceState(BaseModel):
    """Live state of one resource, as last reported by its provider."""

    id: str
    type: str
    provider: str = ""
    properties: dict[str, Any] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)
    references: list[str] = Field(default_factory=list)

    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)
