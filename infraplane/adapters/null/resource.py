"""
Null provider — resources that exist only as recorded state.

Any ``null_*`` type is accepted. The provider computes a stable id from
the region and resource id and echoes the properties back as outputs,
so declarations can model networks, load balancers, scaling groups and
pipelines (and reference each other) without a cloud account.
"""

from __future__ import annotations

import logging
import uuid

from infraplane.adapters.base import ExecutionContext, Provider
from infraplane.core.models.receipt import Receipt

logger = logging.getLogger(__name__)

_NAMESPACE = uuid.UUID("6c1c7f1e-6f0b-4d8e-9a55-0d6c0b6a3a10")


class NullProvider(Provider):
    """Record-only provider for ``null_*`` resource types."""

    @property
    def name(self) -> str:
        return "null"

    def is_available(self) -> bool:
        return True

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        if not context.type.startswith("null_"):
            return False, f"Unsupported type '{context.type}'"
        return True, ""

    def _resource_id(self, context: ExecutionContext) -> str:
        kind = context.type.removeprefix("null_")
        key = f"{context.config.region}/{context.type}/{context.resource_id}"
        return f"{kind}-{uuid.uuid5(_NAMESPACE, key).hex[:12]}"

    def _record(self, context: ExecutionContext) -> Receipt:
        outputs = {**context.properties, "id": self._resource_id(context)}
        outputs["region"] = context.config.region
        logger.debug("null: %s %s (%s)", context.action, context.resource_id, outputs["id"])
        return Receipt.success(
            provider=self.name,
            resource_id=context.resource_id,
            action=context.action,
            state=self.make_state(context, outputs),
            output=f"{context.action}d {outputs['id']}",
        )

    def create(self, context: ExecutionContext) -> Receipt:
        return self._record(context)

    def update(self, context: ExecutionContext) -> Receipt:
        return self._record(context)

    def delete(self, context: ExecutionContext) -> Receipt:
        return Receipt.success(
            provider=self.name,
            resource_id=context.resource_id,
            action="delete",
            output=f"deleted {context.resource_id}",
        )
