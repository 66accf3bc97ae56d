"""
Local file provider — ``local_file`` resources.

Provides a receipt-returning create/update/delete for files on disk,
relative to the provider working directory. ``read`` reports drift:
a missing file means the resource is gone, changed content shows up as
a property difference on the next plan.
"""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

from infraplane.adapters.base import ExecutionContext, Provider
from infraplane.core.models.receipt import Receipt
from infraplane.core.models.resource import ProviderConfig, ResourceState

logger = logging.getLogger(__name__)


def _parse_mode(value: object) -> int | None:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(str(value), 8)


class LocalFileProvider(Provider):
    """Manage files with receipts.

    Properties:
        path (str): Target path (relative to working_dir or absolute).
        content (str): File content.
        mode (str|int): Optional permission bits, e.g. "0644".
    """

    @property
    def name(self) -> str:
        return "local"

    def handles(self, resource_type: str) -> bool:
        return resource_type == "local_file"

    def is_available(self) -> bool:
        return True  # filesystem is always available

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        props = context.properties
        if not props.get("path"):
            return False, "Missing required property: 'path'"
        if not isinstance(props.get("content", ""), str):
            return False, "Property 'content' must be a string"
        try:
            _parse_mode(props.get("mode"))
        except ValueError:
            return False, f"Invalid mode: {props.get('mode')!r}"
        return True, ""

    @staticmethod
    def _target(raw_path: str, working_dir: Path) -> Path:
        target = Path(raw_path)
        if not target.is_absolute():
            target = working_dir / target
        return target

    def _write(self, context: ExecutionContext) -> Receipt:
        props = context.properties
        target = self._target(props["path"], context.working_dir)
        content = props.get("content", "")

        try:
            # A changed path moves the file
            if context.previous is not None:
                old = self._target(context.previous.properties.get("path", ""),
                                   context.working_dir)
                if old != target and old.is_file():
                    old.unlink()
                    logger.debug("Removed previous file %s", old)

            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
            mode = _parse_mode(props.get("mode"))
            if mode is not None:
                os.chmod(target, mode)
        except OSError as e:
            return Receipt.failure(
                provider=self.name,
                resource_id=context.resource_id,
                action=context.action,
                error=f"Filesystem error: {e}",
                metadata={"path": str(target)},
            )

        outputs = {
            "id": str(target.resolve()),
            "path": str(target),
            "sha256": hashlib.sha256(content.encode("utf-8")).hexdigest(),
            "size": len(content.encode("utf-8")),
        }
        return Receipt.success(
            provider=self.name,
            resource_id=context.resource_id,
            action=context.action,
            state=self.make_state(context, outputs),
            output=f"Written {outputs['size']} bytes to {target}",
            metadata={"path": str(target)},
        )

    def create(self, context: ExecutionContext) -> Receipt:
        return self._write(context)

    def update(self, context: ExecutionContext) -> Receipt:
        return self._write(context)

    def delete(self, context: ExecutionContext) -> Receipt:
        props = context.previous.properties if context.previous else context.properties
        target = self._target(props.get("path", ""), context.working_dir)
        try:
            target.unlink(missing_ok=True)
        except OSError as e:
            return Receipt.failure(
                provider=self.name,
                resource_id=context.resource_id,
                action="delete",
                error=f"Filesystem error: {e}",
                metadata={"path": str(target)},
            )
        return Receipt.success(
            provider=self.name,
            resource_id=context.resource_id,
            action="delete",
            output=f"Removed {target}",
            metadata={"path": str(target)},
        )

    def read(self, state: ResourceState, config: ProviderConfig) -> ResourceState | None:
        target = self._target(state.properties.get("path", ""), Path(config.working_dir))
        if not target.is_file():
            logger.info("local_file '%s' is gone: %s", state.id, target)
            return None
        content = target.read_text(encoding="utf-8")
        if content == state.properties.get("content"):
            return state
        refreshed = state.model_copy(deep=True)
        refreshed.properties["content"] = content
        refreshed.outputs["sha256"] = hashlib.sha256(content.encode("utf-8")).hexdigest()
        refreshed.outputs["size"] = len(content.encode("utf-8"))
        return refreshed
