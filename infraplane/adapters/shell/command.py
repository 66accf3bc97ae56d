"""
Shell command provider — ``shell_command`` resources.

Runs a declared command for each lifecycle action and records its
output. ``update`` falls back to the create command; ``delete`` is a
no-op unless a delete command is declared.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time

from infraplane.adapters.base import ExecutionContext, Provider
from infraplane.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


class ShellCommandProvider(Provider):
    """Execute lifecycle commands and capture output.

    Properties:
        create (str): Command run on create (required).
        update (str): Command run on update (default: ``create``).
        delete (str): Command run on delete (optional).
        environment (dict): Extra environment variables.
        timeout (int): Timeout in seconds (default: 300).
        cwd (str): Working directory (default: provider working_dir).
    """

    @property
    def name(self) -> str:
        return "shell"

    def handles(self, resource_type: str) -> bool:
        return resource_type == "shell_command"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        if not context.properties.get("create"):
            return False, "Missing required property: 'create'"
        env = context.properties.get("environment", {})
        if not isinstance(env, dict):
            return False, "Property 'environment' must be a mapping"
        return True, ""

    def _run(self, context: ExecutionContext, command: str, props: dict) -> Receipt:
        timeout = props.get("timeout", 300)
        cwd = props.get("cwd") or str(context.working_dir)
        env = os.environ.copy()
        env.update({k: str(v) for k, v in props.get("environment", {}).items()})
        env["INFRAPLANE_RESOURCE_ID"] = context.resource_id
        env["INFRAPLANE_ACTION"] = context.action
        env["INFRAPLANE_REGION"] = context.config.region

        logger.debug("Executing: %s (cwd=%s)", command, cwd)
        start = time.monotonic()

        try:
            result = subprocess.run(
                command,
                shell=True,
                cwd=cwd,
                env=env,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                provider=self.name,
                resource_id=context.resource_id,
                action=context.action,
                error=f"Command timed out after {timeout}s",
                metadata={"command": command, "timeout": timeout},
            )
        except OSError as e:
            return Receipt.failure(
                provider=self.name,
                resource_id=context.resource_id,
                action=context.action,
                error=f"Command execution error: {e}",
                metadata={"command": command},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = result.stdout.strip()
        stderr = result.stderr.strip()

        if result.returncode != 0:
            return Receipt.failure(
                provider=self.name,
                resource_id=context.resource_id,
                action=context.action,
                error=stderr or f"Command exited with code {result.returncode}",
                duration_ms=elapsed_ms,
                metadata={
                    "command": command,
                    "return_code": result.returncode,
                    "stdout": output,
                },
            )

        state = None
        if context.action != "delete":
            state = self.make_state(context, outputs={
                "id": context.resource_id,
                "stdout": output,
                "return_code": result.returncode,
            })
        return Receipt.success(
            provider=self.name,
            resource_id=context.resource_id,
            action=context.action,
            state=state,
            output=output,
            duration_ms=elapsed_ms,
            metadata={"command": command, "return_code": result.returncode, "stderr": stderr},
        )

    def create(self, context: ExecutionContext) -> Receipt:
        return self._run(context, context.properties["create"], context.properties)

    def update(self, context: ExecutionContext) -> Receipt:
        props = context.properties
        return self._run(context, props.get("update") or props["create"], props)

    def delete(self, context: ExecutionContext) -> Receipt:
        props = context.previous.properties if context.previous else context.properties
        command = props.get("delete")
        if not command:
            return Receipt.success(
                provider=self.name,
                resource_id=context.resource_id,
                action="delete",
                output="No delete command declared",
            )
        return self._run(context, command, props)
