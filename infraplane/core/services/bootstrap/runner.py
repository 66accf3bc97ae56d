"""
Bootstrap subprocess runner.

The single place where ``subprocess.run`` is called for host bootstrap
steps. Root-only commands get a non-interactive ``sudo -n`` prefix
unless the process already runs as root (the usual case for EC2 user
data).
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class CommandRunner(Protocol):
    def __call__(
        self,
        cmd: list[str],
        *,
        needs_sudo: bool = ...,
        timeout: int = ...,
        cwd: str | None = ...,
    ) -> dict[str, Any]: ...


def run_command(
    cmd: list[str],
    *,
    needs_sudo: bool = False,
    timeout: int = 120,
    cwd: str | None = None,
) -> dict[str, Any]:
    """Run a command, capturing output.

    Args:
        cmd: Command list for ``subprocess.run()``.
        needs_sudo: Whether the command requires root.
        timeout: Seconds before ``TimeoutExpired``.
        cwd: Working directory for the command.

    Returns:
        ``{"ok": True, "stdout": "...", "stderr": "...", "returncode": 0,
        "elapsed_ms": N}`` on success, ``{"ok": False, "error": "...", ...}``
        on failure. Never raises.
    """
    if needs_sudo and os.geteuid() != 0:
        cmd = ["sudo", "-n"] + cmd

    logger.debug("Running: %s", " ".join(cmd))
    start = time.monotonic()
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd,
        )
    except subprocess.TimeoutExpired:
        return {"ok": False, "error": f"Command timed out ({timeout}s)", "returncode": None}
    except OSError as e:
        return {"ok": False, "error": str(e), "returncode": None}

    elapsed_ms = int((time.monotonic() - start) * 1000)
    stdout = result.stdout[-2000:] if result.stdout else ""
    stderr = result.stderr[-2000:] if result.stderr else ""

    if result.returncode == 0:
        return {
            "ok": True,
            "stdout": stdout,
            "stderr": stderr,
            "returncode": 0,
            "elapsed_ms": elapsed_ms,
        }

    return {
        "ok": False,
        "error": f"Command failed (exit {result.returncode})",
        "stdout": stdout,
        "stderr": stderr,
        "returncode": result.returncode,
        "elapsed_ms": elapsed_ms,
    }
