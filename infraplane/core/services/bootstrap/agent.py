"""
Host bootstrap — install, start, and verify an agent service.

Sequence (each step fatal on failure, except the final probe):

    update package index → install packages → download installer
    → chmod +x → run installer          (NOT_INSTALLED → INSTALLED)
    → start service                     (INSTALLED → STARTED)
    → probe status for the marker       (→ VERIFIED_RUNNING | VERIFIED_NOT_RUNNING)

There is no automatic retry: a failed or not-running outcome is
reported, and the operator re-runs or inspects logs.
"""

from __future__ import annotations

import logging
import shlex
from collections.abc import Callable

from infraplane.core.errors import BootstrapError, FetchError, InstallError
from infraplane.core.services.bootstrap.models import (
    BootstrapConfig,
    BootstrapPhase,
    BootstrapResult,
    ServiceProbe,
    StepResult,
)
from infraplane.core.services.bootstrap.runner import CommandRunner, run_command

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, str], None]


def build_steps(config: BootstrapConfig) -> list[tuple[str, list[str], type[BootstrapError]]]:
    """The ordered install/start steps: ``(name, command, error type)``."""
    pm = config.package_manager
    return [
        ("update-index", [pm, "update", "-y"], InstallError),
        ("install-packages", [pm, "install", "-y", *config.packages], InstallError),
        ("download-installer",
         ["wget", "-q", "-O", config.installer_path, config.installer_source], FetchError),
        ("chmod-installer", ["chmod", "+x", config.installer_path], InstallError),
        ("run-installer", [config.installer_path, *config.installer_args], InstallError),
        ("start-service", ["service", config.service, "start"], InstallError),
    ]


def status_command(config: BootstrapConfig) -> list[str]:
    return ["service", config.service, "status"]


class AgentBootstrap:
    """Runs the bootstrap sequence for one service.

    ``result`` is updated step by step, so it is still inspectable when
    :meth:`run` raises.
    """

    def __init__(
        self,
        config: BootstrapConfig | None = None,
        runner: CommandRunner = run_command,
        on_progress: ProgressCallback | None = None,
        dry_run: bool = False,
    ):
        self.config = config or BootstrapConfig()
        self._runner = runner
        self._on_progress = on_progress
        self.result = BootstrapResult(
            service=self.config.service,
            label=self.config.display_name,
            dry_run=dry_run,
        )

    def _progress(self, step: str, status: str) -> None:
        if self._on_progress:
            self._on_progress(step, status)

    def _run_step(self, name: str, cmd: list[str], error_cls: type[BootstrapError]) -> None:
        step = StepResult(name=name, command=cmd)
        self.result.steps.append(step)

        if self.result.dry_run:
            step.skipped = True
            self._progress(name, "skipped")
            return

        self._progress(name, "started")
        outcome = self._runner(
            cmd,
            needs_sudo=True,
            timeout=self.config.timeout,
            cwd=None,
        )
        step.ok = bool(outcome.get("ok"))
        step.output = outcome.get("stdout", "")
        step.elapsed_ms = outcome.get("elapsed_ms", 0)

        if not step.ok:
            detail = outcome.get("stderr") or outcome.get("error") or "unknown error"
            step.error = detail.strip()
            self.result.error = step.error
            self.result.failed_step = name
            self._progress(name, "failed")
            logger.error("Bootstrap step %s failed: %s", name, step.error)
            raise error_cls(name, step.error)

        self._progress(name, "done")
        logger.info("Bootstrap step %s done (%dms)", name, step.elapsed_ms)

    def probe(self) -> ServiceProbe:
        """Check the service status string for the expected marker.

        A non-zero exit from the status command is normal for a stopped
        service, so the output is inspected either way.
        """
        outcome = self._runner(
            status_command(self.config),
            needs_sudo=True,
            timeout=30,
            cwd=None,
        )
        observed = (outcome.get("stdout") or "") + (outcome.get("stderr") or "")
        if not observed and not outcome.get("ok"):
            observed = outcome.get("error", "")
        return ServiceProbe(
            service=self.config.service,
            expected=self.config.expect,
            observed=observed.strip(),
        )

    def run(self) -> BootstrapResult:
        """Run the full sequence.

        Raises:
            FetchError: The installer download failed.
            InstallError: A package, installer, or service start step failed.
        """
        for name, cmd, error_cls in build_steps(self.config):
            self._run_step(name, cmd, error_cls)
            if name == "run-installer" and not self.result.dry_run:
                self.result.phase = BootstrapPhase.INSTALLED
            elif name == "start-service" and not self.result.dry_run:
                self.result.phase = BootstrapPhase.STARTED

        if self.result.dry_run:
            self.result.steps.append(StepResult(
                name="probe-status",
                command=status_command(self.config),
                skipped=True,
            ))
            return self.result

        self._progress("probe-status", "started")
        probe = self.probe()
        self.result.probe = probe
        if probe.matches:
            self.result.phase = BootstrapPhase.VERIFIED_RUNNING
            self._progress("probe-status", "done")
        else:
            self.result.phase = BootstrapPhase.VERIFIED_NOT_RUNNING
            self._progress("probe-status", "failed")
            logger.warning("%s status does not contain %r: %s",
                           self.config.service, probe.expected, probe.observed)
        return self.result


def run_bootstrap(
    config: BootstrapConfig | None = None,
    runner: CommandRunner = run_command,
    on_progress: ProgressCallback | None = None,
    dry_run: bool = False,
) -> BootstrapResult:
    """Run the bootstrap and return its result (fatal steps raise)."""
    return AgentBootstrap(config, runner, on_progress, dry_run).run()


def render_user_data(config: BootstrapConfig | None = None) -> str:
    """Render the bootstrap sequence as a standalone bash user-data script.

    The script exits on the first failed step and reports the status
    probe as a success or failure line.
    """
    config = config or BootstrapConfig()
    label = config.display_name
    lines = ["#!/bin/bash", "set -euo pipefail", ""]
    for name, cmd, _ in build_steps(config):
        lines.append(f"# {name}")
        lines.append("sudo " + shlex.join(cmd))
    status = "sudo " + shlex.join(status_command(config))
    lines += [
        "",
        f"status=$({status} 2>&1 || true)",
        f"if [[ $status == *{shlex.quote(config.expect)}* ]]",
        "then",
        f"  echo {shlex.quote(f'{label} service is running!')}",
        "else",
        f"  echo {shlex.quote(f'{label} service is not running :(')}",
        "fi",
        "",
    ]
    return "\n".join(lines)
