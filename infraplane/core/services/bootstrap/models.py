"""
Bootstrap models — configuration, phases, probe, and result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from pydantic import BaseModel, Field

DEFAULT_SERVICE = "codedeploy-agent"
DEFAULT_INSTALLER_URL = "https://aws-codedeploy-{region}.s3.amazonaws.com/latest/install"

_SERVICE_LABELS = {DEFAULT_SERVICE: "CodeDeploy agent"}


class BootstrapPhase(StrEnum):
    """Where the host is in the bootstrap sequence."""

    NOT_INSTALLED = "not_installed"
    INSTALLED = "installed"
    STARTED = "started"
    VERIFIED_RUNNING = "verified_running"
    VERIFIED_NOT_RUNNING = "verified_not_running"


class BootstrapConfig(BaseModel):
    """What to install and which service to verify.

    Defaults reproduce the EC2 user-data script for the CodeDeploy agent.
    """

    service: str = DEFAULT_SERVICE
    label: str = ""
    region: str = "us-east-1"
    package_manager: str = "yum"
    packages: list[str] = Field(default_factory=lambda: ["ruby", "wget"])
    installer_url: str = DEFAULT_INSTALLER_URL
    installer_args: list[str] = Field(default_factory=lambda: ["auto"])
    work_dir: str = "/home/ec2-user"
    expect: str = "running"
    timeout: int = 300

    @property
    def display_name(self) -> str:
        return self.label or _SERVICE_LABELS.get(self.service, self.service)

    @property
    def installer_source(self) -> str:
        return self.installer_url.format(region=self.region)

    @property
    def installer_path(self) -> str:
        return f"{self.work_dir.rstrip('/')}/install"


@dataclass
class ServiceProbe:
    """One status check of a service. Created fresh per check, never stored."""

    service: str
    expected: str = "running"
    observed: str = ""

    @property
    def matches(self) -> bool:
        return self.expected in self.observed

    def to_dict(self) -> dict:
        return {
            "service": self.service,
            "expected": self.expected,
            "observed": self.observed,
            "matches": self.matches,
        }


@dataclass
class StepResult:
    """Outcome of one bootstrap step."""

    name: str
    command: list[str]
    ok: bool = True
    output: str = ""
    error: str | None = None
    elapsed_ms: int = 0
    skipped: bool = False

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "command": self.command,
            "ok": self.ok,
            "skipped": self.skipped,
            "output": self.output,
            "error": self.error,
            "elapsed_ms": self.elapsed_ms,
        }


@dataclass
class BootstrapResult:
    """Accumulated state of a bootstrap run."""

    service: str
    label: str
    phase: BootstrapPhase = BootstrapPhase.NOT_INSTALLED
    steps: list[StepResult] = field(default_factory=list)
    probe: ServiceProbe | None = None
    error: str | None = None
    failed_step: str | None = None
    dry_run: bool = False

    @property
    def running(self) -> bool:
        return self.phase == BootstrapPhase.VERIFIED_RUNNING

    @property
    def status(self) -> str:
        if self.error:
            return "failed"
        if self.dry_run:
            return "skipped"
        return "ok" if self.running else "failed"

    @property
    def message(self) -> str:
        """The human-readable outcome line."""
        if self.error:
            return f"{self.label} bootstrap failed at {self.failed_step}: {self.error}"
        if self.dry_run:
            return f"[dry-run] {self.label} bootstrap planned ({len(self.steps)} steps)"
        if self.running:
            return f"{self.label} service is running!"
        return f"{self.label} service is not running :("

    def to_dict(self) -> dict:
        return {
            "service": self.service,
            "phase": self.phase.value,
            "status": self.status,
            "running": self.running,
            "message": self.message,
            "dry_run": self.dry_run,
            "error": self.error,
            "failed_step": self.failed_step,
            "probe": self.probe.to_dict() if self.probe else None,
            "steps": [s.to_dict() for s in self.steps],
        }
