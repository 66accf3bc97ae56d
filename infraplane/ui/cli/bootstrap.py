"""
CLI commands for host bootstrap.

Thin wrappers over ``infraplane.core.use_cases.bootstrap``.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from infraplane.core.services.bootstrap.models import DEFAULT_SERVICE, BootstrapConfig


def _resolve_stack_root(ctx: click.Context) -> Path:
    """Resolve stack root from context or CWD."""
    from infraplane.core.config.loader import find_stack_file, stack_root

    config_path: Path | None = ctx.obj.get("config_path") or find_stack_file()
    return stack_root(config_path) if config_path else Path.cwd()


@click.group()
def bootstrap() -> None:
    """Bootstrap — install and verify the deployment agent on a host."""


@bootstrap.command("run")
@click.option("--service", default=DEFAULT_SERVICE, show_default=True, help="Service to install.")
@click.option("--region", default="us-east-1", show_default=True, help="Installer bucket region.")
@click.option("--work-dir", default="/home/ec2-user", show_default=True,
              help="Where the installer is downloaded.")
@click.option("--package-manager", default="yum", show_default=True, help="OS package manager.")
@click.option("--dry-run", is_flag=True, help="List the steps without running them.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def bootstrap_run(
    ctx: click.Context,
    service: str,
    region: str,
    work_dir: str,
    package_manager: str,
    dry_run: bool,
    as_json: bool,
) -> None:
    """Install, start, and verify the agent service.

    Exits 0 only when the service is verified running.
    """
    from infraplane.core.use_cases.bootstrap import bootstrap_host

    config = BootstrapConfig(
        service=service,
        region=region,
        work_dir=work_dir,
        package_manager=package_manager,
    )

    def _on_progress(step: str, status: str) -> None:
        if as_json:
            return
        marks = {"done": ("✓", "green"), "failed": ("✗", "red"), "skipped": ("⊘", "yellow")}
        if status in marks:
            mark, color = marks[status]
            click.secho(f"   {mark} {step}", fg=color)

    if not as_json:
        mode_label = "[dry-run] " if dry_run else ""
        click.secho(f"\n🚀 {mode_label}Bootstrap — {config.display_name}", fg="cyan", bold=True)
        click.echo()

    result = bootstrap_host(
        config,
        on_progress=_on_progress,
        dry_run=dry_run,
        audit_root=_resolve_stack_root(ctx),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.status == "failed":
            sys.exit(1)
        return

    if dry_run:
        click.echo()
        for step in result.steps:
            click.echo(f"   $ {' '.join(step.command)}")

    click.echo()
    if result.status == "failed":
        click.secho(f"   {result.message}", fg="red", bold=True)
        click.echo()
        sys.exit(1)

    click.secho(f"   {result.message}", fg="green" if result.running else "yellow", bold=True)
    click.echo()


@bootstrap.command("probe")
@click.option("--service", default=DEFAULT_SERVICE, show_default=True, help="Service to check.")
@click.option("--expect", default="running", show_default=True,
              help="Marker expected in the status output.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def bootstrap_probe(service: str, expect: str, as_json: bool) -> None:
    """Check whether the agent service reports itself running."""
    from infraplane.core.use_cases.bootstrap import probe_service

    config = BootstrapConfig(service=service, expect=expect)
    probe = probe_service(config)

    if as_json:
        click.echo(json.dumps(probe.to_dict(), indent=2))
    elif probe.matches:
        click.secho(f"{config.display_name} service is running!", fg="green")
    else:
        click.secho(f"{config.display_name} service is not running :(", fg="red")
        if probe.observed:
            click.echo(f"   │ {probe.observed}")

    if not probe.matches:
        sys.exit(1)


@bootstrap.command("script")
@click.option("--service", default=DEFAULT_SERVICE, show_default=True, help="Service to install.")
@click.option("--region", default="us-east-1", show_default=True, help="Installer bucket region.")
@click.option("--work-dir", default="/home/ec2-user", show_default=True,
              help="Where the installer is downloaded.")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Write to a file instead of stdout.")
def bootstrap_script(service: str, region: str, work_dir: str, output: Path | None) -> None:
    """Render the bootstrap as a bash user-data script."""
    from infraplane.core.services.bootstrap import render_user_data

    script = render_user_data(BootstrapConfig(service=service, region=region, work_dir=work_dir))

    if output is None:
        click.echo(script, nl=False)
        return

    output.write_text(script, encoding="utf-8")
    output.chmod(0o755)
    click.secho(f"✅ Wrote {output}", fg="green")
