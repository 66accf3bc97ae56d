"""
Infraplane — CLI entrypoint.

Usage:
    infraplane --help
    infraplane plan
    infraplane apply --var instance_type=t3.small
    infraplane destroy
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from infraplane import __version__
from infraplane.core.observability.logging_config import (
    ENV_FILE,
    ENV_FILE_LEVEL,
    resolve_level,
    setup_logging,
)

_ACTION_STYLE = {
    "create": ("+", "green"),
    "update": ("~", "yellow"),
    "delete": ("-", "red"),
    "noop": ("=", None),
}

_STATUS_COLOR = {"ok": "green", "partial": "yellow", "failed": "red", "skipped": "yellow"}


@click.group()
@click.version_option(version=__version__, prog_name="infraplane")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to stack.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Infraplane — declare infrastructure, plan changes, apply them."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(ENV_FILE),
        log_file_level=os.environ.get(ENV_FILE_LEVEL),
    )


# ── Shared options ─────────────────────────────────────────────────


def _variable_options(fn):
    fn = click.option(
        "--var-file",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        default=None,
        help="YAML file of variable values.",
    )(fn)
    fn = click.option(
        "--var",
        "var_args",
        multiple=True,
        metavar="NAME=VALUE",
        help="Set a variable (repeatable; overrides --var-file).",
    )(fn)
    return fn


def _fail(message: str, details: list[str] | None = None) -> None:
    click.secho(f"❌ {message}", fg="red", err=True)
    for line in details or []:
        click.echo(f"   • {line}", err=True)
    sys.exit(1)


def _echo_plan(plan, verbose: bool = False) -> None:
    for change in plan.changes:
        marker, color = _ACTION_STYLE[change.action.value]
        if change.is_noop and not verbose:
            continue
        click.secho(f"   {marker} {change.resource_id}", fg=color, nl=False)
        click.echo(f"  ({change.type})")
        for key in change.changed_keys:
            suffix = "  (known after apply)" if key in change.unknown_keys else ""
            click.echo(f"       {key}{suffix}")

    counts = plan.counts()
    click.echo()
    click.secho(
        f"   Plan: {counts['create']} to create, {counts['update']} to update, "
        f"{counts['delete']} to delete, {counts['noop']} unchanged",
        bold=True,
    )


def _echo_report(report, verbose: bool = False) -> None:
    for receipt in report.receipts:
        timing = f" ({receipt.duration_ms}ms)" if receipt.duration_ms else ""
        label = f"{receipt.resource_id} [{receipt.action}]"
        if receipt.ok:
            click.secho(f"   ✓ {label}", fg="green", nl=False)
            click.echo(timing)
            if verbose and receipt.output:
                for line in receipt.output.split("\n")[:10]:
                    click.echo(f"     │ {line}")
        elif receipt.failed:
            click.secho(f"   ✗ {label}", fg="red", nl=False)
            click.echo(timing)
        else:
            click.secho(f"   ⊘ {label} ", fg="yellow", nl=False)
            click.echo(f"({receipt.output})")

    click.echo()
    click.secho(
        f"   Result: {report.succeeded}/{report.total} succeeded"
        + (f", {len(report.noops)} unchanged" if report.noops else ""),
        fg=_STATUS_COLOR.get(report.status, "white"),
        bold=True,
    )

    # Failures go to stderr as "<resource id>: <message>"
    for error in report.errors:
        click.echo(str(error), err=True)


# ── Commands ───────────────────────────────────────────────────────


@cli.command()
@_variable_options
@click.option("--refresh", is_flag=True, help="Re-read live state through providers first.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plan(
    ctx: click.Context,
    var_args: tuple[str, ...],
    var_file: Path | None,
    refresh: bool,
    as_json: bool,
) -> None:
    """Show what apply would change, without changing anything."""
    from infraplane.core.use_cases.plan import run_plan

    result = run_plan(
        config_path=ctx.obj.get("config_path"),
        var_args=list(var_args),
        var_file=var_file,
        refresh=refresh,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        _fail(result.error, result.errors)

    assert result.plan is not None and result.stack is not None
    click.secho(f"\n📋 Plan — {result.stack.name}", fg="cyan", bold=True)
    click.echo()
    if not result.plan.has_changes:
        click.secho("   No changes. Live state matches the stack.", fg="green")
    else:
        _echo_plan(result.plan, verbose=ctx.obj.get("verbose", False))
    click.echo()


@cli.command()
@_variable_options
@click.option("--keep-going", is_flag=True, help="Continue independent changes after a failure.")
@click.option(
    "--parallelism",
    "-p",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Max concurrent provider calls.",
)
@click.option("--refresh", is_flag=True, help="Re-read live state through providers first.")
@click.option("--dry-run", is_flag=True, help="Plan and validate but don't execute.")
@click.option("--mock", is_flag=True, help="Use mock providers (no real changes).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def apply(
    ctx: click.Context,
    var_args: tuple[str, ...],
    var_file: Path | None,
    keep_going: bool,
    parallelism: int,
    refresh: bool,
    dry_run: bool,
    mock: bool,
    as_json: bool,
) -> None:
    """Create, update, and delete resources to match the stack.

    Examples:

        infraplane apply

        infraplane apply --var instance_type=t3.small --keep-going

        infraplane apply --dry-run
    """
    from infraplane.core.use_cases.apply import run_apply

    result = run_apply(
        config_path=ctx.obj.get("config_path"),
        var_args=list(var_args),
        var_file=var_file,
        keep_going=keep_going,
        parallelism=parallelism,
        dry_run=dry_run,
        mock_mode=mock,
        refresh=refresh,
    )
    _finish_apply(ctx, result, "apply", dry_run, mock, as_json)


@cli.command()
@click.option("--keep-going", is_flag=True, help="Continue independent deletes after a failure.")
@click.option("--dry-run", is_flag=True, help="Show what would be deleted.")
@click.option("--mock", is_flag=True, help="Use mock providers (no real changes).")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def destroy(
    ctx: click.Context,
    keep_going: bool,
    dry_run: bool,
    mock: bool,
    yes: bool,
    as_json: bool,
) -> None:
    """Delete every resource recorded in state, dependents first."""
    from infraplane.core.use_cases.apply import run_destroy

    if not (yes or dry_run or as_json):
        click.confirm("Delete every tracked resource?", abort=True)

    result = run_destroy(
        config_path=ctx.obj.get("config_path"),
        keep_going=keep_going,
        dry_run=dry_run,
        mock_mode=mock,
    )
    _finish_apply(ctx, result, "destroy", dry_run, mock, as_json)


def _finish_apply(ctx: click.Context, result, operation: str, dry_run: bool, mock: bool,
                  as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            if result.error:
                click.echo(result.error, err=True)
            for error in result.report.errors if result.report else []:
                click.echo(str(error), err=True)
            sys.exit(1)
        return

    if result.error:
        _fail(result.error, result.errors)

    report = result.report
    assert report is not None and result.plan is not None

    mode_label = "[dry-run] " if dry_run else "[mock] " if mock else ""
    click.secho(f"\n⚡ {mode_label}{operation} — {result.plan.stack_name}", fg="cyan", bold=True)
    click.echo()

    if not result.plan.has_changes:
        click.secho("   No changes. Live state matches the stack.", fg="green")
        click.echo()
        return

    _echo_report(report, verbose=ctx.obj.get("verbose", False))

    if report.failed > 0:
        click.echo()
        sys.exit(1)

    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show declared resources against recorded state."""
    from infraplane.core.use_cases.status import get_status

    result = get_status(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if result.error:
            sys.exit(1)
        return

    if result.error:
        _fail(result.error, result.errors)

    stack = result.stack
    assert stack is not None and result.state is not None

    if not ctx.obj.get("quiet", False):
        click.secho(f"\n📋 {stack.name}", fg="cyan", bold=True)
        if stack.description:
            click.echo(f"   {stack.description}")
        click.echo(f"   🌐 {stack.provider.region}")
        click.echo()

    click.secho(f"   Resources: {len(stack.resources)}", fg="white", bold=True)
    for decl in stack.resources:
        if decl.id in result.state.resources:
            click.secho("     ✓ ", fg="green", nl=False)
        else:
            click.secho("     ○ ", fg="yellow", nl=False)
        click.echo(f"{decl.id}  ({decl.type})")

    if result.orphaned:
        click.echo()
        click.secho("   ⚠️  In state but no longer declared (deleted on next apply):", fg="yellow")
        for rid in result.orphaned:
            click.echo(f"     • {rid}")

    op = result.state.last_operation
    if op.operation_id:
        click.echo()
        click.secho("   Last operation:", fg="white", bold=True)
        click.echo(f"     {op.operation} {op.operation_id} — ", nl=False)
        click.secho(op.status, fg=_STATUS_COLOR.get(op.status, "white"))
        if op.ended_at:
            click.echo(f"     at {op.ended_at}")

    click.echo()


@cli.group()
def config() -> None:
    """Stack configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate stack.yml: structure, references, cycles, variables."""
    from infraplane.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.stack is not None
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Stack: {result.stack.name}")
        click.echo(f"   Resources: {len(result.stack.resources)}")
        click.echo(f"   Variables: {len(result.stack.variables)}")
        if ctx.obj.get("verbose") and result.order:
            click.echo(f"   Order: {' → '.join(result.order)}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True, err=True)
        for err in result.errors:
            click.echo(f"   • {err}", err=True)

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


@cli.command()
@click.option("--limit", "-n", default=20, show_default=True, help="Entries to show.")
@click.option("--operation", default=None, help="Only this operation type (apply, destroy, bootstrap).")
@click.option("--resource", "resource_id", default=None, help="Only operations that touched this resource.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(
    ctx: click.Context,
    limit: int,
    operation: str | None,
    resource_id: str | None,
    as_json: bool,
) -> None:
    """Show recent operations from the audit ledger."""
    from infraplane.core.errors import ConfigError
    from infraplane.core.use_cases.history import get_history

    try:
        entries = get_history(
            config_path=ctx.obj.get("config_path"),
            limit=limit,
            operation=operation,
            resource_id=resource_id,
        )
    except ConfigError as e:
        _fail(str(e), e.errors)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.secho("No operations recorded yet.", fg="yellow")
        return

    click.secho(f"\n📜 Last {len(entries)} operation(s)", fg="cyan", bold=True)
    for entry in entries:
        click.echo(f"   {entry.timestamp}  {entry.operation_type:<9} ", nl=False)
        click.secho(f"{entry.status:<8}", fg=_STATUS_COLOR.get(entry.status, "white"), nl=False)
        click.echo(f" {len(entry.resources_affected)}/{len(entry.changes)}  {entry.operation_id}")
        if ctx.obj.get("verbose"):
            for change in entry.changes:
                click.echo(f"     │ {change.resource_id} [{change.action}] {change.status}")
        for err in entry.errors:
            click.secho(f"     │ {err}", fg="red")
    click.echo()


# ── Register sub-command groups from infraplane/ui/cli/ ────────────

from infraplane.ui.cli.bootstrap import bootstrap  # noqa: E402

cli.add_command(bootstrap)


if __name__ == "__main__":
    cli()
