"""
caskctl — CLI entrypoint.

Usage:
    python -m caskctl.main --help
    caskctl install font-sf-arabic
    caskctl uninstall font-sf-arabic --zap
    caskctl info font-sf-arabic --json

Exit code 0 on success; each error kind has its own non-zero code
(see ``caskctl.core.errors``).
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from caskctl import __version__
from caskctl.core.errors import CaskError
from caskctl.core.observability.logging_config import (
    ENV_FILE,
    ENV_FILE_LEVEL,
    resolve_level,
    setup_logging,
)


def report_error(error: CaskError, as_json: bool = False) -> None:
    """Print an error (text or JSON) and exit with its kind's code."""
    if as_json:
        click.echo(json.dumps({"error": error.to_dict()}, indent=2))
    else:
        click.secho(f"❌ {error.kind}: {error}", fg="red", err=True)
    sys.exit(error.exit_code)


@click.group()
@click.version_option(version=__version__, prog_name="caskctl")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to caskctl.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """caskctl — install and remove packages described by cask manifests."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(ENV_FILE),
        log_file_level=os.environ.get(ENV_FILE_LEVEL),
    )


@cli.command()
@click.argument("identifier")
@click.option("--force", is_flag=True, help="Reinstall even if already installed.")
@click.option("--mock", is_flag=True, help="Use mock installer (no system changes).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(ctx: click.Context, identifier: str, force: bool, mock: bool, as_json: bool) -> None:
    """Fetch, verify and install a package."""
    from caskctl.core.use_cases.install import install_package

    quiet = ctx.obj.get("quiet", False)
    if not as_json and not quiet:
        click.secho(f"📦 Installing {identifier}...", fg="cyan")

    result = install_package(
        identifier,
        config_path=ctx.obj.get("config_path"),
        force=force,
        mock_mode=mock,
    )
    if result.error:
        report_error(result.error, as_json)
        return

    outcome = result.outcome
    assert outcome is not None

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if outcome.skipped:
        click.secho(f"✅ {identifier} {outcome.version} is already installed", fg="green")
        return

    if outcome.unverified:
        click.secho("⚠️  Checksum not verified (sha256 :no_check)", fg="yellow")
    click.secho(f"✅ Installed {identifier} {outcome.version}", fg="green", bold=True)
    if ctx.obj.get("verbose") and outcome.receipt and outcome.receipt.output:
        for line in outcome.receipt.output.splitlines()[:10]:
            click.echo(f"   │ {line}")


@cli.command()
@click.argument("identifier")
@click.option("--zap", is_flag=True, help="Also remove post-removal cleanup paths.")
@click.option("--mock", is_flag=True, help="Use mock installer (no system changes).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def uninstall(ctx: click.Context, identifier: str, zap: bool, mock: bool, as_json: bool) -> None:
    """Uninstall a previously installed package."""
    from caskctl.core.use_cases.install import uninstall_package

    result = uninstall_package(
        identifier,
        config_path=ctx.obj.get("config_path"),
        zap=zap,
        mock_mode=mock,
    )
    if result.error:
        report_error(result.error, as_json)
        return

    outcome = result.outcome
    assert outcome is not None

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    suffix = " (zapped)" if outcome.zapped else ""
    click.secho(f"🗑️  Uninstalled {identifier} {outcome.version}{suffix}", fg="green", bold=True)


@cli.command()
@click.argument("identifier")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def info(ctx: click.Context, identifier: str, as_json: bool) -> None:
    """Show a package's descriptor and install state."""
    from caskctl.core.use_cases.info import package_info

    result = package_info(identifier, config_path=ctx.obj.get("config_path"))
    if result.error:
        report_error(result.error, as_json)
        return

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    d = result.descriptor
    state = result.state
    assert d is not None and state is not None

    click.secho(f"\n📋 {d.identifier}: {d.version}", fg="cyan", bold=True)
    click.echo(f"   {', '.join(d.display_names)}")
    if d.description:
        click.echo(f"   {d.description}")
    if d.homepage_url:
        click.echo(f"   🏠 {d.homepage_url}")
    click.echo()
    click.echo(f"   From:      {d.source_url}")
    if d.unverified:
        click.echo("   Checksum:  ", nl=False)
        click.secho("not verified (:no_check)", fg="yellow")
    else:
        click.echo(f"   Checksum:  sha256 {d.checksum.sha256}")
    click.echo(f"   Installs:  {d.install_target.path}")
    if d.uninstall_spec.pkgutil:
        click.echo(f"   Receipts:  {', '.join(d.uninstall_spec.pkgutil)}")

    status_color = {"installed": "green", "failed": "red"}.get(state.status.value, "white")
    click.echo("   Status:    ", nl=False)
    click.secho(state.status.value, fg=status_color)
    if state.last_error:
        click.echo(f"   Error:     {state.last_error}")
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """List packages caskctl has touched and their state."""
    from caskctl.core.use_cases.info import get_status

    result = get_status(config_path=ctx.obj.get("config_path"))
    if result.error:
        report_error(result.error, as_json)
        return

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if not result.packages:
        click.echo("No packages installed.")
        return

    for pkg in result.packages:
        color = {"installed": "green", "failed": "red"}.get(pkg.status.value, "white")
        click.secho(f"   {pkg.identifier:<30} ", nl=False)
        click.secho(f"{pkg.status.value:<12}", fg=color, nl=False)
        click.echo(f" {pkg.version or ''}")


@cli.command()
@click.option("-n", "count", default=20, type=click.IntRange(min=0), help="Number of entries.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, count: int, as_json: bool) -> None:
    """Show recent install/uninstall operations."""
    from caskctl.core.use_cases.info import recent_history

    try:
        entries = recent_history(count, config_path=ctx.obj.get("config_path"))
    except CaskError as e:
        report_error(e, as_json)
        return

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No operations recorded.")
        return

    for entry in entries:
        color = {"ok": "green", "skipped": "yellow", "failed": "red"}.get(entry.status, "white")
        click.echo(f"   {entry.timestamp[:19]}  {entry.operation_type:<10} {entry.identifier:<28} ", nl=False)
        click.secho(entry.status, fg=color, nl=False)
        if entry.unverified:
            click.secho("  unverified", fg="yellow", nl=False)
        if entry.error_kind:
            click.echo(f"  {entry.error_kind}", nl=False)
        click.echo()


# ── Register sub-command groups from caskctl/ui/cli/ ─────────────

from caskctl.ui.cli.catalog import catalog  # noqa: E402

cli.add_command(catalog)


if __name__ == "__main__":
    cli()
