"""
CLI commands for the descriptor catalog.

Thin wrappers over ``caskctl.core.use_cases.info``.
"""

from __future__ import annotations

import json
import sys

import click


@click.group()
def catalog() -> None:
    """Catalog — list, check and dump descriptors."""


@catalog.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_descriptors(ctx: click.Context, as_json: bool) -> None:
    """List descriptors in the configured catalog directories."""
    from caskctl.core.use_cases.info import list_catalog
    from caskctl.main import report_error

    result = list_catalog(config_path=ctx.obj.get("config_path"))
    if result.error:
        report_error(result.error, as_json)
        return

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if not result.descriptors:
        click.secho("⚠️  Catalog is empty", fg="yellow")
        return

    click.secho(f"📚 Catalog ({len(result.descriptors)}):", fg="cyan", bold=True)
    for d in result.descriptors:
        click.echo(f"   {d.identifier:<30} {d.version:<14} {d.canonical_name}")


@catalog.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def check(ctx: click.Context, as_json: bool) -> None:
    """Validate every descriptor file, reporting all errors."""
    from caskctl.core.use_cases.info import check_catalog

    result = check_catalog(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    elif result.valid:
        click.secho(f"✅ {len(result.loaded)} descriptor(s) valid", fg="green", bold=True)
    else:
        click.secho("❌ Descriptor errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err.kind}: {err}")

    if not result.valid:
        sys.exit(result.errors[0].exit_code)


@catalog.command()
@click.argument("identifier")
@click.pass_context
def dump(ctx: click.Context, identifier: str) -> None:
    """Print a descriptor re-serialized from its parsed form."""
    from caskctl.core.use_cases.info import dump_package
    from caskctl.main import report_error

    result = dump_package(identifier, config_path=ctx.obj.get("config_path"))
    if result.error:
        report_error(result.error)
        return
    click.echo(result.text, nl=False)
