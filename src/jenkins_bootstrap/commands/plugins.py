"""Plugin commands - download configured plugins and restart when needed."""

from __future__ import annotations

import sys

import click

from ..errors import BootstrapError, ConfigError
from ..formatters import print_restart_result
from ..plugins import PluginManager, PluginSpec, plugins_updated_since
from ..utils import cancel_on_signals, get_settings
from ..workflow import build_controller, build_waiter, restart_service, wait_until_operational


@click.group()
def plugins() -> None:
    """Manage Jenkins plugins."""


@plugins.command("list")
@click.pass_context
def plugins_list(ctx: click.Context) -> None:
    """List configured plugins and whether they are installed."""
    settings = get_settings(ctx)
    specs = _parse_specs(settings.plugins)
    if not specs:
        click.echo("No plugins configured.")
        return

    manager = PluginManager(settings.plugins_dir, settings.mirror)
    missing = set(manager.missing(specs))
    for spec in specs:
        mark = "✗ missing" if spec in missing else "✓ installed"
        click.echo(f"  {spec.name} ({spec.version}): {mark}")


@plugins.command("sync")
@click.option("--no-restart", is_flag=True, help="Never restart Jenkins")
@click.pass_context
def plugins_sync(ctx: click.Context, no_restart: bool) -> None:
    """Download missing plugins.

    Jenkins only loads plugins at startup, so it is restarted when any
    plugin archive is newer than its pid file.
    """
    settings = get_settings(ctx)
    specs = _parse_specs(settings.plugins)
    if not specs:
        click.echo("No plugins configured.")
        return

    manager = PluginManager(
        settings.plugins_dir,
        settings.mirror,
        owner=(settings.user, settings.group),
    )
    controller = build_controller(settings)
    waiter = build_waiter(settings)

    try:
        written = manager.sync(specs)
    except BootstrapError as e:
        click.echo(f"✗ {e.message}", err=True)
        sys.exit(1)

    for path in written:
        click.echo(f"  ✓ Downloaded {path.name}")
    if not written:
        click.echo("✓ All plugins present.")

    with cancel_on_signals() as cancel:
        try:
            if written and controller.status().running:
                click.echo("Waiting for Jenkins to be operational...")
                result = wait_until_operational(waiter, settings, cancel)
                if not result.success:
                    print_restart_result(result)
                    sys.exit(1)

            updated = plugins_updated_since(settings.plugins_dir, settings.pid_file)
            if not updated:
                return
            if no_restart:
                click.echo(f"⚠ {len(updated)} plugin(s) updated; restart Jenkins to load them.")
                return

            click.echo(f"{len(updated)} plugin(s) updated, restarting Jenkins...")
            result = restart_service(controller, waiter, settings, cancel)
        except BootstrapError as e:
            click.echo(f"✗ {e.message}", err=True)
            sys.exit(1)

    print_restart_result(result)
    if not result.success:
        sys.exit(1)


def _parse_specs(entries: list) -> list[PluginSpec]:
    try:
        return [PluginSpec.parse(entry) for entry in entries]
    except ConfigError as e:
        raise click.ClickException(e.message) from e
