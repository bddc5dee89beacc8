"""CLI main entry point."""

import json

import click

from . import __version__
from .commands.plugins import plugins
from .commands.service import restart, status
from .commands.wait import wait
from .formatters import print_config_yaml
from .shared.logging import configure_logging, verbosity_to_level
from .utils import get_settings


@click.group()
@click.option("-c", "--config", type=click.Path(dir_okay=False), help="Config file path")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-vv for debug)")
@click.option("-q", "--quiet", is_flag=True, help="Only log errors")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Write JSON logs to a file")
@click.version_option(__version__, prog_name="jenkins-bootstrap")
@click.pass_context
def cli(
    ctx: click.Context,
    config: str | None,
    verbose: int,
    quiet: bool,
    json_output: bool,
    log_file: str | None,
) -> None:
    """Manage a Jenkins server: restarts, readiness waits and plugins."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["json_output"] = json_output

    configure_logging(
        level=verbosity_to_level(verbose, quiet),
        log_file=log_file,
        json_output=log_file is not None,
    )


cli.add_command(wait)
cli.add_command(restart)
cli.add_command(status)
cli.add_command(plugins)


@cli.group()
def config() -> None:
    """Inspect configuration."""


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show effective settings and where each value came from."""
    settings = get_settings(ctx)
    data = settings.as_dict()

    if ctx.obj["json_output"]:
        click.echo(json.dumps(data, indent=2, default=str))
        return

    print_config_yaml(data, {key: settings.get_source(key) for key in data})


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
