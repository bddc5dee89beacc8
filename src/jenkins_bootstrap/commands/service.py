"""Service commands - restart the server and report its status."""

from __future__ import annotations

import json
import sys

import click

from ..errors import FatalCheckError, ServiceCommandError
from ..formatters import outcome_to_dict, print_restart_result
from ..readiness import CheckKind, ReadinessCheck
from ..utils import apply_overrides, cancel_on_signals, get_settings
from ..workflow import build_controller, build_waiter, restart_service


@click.command()
@click.option("--stop-attempts", type=click.IntRange(min=1), help="Port-release polls after stop")
@click.option(
    "--start-timeout",
    type=click.FloatRange(min=0, min_open=True),
    help="Seconds to wait for the port and HTTP after start",
)
@click.pass_context
def restart(ctx: click.Context, stop_attempts: int | None, start_timeout: float | None) -> None:
    """Stop Jenkins, wait for its port, start it, wait until it answers.

    A plain init-script restart can race the old process for the port; this
    sequences the steps and waits between them.
    """
    settings = apply_overrides(
        get_settings(ctx), stop_attempts=stop_attempts, start_timeout=start_timeout
    )
    controller = build_controller(settings)
    waiter = build_waiter(settings)

    click.echo(f"Restarting {settings.service_name} (port {settings.port})...")
    with cancel_on_signals() as cancel:
        try:
            result = restart_service(controller, waiter, settings, cancel)
        except (ServiceCommandError, FatalCheckError) as e:
            click.echo(f"✗ {e.message}", err=True)
            sys.exit(1)

    print_restart_result(result)
    if not result.success:
        sys.exit(1)


@click.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show process, port and HTTP status (single probe each)."""
    settings = get_settings(ctx)
    service_status = build_controller(settings).status()
    waiter = build_waiter(settings)

    probes = {
        "listening": ReadinessCheck(CheckKind.PORT_LISTENING, settings.port, 1.0, 1, 1.0),
        "healthy": ReadinessCheck(
            CheckKind.HTTP_HEALTHY, settings.health_url, 1.0, 1, settings.http_timeout
        ),
    }
    outcomes = {name: waiter.wait_for(check) for name, check in probes.items()}

    if ctx.obj.get("json_output"):
        data = {
            "service": settings.service_name,
            "running": service_status.running,
            "pid": service_status.pid,
            "reason": service_status.reason,
            **{name: outcome_to_dict(outcome) for name, outcome in outcomes.items()},
        }
        click.echo(json.dumps(data, indent=2))
        return

    if service_status.running:
        click.echo(f"✓ {settings.service_name} running (PID {service_status.pid})")
    else:
        click.echo(f"✗ {settings.service_name} not running: {service_status.reason}")

    for name, outcome in outcomes.items():
        check = probes[name]
        if outcome.satisfied:
            click.echo(f"✓ {check.describe()}")
        else:
            click.echo(f"✗ {check.describe()}: {outcome.last_observed_error or 'not ready'}")
