"""Wait commands - block until the server has stopped or started.

Each subcommand runs one readiness check and exits 0 when it is satisfied,
1 otherwise. Defaults for port, URL and budgets come from settings.
"""

from __future__ import annotations

import json
import sys

import click

from ..formatters import outcome_to_dict, print_outcome
from ..readiness import ReadinessCheck
from ..utils import cancel_on_signals, get_settings
from ..workflow import build_waiter


def budget_options(func):
    """Options shared by every wait subcommand."""
    func = click.option(
        "--timeout",
        type=click.FloatRange(min=0, min_open=True),
        default=None,
        help="Deadline in seconds",
    )(func)
    func = click.option(
        "--attempts",
        type=click.IntRange(min=1),
        default=None,
        help="Maximum number of attempts",
    )(func)
    func = click.option(
        "--interval",
        type=click.FloatRange(min=0, min_open=True),
        default=None,
        help="Seconds between attempts",
    )(func)
    return func


@click.group()
def wait() -> None:
    """Wait for the server to stop or start."""


@wait.command("port-free")
@click.option("--port", type=int, default=None, help="TCP port (default: settings)")
@budget_options
@click.pass_context
def port_free(
    ctx: click.Context,
    port: int | None,
    interval: float | None,
    attempts: int | None,
    timeout: float | None,
) -> None:
    """Wait until nothing listens on the port."""
    settings = get_settings(ctx)
    if attempts is None and timeout is None:
        attempts = settings.stop_attempts
    check = ReadinessCheck.port_free(
        port if port is not None else settings.port,
        interval_seconds=interval or settings.poll_interval,
        max_attempts=attempts,
        timeout_seconds=timeout,
    )
    _run_check(ctx, check)


@wait.command("listening")
@click.option("--port", type=int, default=None, help="TCP port (default: settings)")
@budget_options
@click.pass_context
def listening(
    ctx: click.Context,
    port: int | None,
    interval: float | None,
    attempts: int | None,
    timeout: float | None,
) -> None:
    """Wait until exactly one socket listens on the port."""
    settings = get_settings(ctx)
    check = ReadinessCheck.port_listening(
        port if port is not None else settings.port,
        timeout_seconds=timeout or settings.start_timeout,
        interval_seconds=interval or settings.poll_interval,
        max_attempts=attempts,
    )
    _run_check(ctx, check)


@wait.command("healthy")
@click.option("--url", default=None, help="URL to GET (default: settings health URL)")
@budget_options
@click.pass_context
def healthy(
    ctx: click.Context,
    url: str | None,
    interval: float | None,
    attempts: int | None,
    timeout: float | None,
) -> None:
    """Wait until the URL answers 2xx or 404."""
    settings = get_settings(ctx)
    check = ReadinessCheck.http_healthy(
        url or settings.health_url,
        timeout_seconds=timeout or settings.start_timeout,
        interval_seconds=interval or settings.poll_interval,
        max_attempts=attempts,
    )
    _run_check(ctx, check)


def _run_check(ctx: click.Context, check: ReadinessCheck) -> None:
    settings = get_settings(ctx)
    waiter = build_waiter(settings)

    if not ctx.obj.get("json_output"):
        click.echo(f"Waiting for {check.describe()}...")

    with cancel_on_signals() as cancel:
        outcome = waiter.wait_for(check, cancel)

    if ctx.obj.get("json_output"):
        click.echo(json.dumps(outcome_to_dict(outcome), indent=2))
    else:
        print_outcome(check, outcome)

    if not outcome.satisfied:
        sys.exit(1)
