"""CLI output formatting helpers."""

from typing import Any

import click
import yaml

from .readiness import PollOutcome, PollState, ReadinessCheck
from .workflow import RestartResult

_MARKS = {
    PollState.SATISFIED: "✓",
    PollState.EXHAUSTED: "✗",
    PollState.CANCELLED: "⚠",
    PollState.FATAL: "✗",
}


def outcome_to_dict(outcome: PollOutcome) -> dict[str, Any]:
    """Convert a PollOutcome for JSON output."""
    return {
        "state": outcome.state.value,
        "satisfied": outcome.satisfied,
        "attempts_used": outcome.attempts_used,
        "last_observed_error": outcome.last_observed_error,
        "elapsed_seconds": round(outcome.elapsed_seconds, 3),
    }


def print_outcome(check: ReadinessCheck, outcome: PollOutcome) -> None:
    """Print the result of a single wait.

    Args:
        check: The check that was polled
        outcome: Its outcome
    """
    mark = _MARKS.get(outcome.state, "?")
    line = (
        f"{mark} {check.describe()}: {outcome.state.value} "
        f"after {outcome.attempts_used} attempt(s) in {outcome.elapsed_seconds:.1f}s"
    )
    if outcome.satisfied:
        click.echo(line)
        return
    if outcome.last_observed_error:
        line += f" (last error: {outcome.last_observed_error})"
    click.echo(line, err=True)


def print_restart_result(result: RestartResult) -> None:
    """Print each step of a restart workflow and the overall result."""
    for step in result.steps:
        mark = _MARKS.get(step.outcome.state, "?")
        click.echo(
            f"  {mark} {step.name}: {step.outcome.state.value} "
            f"({step.outcome.attempts_used} attempt(s), {step.outcome.elapsed_seconds:.1f}s)"
        )
    if result.success:
        click.echo("✓ Jenkins is operational.")
    else:
        click.echo(f"✗ {result.error}", err=True)


def print_config_yaml(data: dict[str, Any], sources: dict[str, str] | None = None) -> None:
    """Print settings as YAML, optionally annotated with their sources.

    Args:
        data: Settings data
        sources: Map of key to source ("default", "config file", ...)
    """
    if not sources:
        click.echo(yaml.dump(data, default_flow_style=False, sort_keys=False))
        return

    for key, value in data.items():
        rendered = yaml.dump({key: value}, default_flow_style=False, sort_keys=False).rstrip()
        lines = rendered.splitlines()
        click.echo(f"{lines[0]}  # {sources.get(key, 'default')}")
        for line in lines[1:]:
            click.echo(line)
