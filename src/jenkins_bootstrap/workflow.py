"""Restart sequencing for the managed server.

`restart` on the init script is not enough: stop may return while the JVM
still holds its port, and start returns long before the server answers HTTP.
The sequence here is stop, wait for the port to be released, start, wait for
the port to be bound, wait for HTTP readiness.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

import structlog

from .config import Settings
from .readiness import PollOutcome, PollState, ReadinessCheck, ReadinessWaiter, get_socket_table
from .service import ServiceController
from .shared.logging import get_logger

logger = get_logger(__name__)


@dataclass
class StepResult:
    """Outcome of one wait in a workflow."""

    name: str
    outcome: PollOutcome


@dataclass
class RestartResult:
    """Result of a restart or readiness workflow."""

    success: bool
    steps: list[StepResult] = field(default_factory=list)
    error: str | None = None


def build_waiter(settings: Settings) -> ReadinessWaiter:
    """Create a ReadinessWaiter for the configured socket source."""
    return ReadinessWaiter(
        socket_table=get_socket_table(settings.socket_source),
        http_timeout=settings.http_timeout,
    )


def build_controller(settings: Settings) -> ServiceController:
    """Create a ServiceController for the configured service."""
    return ServiceController(settings.service_name, settings.pid_file)


def wait_until_released(
    waiter: ReadinessWaiter,
    settings: Settings,
    cancel: threading.Event | None = None,
) -> StepResult:
    """Wait for the server's port to be released.

    An exhausted wait is tolerated: the caller goes on with the start.
    """
    check = ReadinessCheck.port_free(
        settings.port,
        interval_seconds=settings.poll_interval,
        max_attempts=settings.stop_attempts,
    )
    outcome = waiter.wait_for(check, cancel).raise_if_fatal()
    if not outcome.satisfied:
        logger.warning(
            "port_not_released",
            port=settings.port,
            attempts=outcome.attempts_used,
            state=outcome.state.value,
        )
    return StepResult("port_released", outcome)


def wait_until_operational(
    waiter: ReadinessWaiter,
    settings: Settings,
    cancel: threading.Event | None = None,
) -> RestartResult:
    """Block until the server listens on its port and answers HTTP.

    Raises:
        FatalCheckError: If a check is misconfigured.
    """
    result = RestartResult(success=False)
    checks = [
        (
            "port_listening",
            ReadinessCheck.port_listening(
                settings.port,
                timeout_seconds=settings.start_timeout,
                interval_seconds=settings.poll_interval,
            ),
        ),
        (
            "http_healthy",
            ReadinessCheck.http_healthy(
                settings.health_url,
                timeout_seconds=settings.start_timeout,
                interval_seconds=settings.poll_interval,
            ),
        ),
    ]

    for name, check in checks:
        outcome = waiter.wait_for(check, cancel).raise_if_fatal()
        result.steps.append(StepResult(name, outcome))
        if not outcome.satisfied:
            result.error = (
                f"{check.describe()}: {outcome.state.value} after "
                f"{outcome.attempts_used} attempt(s)"
            )
            if outcome.last_observed_error:
                result.error += f" (last error: {outcome.last_observed_error})"
            logger.error("service_not_operational", step=name, error=result.error)
            return result

    result.success = True
    logger.info("service_operational", url=settings.health_url)
    return result


def restart_service(
    controller: ServiceController,
    waiter: ReadinessWaiter,
    settings: Settings,
    cancel: threading.Event | None = None,
) -> RestartResult:
    """Stop the service, wait for the port, start it, wait until operational.

    Raises:
        ServiceCommandError: If stop or start fails.
        FatalCheckError: If a check is misconfigured.
    """
    with structlog.contextvars.bound_contextvars(service=controller.name, port=settings.port):
        logger.info("restart_begin")

        controller.stop()
        released = wait_until_released(waiter, settings, cancel)
        if released.outcome.state == PollState.CANCELLED:
            return RestartResult(False, [released], error="cancelled while waiting for stop")

        controller.start()
        operational = wait_until_operational(waiter, settings, cancel)
        operational.steps.insert(0, released)
        return operational
