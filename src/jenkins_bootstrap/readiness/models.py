"""Data model for readiness checks.

A ReadinessCheck describes one condition to poll for; a PollOutcome is the
immutable result of polling it to completion.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..errors import FatalCheckError


class CheckKind(Enum):
    """Condition a readiness check waits for."""

    PORT_FREE = "port_free"  # Nothing listening on the port
    PORT_LISTENING = "port_listening"  # Exactly one listener on the port
    HTTP_HEALTHY = "http_healthy"  # GET answers 2xx or 404


class PollState(Enum):
    """State of a single wait_for invocation."""

    PENDING = "pending"
    SATISFIED = "satisfied"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"
    FATAL = "fatal"


# Kinds that loop indefinitely unless given a deadline
DEADLINE_REQUIRED = frozenset({CheckKind.PORT_LISTENING, CheckKind.HTTP_HEALTHY})


@dataclass(frozen=True)
class ReadinessCheck:
    """One condition to poll for.

    The target itself is validated by the waiter so that a malformed target
    produces a FATAL outcome rather than a construction error. The poll budget
    is validated here.
    """

    kind: CheckKind
    target: int | str
    interval_seconds: float = 1.0
    max_attempts: int | None = None
    timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {self.interval_seconds}")
        if self.max_attempts is not None and self.max_attempts <= 0:
            raise ValueError(f"max_attempts must be positive, got {self.max_attempts}")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {self.timeout_seconds}")
        if self.max_attempts is None and self.timeout_seconds is None:
            raise ValueError("a readiness check needs max_attempts or timeout_seconds")
        if self.kind in DEADLINE_REQUIRED and self.timeout_seconds is None:
            raise ValueError(f"{self.kind.value} checks require timeout_seconds")

    @classmethod
    def port_free(
        cls,
        port: int,
        interval_seconds: float = 1.0,
        max_attempts: int | None = 10,
        timeout_seconds: float | None = None,
    ) -> ReadinessCheck:
        """Wait for a port to be released."""
        return cls(CheckKind.PORT_FREE, port, interval_seconds, max_attempts, timeout_seconds)

    @classmethod
    def port_listening(
        cls,
        port: int,
        timeout_seconds: float,
        interval_seconds: float = 1.0,
        max_attempts: int | None = None,
    ) -> ReadinessCheck:
        """Wait for a port to be bound."""
        return cls(
            CheckKind.PORT_LISTENING, port, interval_seconds, max_attempts, timeout_seconds
        )

    @classmethod
    def http_healthy(
        cls,
        url: str,
        timeout_seconds: float,
        interval_seconds: float = 1.0,
        max_attempts: int | None = None,
    ) -> ReadinessCheck:
        """Wait for a URL to answer 2xx or 404."""
        return cls(CheckKind.HTTP_HEALTHY, url, interval_seconds, max_attempts, timeout_seconds)

    def describe(self) -> str:
        """Short human-readable description, used in logs and CLI output."""
        if self.kind == CheckKind.PORT_FREE:
            return f"port {self.target} released"
        if self.kind == CheckKind.PORT_LISTENING:
            return f"port {self.target} listening"
        return f"{self.target} healthy"


@dataclass(frozen=True)
class PollOutcome:
    """Result of running a ReadinessCheck to completion."""

    state: PollState
    attempts_used: int
    last_observed_error: str | None = None
    elapsed_seconds: float = 0.0

    @property
    def satisfied(self) -> bool:
        return self.state == PollState.SATISFIED

    def raise_if_fatal(self) -> PollOutcome:
        """Raise FatalCheckError for a FATAL outcome, else return self."""
        if self.state == PollState.FATAL:
            raise FatalCheckError(
                message=self.last_observed_error or "Readiness check failed fatally",
                data={"attempts_used": self.attempts_used},
            )
        return self
