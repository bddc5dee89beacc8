"""Service control for the managed Jenkins server.

Handles:
- Stop/start through the init system's service command
- Status from the pid file, since `service jenkins status` exits 0 even
  when the process is gone
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .errors import ServiceCommandError
from .shared.logging import get_logger

logger = get_logger(__name__)

DEFAULT_COMMAND_TIMEOUT = 120.0


@dataclass
class ServiceStatus:
    """Result of a pid-file status check."""

    running: bool
    pid: int | None = None
    reason: str | None = None


class ServiceController:
    """Stop, start and inspect a system service."""

    def __init__(
        self,
        name: str,
        pid_file: str | Path,
        command: tuple[str, ...] = ("service",),
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ):
        """Initialize service controller.

        Args:
            name: Service name (e.g. "jenkins")
            pid_file: Pid file written by the service
            command: Service manager invocation; the service name and the
                action are appended
            timeout: Seconds to wait for each command
        """
        self.name = name
        self.pid_file = Path(pid_file)
        self.command = command
        self.timeout = timeout

    def stop(self) -> None:
        """Stop the service.

        The init script may return before the process has released its
        port; callers wait for that separately.
        """
        self._run("stop")

    def start(self) -> None:
        """Start the service."""
        self._run("start")

    def status(self) -> ServiceStatus:
        """Check whether the pid file names a live process."""
        if not self.pid_file.exists():
            return ServiceStatus(False, reason=f"no pid file at {self.pid_file}")

        try:
            pid = int(self.pid_file.read_text().strip())
        except (ValueError, OSError):
            return ServiceStatus(False, reason=f"invalid pid file {self.pid_file}")

        try:
            os.kill(pid, 0)  # Signal 0 = check existence
        except ProcessLookupError:
            return ServiceStatus(False, pid, reason=f"stale pid file (pid {pid} not running)")
        except PermissionError:
            # Process exists but belongs to another user
            return ServiceStatus(True, pid)
        return ServiceStatus(True, pid)

    def _run(self, action: str) -> None:
        args = [*self.command, self.name, action]
        logger.info("service_command", service=self.name, action=action)
        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise ServiceCommandError(
                message=f"{self.command[0]} not found",
                data={"args": args},
            ) from e
        except subprocess.TimeoutExpired as e:
            raise ServiceCommandError(
                message=f"'{' '.join(args)}' timed out after {self.timeout}s",
                retryable=True,
                data={"args": args},
            ) from e

        if result.returncode != 0:
            output = (result.stderr or result.stdout).strip()
            raise ServiceCommandError(
                message=f"'{' '.join(args)}' exited {result.returncode}: {output}",
                data={"args": args, "returncode": result.returncode, "output": output},
            )
