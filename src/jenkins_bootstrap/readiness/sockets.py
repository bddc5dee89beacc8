"""Host socket-table introspection.

Read-only view of the TCP sockets currently listening on this host. Two
sources are available: psutil (default) and parsing `netstat -lnt`, for hosts
where psutil cannot see other users' sockets without privileges.
"""

from __future__ import annotations

import re
import subprocess
from typing import Protocol

import psutil

from ..errors import SocketTableError

# Local address column ends in ":8080" (Linux) or ".8080" (BSD)
_PORT_SUFFIX = re.compile(r"[.:](\d+)$")


class SocketTable(Protocol):
    """Source of listening TCP ports."""

    def listening_ports(self, timeout: float | None = None) -> list[int]:
        """Return one entry per listening TCP socket.

        Args:
            timeout: Seconds left in the caller's budget, if any. Sources
                that can block must not run longer than this.

        Raises:
            SocketTableError: If the table cannot be read.
        """
        ...


class PsutilSocketTable:
    """Socket table backed by psutil.net_connections()."""

    def listening_ports(self, timeout: float | None = None) -> list[int]:
        # A single in-process read; the budget does not apply
        try:
            connections = psutil.net_connections(kind="tcp")
        except psutil.AccessDenied as e:
            raise SocketTableError(
                message="Access denied reading socket table (try --socket-source netstat)",
                data={"original_error": str(e)},
            ) from e
        except OSError as e:
            raise SocketTableError(
                message=f"Cannot read socket table: {e}",
                data={"original_error": str(e)},
            ) from e

        return [
            conn.laddr.port
            for conn in connections
            if conn.status == psutil.CONN_LISTEN and conn.laddr
        ]


class NetstatSocketTable:
    """Socket table parsed from `netstat -lnt` output."""

    def __init__(self, command: tuple[str, ...] = ("netstat", "-lnt"), timeout: float = 10.0):
        self.command = command
        self.timeout = timeout

    def listening_ports(self, timeout: float | None = None) -> list[int]:
        if timeout is not None:
            timeout = max(min(self.timeout, timeout), 0.001)
        else:
            timeout = self.timeout
        try:
            result = subprocess.run(
                list(self.command),
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError as e:
            raise SocketTableError(message=f"{self.command[0]} not found") from e
        except subprocess.TimeoutExpired as e:
            raise SocketTableError(message=f"{self.command[0]} timed out after {timeout}s") from e

        if result.returncode != 0:
            raise SocketTableError(
                message=f"{self.command[0]} exited {result.returncode}",
                data={"stderr": result.stderr.strip()},
            )

        return parse_netstat(result.stdout)


def parse_netstat(output: str) -> list[int]:
    """Extract listening ports from `netstat -lnt` output.

    Header lines and non-TCP entries are skipped.

    Args:
        output: Raw netstat stdout

    Returns:
        One port per listening socket line.
    """
    ports = []
    for line in output.splitlines():
        fields = line.split()
        if len(fields) < 4 or not fields[0].startswith("tcp"):
            continue
        # Linux prints LISTEN; the -l flag already filters, so only reject other states
        if len(fields) >= 6 and fields[-1] not in ("LISTEN", "LISTENING"):
            continue
        match = _PORT_SUFFIX.search(fields[3])
        if match:
            ports.append(int(match.group(1)))
    return ports


def get_socket_table(source: str = "psutil") -> SocketTable:
    """Build a socket table for a configured source name.

    Args:
        source: "psutil" or "netstat"

    Returns:
        SocketTable implementation
    """
    if source == "psutil":
        return PsutilSocketTable()
    if source == "netstat":
        return NetstatSocketTable()
    raise ValueError(f"Unknown socket source: {source}")
