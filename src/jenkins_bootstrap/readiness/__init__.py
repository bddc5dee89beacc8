"""Service-readiness polling.

Waits for a managed service to release its port after a stop, bind it again
after a start, and answer HTTP requests.
"""

from .models import CheckKind, PollOutcome, PollState, ReadinessCheck
from .sockets import (
    NetstatSocketTable,
    PsutilSocketTable,
    SocketTable,
    get_socket_table,
    parse_netstat,
)
from .waiter import ReadinessWaiter, probe_http, validate_target

__all__ = [
    # Model
    "CheckKind",
    "PollOutcome",
    "PollState",
    "ReadinessCheck",
    # Socket table
    "SocketTable",
    "PsutilSocketTable",
    "NetstatSocketTable",
    "get_socket_table",
    "parse_netstat",
    # Waiter
    "ReadinessWaiter",
    "probe_http",
    "validate_target",
]
