"""ReadinessWaiter - block until a service has stopped or started.

Polls host-level (socket table) and application-level (HTTP) signals. Every
wait is bounded by an attempt budget or a deadline, and the sleep between
attempts can be interrupted through a threading.Event so an orchestrator can
abort a hung wait on shutdown.
"""

from __future__ import annotations

import contextlib
import ssl
import threading
import time
from collections.abc import Callable, Iterator

import httpx

from ..errors import FatalCheckError, SocketTableError
from ..shared.logging import get_logger
from .models import CheckKind, PollOutcome, PollState, ReadinessCheck
from .sockets import PsutilSocketTable, SocketTable

logger = get_logger(__name__)

DEFAULT_HTTP_TIMEOUT = 5.0

# (satisfied, error description for a failed attempt)
ProbeResult = tuple[bool, str | None]


class ReadinessWaiter:
    """Poll readiness checks to completion.

    The waiter holds only collaborators, never per-call state, so one instance
    can serve concurrent wait_for calls from different threads.
    """

    def __init__(
        self,
        socket_table: SocketTable | None = None,
        http_client: httpx.Client | None = None,
        http_timeout: float = DEFAULT_HTTP_TIMEOUT,
        verify: bool | str = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize waiter.

        Args:
            socket_table: Source of listening ports (default: psutil).
            http_client: Client for HTTP checks. When omitted a client is
                created for each wait_for call and closed afterwards.
            http_timeout: Timeout for each HTTP request (seconds).
            verify: TLS verification setting for owned clients.
            clock: Monotonic clock, injectable for tests.
        """
        self.socket_table = socket_table or PsutilSocketTable()
        self.http_client = http_client
        self.http_timeout = http_timeout
        self.verify = verify
        self._clock = clock

    def wait_for(
        self,
        check: ReadinessCheck,
        cancel: threading.Event | None = None,
    ) -> PollOutcome:
        """Poll a check until satisfied, out of budget, cancelled, or fatal.

        The condition is always polled once before the first sleep.

        Args:
            check: Condition to wait for.
            cancel: Event that aborts the wait when set.

        Returns:
            PollOutcome describing how the wait ended.
        """
        log = logger.bind(check=check.kind.value, target=check.target)
        start = self._clock()

        invalid = validate_target(check)
        if invalid:
            log.error("readiness_check_invalid", error=invalid)
            return PollOutcome(PollState.FATAL, 0, invalid, 0.0)

        cancel = cancel or threading.Event()
        deadline = start + check.timeout_seconds if check.timeout_seconds is not None else None

        with self._client_scope(check) as client:
            attempt = 0
            while True:
                attempt += 1
                try:
                    satisfied, error = self._probe(check, client, self._remaining(deadline))
                except FatalCheckError as e:
                    log.error("readiness_check_fatal", attempt=attempt, error=e.message)
                    return self._outcome(PollState.FATAL, attempt, e.message, start)

                if satisfied:
                    log.debug("readiness_check_satisfied", attempt=attempt)
                    return self._outcome(PollState.SATISFIED, attempt, None, start)

                log.debug("readiness_attempt_failed", attempt=attempt, error=error)

                if check.max_attempts is not None and attempt >= check.max_attempts:
                    log.info("readiness_check_exhausted", attempts=attempt, error=error)
                    return self._outcome(PollState.EXHAUSTED, attempt, error, start)

                delay = check.interval_seconds
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        log.info("readiness_check_exhausted", attempts=attempt, error=error)
                        return self._outcome(PollState.EXHAUSTED, attempt, error, start)
                    delay = min(delay, remaining)

                if cancel.wait(delay):
                    log.info("readiness_check_cancelled", attempts=attempt)
                    return self._outcome(PollState.CANCELLED, attempt, error, start)

    def _outcome(
        self, state: PollState, attempts: int, error: str | None, start: float
    ) -> PollOutcome:
        return PollOutcome(state, attempts, error, self._clock() - start)

    def _remaining(self, deadline: float | None) -> float | None:
        if deadline is None:
            return None
        return max(deadline - self._clock(), 0.0)

    @contextlib.contextmanager
    def _client_scope(self, check: ReadinessCheck) -> Iterator[httpx.Client | None]:
        if check.kind != CheckKind.HTTP_HEALTHY:
            yield None
        elif self.http_client is not None:
            yield self.http_client
        else:
            with httpx.Client(verify=self.verify, follow_redirects=False) as client:
                yield client

    def _probe(
        self,
        check: ReadinessCheck,
        client: httpx.Client | None,
        remaining: float | None,
    ) -> ProbeResult:
        # _client_scope yields a client only for HTTP checks
        if client is not None:
            return probe_http(client, str(check.target), self._clip(self.http_timeout, remaining))
        return self._probe_port(check, remaining)

    def _clip(self, timeout: float, remaining: float | None) -> float:
        # Keep a slow request or command from overrunning the deadline
        if remaining is None:
            return timeout
        return max(min(timeout, remaining), 0.001)

    def _probe_port(self, check: ReadinessCheck, remaining: float | None) -> ProbeResult:
        port = int(check.target)
        try:
            listeners = self.socket_table.listening_ports(remaining).count(port)
        except SocketTableError as e:
            return False, e.message

        if check.kind == CheckKind.PORT_FREE:
            if listeners == 0:
                return True, None
            return False, f"still listening on port {port}"

        if listeners == 1:
            return True, None
        if listeners == 0:
            return False, f"not listening on port {port}"
        return False, f"{listeners} sockets bound to port {port}"


def validate_target(check: ReadinessCheck) -> str | None:
    """Check a target before any I/O.

    Returns:
        Error description, or None if the target is usable.
    """
    target = check.target
    if check.kind in (CheckKind.PORT_FREE, CheckKind.PORT_LISTENING):
        if isinstance(target, bool) or not isinstance(target, int):
            return f"Invalid port: {target!r}"
        if not 1 <= target <= 65535:
            return f"Port out of range (1-65535): {target}"
        return None

    if not isinstance(target, str):
        return f"Invalid URL: {target!r}"
    try:
        url = httpx.URL(target)
    except httpx.InvalidURL as e:
        return f"Invalid URL {target!r}: {e}"
    if url.scheme not in ("http", "https") or not url.host:
        return f"URL must be absolute http(s): {target!r}"
    return None


def probe_http(client: httpx.Client, url: str, timeout: float) -> ProbeResult:
    """Issue one GET and classify the result.

    Any 2xx or 404 counts as ready: a fresh install answers 404 on a job path
    while being fully up.

    Raises:
        FatalCheckError: For errors that retrying cannot fix (invalid URL,
            unsupported scheme, TLS certificate validation).
    """
    try:
        response = client.get(url, timeout=timeout)
    except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
        raise FatalCheckError(message=f"Invalid URL {url!r}: {e}") from e
    except httpx.TimeoutException:
        return False, "Request timeout"
    except httpx.ConnectError as e:
        if is_tls_verification_failure(e):
            raise FatalCheckError(
                message=f"TLS verification failed for {url}: {e}",
                data={"url": url},
            ) from e
        return False, "Connection refused"
    except httpx.RequestError as e:
        # Includes decoding errors and redirect loops, which are not transport errors
        return False, str(e) or type(e).__name__

    status = response.status_code
    if 200 <= status < 300 or status == 404:
        return True, None
    return False, f"HTTP {status}"


def is_tls_verification_failure(error: BaseException) -> bool:
    """Whether an error was caused by certificate validation."""
    visited: set[int] = set()
    seen: BaseException | None = error
    while seen is not None and id(seen) not in visited:
        visited.add(id(seen))
        if isinstance(seen, ssl.SSLCertVerificationError):
            return True
        if "CERTIFICATE_VERIFY_FAILED" in str(seen):
            return True
        seen = seen.__cause__ or seen.__context__
    return False
