"""Unit tests for ReadinessWaiter."""

from __future__ import annotations

import threading
import time

import httpx
import pytest

from jenkins_bootstrap.errors import SocketTableError
from jenkins_bootstrap.readiness import (
    CheckKind,
    PollState,
    ReadinessCheck,
    ReadinessWaiter,
    validate_target,
)
from tests.mocks import FakeCancel, FakeSocketTable


class TestPortFree:
    """Tests for PORT_FREE checks."""

    def test_satisfied_on_first_attempt_when_port_never_bound(self, clock, cancel):
        """An unbound port is released on the first attempt, without sleeping."""
        table = FakeSocketTable([22, 443])
        waiter = ReadinessWaiter(socket_table=table, clock=clock)

        outcome = waiter.wait_for(ReadinessCheck.port_free(8080), cancel)

        assert outcome.state == PollState.SATISFIED
        assert outcome.attempts_used == 1
        assert cancel.waits == []

    def test_satisfied_once_port_released(self, clock, cancel):
        """Polling continues until the listener disappears."""
        table = FakeSocketTable([8080], [8080], [22])
        waiter = ReadinessWaiter(socket_table=table, clock=clock)

        outcome = waiter.wait_for(ReadinessCheck.port_free(8080), cancel)

        assert outcome.satisfied
        assert outcome.attempts_used == 3
        assert cancel.waits == [1.0, 1.0]
        assert outcome.elapsed_seconds == pytest.approx(2.0)

    def test_exhausted_after_max_attempts(self, clock, cancel):
        """A port that stays bound exhausts the attempt budget."""
        table = FakeSocketTable([8080])
        waiter = ReadinessWaiter(socket_table=table, clock=clock)

        outcome = waiter.wait_for(ReadinessCheck.port_free(8080, max_attempts=10), cancel)

        assert outcome.state == PollState.EXHAUSTED
        assert outcome.attempts_used == 10
        assert table.calls == 10
        # No sleep after the final attempt
        assert len(cancel.waits) == 9
        assert outcome.last_observed_error == "still listening on port 8080"

    def test_socket_table_errors_are_transient(self, clock, cancel):
        """Unreadable socket tables are retried, not raised."""
        table = FakeSocketTable(SocketTableError(message="netstat exited 1"), [])
        waiter = ReadinessWaiter(socket_table=table, clock=clock)

        outcome = waiter.wait_for(ReadinessCheck.port_free(8080), cancel)

        assert outcome.satisfied
        assert outcome.attempts_used == 2

    def test_last_error_reported_on_exhaustion(self, clock, cancel):
        """The last transient error is reported with the exhausted outcome."""
        table = FakeSocketTable(SocketTableError(message="netstat not found"))
        waiter = ReadinessWaiter(socket_table=table, clock=clock)

        outcome = waiter.wait_for(ReadinessCheck.port_free(8080, max_attempts=2), cancel)

        assert outcome.state == PollState.EXHAUSTED
        assert outcome.last_observed_error == "netstat not found"


class TestPortListening:
    """Tests for PORT_LISTENING checks."""

    def test_satisfied_when_exactly_one_listener(self, clock, cancel):
        """One socket on the port satisfies the check."""
        table = FakeSocketTable([], [22], [22, 8080])
        waiter = ReadinessWaiter(socket_table=table, clock=clock)

        outcome = waiter.wait_for(ReadinessCheck.port_listening(8080, 30), cancel)

        assert outcome.satisfied
        assert outcome.attempts_used == 3

    def test_two_listeners_do_not_satisfy(self, clock, cancel):
        """Two sockets on the port (old and new process) keep polling."""
        table = FakeSocketTable([8080, 8080], [8080])
        waiter = ReadinessWaiter(socket_table=table, clock=clock)

        outcome = waiter.wait_for(ReadinessCheck.port_listening(8080, 30), cancel)

        assert outcome.satisfied
        assert outcome.attempts_used == 2

    def test_exhausted_between_deadline_and_deadline_plus_interval(self, clock, cancel):
        """A port that never binds ends at or after D and no later than D + interval."""
        table = FakeSocketTable([])
        waiter = ReadinessWaiter(socket_table=table, clock=clock)
        check = ReadinessCheck.port_listening(8080, timeout_seconds=2.5, interval_seconds=1.0)

        outcome = waiter.wait_for(check, cancel)

        assert outcome.state == PollState.EXHAUSTED
        assert 2.5 <= outcome.elapsed_seconds <= 2.5 + 1.0
        # The last sleep is clipped to the remaining budget
        assert cancel.waits == [1.0, 1.0, 0.5]
        assert outcome.attempts_used == 4

    @pytest.mark.parametrize("timeout,interval", [(0.3, 1.0), (5.0, 0.7), (10.0, 3.0)])
    def test_deadline_bounds_hold_for_any_interval(self, clock, cancel, timeout, interval):
        """The exhaustion bound holds whatever the interval/deadline ratio."""
        waiter = ReadinessWaiter(socket_table=FakeSocketTable([]), clock=clock)
        check = ReadinessCheck.port_listening(
            8080, timeout_seconds=timeout, interval_seconds=interval
        )

        outcome = waiter.wait_for(check, cancel)

        assert outcome.state == PollState.EXHAUSTED
        assert timeout <= outcome.elapsed_seconds <= timeout + interval

    def test_attempt_ceiling_can_end_before_deadline(self, clock, cancel):
        """With both budgets, whichever runs out first ends the wait."""
        waiter = ReadinessWaiter(socket_table=FakeSocketTable([]), clock=clock)
        check = ReadinessCheck.port_listening(8080, timeout_seconds=100, max_attempts=3)

        outcome = waiter.wait_for(check, cancel)

        assert outcome.state == PollState.EXHAUSTED
        assert outcome.attempts_used == 3
        assert outcome.elapsed_seconds == pytest.approx(2.0)

    def test_socket_read_limited_to_remaining_budget(self, clock, cancel):
        """Each socket-table read gets the time left before the deadline."""
        table = FakeSocketTable([])
        waiter = ReadinessWaiter(socket_table=table, clock=clock)
        check = ReadinessCheck.port_listening(8080, timeout_seconds=2.5, interval_seconds=1.0)

        waiter.wait_for(check, cancel)

        assert table.timeouts == pytest.approx([2.5, 1.5, 0.5, 0.0])

    def test_port_checks_never_use_http(self, clock, cancel, scripted_client):
        """A configured HTTP client is left alone by port checks."""
        client, transport = scripted_client(200)
        table = FakeSocketTable([8080])
        waiter = ReadinessWaiter(socket_table=table, http_client=client, clock=clock)

        outcome = waiter.wait_for(ReadinessCheck.port_listening(8080, 30), cancel)

        assert outcome.satisfied
        assert transport.requests == []
        assert table.calls == 1


class TestHttpHealthy:
    """Tests for HTTP_HEALTHY checks."""

    URL = "http://localhost:8080/job/test/config.xml"

    def test_404_on_first_attempt_is_healthy(self, clock, cancel, scripted_client):
        """A fresh install answering 404 is up."""
        client, transport = scripted_client(404)
        waiter = ReadinessWaiter(http_client=client, clock=clock)

        outcome = waiter.wait_for(ReadinessCheck.http_healthy(self.URL, 30), cancel)

        assert outcome.state == PollState.SATISFIED
        assert outcome.attempts_used == 1
        assert len(transport.requests) == 1
        assert transport.requests[0].method == "GET"
        assert str(transport.requests[0].url) == self.URL

    @pytest.mark.parametrize("status", [200, 201, 204, 299])
    def test_2xx_is_healthy(self, clock, cancel, scripted_client, status):
        """Any 2xx status is healthy."""
        client, _ = scripted_client(status)
        waiter = ReadinessWaiter(http_client=client, clock=clock)

        outcome = waiter.wait_for(ReadinessCheck.http_healthy(self.URL, 30), cancel)

        assert outcome.satisfied

    def test_connection_refused_then_200(self, clock, cancel, scripted_client):
        """Three refused connections then 200 is satisfied on attempt 4."""
        refused = httpx.ConnectError("[Errno 111] Connection refused")
        client, transport = scripted_client(refused, refused, refused, 200)
        waiter = ReadinessWaiter(http_client=client, clock=clock)

        outcome = waiter.wait_for(ReadinessCheck.http_healthy(self.URL, 30), cancel)

        assert outcome.state == PollState.SATISFIED
        assert outcome.attempts_used == 4
        assert len(transport.requests) == 4

    @pytest.mark.parametrize("status", [500, 502, 503, 401, 403, 302])
    def test_other_statuses_are_retried(self, clock, cancel, scripted_client, status):
        """Statuses outside 2xx/404 keep the wait going."""
        client, _ = scripted_client(status, 200)
        waiter = ReadinessWaiter(http_client=client, clock=clock)

        outcome = waiter.wait_for(ReadinessCheck.http_healthy(self.URL, 30), cancel)

        assert outcome.satisfied
        assert outcome.attempts_used == 2

    def test_timeouts_are_retried(self, clock, cancel, scripted_client):
        """Request timeouts are transient."""
        client, _ = scripted_client(httpx.ReadTimeout("timed out"), 200)
        waiter = ReadinessWaiter(http_client=client, clock=clock)

        outcome = waiter.wait_for(ReadinessCheck.http_healthy(self.URL, 30), cancel)

        assert outcome.satisfied
        assert outcome.attempts_used == 2

    def test_undecodable_body_is_retried(self, clock, cancel, scripted_client):
        """A body that fails to decode is transient."""
        broken = httpx.Response(
            200, headers={"Content-Encoding": "gzip"}, stream=httpx.ByteStream(b"not gzip")
        )
        client, _ = scripted_client(broken, 200)
        waiter = ReadinessWaiter(http_client=client, clock=clock)

        outcome = waiter.wait_for(ReadinessCheck.http_healthy(self.URL, 30), cancel)

        assert outcome.state == PollState.SATISFIED
        assert outcome.attempts_used == 2

    def test_redirect_loop_is_retried(self, clock, cancel, scripted_client):
        """Too many redirects from a following client is transient."""
        client, _ = scripted_client(httpx.TooManyRedirects("Exceeded maximum allowed redirects."))
        waiter = ReadinessWaiter(http_client=client, clock=clock)

        outcome = waiter.wait_for(
            ReadinessCheck.http_healthy(self.URL, timeout_seconds=2, interval_seconds=1), cancel
        )

        assert outcome.state == PollState.EXHAUSTED
        assert "redirects" in outcome.last_observed_error

    def test_exhausted_reports_last_status(self, clock, cancel, scripted_client):
        """A server stuck on 503 exhausts with the status as last error."""
        client, _ = scripted_client(503)
        waiter = ReadinessWaiter(http_client=client, clock=clock)

        outcome = waiter.wait_for(
            ReadinessCheck.http_healthy(self.URL, timeout_seconds=3, interval_seconds=1), cancel
        )

        assert outcome.state == PollState.EXHAUSTED
        assert outcome.last_observed_error == "HTTP 503"
        assert 3.0 <= outcome.elapsed_seconds <= 4.0

    @pytest.mark.parametrize(
        "url",
        [
            "not a url",
            "localhost:8080",
            "/job/test/config.xml",
            "ftp://localhost/file",
            "http://",
        ],
    )
    def test_malformed_url_is_fatal_without_network(self, clock, cancel, scripted_client, url):
        """Malformed URLs fail immediately with zero attempts."""
        client, transport = scripted_client(200)
        waiter = ReadinessWaiter(http_client=client, clock=clock)

        outcome = waiter.wait_for(ReadinessCheck.http_healthy(url, 30), cancel)

        assert outcome.state == PollState.FATAL
        assert outcome.attempts_used == 0
        assert outcome.last_observed_error
        assert transport.requests == []
        assert cancel.waits == []

    def test_tls_verification_failure_is_fatal(self, clock, cancel, scripted_client):
        """Certificate validation failures are not retried."""
        error = httpx.ConnectError(
            "[SSL: CERTIFICATE_VERIFY_FAILED] certificate verify failed: self-signed certificate"
        )
        client, transport = scripted_client(error, 200)
        waiter = ReadinessWaiter(http_client=client, clock=clock)

        outcome = waiter.wait_for(
            ReadinessCheck.http_healthy("https://localhost:8443/", 30), cancel
        )

        assert outcome.state == PollState.FATAL
        assert outcome.attempts_used == 1
        assert "TLS verification failed" in outcome.last_observed_error
        assert len(transport.requests) == 1

    def test_request_timeout_clipped_to_deadline(self, clock, cancel, scripted_client):
        """A request never waits past the check's deadline."""
        client, transport = scripted_client(200)
        waiter = ReadinessWaiter(http_client=client, http_timeout=5.0, clock=clock)

        waiter.wait_for(ReadinessCheck.http_healthy(self.URL, timeout_seconds=2.0), cancel)

        assert transport.requests[0].extensions["timeout"]["read"] == pytest.approx(2.0)


class TestIdempotence:
    """Repeated waits on an already-satisfied condition."""

    def test_port_free_twice(self, clock):
        """Both calls succeed on their first attempt."""
        waiter = ReadinessWaiter(socket_table=FakeSocketTable([]), clock=clock)
        check = ReadinessCheck.port_free(8080)

        first = waiter.wait_for(check, FakeCancel(clock))
        second = waiter.wait_for(check, FakeCancel(clock))

        assert first.state == second.state == PollState.SATISFIED
        assert first.attempts_used == second.attempts_used == 1

    def test_http_healthy_twice(self, clock, scripted_client):
        """HTTP waits keep no state between calls."""
        client, transport = scripted_client(200)
        waiter = ReadinessWaiter(http_client=client, clock=clock)
        check = ReadinessCheck.http_healthy("http://localhost:8080/", 30)

        first = waiter.wait_for(check, FakeCancel(clock))
        second = waiter.wait_for(check, FakeCancel(clock))

        assert first.satisfied and second.satisfied
        assert first.attempts_used == second.attempts_used == 1
        assert len(transport.requests) == 2


class TestCancellation:
    """Tests for cancelling a wait mid-sleep."""

    def test_cancel_mid_sleep_returns_within_one_interval(self, clock):
        """Cancelling at t=2.5 ends the wait at t=2.5, not at the deadline."""
        cancel = FakeCancel(clock, cancel_at=2.5)
        waiter = ReadinessWaiter(socket_table=FakeSocketTable([]), clock=clock)
        check = ReadinessCheck.port_listening(8080, timeout_seconds=300, interval_seconds=1.0)

        outcome = waiter.wait_for(check, cancel)

        assert outcome.state == PollState.CANCELLED
        assert outcome.elapsed_seconds <= 2.5 + 1.0
        assert outcome.attempts_used == 3

    def test_already_cancelled_still_polls_once(self, clock):
        """The condition is polled once before the first sleep, even if cancelled."""
        table = FakeSocketTable([8080])
        cancel = FakeCancel(clock, cancel_at=0.0)
        waiter = ReadinessWaiter(socket_table=table, clock=clock)

        outcome = waiter.wait_for(ReadinessCheck.port_free(8080), cancel)

        assert outcome.state == PollState.CANCELLED
        assert outcome.attempts_used == 1
        assert table.calls == 1

    def test_real_event_interrupts_sleep(self):
        """A threading.Event set from another thread interrupts a long sleep."""
        cancel = threading.Event()
        waiter = ReadinessWaiter(socket_table=FakeSocketTable([]))
        check = ReadinessCheck.port_listening(8080, timeout_seconds=60, interval_seconds=10)

        timer = threading.Timer(0.1, cancel.set)
        timer.start()
        started = time.monotonic()
        try:
            outcome = waiter.wait_for(check, cancel)
        finally:
            timer.cancel()

        assert outcome.state == PollState.CANCELLED
        assert time.monotonic() - started < 5


class TestValidateTarget:
    """Tests for target validation."""

    @pytest.mark.parametrize("port", [0, 65536, -1, "8080", 80.0, True, None])
    def test_invalid_ports(self, port):
        """Ports must be ints in 1..65535."""
        check = ReadinessCheck(CheckKind.PORT_FREE, port, 1.0, 1)
        assert validate_target(check) is not None

    @pytest.mark.parametrize("port", [1, 8080, 65535])
    def test_valid_ports(self, port):
        """Boundary ports are accepted."""
        check = ReadinessCheck(CheckKind.PORT_FREE, port, 1.0, 1)
        assert validate_target(check) is None

    def test_invalid_port_is_fatal_without_polling(self, clock, cancel):
        """A bad port never touches the socket table."""
        table = FakeSocketTable([])
        waiter = ReadinessWaiter(socket_table=table, clock=clock)

        outcome = waiter.wait_for(ReadinessCheck.port_free(70000), cancel)

        assert outcome.state == PollState.FATAL
        assert outcome.attempts_used == 0
        assert table.calls == 0

    @pytest.mark.parametrize(
        "url", ["http://localhost:8080", "https://jenkins.example.com/job/test/config.xml"]
    )
    def test_valid_urls(self, url):
        """Absolute http(s) URLs are accepted."""
        check = ReadinessCheck.http_healthy(url, 5)
        assert validate_target(check) is None
