"""Shared test fixtures for jenkins-bootstrap tests."""

from __future__ import annotations

import logging
import os

import httpx
import pytest
import structlog

from jenkins_bootstrap.config import Settings
from tests.mocks import FakeCancel, FakeClock, ScriptedTransport


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cancel(clock: FakeClock) -> FakeCancel:
    return FakeCancel(clock)


@pytest.fixture
def scripted_client():
    """Factory: scripted_client(200, ...) -> (client, transport)."""
    clients = []

    def factory(
        *steps: int | httpx.Response | Exception,
    ) -> tuple[httpx.Client, ScriptedTransport]:
        transport = ScriptedTransport(*steps)
        client = httpx.Client(transport=transport)
        clients.append(client)
        return client, transport

    yield factory

    for client in clients:
        client.close()


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a temporary JENKINS_HOME with fast budgets."""
    home = tmp_path / "jenkins"
    home.mkdir()
    return Settings(
        home=str(home),
        port=8080,
        url="http://localhost:8080",
        pid_file=str(tmp_path / "jenkins.pid"),
        poll_interval=1.0,
        stop_attempts=3,
        start_timeout=10.0,
        http_timeout=2.0,
    )


@pytest.fixture(autouse=True)
def isolate_config(tmp_path, monkeypatch):
    """Keep tests away from the real ~/.jenkins-bootstrap and env overrides."""
    monkeypatch.setattr(
        "jenkins_bootstrap.config.get_config_path",
        lambda: tmp_path / "no-such-config.yaml",
    )
    for name in list(os.environ):
        if name.startswith("JENKINS_BOOTSTRAP_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers configure_logging bound to a test's (now closed) streams."""
    yield
    structlog.reset_defaults()
    logging.basicConfig(force=True, handlers=[logging.NullHandler()])
