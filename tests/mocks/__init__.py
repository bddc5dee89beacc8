"""Test mocks for jenkins-bootstrap.

Provides mock implementations for testing:
- Fakes for the socket table, clock, cancel event and HTTP transport
- MockJenkins: a local HTTP server answering like a starting Jenkins
"""

from .fakes import FakeCancel, FakeClock, FakeSocketTable, ScriptedTransport
from .mock_jenkins import MockJenkins

__all__ = [
    "FakeCancel",
    "FakeClock",
    "FakeSocketTable",
    "MockJenkins",
    "ScriptedTransport",
]
