"""Error types for jenkins-bootstrap.

Transient failures never surface as exceptions: the readiness waiter absorbs
them and reports an outcome. The errors here are the ones a caller has to act
on, either because the setup itself is wrong or because an external command
failed outright.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class BootstrapError(Exception):
    """Base error class for jenkins-bootstrap errors."""

    message: str
    retryable: bool = False
    data: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message


@dataclass
class ConfigError(BootstrapError):
    """Configuration file or value is invalid."""

    message: str = "Invalid configuration"


@dataclass
class FatalCheckError(BootstrapError):
    """A readiness check can never succeed as configured.

    Raised for malformed targets (bad port, bad URL) and TLS validation
    failures. Retrying would only hide a setup bug.
    """

    message: str = "Readiness check failed fatally"


@dataclass
class ServiceCommandError(BootstrapError):
    """Service stop/start command exited non-zero."""

    message: str = "Service command failed"


@dataclass
class PluginDownloadError(BootstrapError):
    """Plugin archive could not be fetched from the mirror."""

    message: str = "Plugin download failed"
    retryable: bool = True


@dataclass
class SocketTableError(BootstrapError):
    """Host socket table could not be read."""

    message: str = "Cannot read socket table"
    retryable: bool = True
