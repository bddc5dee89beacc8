"""Shared modules for jenkins-bootstrap.

Logging setup and host-side paths used by every command.
"""

from .logging import configure_logging, get_logger, verbosity_to_level
from .paths import BOOTSTRAP_DIR, CONFIG_FILE

__all__ = [
    # Paths
    "BOOTSTRAP_DIR",
    "CONFIG_FILE",
    # Logging
    "configure_logging",
    "get_logger",
    "verbosity_to_level",
]
