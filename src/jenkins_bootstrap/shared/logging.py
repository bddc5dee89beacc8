"""Logging configuration for jenkins-bootstrap.

Configures structlog on top of standard logging: human-readable output on
stderr for interactive runs, JSON lines when writing to a log file (for
unattended provisioning runs). Values bound with
structlog.contextvars.bound_contextvars are added to every event.
"""

import logging
import sys
from pathlib import Path

import structlog


def configure_logging(
    level: str = "info",
    log_file: str | Path | None = None,
    json_output: bool = False,
) -> None:
    """Configure logging for the application.

    Called once on startup. Configures both standard logging and structlog.

    Args:
        level: Log level (debug, info, warning, error, critical)
        log_file: Optional path to a log file
        json_output: If True, render events as JSON
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(str(log_file))
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)

    logging.basicConfig(
        level=log_level,
        handlers=[handler],
        format="%(message)s",
        force=True,
    )

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def verbosity_to_level(verbose: int, quiet: bool = False) -> str:
    """Map -v/-q flags to a level name.

    Args:
        verbose: Number of -v flags given
        quiet: Whether -q was given

    Returns:
        Level name understood by configure_logging
    """
    if quiet:
        return "error"
    if verbose >= 2:
        return "debug"
    if verbose == 1:
        return "info"
    return "warning"


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)
