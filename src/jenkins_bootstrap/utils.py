"""CLI utility functions."""

import contextlib
import signal
import threading
from collections.abc import Iterator
from typing import Any

import click

from .config import Settings, load_settings
from .errors import ConfigError
from .shared.logging import get_logger

logger = get_logger(__name__)


def get_settings(ctx: click.Context) -> Settings:
    """Load settings once per invocation and cache them on the context.

    Raises:
        click.ClickException: If the configuration is invalid.
    """
    obj = ctx.ensure_object(dict)
    if "settings" not in obj:
        try:
            obj["settings"] = load_settings(obj.get("config_path"))
        except ConfigError as e:
            raise click.ClickException(e.message) from e
    return obj["settings"]


def apply_overrides(settings: Settings, **overrides: Any) -> Settings:
    """Apply command-line flags on top of loaded settings.

    None values mean "flag not given" and are skipped.
    """
    for key, value in overrides.items():
        if value is not None:
            setattr(settings, key, value)
            settings._sources[key] = "command line"
    return settings


@contextlib.contextmanager
def cancel_on_signals() -> Iterator[threading.Event]:
    """Yield an event that SIGINT/SIGTERM set, restoring handlers on exit.

    A pending wait returns CANCELLED within one poll interval instead of the
    process dying mid-step.
    """
    cancel = threading.Event()

    def handle_signal(signum: int, frame: Any) -> None:
        logger.info("shutdown_signal", signal=signal.Signals(signum).name)
        cancel.set()

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, handle_signal)
    try:
        yield cancel
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
