"""Settings for the managed Jenkins server.

Loaded from ~/.jenkins-bootstrap/config.yaml (or --config), with environment
variable overrides. Settings are passed explicitly to every orchestration
step; nothing reads them from module globals.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .shared.paths import CONFIG_FILE

SOCKET_SOURCES = ("psutil", "netstat")

# Environment variable mappings
ENV_VARS = {
    "home": "JENKINS_BOOTSTRAP_HOME",
    "port": "JENKINS_BOOTSTRAP_PORT",
    "url": "JENKINS_BOOTSTRAP_URL",
    "mirror": "JENKINS_BOOTSTRAP_MIRROR",
    "pid_file": "JENKINS_BOOTSTRAP_PID_FILE",
    "socket_source": "JENKINS_BOOTSTRAP_SOCKET_SOURCE",
    "start_timeout": "JENKINS_BOOTSTRAP_START_TIMEOUT",
}


@dataclass
class Settings:
    """Configuration of the managed server and the readiness budgets."""

    home: str = "/var/lib/jenkins"
    user: str = "jenkins"
    group: str = "jenkins"
    port: int = 8080
    url: str = "http://localhost:8080"
    mirror: str = "https://updates.jenkins.io/download"
    plugins: list[Any] = field(default_factory=list)
    service_name: str = "jenkins"
    pid_file: str = "/var/run/jenkins/jenkins.pid"
    health_path: str = "/job/test/config.xml"
    socket_source: str = "psutil"
    poll_interval: float = 1.0
    stop_attempts: int = 10
    start_timeout: float = 300.0
    http_timeout: float = 5.0

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict, repr=False)

    @property
    def health_url(self) -> str:
        return self.url.rstrip("/") + "/" + self.health_path.lstrip("/")

    @property
    def plugins_dir(self) -> Path:
        return Path(self.home) / "plugins"

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, "default")

    def as_dict(self) -> dict[str, Any]:
        """Public settings as a plain dict (for display)."""
        return {name: getattr(self, name) for name in setting_names()}


def setting_names() -> list[str]:
    return [f.name for f in fields(Settings) if not f.name.startswith("_")]


def _coerce(key: str, value: Any, source: str) -> Any:
    """Convert a raw value to the type of the matching Settings field."""
    default = getattr(Settings(), key)
    try:
        if isinstance(default, bool):
            return bool(value)
        if isinstance(default, (int, float)) and isinstance(value, bool):
            raise TypeError("expected a number")
        if isinstance(default, int):
            if isinstance(value, float) and not value.is_integer():
                raise ValueError("expected a whole number")
            return int(value)
        if isinstance(default, float):
            return float(value)
        if isinstance(default, list):
            # An empty YAML key parses as None
            if value is None:
                return []
            if not isinstance(value, list):
                raise TypeError("expected a list")
            return value
        return str(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(
            message=f"Invalid value for {key!r} from {source}: {value!r} ({e})",
            data={"key": key, "source": source},
        ) from e


def _validate(settings: Settings) -> None:
    if not 1 <= settings.port <= 65535:
        raise ConfigError(message=f"port out of range (1-65535): {settings.port}")
    if settings.socket_source not in SOCKET_SOURCES:
        raise ConfigError(
            message=f"socket_source must be one of {', '.join(SOCKET_SOURCES)}: "
            f"{settings.socket_source!r}"
        )
    for key in ("poll_interval", "stop_attempts", "start_timeout", "http_timeout"):
        if getattr(settings, key) <= 0:
            raise ConfigError(message=f"{key} must be positive: {getattr(settings, key)}")


def get_config_path() -> Path:
    """Get the default config file path."""
    return CONFIG_FILE


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings.

    Precedence (highest to lowest):
    1. Environment variables
    2. Config file (--config, else ~/.jenkins-bootstrap/config.yaml)
    3. Defaults

    Args:
        path: Explicit config file. Unlike the default location, an explicit
            file must exist.

    Returns:
        Settings with values and sources

    Raises:
        ConfigError: If the file is unreadable or a value is invalid.
    """
    settings = Settings()
    sources = {key: "default" for key in setting_names()}

    config_path = Path(path) if path else get_config_path()
    if path and not config_path.exists():
        raise ConfigError(message=f"Config file not found: {config_path}")

    if config_path.exists():
        try:
            with open(config_path) as f:
                file_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(message=f"Cannot read {config_path}: {e}") from e

        if not isinstance(file_config, dict):
            raise ConfigError(message=f"{config_path} must contain a mapping")

        unknown = sorted(set(file_config) - set(sources))
        if unknown:
            raise ConfigError(message=f"Unknown settings in {config_path}: {', '.join(unknown)}")

        for key, value in file_config.items():
            setattr(settings, key, _coerce(key, value, "config file"))
            sources[key] = "config file"

    # Override with environment variables
    for key, env_var in ENV_VARS.items():
        if os.environ.get(env_var):
            setattr(settings, key, _coerce(key, os.environ[env_var], "environment"))
            sources[key] = "environment"

    _validate(settings)
    settings._sources = sources
    return settings
