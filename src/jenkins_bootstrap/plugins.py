"""Plugin synchronisation.

Downloads plugin archives from a Jenkins mirror into JENKINS_HOME/plugins.
Archives come from the mirror as `*.hpi` but are saved as `*.jpi`, the name
the Update Center uses, so the server does not see two copies of a plugin.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from .errors import ConfigError, PluginDownloadError
from .shared.logging import get_logger

logger = get_logger(__name__)

PLUGIN_SUFFIXES = (".jpi", ".hpi")


@dataclass(frozen=True)
class PluginSpec:
    """A plugin to install."""

    name: str
    version: str = "latest"

    @classmethod
    def parse(cls, entry: Any) -> PluginSpec:
        """Parse a plugin entry from settings.

        Accepts "name" or {"name": ..., "version": ...}.
        """
        if isinstance(entry, str) and entry.strip():
            return cls(entry.strip())
        if isinstance(entry, dict) and entry.get("name"):
            return cls(str(entry["name"]), str(entry.get("version") or "latest"))
        raise ConfigError(message=f"Invalid plugin entry: {entry!r}")

    def download_url(self, mirror: str) -> str:
        return f"{mirror.rstrip('/')}/plugins/{self.name}/{self.version}/{self.name}.hpi"

    @property
    def filename(self) -> str:
        return f"{self.name}.jpi"


class PluginManager:
    """Install missing plugins into a plugins directory."""

    def __init__(
        self,
        plugins_dir: str | Path,
        mirror: str,
        owner: tuple[str, str] | None = None,
        client: httpx.Client | None = None,
        timeout: float = 60.0,
    ):
        """Initialize plugin manager.

        Args:
            plugins_dir: JENKINS_HOME/plugins
            mirror: Base URL of the plugin mirror
            owner: (user, group) to chown new files to when running as root
            client: HTTP client (default: one per sync call)
            timeout: Per-request timeout in seconds
        """
        self.plugins_dir = Path(plugins_dir)
        self.mirror = mirror
        self.owner = owner
        self.client = client
        self.timeout = timeout

    def missing(self, specs: list[PluginSpec]) -> list[PluginSpec]:
        """Plugins with no archive on disk yet."""
        return [spec for spec in specs if not (self.plugins_dir / spec.filename).exists()]

    def sync(self, specs: list[PluginSpec]) -> list[Path]:
        """Download every plugin that is not present yet.

        Existing archives are left alone, whatever their version.

        Returns:
            Paths of the archives written by this call.

        Raises:
            PluginDownloadError: If a download fails. Archives already
                downloaded in this call stay in place.
        """
        if not specs:
            return []

        self._ensure_dir(self.plugins_dir)
        todo = self.missing(specs)
        if not todo:
            logger.debug("plugins_up_to_date", count=len(specs))
            return []

        written = []
        if self.client is not None:
            for spec in todo:
                written.append(self._download(self.client, spec))
        else:
            with httpx.Client(follow_redirects=True, timeout=self.timeout) as client:
                for spec in todo:
                    written.append(self._download(client, spec))
        return written

    def _download(self, client: httpx.Client, spec: PluginSpec) -> Path:
        url = spec.download_url(self.mirror)
        target = self.plugins_dir / spec.filename
        partial = target.with_name(target.name + ".part")
        logger.info("plugin_download", plugin=spec.name, version=spec.version, url=url)

        try:
            with client.stream("GET", url) as response:
                if response.status_code != 200:
                    raise PluginDownloadError(
                        message=f"GET {url} returned HTTP {response.status_code}",
                        retryable=response.status_code >= 500,
                        data={"plugin": spec.name, "http_status": response.status_code},
                    )
                with open(partial, "wb") as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
            partial.replace(target)
        except httpx.HTTPError as e:
            partial.unlink(missing_ok=True)
            raise PluginDownloadError(
                message=f"GET {url} failed: {e}",
                data={"plugin": spec.name},
            ) from e
        except PluginDownloadError:
            partial.unlink(missing_ok=True)
            raise
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise PluginDownloadError(
                message=f"Cannot write {target}: {e}",
                data={"plugin": spec.name, "path": str(target)},
            ) from e

        self._chown(target)
        return target

    def _ensure_dir(self, path: Path) -> None:
        if not path.exists():
            path.mkdir(parents=True)
            self._chown(path)

    def _chown(self, path: Path) -> None:
        if self.owner and os.geteuid() == 0:
            user, group = self.owner
            shutil.chown(path, user=user, group=group)


def plugins_updated_since(plugins_dir: str | Path, pid_file: str | Path) -> list[Path]:
    """Plugin archives modified after the server last started.

    The pid file's mtime marks the start of the running server. Without a
    pid file there is no running server to restart, so nothing is reported.

    Args:
        plugins_dir: JENKINS_HOME/plugins
        pid_file: The server's pid file

    Returns:
        Archives newer than the pid file, sorted by name.
    """
    pid_path = Path(pid_file)
    plugins_path = Path(plugins_dir)
    if not pid_path.exists() or not plugins_path.is_dir():
        return []

    started = pid_path.stat().st_mtime
    return sorted(
        path
        for path in plugins_path.iterdir()
        if path.suffix in PLUGIN_SUFFIXES and path.stat().st_mtime > started
    )
