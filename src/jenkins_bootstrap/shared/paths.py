"""Path management for jenkins-bootstrap.

Host-side locations used by the tool itself. Paths belonging to the managed
server (JENKINS_HOME, pid file) live in Settings instead.
"""

from pathlib import Path

# Base directory for jenkins-bootstrap's own files
BOOTSTRAP_DIR = Path.home() / ".jenkins-bootstrap"

# Default config file location
CONFIG_FILE = BOOTSTRAP_DIR / "config.yaml"
