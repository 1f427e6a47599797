"""Cutover - zero-fuss container redeploys on a single Docker host.

Cutover replaces the container serving an application port with a freshly
pulled image, verifies it over HTTP and records the outcome for downstream
CI jobs.

Main features:
- Registry login with password or CI job token
- Release of whatever container currently publishes the target port
- Health verification with bounded retries
- deploy.env and deployment-info.json artifacts on every run
"""

from cutover.config.loader import ConfigLoader
from cutover.lib.errors import ConfigError, CutoverError, DeploymentError

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ConfigLoader",
    "ConfigError",
    "CutoverError",
    "DeploymentError",
]
