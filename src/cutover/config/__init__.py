"""Configuration loading and validation for Cutover deployments.

Main components:
- ConfigLoader: Resolve a CutoverConfig from CLI, YAML, environment and defaults
- load_config: One-call helper for CLI commands
- Environment variable substitution (${VAR} and ${VAR:-default} patterns)
"""

from cutover.config.env_loader import (
    apply_env_file,
    get_env_var,
    load_env_file,
    substitute_env_vars,
)
from cutover.config.loader import ConfigLoader, load_config

__all__ = [
    "ConfigLoader",
    "load_config",
    "apply_env_file",
    "substitute_env_vars",
    "get_env_var",
    "load_env_file",
]
