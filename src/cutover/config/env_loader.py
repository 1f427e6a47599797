"""Environment variable helpers for configuration loading.

Supports ``${VAR}`` and ``${VAR:-default}`` substitution in configuration
text and loading ``.env`` files with python-dotenv.
"""

import os
import re
from collections.abc import Mapping
from pathlib import Path

from dotenv import dotenv_values, load_dotenv

from cutover.lib.errors import ConfigError

ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def substitute_env_vars(text: str, environ: Mapping[str, str] | None = None) -> str:
    """Replace ``${VAR}`` references with environment values.

    Args:
        text: Raw configuration text
        environ: Variables to substitute from (defaults to os.environ)

    Returns:
        Text with every reference replaced

    Raises:
        ConfigError: If a referenced variable is unset and has no default

    Example:
        >>> substitute_env_vars("port: ${PORT:-8080}", {})
        'port: 8080'
    """
    env = os.environ if environ is None else environ

    def replace(match: re.Match[str]) -> str:
        name, default = match.group(1), match.group(2)
        value = env.get(name)
        if value is not None:
            return value
        if default is not None:
            return default
        raise ConfigError(
            name,
            f"Environment variable '{name}' is not set. "
            f"Set it or provide a default with ${{{name}:-value}}.",
        )

    return ENV_PATTERN.sub(replace, text)


def get_env_var(
    name: str, default: str | None = None, environ: Mapping[str, str] | None = None
) -> str | None:
    """Return a non-empty environment variable or ``default``."""
    env = os.environ if environ is None else environ
    value = env.get(name)
    return value if value else default


def load_env_file(path: str | Path) -> dict[str, str]:
    """Read a dotenv file into a dict without touching os.environ."""
    return {k: v for k, v in dotenv_values(path).items() if v is not None}


def apply_env_file(path: str | Path) -> bool:
    """Load a dotenv file into os.environ without overriding existing values.

    Returns:
        True if the file existed and was loaded
    """
    if not Path(path).is_file():
        return False
    return load_dotenv(path, override=False)
