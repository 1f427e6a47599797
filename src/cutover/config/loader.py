"""Configuration loader for Cutover deployments.

This module provides the ConfigLoader class which resolves a single,
validated ``CutoverConfig`` from CLI overrides, an optional YAML file,
environment variables and defaults.

Configuration precedence (highest to lowest):
1. CLI options
2. cutover.yaml / cutover.yml explicit settings
3. Environment variables (including a loaded .env file)
4. Defaults
"""

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from cutover.config.defaults import (
    CONFIG_FILE_NAMES,
    DEFAULT_ARTIFACT_DIR,
    DEFAULT_IMAGE_REPOSITORY,
    DEFAULT_IMAGE_TAG,
    DEFAULT_REQUEST_CONFIG,
    DEFAULT_REVISION,
)
from cutover.config.env_loader import get_env_var, substitute_env_vars
from cutover.config.validator import validation_message
from cutover.deploy.run_args import translate_run_arguments
from cutover.lib.errors import ConfigError
from cutover.models.deployment import (
    CutoverConfig,
    DeploymentRequest,
    DeploymentSettings,
    GitContext,
    RegistryCredentials,
    default_container_name,
)

logger = logging.getLogger(__name__)

# Deployment request field to environment variable
REQUEST_ENV_VAR_MAP = {
    "app_name": "APP_NAME",
    "container_name": "CONTAINER_NAME",
    "host_port": "HOST_PORT",
    "container_port": "CONTAINER_PORT",
    "health_check_path": "HEALTH_CHECK_PATH",
    "restart_policy": "DOCKER_RESTART_POLICY",
    "extra_run_arguments": "DOCKER_EXTRA_ARGS",
    "image_reference": "CUTOVER_IMAGE",
    "revision": "CI_COMMIT_REF_SLUG",
}

REGISTRY_ENV_VAR_MAP = {
    "registry": "CI_REGISTRY",
    "username": "CI_REGISTRY_USER",
    "password": "CI_REGISTRY_PASSWORD",
    "job_token": "CI_JOB_TOKEN",
}

SETTINGS_ENV_VAR_MAP = {
    "max_health_checks": "CUTOVER_MAX_HEALTH_CHECKS",
    "health_check_interval": "CUTOVER_HEALTH_CHECK_INTERVAL",
    "health_check_timeout": "CUTOVER_HEALTH_CHECK_TIMEOUT",
    "port_release_wait": "CUTOVER_PORT_RELEASE_WAIT",
    "startup_wait": "CUTOVER_STARTUP_WAIT",
    "diagnostic_log_lines": "CUTOVER_DIAGNOSTIC_LOG_LINES",
    "status_log_lines": "CUTOVER_STATUS_LOG_LINES",
}

GIT_ENV_VAR_MAP = {
    "commit": "CI_COMMIT_SHA",
    "branch": "CI_COMMIT_REF_NAME",
    "short_sha": "CI_COMMIT_SHORT_SHA",
}

ARTIFACT_DIR_ENV_VAR = "CUTOVER_ARTIFACT_DIR"
IMAGE_REPOSITORY_ENV_VAR = "CI_REGISTRY_IMAGE"
IMAGE_TAG_ENV_VAR = "IMAGE_TAG_REF"

# Flat request keys accepted in the YAML file, mapped to request fields
FILE_REQUEST_KEYS = {
    "app_name": "app_name",
    "container_name": "container_name",
    "image": "image_reference",
    "image_reference": "image_reference",
    "host_port": "host_port",
    "container_port": "container_port",
    "health_check_path": "health_check_path",
    "restart_policy": "restart_policy",
    "extra_run_arguments": "extra_run_arguments",
    "revision": "revision",
}
FILE_SECTION_KEYS = ("registry", "settings")
FILE_ALLOWED_KEYS = frozenset(FILE_REQUEST_KEYS) | {"artifact_dir", *FILE_SECTION_KEYS}


def _env_layer(
    mapping: dict[str, str], environ: Mapping[str, str]
) -> dict[str, Any]:
    """Collect the non-empty environment variables named in ``mapping``."""
    layer: dict[str, Any] = {}
    for field_name, env_name in mapping.items():
        value = get_env_var(env_name, environ=environ)
        if value is not None:
            layer[field_name] = value
    return layer


def _drop_none(values: Mapping[str, Any] | None) -> dict[str, Any]:
    return {k: v for k, v in (values or {}).items() if v is not None}


def _read_yaml_with_env_substitution(
    path: Path, environ: Mapping[str, str]
) -> dict[str, Any] | None:
    """Read a YAML file, substituting ``${VAR}`` references first.

    Raises:
        OSError: If file cannot be read
        yaml.YAMLError: If YAML parsing fails
        ConfigError: If env var substitution fails
    """
    raw_text = path.read_text(encoding="utf-8")
    substituted = substitute_env_vars(raw_text, environ)
    content = yaml.safe_load(substituted)
    return content if content else None


class ConfigLoader:
    """Resolves deployment configuration from every configuration source.

    Example:
        >>> loader = ConfigLoader()
        >>> config = loader.load("cutover.yaml", overrides={"host_port": 8080})
        >>> config.request.health_check_url
        'http://localhost:8080/'
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        """Create a loader.

        Args:
            environ: Environment mapping (defaults to os.environ at load time)
        """
        self._environ = environ

    @property
    def environ(self) -> Mapping[str, str]:
        """Environment variables consulted by the loader."""
        return os.environ if self._environ is None else self._environ

    def discover_config_file(self, directory: str | Path = ".") -> Path | None:
        """Find cutover.yml or cutover.yaml in ``directory``.

        The ``.yml`` file wins when both exist.
        """
        base = Path(directory)
        found = [base / name for name in CONFIG_FILE_NAMES if (base / name).exists()]
        if len(found) > 1:
            logger.info(f"Both {found[0]} and {found[1]} exist. Using {found[0]}")
        return found[0] if found else None

    def parse_file(self, file_path: str | Path) -> dict[str, Any]:
        """Parse a YAML config file into a validated-shape dictionary.

        Raises:
            ConfigError: If the file is missing, unparsable, or has unknown keys
        """
        path = Path(file_path)
        try:
            content = _read_yaml_with_env_substitution(path, self.environ)
        except OSError as e:
            raise ConfigError(
                "config_file",
                f"Configuration file not found at {file_path}. "
                "Please ensure the file exists at this path.",
            ) from e
        except yaml.YAMLError as e:
            raise ConfigError(
                "yaml_parse", f"Failed to parse YAML file {file_path}: {e}"
            ) from e

        if content is None:
            return {}
        if not isinstance(content, dict):
            raise ConfigError(
                "config_file", f"Expected a mapping at the top of {file_path}"
            )

        unknown = sorted(set(content) - FILE_ALLOWED_KEYS)
        if unknown:
            raise ConfigError(
                unknown[0],
                f"Unknown configuration key(s) in {file_path}: {', '.join(unknown)}",
            )
        for section in FILE_SECTION_KEYS:
            if section in content and not isinstance(content[section], dict):
                raise ConfigError(section, f"'{section}' must be a mapping")
        return content

    def load(
        self,
        config_path: str | Path | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> CutoverConfig:
        """Resolve and validate the full deployment configuration.

        Args:
            config_path: YAML file path; when None, cutover.yml/.yaml in the
                working directory is used if present
            overrides: Flat CLI values (request keys, ``registry``/``settings``
                dicts, ``artifact_dir``); None values are ignored

        Returns:
            Validated CutoverConfig

        Raises:
            ConfigError: If any source is invalid
        """
        path = Path(config_path) if config_path else self.discover_config_file()
        file_config = self.parse_file(path) if path else {}
        source = str(path) if path else "environment"
        cli = _drop_none(overrides)

        request_data = self._resolve_request(file_config, cli)
        registry_data = {
            **_env_layer(REGISTRY_ENV_VAR_MAP, self.environ),
            **_drop_none(file_config.get("registry")),
            **_drop_none(cli.get("registry")),
        }
        if "url" in registry_data:
            registry_data["registry"] = registry_data.pop("url")
        settings_data = {
            **_env_layer(SETTINGS_ENV_VAR_MAP, self.environ),
            **_drop_none(file_config.get("settings")),
            **_drop_none(cli.get("settings")),
        }
        artifact_dir = (
            cli.get("artifact_dir")
            or file_config.get("artifact_dir")
            or get_env_var(ARTIFACT_DIR_ENV_VAR, environ=self.environ)
            or DEFAULT_ARTIFACT_DIR
        )

        try:
            config = CutoverConfig(
                request=DeploymentRequest(**request_data),
                registry=RegistryCredentials(**registry_data),
                settings=DeploymentSettings(**settings_data),
                git=GitContext(**_env_layer(GIT_ENV_VAR_MAP, self.environ)),
                artifact_dir=Path(artifact_dir),
            )
        except PydanticValidationError as e:
            raise ConfigError("deployment", validation_message(e, source)) from e
        except TypeError as e:
            raise ConfigError("deployment", f"Invalid configuration: {e}") from e

        # Surface unsupported passthrough flags before touching the host
        translate_run_arguments(config.request.extra_run_arguments)
        logger.debug(f"Resolved deployment configuration from {source}")
        return config

    def _resolve_request(
        self, file_config: Mapping[str, Any], cli: Mapping[str, Any]
    ) -> dict[str, Any]:
        file_layer: dict[str, Any] = {}
        for key, field_name in FILE_REQUEST_KEYS.items():
            if file_config.get(key) is not None:
                file_layer[field_name] = file_config[key]

        cli_layer = {
            FILE_REQUEST_KEYS[key]: value
            for key, value in cli.items()
            if key in FILE_REQUEST_KEYS
        }

        merged: dict[str, Any] = {
            **DEFAULT_REQUEST_CONFIG,
            **_env_layer(REQUEST_ENV_VAR_MAP, self.environ),
            **file_layer,
            **cli_layer,
        }

        revision = merged.pop("revision", None) or DEFAULT_REVISION
        if not merged.get("container_name"):
            merged["container_name"] = default_container_name(
                str(merged["app_name"]), revision
            )
        if not merged.get("image_reference"):
            repository = get_env_var(
                IMAGE_REPOSITORY_ENV_VAR, DEFAULT_IMAGE_REPOSITORY, self.environ
            )
            tag = get_env_var(IMAGE_TAG_ENV_VAR, DEFAULT_IMAGE_TAG, self.environ)
            merged["image_reference"] = f"{repository}:{tag}"
        return merged


def load_config(
    config_path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> CutoverConfig:
    """One-call helper for CLI commands."""
    return ConfigLoader().load(config_path, overrides)
