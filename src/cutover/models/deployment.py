"""Pydantic models for deployment configuration.

This module defines the validated input to a deployment run: the request
describing which container to run where, registry credentials, timing
settings for grace periods and health checks, and CI git context.
"""

import shlex
from enum import Enum
from pathlib import Path
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

Port = Annotated[int, Field(ge=1, le=65535)]


class RestartPolicy(str, Enum):
    """Docker restart policies accepted for the deployed container."""

    NO = "no"
    UNLESS_STOPPED = "unless-stopped"
    ALWAYS = "always"
    ON_FAILURE = "on-failure"


class FailureStage(str, Enum):
    """Pipeline stage that caused a deployment to fail."""

    AUTH = "auth"
    PORT_RECONCILE = "port-reconcile"
    IMAGE_PULL = "image-pull"
    CONTAINER_START = "container-start"
    HEALTH_CHECK = "health-check"


class DeploymentStatus(str, Enum):
    """Final outcome of a deployment run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


def default_container_name(app_name: str, revision: str | None = None) -> str:
    """Derive the container name for an app and revision slug.

    Example:
        >>> default_container_name("site", "main")
        'site-main'
    """
    return f"{app_name}-{revision or 'latest'}"


class DeploymentRequest(BaseModel):
    """Immutable description of one deployment attempt.

    Attributes:
        app_name: Logical application identifier
        container_name: Name of the running instance (defaults to app-latest)
        image_reference: Fully qualified image name and tag
        host_port: Port published on the host
        container_port: Port the application listens on inside the container
        health_check_path: Path appended to http://localhost:{host_port}
        restart_policy: Docker restart policy
        extra_run_arguments: Passthrough ``docker run`` flags
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    app_name: str = Field(..., min_length=1, description="Application name")
    container_name: str = Field(
        default="", description="Container name (defaults to <app_name>-latest)"
    )
    image_reference: str = Field(
        ..., min_length=1, description="Image reference including tag"
    )
    host_port: Port = Field(..., description="Host port to publish")
    container_port: Port = Field(..., description="Container port to expose")
    health_check_path: str = Field(default="/", description="Health check path")
    restart_policy: RestartPolicy = Field(
        default=RestartPolicy.UNLESS_STOPPED, description="Docker restart policy"
    )
    extra_run_arguments: tuple[str, ...] = Field(
        default=(), description="Extra docker run flags, passed through verbatim"
    )

    @model_validator(mode="before")
    @classmethod
    def fill_container_name(cls, data: Any) -> Any:
        """Default the container name from the application name."""
        if isinstance(data, dict) and not data.get("container_name"):
            app_name = data.get("app_name")
            if app_name:
                data = {**data, "container_name": default_container_name(app_name)}
        return data

    @field_validator("image_reference")
    @classmethod
    def validate_image_reference(cls, v: str) -> str:
        """Reject blank image references."""
        v = v.strip()
        if not v:
            raise ValueError("image_reference must not be empty")
        return v

    @field_validator("health_check_path")
    @classmethod
    def normalize_health_check_path(cls, v: str) -> str:
        """Ensure the health check path is absolute."""
        v = v.strip() or "/"
        return v if v.startswith("/") else f"/{v}"

    @field_validator("extra_run_arguments", mode="before")
    @classmethod
    def split_extra_run_arguments(cls, v: Any) -> Any:
        """Accept a shell-quoted string as well as a sequence of flags."""
        if v is None:
            return ()
        if isinstance(v, str):
            return tuple(shlex.split(v))
        return v

    @property
    def base_url(self) -> str:
        """Application URL on the local host."""
        return f"http://localhost:{self.host_port}"

    @property
    def health_check_url(self) -> str:
        """Full URL polled during health verification."""
        return f"{self.base_url}{self.health_check_path}"


class RegistryCredentials(BaseModel):
    """Registry authentication material.

    Either ``username``/``password`` or ``job_token`` may be set. When
    neither is present the image is assumed to be public or the runtime is
    already logged in.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    registry: str | None = Field(default=None, description="Registry URL")
    username: str | None = Field(default=None, description="Registry username")
    password: str | None = Field(
        default=None, repr=False, description="Registry password"
    )
    job_token: str | None = Field(
        default=None, repr=False, description="CI job token"
    )

    @model_validator(mode="after")
    def validate_password_user(self) -> "RegistryCredentials":
        """Require a username when a password is supplied."""
        if self.password and not self.username:
            raise ValueError("username is required when password is set")
        return self


class DeploymentSettings(BaseModel):
    """Timing and retry settings for a deployment run.

    All durations are in seconds.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    max_health_checks: int = Field(
        default=6, ge=1, description="Maximum health check attempts"
    )
    health_check_interval: float = Field(
        default=10.0, ge=0, description="Delay between failed health checks"
    )
    health_check_timeout: float = Field(
        default=10.0, gt=0, description="Per-request health check timeout"
    )
    port_release_wait: float = Field(
        default=5.0, ge=0, description="Grace period after releasing the port"
    )
    startup_wait: float = Field(
        default=10.0, ge=0, description="Grace period after starting the container"
    )
    diagnostic_log_lines: int = Field(
        default=50, ge=0, description="Log lines attached to health failures"
    )
    status_log_lines: int = Field(
        default=10, ge=0, description="Log lines shown in the status report"
    )


class GitContext(BaseModel):
    """CI git metadata embedded in deployment artifacts."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    commit: str = Field(default="unknown", description="Full commit SHA")
    branch: str = Field(default="unknown", description="Branch or ref name")
    short_sha: str = Field(default="unknown", description="Short commit SHA")


class CutoverConfig(BaseModel):
    """Fully resolved configuration for one deployment run.

    Constructed once at process start by the config loader and passed to
    the coordinator.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    request: DeploymentRequest = Field(..., description="Deployment request")
    registry: RegistryCredentials = Field(
        default_factory=RegistryCredentials, description="Registry credentials"
    )
    settings: DeploymentSettings = Field(
        default_factory=DeploymentSettings, description="Timing settings"
    )
    git: GitContext = Field(default_factory=GitContext, description="Git context")
    artifact_dir: Path = Field(
        default=Path("."), description="Directory for deployment artifacts"
    )
