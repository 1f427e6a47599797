"""Deployment record models persisted after every run."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cutover.models.deployment import (
    DeploymentRequest,
    DeploymentStatus,
    FailureStage,
    GitContext,
)


class HealthCheckOutcome(BaseModel):
    """Result of a single health probe attempt."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    attempt_number: int = Field(..., ge=1, description="1-based attempt number")
    timestamp: datetime = Field(..., description="When the probe was issued")
    succeeded: bool = Field(..., description="Whether the probe returned 2xx")
    http_status: int | None = Field(default=None, description="HTTP status code")
    error: str | None = Field(default=None, description="Transport error, if any")


class ImageMetadata(BaseModel):
    """Details of the pulled image, captured as record context."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    reference: str = Field(..., description="Image reference that was pulled")
    id: str | None = Field(default=None, description="Image ID")
    tags: tuple[str, ...] = Field(default=(), description="Repository tags")
    size: int | None = Field(default=None, description="Image size in bytes")
    created: str | None = Field(default=None, description="Image creation time")


class DeploymentRecord(BaseModel):
    """Immutable outcome of one deployment run."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    request: DeploymentRequest = Field(..., description="Echoed deployment request")
    status: DeploymentStatus = Field(..., description="Overall outcome")
    started_at: datetime = Field(..., description="Run start timestamp")
    finished_at: datetime = Field(..., description="Run end timestamp")
    failure_stage: FailureStage | None = Field(
        default=None, description="Stage that failed (failed runs only)"
    )
    error: str | None = Field(default=None, description="Failure message")
    health_check_history: tuple[HealthCheckOutcome, ...] = Field(
        default=(), description="Health probe attempts in order"
    )
    container_id: str | None = Field(default=None, description="New container ID")
    released_containers: tuple[str, ...] = Field(
        default=(), description="Containers stopped to free the host port"
    )
    image: ImageMetadata | None = Field(default=None, description="Pulled image")
    diagnostic_logs: str | None = Field(
        default=None, description="Recent container logs after a failed health check"
    )
    git: GitContext = Field(default_factory=GitContext, description="Git context")

    @model_validator(mode="after")
    def validate_failure_stage(self) -> "DeploymentRecord":
        """Failure stage is present exactly when the run failed."""
        if self.status == DeploymentStatus.FAILED and self.failure_stage is None:
            raise ValueError("failure_stage is required when status is 'failed'")
        if self.status == DeploymentStatus.SUCCEEDED and self.failure_stage:
            raise ValueError("failure_stage must be empty when status is 'succeeded'")
        return self

    @property
    def succeeded(self) -> bool:
        """Whether the deployment succeeded."""
        return self.status == DeploymentStatus.SUCCEEDED

    @property
    def duration_seconds(self) -> float:
        """Wall-clock duration of the run."""
        return (self.finished_at - self.started_at).total_seconds()
