"""Pydantic models for deployment requests and records."""

from cutover.models.deployment import (
    CutoverConfig,
    DeploymentRequest,
    DeploymentSettings,
    DeploymentStatus,
    FailureStage,
    GitContext,
    RegistryCredentials,
    RestartPolicy,
)
from cutover.models.record import DeploymentRecord, HealthCheckOutcome, ImageMetadata

__all__ = [
    "CutoverConfig",
    "DeploymentRecord",
    "DeploymentRequest",
    "DeploymentSettings",
    "DeploymentStatus",
    "FailureStage",
    "GitContext",
    "HealthCheckOutcome",
    "ImageMetadata",
    "RegistryCredentials",
    "RestartPolicy",
]
