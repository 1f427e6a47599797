"""Cutover deployment engine.

This package provides the single-host deployment pipeline: registry login,
port reconciliation, image pull, container replacement, health
verification and outcome recording.
"""

from cutover.deploy.coordinator import DeploymentCoordinator
from cutover.deploy.health import HealthVerifier, HttpProbe, VerifyResult
from cutover.deploy.images import FetchResult, ImageFetcher
from cutover.deploy.lifecycle import ContainerLifecycleManager, LifecycleResult
from cutover.deploy.ports import PortReconciler, ReconcileResult
from cutover.deploy.recorder import DeploymentRecorder, FileArtifactStore
from cutover.deploy.runtime import ContainerDescriptor, ContainerRuntime, DockerRuntime

__all__ = [
    "ContainerDescriptor",
    "ContainerLifecycleManager",
    "ContainerRuntime",
    "DeploymentCoordinator",
    "DeploymentRecorder",
    "DockerRuntime",
    "FetchResult",
    "FileArtifactStore",
    "HealthVerifier",
    "HttpProbe",
    "ImageFetcher",
    "LifecycleResult",
    "PortReconciler",
    "ReconcileResult",
    "VerifyResult",
]
