"""Container replacement state machine.

Each ``replace()`` call walks::

    IDLE -> STOPPING_OLD -> STARTING_NEW -> STARTED
                  \\-> FAILED (either sub-step)

There is no rollback: if starting the new container fails, the previous
container has already been removed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from cutover.deploy.clock import Clock
from cutover.deploy.runtime import ContainerRuntime, ContainerSpec
from cutover.lib.errors import DeploymentError, StageError
from cutover.models.deployment import DeploymentRequest, FailureStage

logger = logging.getLogger(__name__)


class LifecycleState(str, Enum):
    """States of a container replacement."""

    IDLE = "idle"
    STOPPING_OLD = "stopping_old"
    STARTING_NEW = "starting_new"
    STARTED = "started"
    FAILED = "failed"


@dataclass
class LifecycleResult:
    """Result of a successful replacement.

    Attributes:
        container_id: ID of the newly started container
        removed_previous: Whether a previous container was removed
    """

    container_id: str
    removed_previous: bool = False


class ContainerLifecycleManager:
    """Replaces the container occupying a named slot."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        clock: Clock | None = None,
        release_wait: float = 0.0,
    ) -> None:
        """Create a lifecycle manager.

        Args:
            runtime: Container runtime
            clock: Clock used for the port release grace period
            release_wait: Seconds to wait after removing a running container
                that held the port
        """
        self.runtime = runtime
        self.clock = clock or Clock()
        self.release_wait = release_wait
        self.state = LifecycleState.IDLE

    def replace(self, request: DeploymentRequest) -> LifecycleResult:
        """Remove any container named like the request and start a new one.

        Args:
            request: Deployment request describing the new container

        Returns:
            LifecycleResult with the new container ID

        Raises:
            StageError: With stage ``container-start`` if either step fails
        """
        self.state = LifecycleState.STOPPING_OLD
        try:
            removed = self._remove_existing(request.container_name)
        except DeploymentError as e:
            self.state = LifecycleState.FAILED
            raise StageError(
                FailureStage.CONTAINER_START,
                f"Failed to remove existing container: {e.message}",
            ) from e

        self.state = LifecycleState.STARTING_NEW
        spec = ContainerSpec(
            name=request.container_name,
            image=request.image_reference,
            host_port=request.host_port,
            container_port=request.container_port,
            restart_policy=request.restart_policy,
            extra_run_arguments=request.extra_run_arguments,
        )
        logger.info("Container configuration:")
        logger.info(f"  Name: {spec.name}")
        logger.info(f"  Image: {spec.image}")
        logger.info(f"  Port mapping: {spec.host_port}:{spec.container_port}")
        logger.info(f"  Restart policy: {spec.restart_policy.value}")
        logger.info(f"  Extra args: {' '.join(spec.extra_run_arguments)}")

        try:
            container_id = self.runtime.run(spec)
        except DeploymentError as e:
            self.state = LifecycleState.FAILED
            logger.error("Failed to start container")
            raise StageError(FailureStage.CONTAINER_START, e.message) from e

        self.state = LifecycleState.STARTED
        logger.info(f"Container started successfully ({container_id[:12]})")
        return LifecycleResult(container_id=container_id, removed_previous=removed)

    def _remove_existing(self, name: str) -> bool:
        existing = self.runtime.get_container(name)
        if existing is None:
            logger.info(f"No existing container named {name} found")
            return False

        if existing.running:
            logger.info(f"Stopping existing container: {name}")
            self.runtime.stop(name)
        self.runtime.remove(name)
        logger.info(f"Container {name} removed")
        if existing.running and self.release_wait > 0:
            logger.info(
                f"Waiting {self.release_wait:g}s for port to be released..."
            )
            self.clock.sleep(self.release_wait)
        return True

    def logs(self, name: str, tail: int) -> str | None:
        """Return recent container logs, or None if they cannot be read."""
        try:
            return self.runtime.logs(name, tail=tail)
        except DeploymentError as e:
            logger.warning(f"Unable to get container logs: {e.message}")
            return None

    def status_report(self, name: str, tail: int = 10) -> dict[str, Any]:
        """Collect container status, resource usage and recent logs.

        Every part is best effort; unavailable parts are left out.
        """
        report: dict[str, Any] = {}
        try:
            container = self.runtime.get_container(name)
        except DeploymentError as e:
            logger.warning(f"Unable to inspect container: {e.message}")
            container = None
        if container is not None:
            report["container"] = {
                "name": container.name,
                "status": container.status,
                "ports": list(container.ports),
                "image": container.image,
            }

        try:
            stats = self.runtime.stats(name)
        except DeploymentError as e:
            logger.warning(f"Unable to get container stats: {e.message}")
            stats = {}
        if stats:
            report["stats"] = summarize_stats(stats)

        logs = self.logs(name, tail)
        if logs is not None:
            report["logs"] = logs
        return report


def summarize_stats(stats: dict[str, Any]) -> dict[str, Any]:
    """Reduce a raw Docker stats sample to CPU and memory figures."""
    cpu = stats.get("cpu_stats", {})
    precpu = stats.get("precpu_stats", {})
    cpu_delta = cpu.get("cpu_usage", {}).get("total_usage", 0) - precpu.get(
        "cpu_usage", {}
    ).get("total_usage", 0)
    system_delta = cpu.get("system_cpu_usage", 0) - precpu.get("system_cpu_usage", 0)
    online_cpus = cpu.get("online_cpus") or 1

    cpu_percent = 0.0
    if cpu_delta > 0 and system_delta > 0:
        cpu_percent = cpu_delta / system_delta * online_cpus * 100.0

    memory = stats.get("memory_stats", {})
    return {
        "cpu_percent": round(cpu_percent, 2),
        "memory_usage": memory.get("usage"),
        "memory_limit": memory.get("limit"),
    }
