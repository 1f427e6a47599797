"""Host port conflict resolution."""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass, field

from cutover.deploy.clock import Clock
from cutover.deploy.runtime import ContainerRuntime
from cutover.lib.errors import DeploymentError

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Outcome of a port reconciliation.

    Attributes:
        released_containers: Names of containers stopped to free the port
        failed_containers: Names of containers that could not be released
    """

    released_containers: list[str] = field(default_factory=list)
    failed_containers: list[str] = field(default_factory=list)


def is_port_in_use(port: int, host: str = "127.0.0.1") -> bool:
    """Return True if something accepts TCP connections on ``host:port``."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.settimeout(1.0)
        return sock.connect_ex((host, port)) == 0


class PortReconciler:
    """Frees a host port held by containers other than the deployment target.

    Containers named like the target are left to the lifecycle manager.
    The release grace period is waited on every call, whether or not
    anything was released.
    Stop and remove failures are logged and skipped; a real conflict will
    surface when the new container binds the port.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        clock: Clock,
        release_wait: float = 5.0,
    ) -> None:
        """Create a reconciler.

        Args:
            runtime: Container runtime
            clock: Clock used for the port release grace period
            release_wait: Seconds to wait after releasing containers
        """
        self.runtime = runtime
        self.clock = clock
        self.release_wait = release_wait

    def check_availability(self, host_port: int) -> bool:
        """Log whether the host port currently accepts connections."""
        try:
            in_use = is_port_in_use(host_port)
        except OSError as e:
            logger.warning(f"Unable to check port status: {e}")
            return True
        if in_use:
            logger.warning(f"Port {host_port} is currently in use")
        else:
            logger.info(f"Port {host_port} is available")
        return not in_use

    def reconcile(self, host_port: int, exclude_container_name: str) -> ReconcileResult:
        """Stop and remove other containers publishing ``host_port``.

        Args:
            host_port: Host port the new container will bind
            exclude_container_name: Target container name, handled elsewhere

        Returns:
            ReconcileResult listing released containers

        Raises:
            DeploymentError: If running containers cannot be listed
        """
        result = ReconcileResult()
        occupants = [
            container
            for container in self.runtime.list_containers()
            if host_port in container.ports
            and container.name != exclude_container_name
        ]

        if occupants:
            logger.info(f"Stopping containers using port {host_port}:")
        else:
            logger.info(f"No containers using port {host_port}")
        for container in occupants:
            label = container.name or container.id
            logger.info(f"  Stopping container: {label}")
            try:
                self.runtime.stop(container.id)
                self.runtime.remove(container.id)
            except DeploymentError as e:
                logger.warning(f"  Failed to release {label}: {e.message}")
                result.failed_containers.append(label)
                continue
            result.released_containers.append(label)

        logger.info(f"Waiting {self.release_wait:g}s for port to be released...")
        self.clock.sleep(self.release_wait)
        return result
