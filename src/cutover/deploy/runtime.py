"""Container runtime interface and its Docker SDK binding.

The deployment stages only talk to the host through ``ContainerRuntime``.
``DockerRuntime`` implements it on top of the Docker Engine API; tests
substitute an in-memory implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import docker
from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from docker.utils import parse_repository_tag

from cutover.deploy.run_args import translate_run_arguments
from cutover.lib.errors import DeploymentError, DockerNotAvailableError
from cutover.models.deployment import RestartPolicy
from cutover.models.record import ImageMetadata

if TYPE_CHECKING:
    from docker.models.containers import Container
    from docker.models.images import Image


@dataclass(frozen=True)
class ContainerDescriptor:
    """Read-only snapshot of a container as reported by the runtime.

    Attributes:
        id: Container ID
        name: Container name
        status: Runtime status (running, exited, created, ...)
        image: Image the container was created from
        created: Creation timestamp as reported by the runtime
        ports: Host ports published by the container
    """

    id: str
    name: str
    status: str
    image: str = ""
    created: str | None = None
    ports: tuple[int, ...] = ()

    @property
    def running(self) -> bool:
        """Whether the container is currently running."""
        return self.status == "running"

    @classmethod
    def from_container(cls, container: Container) -> ContainerDescriptor:
        """Create a descriptor from a Docker SDK container object."""
        attrs = container.attrs or {}
        return cls(
            id=container.id or "",
            name=container.name or "",
            status=container.status or "unknown",
            image=attrs.get("Config", {}).get("Image", ""),
            created=attrs.get("Created"),
            ports=published_host_ports(container.ports or {}),
        )


@dataclass(frozen=True)
class ContainerSpec:
    """Run configuration for a new container.

    Attributes:
        name: Container name
        image: Image reference to run
        host_port: Host port to publish
        container_port: Port exposed inside the container
        restart_policy: Docker restart policy
        extra_run_arguments: Passthrough ``docker run`` flags
    """

    name: str
    image: str
    host_port: int
    container_port: int
    restart_policy: RestartPolicy = RestartPolicy.UNLESS_STOPPED
    extra_run_arguments: tuple[str, ...] = field(default_factory=tuple)


def published_host_ports(ports: dict[str, Any]) -> tuple[int, ...]:
    """Extract published host ports from a Docker port mapping.

    Args:
        ports: Mapping such as ``{"80/tcp": [{"HostPort": "8080"}]}``

    Returns:
        Sorted unique host ports
    """
    host_ports: set[int] = set()
    for bindings in ports.values():
        for binding in bindings or []:
            host_port = binding.get("HostPort") if isinstance(binding, dict) else None
            if host_port and str(host_port).isdigit():
                host_ports.add(int(host_port))
    return tuple(sorted(host_ports))


def merge_port_bindings(
    primary: dict[str, Any], extra: dict[str, Any]
) -> dict[str, Any]:
    """Combine SDK port bindings, keeping every host port of a shared key.

    Example:
        >>> merge_port_bindings({"3000/tcp": 8080}, {"3000/tcp": 9090})
        {'3000/tcp': [8080, 9090]}
    """
    merged = dict(primary)
    for key, value in extra.items():
        if key not in merged:
            merged[key] = value
            continue
        existing = merged[key]
        bindings = list(existing) if isinstance(existing, list) else [existing]
        for binding in value if isinstance(value, list) else [value]:
            if binding not in bindings:
                bindings.append(binding)
        merged[key] = bindings if len(bindings) > 1 else bindings[0]
    return merged


class ContainerRuntime(ABC):
    """Abstract container runtime used by the deployment stages."""

    @abstractmethod
    def login(
        self, *, username: str, password: str, registry: str | None = None
    ) -> None:
        """Authenticate against an image registry.

        Raises:
            DeploymentError: If the registry rejects the credentials.
        """

    @abstractmethod
    def list_containers(
        self, filters: dict[str, Any] | None = None, all: bool = False
    ) -> list[ContainerDescriptor]:
        """List containers, running only unless ``all`` is set."""

    @abstractmethod
    def get_container(self, name: str) -> ContainerDescriptor | None:
        """Return the container with the given name or ID, in any state."""

    @abstractmethod
    def stop(self, name: str) -> None:
        """Stop a container.

        Raises:
            DeploymentError: If the container cannot be stopped.
        """

    @abstractmethod
    def remove(self, name: str) -> None:
        """Remove a container.

        Raises:
            DeploymentError: If the container cannot be removed.
        """

    @abstractmethod
    def pull_image(self, reference: str) -> ImageMetadata:
        """Pull an image and return its metadata.

        Raises:
            DeploymentError: If the pull fails.
        """

    @abstractmethod
    def run(self, spec: ContainerSpec) -> str:
        """Create and start a detached container, returning its ID.

        Raises:
            DeploymentError: If the container cannot be created or started.
        """

    @abstractmethod
    def logs(self, name: str, tail: int) -> str:
        """Return the last ``tail`` lines of container output.

        Raises:
            DeploymentError: If logs cannot be read.
        """

    def info(self) -> dict[str, Any]:
        """Return runtime version and disk usage details for diagnostics."""
        return {}

    def stats(self, name: str) -> dict[str, Any]:
        """Return a one-shot resource usage snapshot for a container."""
        return {}


class DockerRuntime(ContainerRuntime):
    """Container runtime backed by the Docker SDK.

    Example:
        >>> runtime = DockerRuntime()
        >>> runtime.pull_image("nginx:1.25").tags
        ('nginx:1.25',)
    """

    STOP_TIMEOUT = 10  # seconds

    def __init__(self, client: docker.DockerClient | None = None) -> None:
        """Connect to the Docker daemon using the environment configuration.

        Args:
            client: Pre-configured Docker client (mainly for tests)

        Raises:
            DockerNotAvailableError: If Docker daemon is not available
        """
        if client is not None:
            self.client = client
            return
        try:
            self.client = docker.from_env()  # type: ignore[attr-defined]
        except DockerException as e:
            raise DockerNotAvailableError(operation="connect") from e

    def login(
        self, *, username: str, password: str, registry: str | None = None
    ) -> None:
        """Log in to a registry so subsequent pulls are authenticated."""
        try:
            self.client.login(
                username=username, password=password, registry=registry or ""
            )
        except APIError as e:
            raise DeploymentError(
                operation="login",
                message=f"Registry rejected credentials: {e.explanation or e}",
            ) from e
        except DockerException as e:
            raise DeploymentError(
                operation="login", message=f"Docker error during login: {e}"
            ) from e

    def list_containers(
        self, filters: dict[str, Any] | None = None, all: bool = False
    ) -> list[ContainerDescriptor]:
        """List containers as descriptors."""
        try:
            containers = self.client.containers.list(all=all, filters=filters or {})
        except DockerException as e:
            raise DeploymentError(
                operation="list", message=f"Failed to list containers: {e}"
            ) from e
        return [ContainerDescriptor.from_container(c) for c in containers]

    def get_container(self, name: str) -> ContainerDescriptor | None:
        """Look up a container by exact name or ID."""
        try:
            container = self.client.containers.get(name)
        except NotFound:
            return None
        except DockerException as e:
            raise DeploymentError(
                operation="inspect", message=f"Failed to inspect {name}: {e}"
            ) from e
        return ContainerDescriptor.from_container(container)

    def stop(self, name: str) -> None:
        """Stop a container, tolerating one that already exited."""
        try:
            self.client.containers.get(name).stop(timeout=self.STOP_TIMEOUT)
        except NotFound as e:
            raise DeploymentError(
                operation="stop", message=f"Container not found: {name}"
            ) from e
        except DockerException as e:
            raise DeploymentError(
                operation="stop", message=f"Failed to stop {name}: {e}"
            ) from e

    def remove(self, name: str) -> None:
        """Remove a stopped container."""
        try:
            self.client.containers.get(name).remove(force=True)
        except NotFound as e:
            raise DeploymentError(
                operation="remove", message=f"Container not found: {name}"
            ) from e
        except DockerException as e:
            raise DeploymentError(
                operation="remove", message=f"Failed to remove {name}: {e}"
            ) from e

    def pull_image(self, reference: str) -> ImageMetadata:
        """Pull a single image tag (never every tag of a repository)."""
        repository, tag = parse_repository_tag(reference)
        try:
            image = self.client.images.pull(repository, tag=tag or "latest")
        except ImageNotFound as e:
            raise DeploymentError(
                operation="pull", message=f"Image not found: {reference}"
            ) from e
        except APIError as e:
            raise DeploymentError(
                operation="pull",
                message=f"Failed to pull {reference}: {e.explanation or e}",
            ) from e
        except DockerException as e:
            raise DeploymentError(
                operation="pull", message=f"Docker error during pull: {e}"
            ) from e
        return _image_metadata(reference, image)

    def run(self, spec: ContainerSpec) -> str:
        """Create and start a detached container from a run spec."""
        kwargs = translate_run_arguments(spec.extra_run_arguments)
        ports = merge_port_bindings(
            {f"{spec.container_port}/tcp": spec.host_port}, kwargs.pop("ports", {})
        )

        restart_policy: dict[str, str] | None = None
        if spec.restart_policy != RestartPolicy.NO:
            restart_policy = {"Name": spec.restart_policy.value}

        try:
            container = self.client.containers.run(
                spec.image,
                name=spec.name,
                detach=True,
                ports=ports,
                restart_policy=restart_policy,
                **kwargs,
            )
        except DockerException as e:
            raise DeploymentError(
                operation="run",
                message=f"Failed to start container {spec.name}: {e}",
            ) from e
        return str(container.id)

    def logs(self, name: str, tail: int) -> str:
        """Return recent stdout/stderr output of a container."""
        try:
            output = self.client.containers.get(name).logs(tail=tail)
        except DockerException as e:
            raise DeploymentError(
                operation="logs", message=f"Failed to read logs for {name}: {e}"
            ) from e
        if isinstance(output, bytes):
            return output.decode("utf-8", errors="replace")
        return str(output)

    def info(self) -> dict[str, Any]:
        """Return Docker version and disk usage."""
        try:
            version = self.client.version()
            disk_usage = self.client.df()
        except DockerException as e:
            raise DeploymentError(
                operation="info", message=f"Failed to query Docker: {e}"
            ) from e
        return {"version": version.get("Version", "unknown"), "disk_usage": disk_usage}

    def stats(self, name: str) -> dict[str, Any]:
        """Return a single stats sample for a container."""
        try:
            return dict(self.client.containers.get(name).stats(stream=False))
        except DockerException as e:
            raise DeploymentError(
                operation="stats", message=f"Failed to read stats for {name}: {e}"
            ) from e


def _image_metadata(reference: str, image: Image) -> ImageMetadata:
    attrs = image.attrs or {}
    return ImageMetadata(
        reference=reference,
        id=image.id,
        tags=tuple(image.tags or ()),
        size=attrs.get("Size"),
        created=attrs.get("Created"),
    )
