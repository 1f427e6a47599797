"""Pytest configuration and shared fixtures for Cutover tests.

The fakes below stand in for the Docker daemon, wall clock and HTTP probe
so deployment scenarios run without Docker or network access.
"""

import logging
import os
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from cutover.deploy.clock import CancellationToken, Clock
from cutover.deploy.health import ProbeResponse
from cutover.deploy.runtime import ContainerDescriptor, ContainerRuntime, ContainerSpec
from cutover.lib.errors import DeploymentError, DeploymentCancelledError
from cutover.models.deployment import DeploymentRequest
from cutover.models.record import ImageMetadata


class FakeRuntime(ContainerRuntime):
    """In-memory container runtime recording every call.

    Containers are keyed by name. Failures are injected per operation via
    ``fail_login``, ``fail_pull``, ``fail_run``, ``fail_stop`` (set of names)
    and ``fail_logs``.
    """

    def __init__(self) -> None:
        self.containers: dict[str, ContainerDescriptor] = {}
        self.calls: list[tuple[str, Any]] = []
        self.logins: list[dict[str, Any]] = []
        self.run_specs: list[ContainerSpec] = []
        self.log_output = "line 1\nline 2\n"
        self.fail_login: str | None = None
        self.fail_pull: str | None = None
        self.fail_run: str | None = None
        self.fail_stop: set[str] = set()
        self.fail_logs: str | None = None
        self._next_id = 1

    def add_container(
        self, name: str, ports: tuple[int, ...] = (), status: str = "running"
    ) -> ContainerDescriptor:
        """Seed a container on the fake host."""
        container = ContainerDescriptor(
            id=f"id-{name}",
            name=name,
            status=status,
            image=f"{name}:old",
            ports=ports,
        )
        self.containers[name] = container
        return container

    def _lookup(self, name_or_id: str) -> ContainerDescriptor | None:
        for container in self.containers.values():
            if name_or_id in (container.name, container.id):
                return container
        return None

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def login(
        self, *, username: str, password: str, registry: str | None = None
    ) -> None:
        self.calls.append(("login", username))
        if self.fail_login:
            raise DeploymentError(operation="login", message=self.fail_login)
        self.logins.append(
            {"username": username, "password": password, "registry": registry}
        )

    def list_containers(
        self, filters: dict[str, Any] | None = None, all: bool = False
    ) -> list[ContainerDescriptor]:
        self.calls.append(("list_containers", filters))
        return [c for c in self.containers.values() if all or c.running]

    def get_container(self, name: str) -> ContainerDescriptor | None:
        self.calls.append(("get_container", name))
        return self._lookup(name)

    def stop(self, name: str) -> None:
        self.calls.append(("stop", name))
        container = self._lookup(name)
        if container is None:
            raise DeploymentError(
                operation="stop", message=f"No such container: {name}"
            )
        if container.name in self.fail_stop or container.id in self.fail_stop:
            raise DeploymentError(operation="stop", message=f"Cannot stop {name}")
        self.containers[container.name] = ContainerDescriptor(
            id=container.id,
            name=container.name,
            status="exited",
            image=container.image,
            ports=container.ports,
        )

    def remove(self, name: str) -> None:
        self.calls.append(("remove", name))
        container = self._lookup(name)
        if container is None:
            raise DeploymentError(
                operation="remove", message=f"No such container: {name}"
            )
        del self.containers[container.name]

    def pull_image(self, reference: str) -> ImageMetadata:
        self.calls.append(("pull_image", reference))
        if self.fail_pull:
            raise DeploymentError(operation="pull", message=self.fail_pull)
        return ImageMetadata(
            reference=reference, id="sha256:abc", tags=(reference,), size=1024
        )

    def run(self, spec: ContainerSpec) -> str:
        self.calls.append(("run", spec.name))
        self.run_specs.append(spec)
        if self.fail_run:
            raise DeploymentError(operation="run", message=self.fail_run)
        if spec.name in self.containers:
            raise DeploymentError(
                operation="run", message=f"Conflict: name {spec.name} in use"
            )
        container_id = f"new{self._next_id:012d}"
        self._next_id += 1
        self.containers[spec.name] = ContainerDescriptor(
            id=container_id,
            name=spec.name,
            status="running",
            image=spec.image,
            ports=(spec.host_port,),
        )
        return container_id

    def logs(self, name: str, tail: int) -> str:
        self.calls.append(("logs", tail))
        if self.fail_logs:
            raise DeploymentError(operation="logs", message=self.fail_logs)
        return self.log_output


class FakeClock(Clock):
    """Clock that records sleeps and advances virtual time instantly."""

    def __init__(self, token: CancellationToken | None = None) -> None:
        super().__init__(token)
        self.current = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.sleeps: list[float] = []
        self.cancel_on_sleep: int | None = None

    def now(self) -> datetime:
        return self.current

    def sleep(self, seconds: float) -> None:
        self.token.raise_if_cancelled()
        self.sleeps.append(seconds)
        self.current += timedelta(seconds=seconds)
        limit = self.cancel_on_sleep
        if limit is not None and len(self.sleeps) >= limit:
            self.token.cancel("Deployment cancelled by SIGTERM")
            raise DeploymentCancelledError(self.token.reason or "Deployment cancelled")


class FakeProbe:
    """HTTP probe returning scripted responses; the last one repeats."""

    def __init__(self, *responses: ProbeResponse) -> None:
        self.responses = list(responses) or [ProbeResponse(status=200)]
        self.urls: list[str] = []
        self.timeouts: list[float] = []

    def get(self, url: str, timeout: float) -> ProbeResponse:
        self.urls.append(url)
        self.timeouts.append(timeout)
        index = min(len(self.urls) - 1, len(self.responses) - 1)
        return self.responses[index]


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    """Empty in-memory runtime."""
    return FakeRuntime()


@pytest.fixture
def fake_clock() -> FakeClock:
    """Virtual clock starting at 2024-01-01T00:00:00Z."""
    return FakeClock()


@pytest.fixture
def make_probe() -> type[FakeProbe]:
    """Factory for scripted probes: ``make_probe(ProbeResponse(status=500), ...)``."""
    return FakeProbe


@pytest.fixture
def deployment_request() -> DeploymentRequest:
    """Request for the ``site`` app on port 8080."""
    return DeploymentRequest(
        app_name="site",
        container_name="site-main",
        image_reference="registry.example.com/site:1.4",
        host_port=8080,
        container_port=3000,
        health_check_path="/health",
    )


@pytest.fixture
def isolated_env() -> Generator[dict[str, str], None, None]:
    """Provide isolated environment variables for testing.

    Saves current environment and restores after test.
    """
    original_env = os.environ.copy()
    yield original_env
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def artifact_dir(tmp_path: Path) -> Path:
    """Directory for deployment artifacts and lock files."""
    directory = tmp_path / "artifacts"
    directory.mkdir()
    return directory


@pytest.fixture(autouse=True)
def reset_cutover_logger() -> Generator[None, None, None]:
    """Undo setup_logging() so caplog sees records in every test."""
    yield
    logger = logging.getLogger("cutover")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
