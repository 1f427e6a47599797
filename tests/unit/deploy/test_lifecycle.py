"""Tests for ContainerLifecycleManager."""

from typing import Any

import pytest

from cutover.deploy.lifecycle import (
    ContainerLifecycleManager,
    LifecycleState,
    summarize_stats,
)
from cutover.lib.errors import StageError
from cutover.models.deployment import DeploymentRequest, FailureStage


@pytest.mark.unit
class TestReplace:
    """Tests for ContainerLifecycleManager.replace()."""

    def test_absent_container_is_started(
        self, fake_runtime: Any, deployment_request: DeploymentRequest
    ) -> None:
        manager = ContainerLifecycleManager(fake_runtime)

        result = manager.replace(deployment_request)

        assert result.removed_previous is False
        assert fake_runtime.call_names() == ["get_container", "run"]
        assert manager.state == LifecycleState.STARTED
        spec = fake_runtime.run_specs[0]
        assert spec.name == "site-main"
        assert spec.image == "registry.example.com/site:1.4"
        assert (spec.host_port, spec.container_port) == (8080, 3000)

    def test_running_container_is_stopped_and_removed(
        self, fake_runtime: Any, deployment_request: DeploymentRequest
    ) -> None:
        fake_runtime.add_container("site-main", ports=(8080,))

        result = ContainerLifecycleManager(fake_runtime).replace(deployment_request)

        assert result.removed_previous is True
        assert fake_runtime.call_names() == ["get_container", "stop", "remove", "run"]
        assert fake_runtime.containers["site-main"].id == result.container_id

    def test_stopped_container_is_only_removed(
        self, fake_runtime: Any, deployment_request: DeploymentRequest
    ) -> None:
        """Absent and stopped prior containers both end in a fresh start."""
        fake_runtime.add_container("site-main", status="exited")

        result = ContainerLifecycleManager(fake_runtime).replace(deployment_request)

        assert result.removed_previous is True
        assert fake_runtime.call_names() == ["get_container", "remove", "run"]
        assert fake_runtime.containers["site-main"].running

    def test_running_predecessor_waits_for_port_release(
        self,
        fake_runtime: Any,
        fake_clock: Any,
        deployment_request: DeploymentRequest,
    ) -> None:
        fake_runtime.add_container("site-main", ports=(8080,))
        manager = ContainerLifecycleManager(fake_runtime, fake_clock, release_wait=5)

        manager.replace(deployment_request)

        assert fake_clock.sleeps == [5]

    @pytest.mark.parametrize("status", [None, "exited"])
    def test_no_wait_without_running_predecessor(
        self,
        fake_runtime: Any,
        fake_clock: Any,
        deployment_request: DeploymentRequest,
        status: str | None,
    ) -> None:
        if status:
            fake_runtime.add_container("site-main", status=status)
        manager = ContainerLifecycleManager(fake_runtime, fake_clock, release_wait=5)

        manager.replace(deployment_request)

        assert fake_clock.sleeps == []

    def test_start_failure_has_no_rollback(
        self, fake_runtime: Any, deployment_request: DeploymentRequest
    ) -> None:
        fake_runtime.add_container("site-main", ports=(8080,))
        fake_runtime.fail_run = "port is already allocated"
        manager = ContainerLifecycleManager(fake_runtime)

        with pytest.raises(StageError) as exc_info:
            manager.replace(deployment_request)

        assert exc_info.value.stage == FailureStage.CONTAINER_START
        assert manager.state == LifecycleState.FAILED
        assert "site-main" not in fake_runtime.containers

    def test_stop_failure_is_container_start_failure(
        self, fake_runtime: Any, deployment_request: DeploymentRequest
    ) -> None:
        fake_runtime.add_container("site-main", ports=(8080,))
        fake_runtime.fail_stop = {"site-main"}

        with pytest.raises(StageError) as exc_info:
            ContainerLifecycleManager(fake_runtime).replace(deployment_request)

        assert exc_info.value.stage == FailureStage.CONTAINER_START
        assert "Failed to remove existing container" in exc_info.value.message
        assert "run" not in fake_runtime.call_names()


@pytest.mark.unit
class TestDiagnostics:
    """Logs and status report helpers."""

    def test_logs_error_returns_none(self, fake_runtime: Any) -> None:
        fake_runtime.fail_logs = "container gone"

        assert ContainerLifecycleManager(fake_runtime).logs("site-main", 50) is None

    def test_status_report(self, fake_runtime: Any) -> None:
        fake_runtime.add_container("site-main", ports=(8080,))

        report = ContainerLifecycleManager(fake_runtime).status_report("site-main")

        assert report["container"] == {
            "name": "site-main",
            "status": "running",
            "ports": [8080],
            "image": "site-main:old",
        }
        assert "stats" not in report
        assert report["logs"] == "line 1\nline 2\n"
        assert ("logs", 10) in fake_runtime.calls

    def test_summarize_stats(self) -> None:
        stats = {
            "cpu_stats": {
                "cpu_usage": {"total_usage": 300},
                "system_cpu_usage": 2000,
                "online_cpus": 2,
            },
            "precpu_stats": {
                "cpu_usage": {"total_usage": 100},
                "system_cpu_usage": 1000,
            },
            "memory_stats": {"usage": 1024, "limit": 4096},
        }

        assert summarize_stats(stats) == {
            "cpu_percent": 40.0,
            "memory_usage": 1024,
            "memory_limit": 4096,
        }
