"""Top-level deployment state machine.

Stages run strictly in order::

    auth -> port-reconcile -> image-pull -> container-start -> health-check

The first failing stage determines the failure stage and skips the rest.
A ``DeploymentRecord`` is persisted on every path before ``run()`` returns.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from cutover.deploy.clock import Clock
from cutover.deploy.credentials import RegistryCredentialProvider
from cutover.deploy.health import HealthVerifier, HttpProbe
from cutover.deploy.images import ImageFetcher
from cutover.deploy.lifecycle import ContainerLifecycleManager
from cutover.deploy.lock import DeploymentLock
from cutover.deploy.ports import PortReconciler
from cutover.deploy.recorder import DeploymentRecorder, FileArtifactStore
from cutover.deploy.runtime import ContainerRuntime
from cutover.lib.errors import DeploymentCancelledError, DeploymentError, StageError
from cutover.lib.logging_config import log_stage
from cutover.models.deployment import (
    CutoverConfig,
    DeploymentRequest,
    DeploymentSettings,
    DeploymentStatus,
    FailureStage,
    GitContext,
    RegistryCredentials,
)
from cutover.models.record import DeploymentRecord, HealthCheckOutcome, ImageMetadata

logger = logging.getLogger(__name__)


@dataclass
class _RunContext:
    """Mutable accumulator for one run; frozen into a record at the end."""

    stage: FailureStage = FailureStage.AUTH
    history: list[HealthCheckOutcome] = field(default_factory=list)
    released: list[str] = field(default_factory=list)
    container_id: str | None = None
    image: ImageMetadata | None = None
    diagnostic_logs: str | None = None


class DeploymentCoordinator:
    """Sequences the deployment stages for a single host.

    Example:
        >>> coordinator = DeploymentCoordinator.from_config(config, DockerRuntime())
        >>> record = coordinator.run(config.request)
        >>> record.status
        <DeploymentStatus.SUCCEEDED: 'succeeded'>
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        recorder: DeploymentRecorder,
        *,
        settings: DeploymentSettings | None = None,
        credentials: RegistryCredentials | None = None,
        git: GitContext | None = None,
        clock: Clock | None = None,
        probe: HttpProbe | None = None,
        lock_dir: Path | None = None,
    ) -> None:
        """Create a coordinator.

        Args:
            runtime: Container runtime
            recorder: Recorder persisting the outcome
            settings: Timing and retry settings
            credentials: Registry credentials
            git: CI git context for the record
            clock: Clock (its token cancels the run)
            probe: HTTP probe for health checks
            lock_dir: Directory for the slot lock file; None for in-process only
        """
        self.runtime = runtime
        self.recorder = recorder
        self.settings = settings or DeploymentSettings()
        self.git = git or GitContext()
        self.clock = clock or Clock()
        self.lock_dir = lock_dir

        self.credentials = RegistryCredentialProvider(
            credentials or RegistryCredentials()
        )
        self.reconciler = PortReconciler(
            runtime, self.clock, release_wait=self.settings.port_release_wait
        )
        self.fetcher = ImageFetcher(runtime)
        self.lifecycle = ContainerLifecycleManager(
            runtime, self.clock, release_wait=self.settings.port_release_wait
        )
        self.verifier = HealthVerifier(
            self.clock, probe=probe, timeout=self.settings.health_check_timeout
        )

    @classmethod
    def from_config(
        cls,
        config: CutoverConfig,
        runtime: ContainerRuntime,
        clock: Clock | None = None,
        probe: HttpProbe | None = None,
    ) -> DeploymentCoordinator:
        """Build a coordinator writing artifacts to the configured directory."""
        return cls(
            runtime,
            DeploymentRecorder(FileArtifactStore(config.artifact_dir)),
            settings=config.settings,
            credentials=config.registry,
            git=config.git,
            clock=clock,
            probe=probe,
            lock_dir=config.artifact_dir,
        )

    def run(self, request: DeploymentRequest) -> DeploymentRecord:
        """Deploy ``request`` and persist the outcome.

        Returns:
            The persisted DeploymentRecord

        Raises:
            DeploymentInProgressError: If the slot is already being deployed
            DeploymentError: If the record cannot be persisted
        """
        with DeploymentLock(request.app_name, request.host_port, self.lock_dir):
            return self._run_locked(request)

    def _run_locked(self, request: DeploymentRequest) -> DeploymentRecord:
        started_at = self.clock.now()
        ctx = _RunContext()
        failure_stage: FailureStage | None = None
        error: str | None = None

        logger.info(f"Starting deployment of {request.app_name}...")
        self._log_request(request)

        try:
            self._run_stages(request, ctx)
        except StageError as e:
            failure_stage, error = e.stage, e.message
        except DeploymentCancelledError as e:
            failure_stage, error = ctx.stage, e.message
        except DeploymentError as e:
            failure_stage, error = ctx.stage, e.message
        except Exception as e:
            logger.exception(f"Unexpected error during {ctx.stage.value}: {e}")
            failure_stage, error = ctx.stage, str(e) or type(e).__name__

        if failure_stage is not None:
            logger.error(f"Deployment failed at stage {failure_stage.value}: {error}")

        record = DeploymentRecord(
            request=request,
            status=(
                DeploymentStatus.FAILED if failure_stage else DeploymentStatus.SUCCEEDED
            ),
            started_at=started_at,
            finished_at=self.clock.now(),
            failure_stage=failure_stage,
            error=error,
            health_check_history=tuple(ctx.history),
            container_id=ctx.container_id,
            released_containers=tuple(ctx.released),
            image=ctx.image,
            diagnostic_logs=ctx.diagnostic_logs,
            git=self.git,
        )

        log_stage(logger, "CREATING DEPLOYMENT ARTIFACTS")
        self.recorder.record(record)
        if record.succeeded:
            logger.info("Deployment completed successfully!")
        return record

    def _run_stages(self, request: DeploymentRequest, ctx: _RunContext) -> None:
        token = self.clock.token

        ctx.stage = FailureStage.AUTH
        token.raise_if_cancelled()
        log_stage(logger, "DOCKER REGISTRY LOGIN")
        self.credentials.authenticate(self.runtime)

        self._log_system_status()

        ctx.stage = FailureStage.PORT_RECONCILE
        token.raise_if_cancelled()
        log_stage(logger, "PORT AVAILABILITY CHECK")
        self.reconciler.check_availability(request.host_port)
        reconciled = self.reconciler.reconcile(
            request.host_port, request.container_name
        )
        ctx.released.extend(reconciled.released_containers)

        ctx.stage = FailureStage.IMAGE_PULL
        token.raise_if_cancelled()
        log_stage(logger, "PULLING IMAGE")
        fetched = self.fetcher.fetch(request.image_reference)
        if not fetched.success:
            raise StageError(
                FailureStage.IMAGE_PULL,
                fetched.error or f"Failed to pull image: {request.image_reference}",
            )
        ctx.image = fetched.image

        ctx.stage = FailureStage.CONTAINER_START
        token.raise_if_cancelled()
        log_stage(logger, "STARTING NEW CONTAINER")
        started = self.lifecycle.replace(request)
        ctx.container_id = started.container_id
        logger.info("Waiting for container to initialize...")
        self.clock.sleep(self.settings.startup_wait)

        ctx.stage = FailureStage.HEALTH_CHECK
        log_stage(logger, "HEALTH CHECK")
        verified = self.verifier.verify(
            request.base_url,
            request.health_check_path,
            max_attempts=self.settings.max_health_checks,
            interval_seconds=self.settings.health_check_interval,
        )
        ctx.history.extend(verified.history)
        if verified.cancelled:
            raise DeploymentCancelledError(token.reason or "Deployment cancelled")
        if not verified.healthy:
            ctx.diagnostic_logs = self._collect_diagnostics(request.container_name)
            raise StageError(
                FailureStage.HEALTH_CHECK,
                f"Health check failed after {verified.attempts} attempts",
            )

        self._log_status_report(request.container_name)

    def _collect_diagnostics(self, container_name: str) -> str | None:
        lines = self.settings.diagnostic_log_lines
        logger.info(f"Container logs (last {lines} lines):")
        logs = self.lifecycle.logs(container_name, tail=lines)
        for line in (logs or "").splitlines():
            logger.info(f"  {line}")
        return logs

    def _log_request(self, request: DeploymentRequest) -> None:
        logger.info("Configuration check:")
        logger.info(f"  - APP_NAME: {request.app_name}")
        logger.info(f"  - CONTAINER_NAME: {request.container_name}")
        logger.info(f"  - IMAGE_TAG: {request.image_reference}")
        logger.info(f"  - HOST_PORT: {request.host_port}")
        logger.info(f"  - CONTAINER_PORT: {request.container_port}")
        logger.info(f"  - HEALTH_CHECK_PATH: {request.health_check_path}")

    def _log_system_status(self) -> None:
        """Log runtime version and disk space; failures are only warnings."""
        log_stage(logger, "SYSTEM STATUS CHECK")
        try:
            info = self.runtime.info()
        except DeploymentError as e:
            logger.warning(f"Unable to get Docker system info: {e.message}")
            info = {}
        if info:
            logger.info(f"Docker version: {info.get('version', 'unknown')}")
            disk_usage = info.get("disk_usage") or {}
            if disk_usage:
                logger.info(
                    f"Docker disk usage: {len(disk_usage.get('Images') or [])} images, "
                    f"{len(disk_usage.get('Containers') or [])} containers, "
                    f"{disk_usage.get('LayersSize', 0)} bytes in layers"
                )

        try:
            usage = shutil.disk_usage("/")
        except OSError as e:
            logger.warning(f"Unable to get disk space: {e}")
            return
        gib = 1024**3
        logger.info(
            f"Available disk space: {usage.free / gib:.1f} GiB free "
            f"of {usage.total / gib:.1f} GiB"
        )

    def _log_status_report(self, container_name: str) -> None:
        log_stage(logger, "DEPLOYMENT STATUS")
        report = self.lifecycle.status_report(
            container_name, tail=self.settings.status_log_lines
        )
        container = report.get("container")
        if container:
            logger.info(
                f"Container: {container['name']} {container['status']} "
                f"ports={container['ports']} image={container['image']}"
            )
        stats = report.get("stats")
        if stats:
            logger.info(
                f"Stats: cpu={stats['cpu_percent']}% "
                f"mem={stats['memory_usage']}/{stats['memory_limit']}"
            )
        if report.get("logs"):
            logger.info(
                f"Recent container logs (last {self.settings.status_log_lines} lines):"
            )
            for line in report["logs"].splitlines():
                logger.info(f"  {line}")
