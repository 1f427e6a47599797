"""CLI commands for deploying containers.

Implements the 'cutover deploy' command group: running a deployment,
inspecting the last recorded outcome and printing the resolved
configuration.
"""

from __future__ import annotations

import signal
import sys
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import click
import yaml

from cutover.config.defaults import DEFAULT_ARTIFACT_DIR, DEFAULT_ENV_FILE
from cutover.config.env_loader import apply_env_file
from cutover.config.loader import load_config
from cutover.deploy.clock import CancellationToken, Clock
from cutover.deploy.coordinator import DeploymentCoordinator
from cutover.deploy.recorder import DeploymentRecorder, FileArtifactStore
from cutover.deploy.runtime import DockerRuntime
from cutover.lib.errors import (
    ConfigError,
    DeploymentError,
    DeploymentInProgressError,
)
from cutover.lib.logging_config import get_logger, setup_logging
from cutover.models.deployment import CutoverConfig, RestartPolicy
from cutover.models.record import DeploymentRecord

logger = get_logger(__name__)

BOX_WIDTH = 65


@contextmanager
def handle_deployment_errors() -> Generator[None, None, None]:
    """Context manager for consistent error handling in deployment commands.

    Exit codes:
        2: Configuration error
        3: Deployment/execution error, including a concurrent deployment
    """
    try:
        yield
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(2)
    except DeploymentInProgressError as e:
        logger.error(str(e))
        click.secho("Error: Deployment already in progress", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(3)
    except DeploymentError as e:
        logger.error(f"Deployment error: {e}")
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(3)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(3)


@contextmanager
def cancel_on_signals(token: CancellationToken) -> Generator[None, None, None]:
    """Cancel ``token`` on SIGINT/SIGTERM for the duration of the block."""

    def _handler(signum: int, _frame: Any) -> None:
        name = signal.Signals(signum).name
        logger.warning(f"Received {name}, cancelling deployment...")
        token.cancel(f"Deployment cancelled by {name}")

    try:
        previous = {
            sig: signal.signal(sig, _handler)
            for sig in (signal.SIGINT, signal.SIGTERM)
        }
    except ValueError:
        # Not in the main thread; signals cannot be handled here
        logger.debug("Signal handlers not installed outside the main thread")
        previous = {}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


@click.group(name="deploy", invoke_without_command=True)
@click.pass_context
def deploy(ctx: click.Context) -> None:
    """Deploy a container image to this Docker host.

    Subcommands:

        run     Replace the running container and verify it
        status  Show the last deployment record
        config  Show the resolved deployment configuration

    Example:

        cutover deploy run

        cutover deploy run cutover.yml --host-port 8080 --dry-run
    """
    ctx.ensure_object(dict)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def config_options(func: Any) -> Any:
    """Attach the configuration options shared by ``run`` and ``config``."""
    options = [
        click.argument(
            "config_file",
            type=click.Path(exists=True, dir_okay=False),
            required=False,
        ),
        click.option("--app-name", type=str, help="Application name"),
        click.option(
            "--container-name",
            type=str,
            help="Container name (default: <app-name>-<revision>)",
        ),
        click.option(
            "--revision",
            type=str,
            help="Revision suffix for the default container name",
        ),
        click.option("--image", type=str, help="Image reference to deploy"),
        click.option(
            "--host-port", type=click.IntRange(1, 65535), help="Host port to publish"
        ),
        click.option(
            "--container-port",
            type=click.IntRange(1, 65535),
            help="Port the application listens on inside the container",
        ),
        click.option("--health-check-path", type=str, help="Health endpoint path"),
        click.option(
            "--restart-policy",
            type=click.Choice([p.value for p in RestartPolicy]),
            help="Docker restart policy",
        ),
        click.option(
            "--extra-args",
            type=str,
            help="Extra 'docker run' flags, e.g. \"-e LOG_LEVEL=debug -v data:/data\"",
        ),
        click.option("--registry", type=str, help="Registry host to log in to"),
        click.option("--registry-user", type=str, help="Registry username"),
        click.option(
            "--max-health-checks",
            type=click.IntRange(min=1),
            help="Maximum health probes before failing",
        ),
        click.option(
            "--health-check-interval",
            type=click.FloatRange(min=0),
            help="Seconds between failed health probes",
        ),
        click.option(
            "--health-check-timeout",
            type=click.FloatRange(min=0, min_open=True),
            help="Per-probe HTTP timeout in seconds",
        ),
        click.option(
            "--port-release-wait",
            type=click.FloatRange(min=0),
            help="Seconds to wait after releasing the host port",
        ),
        click.option(
            "--startup-wait",
            type=click.FloatRange(min=0),
            help="Seconds to wait after starting the container",
        ),
        click.option(
            "--artifact-dir",
            type=click.Path(file_okay=False),
            help="Directory for deploy.env and deployment-info.json",
        ),
        click.option(
            "--env-file",
            type=click.Path(dir_okay=False),
            default=DEFAULT_ENV_FILE,
            show_default=True,
            help="Dotenv file loaded before reading the environment",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_overrides(params: dict[str, Any]) -> dict[str, Any]:
    """Map CLI parameters onto ConfigLoader overrides."""
    overrides: dict[str, Any] = {
        "app_name": params.get("app_name"),
        "container_name": params.get("container_name"),
        "revision": params.get("revision"),
        "image": params.get("image"),
        "host_port": params.get("host_port"),
        "container_port": params.get("container_port"),
        "health_check_path": params.get("health_check_path"),
        "restart_policy": params.get("restart_policy"),
        "extra_run_arguments": params.get("extra_args"),
        "artifact_dir": params.get("artifact_dir"),
        "registry": {
            "registry": params.get("registry"),
            "username": params.get("registry_user"),
        },
        "settings": {
            "max_health_checks": params.get("max_health_checks"),
            "health_check_interval": params.get("health_check_interval"),
            "health_check_timeout": params.get("health_check_timeout"),
            "port_release_wait": params.get("port_release_wait"),
            "startup_wait": params.get("startup_wait"),
        },
    }
    return overrides


def _load(config_file: str | None, params: dict[str, Any]) -> CutoverConfig:
    env_file = params.get("env_file")
    if env_file and apply_env_file(env_file):
        logger.debug(f"Loaded environment from {env_file}")
    return load_config(config_file, _build_overrides(params))


@deploy.command()
@config_options
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show what would be done without executing",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose debug logging",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress progress output",
)
def run(
    config_file: str | None,
    dry_run: bool,
    verbose: bool,
    quiet: bool,
    **params: Any,
) -> None:
    """Replace the running container with a fresh one and verify it.

    CONFIG_FILE is an optional cutover.yml; when omitted, cutover.yml or
    cutover.yaml in the current directory is used if present.

    Exits 0 when the deployment succeeded, 1 when it failed at any stage.

    Example:

        cutover deploy run

        cutover deploy run --image registry.example.com/site:1.4 --host-port 8080
    """
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_deployment_errors():
        config = _load(config_file, params)
        request = config.request

        if not quiet:
            _display_config(config)

        if dry_run:
            click.secho("[DRY RUN] Would deploy:", fg="yellow")
            click.echo(f"  Image:     {request.image_reference}")
            click.echo(f"  Container: {request.container_name}")
            click.echo(f"  Port:      {request.host_port}:{request.container_port}")
            click.secho("[DRY RUN] No containers were changed", fg="yellow")
            sys.exit(0)

        token = CancellationToken()
        runtime = DockerRuntime()
        coordinator = DeploymentCoordinator.from_config(
            config, runtime, clock=Clock(token)
        )
        with cancel_on_signals(token):
            record = coordinator.run(request)

        if record.succeeded:
            if quiet:
                click.echo(request.base_url)
            else:
                _display_summary(record)
            sys.exit(0)

        click.secho(
            f"Deployment failed at stage {record.failure_stage.value}"
            if record.failure_stage
            else "Deployment failed",
            fg="red",
            err=True,
        )
        if record.error:
            click.echo(f"  {record.error}", err=True)
        sys.exit(1)


@deploy.command()
@click.option(
    "--artifact-dir",
    type=click.Path(file_okay=False),
    default=DEFAULT_ARTIFACT_DIR,
    show_default=True,
    help="Directory containing deployment-info.json",
)
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    help="Output the full record as JSON",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Only print the deployment status",
)
def status(artifact_dir: str, as_json: bool, quiet: bool) -> None:
    """Show the outcome of the last deployment."""
    with handle_deployment_errors():
        recorder = DeploymentRecorder(FileArtifactStore(Path(artifact_dir)))
        record = recorder.load()
        if record is None:
            raise ConfigError(
                field="deployment_state",
                message="No deployment record found. Run `cutover deploy run` first.",
            )

        if as_json:
            click.echo(record.model_dump_json(indent=2))
            return
        if quiet:
            click.echo(record.status.value)
            return

        request = record.request
        color = "green" if record.succeeded else "red"
        click.echo()
        click.secho("Deployment Status", bold=True)
        click.echo(f"  App:       {request.app_name}")
        click.echo(f"  Container: {request.container_name}")
        click.echo(f"  Image:     {request.image_reference}")
        click.echo("  Status:    ", nl=False)
        click.secho(record.status.value, fg=color)
        if record.failure_stage:
            click.echo(f"  Stage:     {record.failure_stage.value}")
        if record.error:
            click.echo(f"  Error:     {record.error}")
        click.echo(f"  URL:       {request.base_url}")
        click.echo(f"  Finished:  {record.finished_at.isoformat()}")
        click.echo(f"  Duration:  {record.duration_seconds:.1f}s")
        click.echo(f"  Probes:    {len(record.health_check_history)}")
        if record.released_containers:
            released = ", ".join(record.released_containers)
            click.echo(f"  Released:  {released}")
        click.echo()


@deploy.command(name="config")
@config_options
def show_config(config_file: str | None, **params: Any) -> None:
    """Print the resolved deployment configuration as YAML.

    Secrets are masked.
    """
    with handle_deployment_errors():
        config = _load(config_file, params)
        click.echo(yaml.safe_dump(masked_config(config), sort_keys=False), nl=False)


def masked_config(config: CutoverConfig) -> dict[str, Any]:
    """Dump a config for display with registry secrets masked."""
    data = config.model_dump(mode="json")
    registry = data.get("registry", {})
    for secret in ("password", "job_token"):
        if registry.get(secret):
            registry[secret] = "***"
    return data


def _display_config(config: CutoverConfig) -> None:
    request = config.request
    click.echo()
    click.secho("Deploy Configuration:", bold=True)
    click.echo(f"  App:        {request.app_name}")
    click.echo(f"  Container:  {request.container_name}")
    click.echo(f"  Image:      {request.image_reference}")
    click.echo(f"  Ports:      {request.host_port}:{request.container_port}")
    click.echo(f"  Health:     {request.health_check_url}")
    click.echo(f"  Restart:    {request.restart_policy.value}")
    if request.extra_run_arguments:
        click.echo(f"  Extra args: {' '.join(request.extra_run_arguments)}")
    click.echo()


def _box_line(text: str = "") -> str:
    return f"│ {text}".ljust(BOX_WIDTH - 1) + "│"


def _display_summary(record: DeploymentRecord) -> None:
    """Display the deployment summary with commands for the new container."""
    request = record.request
    name = request.container_name
    rule = "─" * (BOX_WIDTH - 2)

    lines = [
        f"┌{rule}┐",
        _box_line("DEPLOYMENT SUMMARY".center(BOX_WIDTH - 4)),
        f"├{rule}┤",
        _box_line(f"Application: {request.app_name}"),
        _box_line(f"Container:   {name}"),
        _box_line(f"URL:         {request.base_url}"),
        _box_line(f"Image:       {request.image_reference}"),
        _box_line(f"Time:        {record.finished_at.isoformat(timespec='seconds')}"),
        f"├{rule}┤",
        _box_line("USEFUL COMMANDS".center(BOX_WIDTH - 4)),
        f"├{rule}┤",
        _box_line(f"Check status:    docker ps -f name={name}"),
        _box_line(f"View logs:       docker logs -f {name}"),
        _box_line(f"Enter container: docker exec -it {name} sh"),
        _box_line(f"Health check:    curl {request.health_check_url}"),
        _box_line(f"Stop container:  docker stop {name}"),
        f"└{rule}┘",
    ]
    click.echo()
    click.secho("Deployment Successful!", fg="green", bold=True)
    for line in lines:
        click.echo(line)
    click.echo()
