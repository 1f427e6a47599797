"""Custom exception hierarchy for Cutover configuration and deployments."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cutover.models.deployment import FailureStage


class CutoverError(Exception):
    """Base exception for all Cutover errors.

    All Cutover-specific exceptions inherit from this class, enabling
    centralized exception handling in the CLI.
    """

    pass


class ConfigError(CutoverError):
    """Exception raised for configuration errors.

    Raised when configuration loading, parsing or validation fails. Carries
    the offending field so users can locate the problem.

    Attributes:
        field: The configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class DeploymentError(CutoverError):
    """Exception raised when a container runtime operation fails.

    Attributes:
        operation: Runtime operation that failed (pull, run, stop, ...)
        message: Human-readable error message
    """

    def __init__(self, operation: str, message: str) -> None:
        """Create a deployment error for a runtime operation."""
        self.operation = operation
        self.message = message
        super().__init__(f"{operation} failed: {message}")


class DockerNotAvailableError(DeploymentError):
    """Exception raised when the Docker daemon cannot be reached."""

    def __init__(self, operation: str = "connect") -> None:
        """Create an error explaining how to reach the Docker daemon."""
        super().__init__(
            operation=operation,
            message=(
                "Cannot connect to the Docker daemon. "
                "Ensure Docker is running and DOCKER_HOST is set correctly."
            ),
        )


class StageError(CutoverError):
    """Exception raised when a deployment stage fails fatally.

    Attributes:
        stage: The pipeline stage that failed
        message: Human-readable error message
    """

    def __init__(self, stage: FailureStage, message: str) -> None:
        """Create a stage failure."""
        self.stage = stage
        self.message = message
        super().__init__(f"Stage '{stage.value}' failed: {message}")


class DeploymentInProgressError(CutoverError):
    """Exception raised when another deployment holds the same slot."""

    def __init__(self, app_name: str, host_port: int) -> None:
        """Create an error for a concurrent deployment of the same slot."""
        self.app_name = app_name
        self.host_port = host_port
        self.message = (
            f"Deployment already in progress for '{app_name}' on port {host_port}"
        )
        super().__init__(self.message)


class DeploymentCancelledError(CutoverError):
    """Exception raised when a deployment is aborted by the invoker."""

    def __init__(self, message: str = "Deployment cancelled") -> None:
        """Create a cancellation error."""
        self.message = message
        super().__init__(message)
