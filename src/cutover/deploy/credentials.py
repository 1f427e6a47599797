"""Registry credential resolution and login."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from cutover.deploy.runtime import ContainerRuntime
from cutover.lib.errors import DeploymentError, StageError
from cutover.models.deployment import FailureStage, RegistryCredentials

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedCredentials:
    """Credentials selected for a registry login.

    Attributes:
        username: Login user
        password: Password or token
        registry: Registry URL (None means the runtime default)
        source: Which configured material was used ("password" or "job_token")
    """

    username: str
    password: str
    registry: str | None
    source: str

    def __repr__(self) -> str:
        return (
            f"ResolvedCredentials(username={self.username!r}, "
            f"registry={self.registry!r}, source={self.source!r})"
        )


class RegistryCredentialProvider:
    """Resolve registry credentials and log the runtime in.

    Resolution order:
    1. Explicit username and password
    2. CI job token, logged in as ``gitlab-ci-token``
    3. Nothing: the image is assumed public or the host already logged in
    """

    JOB_TOKEN_USER = "gitlab-ci-token"

    def __init__(self, credentials: RegistryCredentials) -> None:
        """Create a provider for configured credentials."""
        self._credentials = credentials

    def resolve(self) -> ResolvedCredentials | None:
        """Select the credentials to use, if any."""
        creds = self._credentials
        if creds.password:
            if not creds.username:
                raise StageError(
                    FailureStage.AUTH, "Registry password set without a username"
                )
            return ResolvedCredentials(
                username=creds.username,
                password=creds.password,
                registry=creds.registry,
                source="password",
            )
        if creds.job_token:
            return ResolvedCredentials(
                username=self.JOB_TOKEN_USER,
                password=creds.job_token,
                registry=creds.registry,
                source="job_token",
            )
        return None

    def authenticate(self, runtime: ContainerRuntime) -> ResolvedCredentials | None:
        """Log the runtime in to the registry when credentials are available.

        Returns:
            The credentials used, or None when no login was needed

        Raises:
            StageError: With stage ``auth`` if the registry rejects the login
        """
        resolved = self.resolve()
        if resolved is None:
            logger.warning(
                "No registry credentials found - assuming public image "
                "or already logged in"
            )
            return None

        logger.info(
            f"Using {resolved.source} credentials for "
            f"{resolved.registry or 'default registry'}"
        )
        try:
            runtime.login(
                username=resolved.username,
                password=resolved.password,
                registry=resolved.registry,
            )
        except DeploymentError as e:
            raise StageError(FailureStage.AUTH, e.message) from e
        logger.info("Registry login succeeded")
        return resolved
