"""Durable deployment records.

Every run writes two artifacts derived from the same ``DeploymentRecord``,
overwriting those of the previous run:

- ``deploy.env``: flat KEY=value file for downstream CI jobs
- ``deployment-info.json``: structured document with the full record
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from cutover.lib.errors import DeploymentError
from cutover.models.deployment import DeploymentStatus
from cutover.models.record import DeploymentRecord

logger = logging.getLogger(__name__)

RECORD_VERSION = "1.0"
ENV_FILE_KEY = "deploy.env"
INFO_FILE_KEY = "deployment-info.json"

_PLAIN_ENV_VALUE = re.compile(r"^[A-Za-z0-9_./:@+,=-]*$")


class ArtifactStore(ABC):
    """Key/value store for deployment artifacts."""

    @abstractmethod
    def write(self, key: str, data: bytes) -> None:
        """Store ``data`` under ``key``, replacing any previous value."""

    @abstractmethod
    def read(self, key: str) -> bytes | None:
        """Return the value stored under ``key`` or None."""


class FileArtifactStore(ArtifactStore):
    """Artifact store backed by files in a directory.

    Writes go to a temporary file that atomically replaces the target, so a
    reader never sees a partially written artifact.
    """

    def __init__(self, directory: Path) -> None:
        """Create a store rooted at ``directory``."""
        self.directory = directory

    def path_for(self, key: str) -> Path:
        """Return the file path for a key."""
        return self.directory / key

    def write(self, key: str, data: bytes) -> None:
        """Atomically write an artifact file."""
        target = self.path_for(key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{target.name}.", dir=str(target.parent)
            )
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(data)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise DeploymentError(
                operation="record",
                message=f"Failed to write {target}: {exc}",
            ) from exc

    def read(self, key: str) -> bytes | None:
        """Read an artifact file if it exists."""
        target = self.path_for(key)
        if not target.exists():
            return None
        try:
            return target.read_bytes()
        except OSError as exc:
            raise DeploymentError(
                operation="record",
                message=f"Failed to read {target}: {exc}",
            ) from exc


def _env_value(value: str) -> str:
    if _PLAIN_ENV_VALUE.match(value):
        return value
    return json.dumps(value)


def render_env_file(record: DeploymentRecord) -> str:
    """Render the flat environment artifact for a record."""
    request = record.request
    values: dict[str, str] = {
        "DEPLOYED_APP": request.app_name,
        "DEPLOYED_CONTAINER": request.container_name,
        "DEPLOYED_URL": request.base_url,
        "DEPLOYED_IMAGE": request.image_reference,
        "DEPLOYMENT_TIME": record.finished_at.isoformat(timespec="seconds"),
        "DEPLOYMENT_COMMIT": record.git.commit,
        "DEPLOYMENT_STATUS": record.status.value,
    }
    if record.container_id:
        values["DEPLOYED_CONTAINER_ID"] = record.container_id
    if record.status == DeploymentStatus.FAILED and record.failure_stage:
        values["FAILURE_STAGE"] = record.failure_stage.value
        if record.error:
            values["FAILURE_REASON"] = record.error

    lines = [f"{key}={_env_value(value)}" for key, value in values.items()]
    return "\n".join(lines) + "\n"


def render_info_document(record: DeploymentRecord) -> dict[str, Any]:
    """Render the structured artifact for a record."""
    request = record.request
    summary: dict[str, Any] = {
        "timestamp": record.finished_at.isoformat(timespec="seconds"),
        "status": record.status.value,
        "app_name": request.app_name,
        "container_name": request.container_name,
        "image": request.image_reference,
        "ports": {"host": request.host_port, "container": request.container_port},
        "urls": {
            "application": request.base_url,
            "health_check": request.health_check_url,
        },
        "git": record.git.model_dump(mode="json"),
        "configuration": {
            "restart_policy": request.restart_policy.value,
            "extra_args": " ".join(request.extra_run_arguments),
        },
    }
    if record.failure_stage:
        summary["failure_stage"] = record.failure_stage.value
        summary["error"] = record.error or "Deployment failed"

    return {
        "version": RECORD_VERSION,
        "deployment": summary,
        "record": record.model_dump(mode="json"),
    }


class DeploymentRecorder:
    """Persists deployment records to an artifact store."""

    def __init__(self, store: ArtifactStore) -> None:
        """Create a recorder writing to ``store``."""
        self.store = store

    def record(self, record: DeploymentRecord) -> None:
        """Write both artifacts for a finished run.

        Raises:
            DeploymentError: If an artifact cannot be written
        """
        self.store.write(ENV_FILE_KEY, render_env_file(record).encode("utf-8"))
        payload = json.dumps(render_info_document(record), indent=2)
        self.store.write(INFO_FILE_KEY, (payload + "\n").encode("utf-8"))
        logger.info("Deployment artifacts created:")
        logger.info(f"  - {ENV_FILE_KEY}")
        logger.info(f"  - {INFO_FILE_KEY}")

    def load(self) -> DeploymentRecord | None:
        """Load the record of the last run, if any.

        Raises:
            DeploymentError: If the stored document is not a valid record
        """
        content = self.store.read(INFO_FILE_KEY)
        if content is None or not content.strip():
            return None

        try:
            document = json.loads(content)
            return DeploymentRecord.model_validate(document["record"])
        except (ValueError, KeyError, TypeError, ValidationError) as exc:
            raise DeploymentError(
                operation="record",
                message=f"Invalid deployment record format in {INFO_FILE_KEY}: {exc}",
            ) from exc
