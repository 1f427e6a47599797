"""Single-in-flight guard for deployments of the same slot.

A slot is the pair ``(app_name, host_port)``. The guard is held in-process
and mirrored by an exclusive lock file so separate CLI invocations on the
same host also exclude each other.
"""

from __future__ import annotations

import logging
import os
import re
import threading
from pathlib import Path
from types import TracebackType

from cutover.lib.errors import DeploymentError, DeploymentInProgressError

logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()
_active_slots: set[tuple[str, int]] = set()

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def lock_file_name(app_name: str, host_port: int) -> str:
    """Return the lock file name for a deployment slot."""
    safe_name = _UNSAFE_CHARS.sub("_", app_name)
    return f".cutover-{safe_name}-{host_port}.lock"


class DeploymentLock:
    """Mutual-exclusion guard scoped to ``(app_name, host_port)``.

    Example:
        >>> with DeploymentLock("site", 8080, Path(".")):
        ...     pass  # deploy
    """

    def __init__(self, app_name: str, host_port: int, lock_dir: Path | None) -> None:
        """Create a lock for a slot.

        Args:
            app_name: Application name
            host_port: Host port of the slot
            lock_dir: Directory for the lock file; None for in-process only
        """
        self.key = (app_name, host_port)
        self.lock_path = (
            lock_dir / lock_file_name(app_name, host_port) if lock_dir else None
        )
        self._held = False

    def acquire(self) -> None:
        """Acquire the slot.

        Raises:
            DeploymentInProgressError: If another deployment holds the slot
            DeploymentError: If the lock file cannot be created
        """
        with _registry_lock:
            if self.key in _active_slots:
                raise DeploymentInProgressError(*self.key)
            _active_slots.add(self.key)

        try:
            self._create_lock_file()
        except BaseException:
            with _registry_lock:
                _active_slots.discard(self.key)
            raise
        self._held = True
        logger.debug(f"Acquired deployment lock for {self.key}")

    def release(self) -> None:
        """Release the slot if held."""
        if not self._held:
            return
        if self.lock_path is not None:
            try:
                self.lock_path.unlink()
            except FileNotFoundError:
                logger.warning(f"Lock file already removed: {self.lock_path}")
        with _registry_lock:
            _active_slots.discard(self.key)
        self._held = False
        logger.debug(f"Released deployment lock for {self.key}")

    def _create_lock_file(self, retry_stale: bool = True) -> None:
        if self.lock_path is None:
            return
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError as exc:
            if retry_stale and self._is_stale():
                logger.warning(f"Removing stale deployment lock {self.lock_path}")
                self.lock_path.unlink(missing_ok=True)
                self._create_lock_file(retry_stale=False)
                return
            raise DeploymentInProgressError(*self.key) from exc
        except OSError as exc:
            raise DeploymentError(
                operation="lock",
                message=f"Failed to create lock file {self.lock_path}: {exc}",
            ) from exc
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(str(os.getpid()))

    def _is_stale(self) -> bool:
        """A lock file is stale when its owning process no longer exists."""
        if self.lock_path is None:
            return False
        try:
            pid = int(self.lock_path.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return False
        if pid == os.getpid():
            return False
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return True
        except PermissionError:
            return False
        return False

    def __enter__(self) -> DeploymentLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
