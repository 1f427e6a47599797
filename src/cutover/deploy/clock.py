"""Time source and cancellable sleeps for deployment stages."""

from __future__ import annotations

import threading
from datetime import datetime, timezone

from cutover.lib.errors import DeploymentCancelledError


class CancellationToken:
    """Thread-safe flag signalling that a deployment should abort.

    Signal handlers call ``cancel()``; every blocking wait in the pipeline
    observes the token and wakes immediately.
    """

    def __init__(self) -> None:
        """Create an un-cancelled token."""
        self._event = threading.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "Deployment cancelled") -> None:
        """Request cancellation."""
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise DeploymentCancelledError if cancellation was requested."""
        if self._event.is_set():
            raise DeploymentCancelledError(self.reason or "Deployment cancelled")

    def wait(self, seconds: float) -> bool:
        """Block for up to ``seconds``; return True if cancelled meanwhile."""
        return self._event.wait(timeout=seconds)


class Clock:
    """Wall clock with cancellable sleeps.

    Attributes:
        token: Cancellation token observed by ``sleep``
    """

    def __init__(self, token: CancellationToken | None = None) -> None:
        """Create a clock bound to a cancellation token."""
        self.token = token or CancellationToken()

    def now(self) -> datetime:
        """Return the current UTC time."""
        return datetime.now(timezone.utc)

    def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless cancelled first.

        Raises:
            DeploymentCancelledError: If the token is cancelled before or
                during the sleep
        """
        self.token.raise_if_cancelled()
        if seconds > 0 and self.token.wait(seconds):
            self.token.raise_if_cancelled()
