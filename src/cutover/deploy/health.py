"""HTTP health verification with bounded retries.

Probes run sequentially with a fixed interval between failed attempts. Any
2xx response ends the loop; the response body is never inspected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import requests
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import RequestException, Timeout

from cutover.deploy.clock import Clock
from cutover.lib.errors import DeploymentCancelledError
from cutover.models.record import HealthCheckOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeResponse:
    """Result of one HTTP probe.

    Attributes:
        status: HTTP status code, if a response was received
        error: Transport error description, if no response was received
    """

    status: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Whether the probe returned a 2xx status."""
        return self.status is not None and 200 <= self.status < 300


class HttpProbe:
    """Minimal HTTP GET client for health probes."""

    def __init__(self, session: requests.Session | None = None) -> None:
        """Create a probe using a shared requests session."""
        self._session = session or requests.Session()

    def get(self, url: str, timeout: float) -> ProbeResponse:
        """Issue a GET request, reporting transport failures as errors."""
        try:
            response = self._session.get(
                url, timeout=timeout, stream=True, allow_redirects=False
            )
        except Timeout:
            return ProbeResponse(error=f"Timed out after {timeout:g}s")
        except RequestsConnectionError as e:
            return ProbeResponse(error=f"Connection failed: {e}")
        except RequestException as e:
            return ProbeResponse(error=str(e))
        # Body is never read
        response.close()
        return ProbeResponse(status=response.status_code)

    def close(self) -> None:
        """Close the underlying session."""
        self._session.close()


@dataclass
class VerifyResult:
    """Result of a health verification run.

    Attributes:
        healthy: Whether any probe returned 2xx
        history: Every probe attempt in order
        cancelled: Whether polling stopped early because of cancellation
    """

    healthy: bool
    history: list[HealthCheckOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def attempts(self) -> int:
        """Number of probes issued."""
        return len(self.history)


class HealthVerifier:
    """Polls a health endpoint until it succeeds or attempts run out."""

    DEFAULT_MAX_ATTEMPTS = 6
    DEFAULT_INTERVAL = 10.0  # seconds
    DEFAULT_TIMEOUT = 10.0  # seconds

    def __init__(
        self,
        clock: Clock,
        probe: HttpProbe | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Create a verifier.

        Args:
            clock: Clock for timestamps and inter-attempt delays
            probe: HTTP probe (defaults to a requests-backed probe)
            timeout: Per-request timeout in seconds
        """
        self.clock = clock
        self.probe = probe or HttpProbe()
        self.timeout = timeout

    def verify(
        self,
        base_url: str,
        path: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        interval_seconds: float = DEFAULT_INTERVAL,
    ) -> VerifyResult:
        """Probe ``base_url + path`` up to ``max_attempts`` times.

        Args:
            base_url: Application base URL (e.g. http://localhost:8080)
            path: Health check path
            max_attempts: Maximum number of probes
            interval_seconds: Delay after each failed probe except the last

        Returns:
            VerifyResult with the outcome and the probe history so far; a
            cancelled run is unhealthy with ``cancelled`` set
        """
        url = f"{base_url.rstrip('/')}{path}"
        logger.info(f"Health check URL: {url}")

        result = VerifyResult(healthy=False)
        for attempt in range(1, max_attempts + 1):
            if self.clock.token.cancelled:
                result.cancelled = True
                break
            logger.info(f"Health check attempt {attempt}/{max_attempts}...")

            timestamp = self.clock.now()
            response = self.probe.get(url, timeout=self.timeout)
            result.history.append(
                HealthCheckOutcome(
                    attempt_number=attempt,
                    timestamp=timestamp,
                    succeeded=response.ok,
                    http_status=response.status,
                    error=response.error,
                )
            )

            if response.ok:
                logger.info("Health check passed - application is ready")
                result.healthy = True
                return result

            reason = (
                f"HTTP {response.status}" if response.status else response.error
            )
            if attempt == max_attempts:
                logger.error(
                    f"Health check failed after {max_attempts} attempts ({reason})"
                )
                break

            logger.info(
                f"Health check failed ({reason}), "
                f"retrying in {interval_seconds:g}s..."
            )
            try:
                self.clock.sleep(interval_seconds)
            except DeploymentCancelledError:
                logger.warning("Health check cancelled")
                result.cancelled = True
                break

        return result
