"""Health gate: poll an environment's HTTP endpoint until it answers 2xx."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import httpx

from .config import DeploymentConfig, HealthStatus
from .environment import Environment

logger = logging.getLogger(__name__)


@dataclass
class ProbeAttempt:
    """Outcome of one GET against the health endpoint."""

    attempt: int
    healthy: bool
    status_code: Optional[int] = None
    error: str = ""
    response_time_ms: float = 0.0


@dataclass
class ProbeResult:
    """Gate decision for one environment, made once at the end of the loop."""

    environment: str
    url: str
    status: HealthStatus
    attempts: List[ProbeAttempt] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return self.status is HealthStatus.HEALTHY

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    @property
    def detail(self) -> str:
        if not self.attempts:
            return ""
        last = self.attempts[-1]
        if last.error:
            return last.error
        if last.status_code is not None:
            return f"HTTP {last.status_code}"
        return ""


class HealthProber:
    """Polls ``http://<host>:<port><endpoint>`` with bounded retries."""

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        host: str = "localhost",
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._client = client
        self._host = host
        self._sleep = sleep

    def url_for(self, environment: Environment, endpoint: str) -> str:
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint
        return f"http://{self._host}:{environment.port}{endpoint}"

    def probe(
        self,
        environment: Environment,
        endpoint: str,
        max_attempts: int,
        interval: float,
        connect_timeout: float,
    ) -> ProbeResult:
        """Poll until the first 2xx or ``max_attempts`` failures.

        Blocks for at most ``max_attempts * (interval + connect_timeout)``.
        No pause follows the final attempt.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        url = self.url_for(environment, endpoint)
        logger.info(
            "Checking health of %s at %s (attempts=%d, interval=%.1fs)",
            environment.name.value,
            url,
            max_attempts,
            interval,
        )
        result = ProbeResult(
            environment=environment.name.value,
            url=url,
            status=HealthStatus.UNHEALTHY,
        )
        for attempt in range(1, max_attempts + 1):
            outcome = self.check(url, connect_timeout, attempt)
            result.attempts.append(outcome)
            if outcome.healthy:
                result.status = HealthStatus.HEALTHY
                logger.info(
                    "Health check passed for %s on attempt %d/%d",
                    environment.name.value,
                    attempt,
                    max_attempts,
                )
                return result
            if attempt < max_attempts:
                logger.info(
                    "Health check attempt %d/%d failed (%s), retrying in %.1fs",
                    attempt,
                    max_attempts,
                    outcome.error or f"HTTP {outcome.status_code}",
                    interval,
                )
                self._sleep(interval)

        logger.error(
            "Health check failed for %s after %d attempts",
            environment.name.value,
            max_attempts,
        )
        return result

    def gate(
        self,
        environment: Environment,
        config: DeploymentConfig,
        max_attempts: Optional[int] = None,
    ) -> ProbeResult:
        """Probe with the configured endpoint, retries, delay and timeout."""
        return self.probe(
            environment,
            endpoint=config.health_endpoint,
            max_attempts=max_attempts or config.health_retries,
            interval=config.health_delay,
            connect_timeout=config.health_timeout,
        )

    def check(self, url: str, timeout: float, attempt: int = 1) -> ProbeAttempt:
        """Single GET; any 2xx within ``timeout`` is healthy."""
        start = time.monotonic()
        try:
            if self._client is not None:
                response = self._client.get(url, timeout=timeout)
            else:
                with httpx.Client(timeout=timeout) as client:
                    response = client.get(url)
        except httpx.HTTPError as exc:
            return ProbeAttempt(
                attempt=attempt,
                healthy=False,
                error=f"{type(exc).__name__}: {exc}",
                response_time_ms=(time.monotonic() - start) * 1000,
            )
        return ProbeAttempt(
            attempt=attempt,
            healthy=response.is_success,
            status_code=response.status_code,
            response_time_ms=(time.monotonic() - start) * 1000,
        )
