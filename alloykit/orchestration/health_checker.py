"""Readiness probing of component HTTP health endpoints."""

import asyncio
import time
from typing import Callable, Optional, Protocol

import aiohttp

from ..core.components import get_spec
from ..core.enums import Component
from ..core.log import Logger, get_logger
from ..core.types import HealthStatus, TimeoutConfig


class HealthChecker(Protocol):
    """Protocol for readiness probes to enable dependency injection."""

    def check_health(self, url: str, timeout: float = 5.0) -> HealthStatus:
        """Probe one URL once."""

    def wait_until_ready(self, url: str, max_wait: float, interval: float) -> bool:
        """Poll a URL until it answers 200 or max_wait elapses."""


def readiness_url(component: Component, port: int, host: str = "localhost") -> str:
    return f"http://{host}:{port}{get_spec(component).readiness_path}"


class ServiceHealthChecker:
    """Probes component readiness endpoints over HTTP."""

    def __init__(
        self,
        logger: Optional[Logger] = None,
        timeout_config: Optional[TimeoutConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._logger = logger or get_logger(__name__)
        self._timeouts = timeout_config or TimeoutConfig()
        self._sleep = sleep
        self._clock = clock

    def check_health(self, url: str, timeout: float = 5.0) -> HealthStatus:
        """Single probe; never raises, failures are reported in the status."""
        start_time = time.time()
        try:
            return asyncio.run(self._async_health_check(url, timeout))
        except (aiohttp.ClientError, OSError, RuntimeError) as e:
            return HealthStatus(
                is_healthy=False,
                response_time=time.time() - start_time,
                error_message=f"Health check error: {e}",
            )

    async def _async_health_check(self, url: str, timeout: float) -> HealthStatus:
        start_time = time.time()
        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=timeout)
            ) as session:
                async with session.get(url) as response:
                    response_time = time.time() - start_time
                    if response.status == 200:
                        return HealthStatus(
                            is_healthy=True,
                            response_time=response_time,
                            status_code=response.status,
                        )
                    return HealthStatus(
                        is_healthy=False,
                        response_time=response_time,
                        status_code=response.status,
                        error_message=f"HTTP {response.status}: {response.reason}",
                    )
        except asyncio.TimeoutError:
            return HealthStatus(
                is_healthy=False,
                response_time=time.time() - start_time,
                error_message="Connection timeout",
            )
        except (aiohttp.ClientError, OSError) as e:
            return HealthStatus(
                is_healthy=False,
                response_time=time.time() - start_time,
                error_message=f"Connection error: {e}",
            )

    def wait_until_ready(self, url: str, max_wait: float, interval: float) -> bool:
        """Poll url every interval seconds for at most max_wait seconds.

        Returns:
            True once the endpoint answers 200, False on timeout
        """
        deadline = self._clock() + max_wait
        attempt = 0
        while True:
            attempt += 1
            status = self.check_health(url, timeout=self._timeouts.health_check)
            if status.is_healthy:
                self._logger.debug("%s ready after %d probe(s)", url, attempt)
                return True
            self._logger.debug("Probe %d of %s: %s", attempt, url, status.error_message)
            if self._clock() + interval > deadline:
                return False
            self._sleep(interval)
