"""Tests for readiness probing."""

from unittest.mock import Mock, patch

from alloykit.core.enums import Component
from alloykit.core.types import HealthStatus, TimeoutConfig
from alloykit.orchestration.health_checker import ServiceHealthChecker, readiness_url

HEALTHY = HealthStatus(is_healthy=True, response_time=0.01, status_code=200)
UNHEALTHY = HealthStatus(is_healthy=False, response_time=0.01, error_message="Connection error")


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


class TestReadinessUrl:
    def test_paths_per_component(self) -> None:
        assert readiness_url(Component.PROMETHEUS, 9090) == "http://localhost:9090/-/ready"
        assert readiness_url(Component.LOKI, 3100) == "http://localhost:3100/ready"
        assert readiness_url(Component.GRAFANA, 3001) == "http://localhost:3001/api/health"
        assert readiness_url(Component.ALLOY, 12345) == "http://localhost:12345/-/ready"


class TestServiceHealthChecker:
    """Polling until ready or out of time."""

    def setup_method(self) -> None:
        self.clock = FakeClock()
        self.checker = ServiceHealthChecker(
            timeout_config=TimeoutConfig(health_check=1.0),
            sleep=self.clock.sleep,
            clock=self.clock,
        )

    def test_ready_on_first_probe(self) -> None:
        with patch.object(self.checker, "check_health", return_value=HEALTHY) as probe:
            assert self.checker.wait_until_ready("http://localhost:3100/ready", max_wait=10, interval=2)
        probe.assert_called_once_with("http://localhost:3100/ready", timeout=1.0)
        assert self.clock.now == 0.0

    def test_ready_after_retries(self) -> None:
        with patch.object(self.checker, "check_health", side_effect=[UNHEALTHY, UNHEALTHY, HEALTHY]):
            assert self.checker.wait_until_ready("http://x/ready", max_wait=10, interval=2)
        assert self.clock.now == 4.0

    def test_times_out(self) -> None:
        probe = Mock(return_value=UNHEALTHY)
        with patch.object(self.checker, "check_health", probe):
            assert not self.checker.wait_until_ready("http://x/ready", max_wait=5, interval=2)
        assert probe.call_count == 3
        assert self.clock.now <= 5

    def test_connection_refused_is_unhealthy(self) -> None:
        status = ServiceHealthChecker(timeout_config=TimeoutConfig()).check_health(
            "http://127.0.0.1:1/ready", timeout=0.5
        )
        assert not status.is_healthy
        assert status.error_message
