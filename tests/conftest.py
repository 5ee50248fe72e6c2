"""Shared fixtures for AlloyKit tests.

FakeSubstrate is an in-memory unit engine. It lets fleet, installer and
reconfiguration workflows run without Podman or real processes.
"""

import logging
from pathlib import Path
from typing import Dict, Generator, List, Optional, Set, Tuple

import pytest

from alloykit.core.enums import SubstrateKind, UnitState
from alloykit.core.errors import SubstrateError, UnitNotFoundError
from alloykit.core.log import reset_logging, shutdown_logging
from alloykit.core.naming import parse_unit_name, parse_volume_name, unit_name, volume_name
from alloykit.core.types import AlloyKitConfig, TimeoutConfig, UnitInfo, VolumeInfo
from alloykit.orchestration.substrate import UnitSpec


class FakeSubstrate:
    """In-memory substrate recording every call."""

    kind = SubstrateKind.CONTAINER

    def __init__(self) -> None:
        self.units: Dict[str, UnitState] = {}
        self.volumes: Set[str] = set()
        self.networks: Set[str] = set()
        self.specs: Dict[str, UnitSpec] = {}
        self.calls: List[Tuple[str, str]] = []
        self.failures: Dict[Tuple[str, str], str] = {}

    def fail(self, operation: str, name: str, message: str = "boom") -> None:
        self.failures[(operation, name)] = message

    def add_unit(self, component: str, instance: str,
                 state: UnitState = UnitState.RUNNING, with_volume: bool = True) -> str:
        name = unit_name(component, instance)
        self.units[name] = state
        if with_volume:
            self.volumes.add(volume_name(component, instance))
        return name

    def _record(self, operation: str, name: str) -> None:
        self.calls.append((operation, name))
        if (operation, name) in self.failures:
            raise SubstrateError(self.failures[(operation, name)], unit=name)

    def _require(self, name: str) -> None:
        if name not in self.units:
            raise UnitNotFoundError(f"Unit {name} does not exist", unit=name)

    def preflight(self) -> None:
        self._record("preflight", "")

    def list_units(self) -> List[UnitInfo]:
        units = []
        for name, state in sorted(self.units.items()):
            parsed = parse_unit_name(name)
            units.append(
                UnitInfo(
                    name=name,
                    component=parsed.component,
                    instance=parsed.instance,
                    state=state,
                    status=state.value,
                )
            )
        return units

    def list_volumes(self) -> List[VolumeInfo]:
        volumes = []
        for name in sorted(self.volumes):
            parsed = parse_volume_name(name)
            volumes.append(VolumeInfo(name=name, component=parsed.component, instance=parsed.instance))
        return volumes

    def unit_state(self, name: str) -> UnitState:
        return self.units.get(name, UnitState.ABSENT)

    def ensure_network(self, name: str) -> bool:
        self._record("ensure_network", name)
        created = name not in self.networks
        self.networks.add(name)
        return created

    def remove_network(self, name: str) -> None:
        self._record("remove_network", name)
        self.networks.discard(name)

    def run_unit(self, spec: UnitSpec) -> None:
        self._record("run", spec.name)
        self.specs[spec.name] = spec
        self.units[spec.name] = UnitState.RUNNING
        if spec.volume:
            self.volumes.add(spec.volume)

    def start_unit(self, name: str) -> None:
        self._record("start", name)
        self._require(name)
        self.units[name] = UnitState.RUNNING

    def stop_unit(self, name: str) -> None:
        self._record("stop", name)
        self._require(name)
        self.units[name] = UnitState.STOPPED

    def restart_unit(self, name: str) -> None:
        self._record("restart", name)
        self._require(name)
        self.units[name] = UnitState.RUNNING

    def remove_unit(self, name: str) -> None:
        self._record("remove", name)
        self._require(name)
        del self.units[name]

    def remove_volume(self, name: str) -> None:
        self._record("remove_volume", name)
        self.volumes.discard(name)

    def stream_logs(self, name: str, follow: bool = True, tail: int = 100) -> int:
        self._record("logs", name)
        return 0

    def collector_path(self, host_path: str) -> str:
        return f"/host/root{host_path}"


class FakeHealthChecker:
    """Readiness prober with a fixed answer."""

    def __init__(self, ready: bool = True) -> None:
        self.ready = ready
        self.urls: List[str] = []

    def check_health(self, url: str, timeout: float = 5.0):
        raise NotImplementedError

    def wait_until_ready(self, url: str, max_wait: float, interval: float) -> bool:
        self.urls.append(url)
        return self.ready


@pytest.fixture
def fake_substrate() -> FakeSubstrate:
    return FakeSubstrate()


@pytest.fixture
def fake_health() -> FakeHealthChecker:
    return FakeHealthChecker()


@pytest.fixture
def fast_timeouts() -> TimeoutConfig:
    return TimeoutConfig(
        download_poll_interval=0.01,
        readiness_poll_interval=0.01,
        readiness_max_wait=0.05,
        install_readiness_attempts=1,
        restart_settle=0.0,
        config_lock=0.5,
    )


@pytest.fixture
def make_config(tmp_path: Path, fast_timeouts: TimeoutConfig):
    """Factory for configs rooted in the test's temp directory."""

    def factory(instance: str = "default", **overrides) -> AlloyKitConfig:
        values = {
            "instance_name": instance,
            "install_dir": tmp_path / "alloykit",
            "native_state_dir": tmp_path / "state",
            "timeouts": fast_timeouts,
        }
        values.update(overrides)
        return AlloyKitConfig(**values)

    return factory


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Keep ALLOYKIT_* variables from the developer's shell out of tests."""
    import os

    for key in list(os.environ):
        if key.startswith("ALLOYKIT_"):
            monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture(autouse=True)
def reset_log_configuration() -> Generator[None, None, None]:
    """Drop handlers attached by CLI runs and installs between tests."""
    yield
    reset_logging()


def pytest_sessionfinish(session, exitstatus: int) -> None:
    shutdown_logging()
    logging.shutdown()
