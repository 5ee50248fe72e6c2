"""Tests for the Podman container substrate."""

import json
from unittest.mock import Mock

import pytest

from alloykit.core.enums import UnitState
from alloykit.core.errors import ProcessError, ProcessTimeoutError, SubstrateError
from alloykit.core.process import ProcessResult
from alloykit.core.types import TimeoutConfig
from alloykit.orchestration.podman import PodmanSubstrate
from alloykit.orchestration.substrate import Mount, UnitSpec


def _result(returncode: int = 0, stdout: str = "", stderr: str = "") -> ProcessResult:
    return ProcessResult(returncode=returncode, stdout=stdout, stderr=stderr, duration=0.01)


PS_OUTPUT = json.dumps(
    [
        {
            "Names": ["obs-loki-prod"],
            "State": "running",
            "Status": "Up 2 hours",
            "Image": "docker.io/grafana/loki:3.5.1",
            "Ports": [{"host_ip": "", "host_port": 3100, "container_port": 3100, "protocol": "tcp"}],
        },
        {"Names": ["obs-alloy-prod2"], "State": "exited", "Status": "Exited (0)", "Image": "alloy"},
        {"Names": ["obs-unrelated"], "State": "running"},
    ]
)


class TestPodmanSubstrate:
    """Podman invocations and output parsing."""

    def setup_method(self) -> None:
        self.executor = Mock()
        self.executor.run.return_value = _result()
        self.timeouts = TimeoutConfig(substrate_command=30.0, unit_stop=10.0, image_pull=600.0)
        self.podman = PodmanSubstrate(self.executor, self.timeouts)

    def _argv(self, call_index: int = -1):
        return list(self.executor.run.call_args_list[call_index][0][0].args)

    def _timeout(self, call_index: int = -1):
        return self.executor.run.call_args_list[call_index][0][0].timeout

    def test_list_units_parses_json(self) -> None:
        self.executor.run.return_value = _result(stdout=PS_OUTPUT)

        units = self.podman.list_units()

        assert [u.name for u in units] == ["obs-alloy-prod2", "obs-loki-prod"]
        alloy, loki = units
        assert alloy.state == UnitState.STOPPED
        assert alloy.instance == "prod2"
        assert loki.state == UnitState.RUNNING
        assert loki.ports == "0.0.0.0:3100->3100/tcp"
        assert self._argv()[:4] == ["ps", "-a", "--filter", "name=^obs-"]

    def test_list_units_empty_output(self) -> None:
        self.executor.run.return_value = _result(stdout="")
        assert self.podman.list_units() == []

    def test_list_units_bad_json(self) -> None:
        self.executor.run.return_value = _result(stdout="not json")
        with pytest.raises(SubstrateError, match="Unexpected podman ps output"):
            self.podman.list_units()

    def test_list_volumes_filters_foreign(self) -> None:
        self.executor.run.return_value = _result(
            stdout="obs_loki_data_prod\nsomething_else\nobs_grafana_data_dev\n"
        )
        assert [v.name for v in self.podman.list_volumes()] == [
            "obs_grafana_data_dev",
            "obs_loki_data_prod",
        ]

    def test_unit_state(self) -> None:
        self.executor.run.return_value = _result(stdout="running\n")
        assert self.podman.unit_state("obs-loki-prod") == UnitState.RUNNING
        self.executor.run.return_value = _result(returncode=125, stderr="no such container")
        assert self.podman.unit_state("obs-loki-prod") == UnitState.ABSENT

    def test_run_unit_builds_arguments(self) -> None:
        spec = UnitSpec(
            name="obs-alloy-prod",
            component="alloy",
            instance="prod",
            image="docker.io/grafana/alloy:v1.9.2",
            args=("run", "/etc/alloy/config.alloy"),
            network="obs-network-prod",
            ports={12345: 12345},
            mounts=(
                Mount("/opt/alloykit/config/alloy.alloy", "/etc/alloy/config.alloy", read_only=True),
                Mount("obs_alloy_data_prod", "/var/lib/alloy/data", named_volume=True),
            ),
            privileged=True,
            user="root",
        )

        self.podman.run_unit(spec)

        assert self._argv() == [
            "run", "-d", "--name", "obs-alloy-prod", "--replace",
            "--user=root",
            "--network", "obs-network-prod",
            "--privileged",
            "-p", "12345:12345",
            "-v", "/opt/alloykit/config/alloy.alloy:/etc/alloy/config.alloy:ro",
            "-v", "obs_alloy_data_prod:/var/lib/alloy/data",
            "docker.io/grafana/alloy:v1.9.2",
            "run", "/etc/alloy/config.alloy",
        ]
        assert self._timeout() == 600.0

    def test_failure_names_unit_and_stderr(self) -> None:
        self.executor.run.return_value = _result(returncode=125, stderr="port already allocated\n")

        with pytest.raises(SubstrateError) as exc_info:
            self.podman.start_unit("obs-grafana-prod")

        assert exc_info.value.unit == "obs-grafana-prod"
        assert "port already allocated" in str(exc_info.value)

    def test_stop_uses_grace_period(self) -> None:
        self.podman.stop_unit("obs-loki-prod")
        assert self._argv() == ["stop", "-t", "10", "obs-loki-prod"]
        assert self._timeout() == 40.0

    def test_command_timeout_becomes_substrate_error(self) -> None:
        self.executor.run.side_effect = ProcessTimeoutError("podman start timed out", timeout=30.0)
        with pytest.raises(SubstrateError) as exc_info:
            self.podman.start_unit("obs-loki-prod")
        assert exc_info.value.unit == "obs-loki-prod"

    def test_ensure_network_reuses_existing(self) -> None:
        assert self.podman.ensure_network("obs-network-prod") is False
        assert self.executor.run.call_count == 1

    def test_ensure_network_creates_missing(self) -> None:
        self.executor.run.side_effect = [_result(returncode=1), _result()]
        assert self.podman.ensure_network("obs-network-prod") is True
        assert self._argv() == ["network", "create", "obs-network-prod"]

    def test_remove_missing_network_is_noop(self) -> None:
        self.executor.run.return_value = _result(returncode=1)
        self.podman.remove_network("obs-network-prod")
        assert self.executor.run.call_count == 1

    def test_preflight_missing_binary(self) -> None:
        self.executor.run.side_effect = ProcessError("podman: command not found")
        with pytest.raises(SubstrateError, match="not installed"):
            self.podman.preflight()

    def test_preflight_broken_engine(self) -> None:
        self.executor.run.return_value = _result(returncode=125, stderr="cannot connect")
        with pytest.raises(SubstrateError, match="not working: cannot connect"):
            self.podman.preflight()

    def test_logs_follow(self) -> None:
        self.executor.stream.return_value = 0
        assert self.podman.stream_logs("obs-loki-prod") == 0
        spec = self.executor.stream.call_args[0][0]
        assert list(spec.args) == ["logs", "--tail", "100", "-f", "obs-loki-prod"]
        assert spec.timeout is None

    def test_collector_path_maps_host_root(self) -> None:
        assert self.podman.collector_path("/var/log/nginx/*.log") == "/host/root/var/log/nginx/*.log"
