"""Tests for the native process substrate."""

from pathlib import Path
from typing import Dict, Set
from unittest.mock import Mock, patch

import pytest

from alloykit.core.enums import UnitState
from alloykit.core.errors import ProcessError, SubstrateError
from alloykit.core.types import TimeoutConfig
from alloykit.orchestration.native import NativeSubstrate, volume_dir
from alloykit.orchestration.substrate import UnitSpec


class TestNativeSubstrate:
    """PID-file tracked units under a shared state directory."""

    @pytest.fixture(autouse=True)
    def _prepare(self, tmp_path: Path):
        self.state_dir = tmp_path / "state"
        self.alive: Set[int] = set()
        self.started: Dict[int, float] = {}
        self.executor = Mock()
        self.executor.spawn_detached.side_effect = self._spawn
        self.next_pid = 4000
        self.substrate = NativeSubstrate(self.state_dir, self.executor, TimeoutConfig(unit_stop=3.0))
        self.spec = UnitSpec(
            name="obs-loki-prod",
            component="loki",
            instance="prod",
            command=(str(tmp_path / "bin" / "loki"), "-config.file=loki.yml"),
            workdir=tmp_path,
            log_file=tmp_path / "logs" / "loki.log",
            ports={3100: 3100},
            volume="obs_loki_data_prod",
        )
        with patch("alloykit.orchestration.native.is_process_alive", side_effect=self.alive.__contains__), \
                patch("alloykit.orchestration.native.process_create_time", side_effect=self.started.get), \
                patch("alloykit.orchestration.native.terminate_process_tree", side_effect=self._terminate) as term:
            self.terminate = term
            yield

    def _spawn(self, command, log_file, cwd=None, env=None) -> int:
        self.next_pid += 1
        self.alive.add(self.next_pid)
        self.started[self.next_pid] = 1700000000.0 + self.next_pid
        return self.next_pid

    def _terminate(self, pid: int, timeout: float) -> bool:
        self.alive.discard(pid)
        return True

    def test_run_unit_records_and_starts(self) -> None:
        self.substrate.run_unit(self.spec)

        assert self.substrate.unit_state("obs-loki-prod") == UnitState.RUNNING
        assert volume_dir(self.state_dir, "obs_loki_data_prod").is_dir()
        units = self.substrate.list_units()
        assert len(units) == 1
        assert units[0].status == "running (pid 4001)"
        assert units[0].ports == "0.0.0.0:3100"
        command = self.executor.spawn_detached.call_args[0][0]
        assert command[-1] == "-config.file=loki.yml"

    def test_units_are_discoverable_from_a_fresh_substrate(self) -> None:
        self.substrate.run_unit(self.spec)
        other = NativeSubstrate(self.state_dir, Mock())
        assert [u.name for u in other.list_units()] == ["obs-loki-prod"]
        assert [v.name for v in other.list_volumes()] == ["obs_loki_data_prod"]

    def test_stop_then_start(self) -> None:
        self.substrate.run_unit(self.spec)

        self.substrate.stop_unit("obs-loki-prod")
        assert self.substrate.unit_state("obs-loki-prod") == UnitState.STOPPED
        self.terminate.assert_called_once_with(4001, timeout=3.0)

        self.substrate.start_unit("obs-loki-prod")
        assert self.substrate.unit_state("obs-loki-prod") == UnitState.RUNNING
        assert self.executor.spawn_detached.call_count == 2

    def test_start_running_unit_is_noop(self) -> None:
        self.substrate.run_unit(self.spec)
        self.substrate.start_unit("obs-loki-prod")
        assert self.executor.spawn_detached.call_count == 1

    def test_dead_process_reads_as_stopped(self) -> None:
        self.substrate.run_unit(self.spec)
        self.alive.clear()
        assert self.substrate.unit_state("obs-loki-prod") == UnitState.STOPPED

    def test_pid_file_records_start_time(self) -> None:
        self.substrate.run_unit(self.spec)
        pid_file = self.state_dir / "units" / "obs-loki-prod.pid"
        assert pid_file.read_text().split() == ["4001", "1700004001.0"]

    def test_reused_pid_is_not_the_unit(self) -> None:
        self.substrate.run_unit(self.spec)
        # PID 4001 now belongs to an unrelated process started later
        self.started[4001] = 1800000000.0
        pid_file = self.state_dir / "units" / "obs-loki-prod.pid"

        assert self.substrate.unit_state("obs-loki-prod") == UnitState.STOPPED
        assert not pid_file.exists()

    def test_reused_pid_is_not_killed_on_stop(self) -> None:
        self.substrate.run_unit(self.spec)
        self.started[4001] = 1800000000.0

        self.substrate.stop_unit("obs-loki-prod")

        self.terminate.assert_not_called()
        assert 4001 in self.alive
        assert self.substrate.list_units()[0].state == UnitState.STOPPED

    def test_pid_file_without_start_time_is_untrusted(self) -> None:
        self.substrate.run_unit(self.spec)
        (self.state_dir / "units" / "obs-loki-prod.pid").write_text("4001\n")

        assert self.substrate.unit_state("obs-loki-prod") == UnitState.STOPPED
        self.substrate.remove_unit("obs-loki-prod")
        self.terminate.assert_not_called()

    def test_stop_failure(self) -> None:
        self.substrate.run_unit(self.spec)
        self.terminate.side_effect = None
        self.terminate.return_value = False
        with pytest.raises(SubstrateError, match="did not exit"):
            self.substrate.stop_unit("obs-loki-prod")

    def test_spawn_failure_becomes_substrate_error(self) -> None:
        self.executor.spawn_detached.side_effect = ProcessError("exec format error")
        with pytest.raises(SubstrateError) as exc_info:
            self.substrate.run_unit(self.spec)
        assert exc_info.value.unit == "obs-loki-prod"

    def test_remove_unit_and_volume(self) -> None:
        self.substrate.run_unit(self.spec)

        self.substrate.remove_unit("obs-loki-prod")
        self.substrate.remove_volume("obs_loki_data_prod")

        assert self.substrate.unit_state("obs-loki-prod") == UnitState.ABSENT
        assert self.substrate.list_units() == []
        assert self.substrate.list_volumes() == []

    def test_remove_unknown_unit(self) -> None:
        with pytest.raises(SubstrateError, match="does not exist"):
            self.substrate.remove_unit("obs-loki-prod")

    def test_empty_state_dir(self) -> None:
        assert self.substrate.list_units() == []
        assert self.substrate.list_volumes() == []
        assert self.substrate.ensure_network("obs-network-prod") is False

    def test_logs_require_log_file(self) -> None:
        self.substrate.run_unit(self.spec)
        with pytest.raises(SubstrateError, match="No log file"):
            self.substrate.stream_logs("obs-loki-prod")

    def test_logs_tail_recorded_file(self) -> None:
        self.substrate.run_unit(self.spec)
        self.spec.log_file.parent.mkdir(parents=True)
        self.spec.log_file.write_text("ready\n")
        self.executor.stream.return_value = 0

        assert self.substrate.stream_logs("obs-loki-prod", follow=False) == 0
        args = list(self.executor.stream.call_args[0][0].args)
        assert args == ["-n", "100", str(self.spec.log_file)]

    def test_collector_path_is_host_path(self) -> None:
        assert self.substrate.collector_path("/var/log/app.log") == "/var/log/app.log"
