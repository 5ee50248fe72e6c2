"""Native process substrate.

Units are plain processes started from unpacked release binaries. A shared
state directory records each unit so it can be discovered by name alone:

    <state_dir>/units/<unit>.json   launch record (command, cwd, log file)
    <state_dir>/units/<unit>.pid    PID and start time of the running process
    <state_dir>/volumes/<volume>/   data directory standing in for a volume
"""

import json
import platform
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..core.components import normalize_arch
from ..core.enums import SubstrateKind, UnitState
from ..core.errors import FilesystemError, ProcessError, SubstrateError
from ..core.log import Logger, get_logger, log_unit_event
from ..core.naming import parse_unit_name, parse_volume_name
from ..core.process import (
    CommandSpec,
    ProcessExecutor,
    is_process_alive,
    process_create_time,
    terminate_process_tree,
)
from ..core.types import TimeoutConfig, UnitInfo, VolumeInfo
from ..utils.filesystem import atomic_write, ensure_dir, safe_remove
from .substrate import UnitSpec

_START_TIME_TOLERANCE = 0.01


def volume_dir(state_dir: Path, volume: str) -> Path:
    return Path(state_dir) / "volumes" / volume


def platform_os() -> str:
    return platform.system().lower()


def platform_arch() -> str:
    return normalize_arch(platform.machine())


class NativeSubstrate:
    """Runs units as detached host processes tracked through PID files."""

    kind = SubstrateKind.NATIVE

    def __init__(
        self,
        state_dir: Path,
        executor: Optional[ProcessExecutor] = None,
        timeouts: Optional[TimeoutConfig] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self._state_dir = Path(state_dir)
        self._executor = executor or ProcessExecutor()
        self._timeouts = timeouts or TimeoutConfig()
        self._logger = logger or get_logger(__name__)

    @property
    def units_dir(self) -> Path:
        return self._state_dir / "units"

    @property
    def volumes_dir(self) -> Path:
        return self._state_dir / "volumes"

    def _record_path(self, name: str) -> Path:
        return self.units_dir / f"{name}.json"

    def _pid_path(self, name: str) -> Path:
        return self.units_dir / f"{name}.pid"

    def _read_record(self, name: str) -> Dict[str, Any]:
        path = self._record_path(name)
        if not path.exists():
            raise SubstrateError(f"Unit {name} does not exist", unit=name)
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise SubstrateError(f"Corrupt unit record {path}: {e}", unit=name) from e

    def _read_pid(self, name: str) -> Tuple[Optional[int], Optional[float]]:
        path = self._pid_path(name)
        try:
            fields = path.read_text(encoding="utf-8").split()
        except FileNotFoundError:
            return None, None
        except OSError as e:
            self._logger.warning("Ignoring unreadable PID file %s: %s", path, e)
            return None, None
        try:
            pid = int(fields[0])
            started = float(fields[1]) if len(fields) > 1 else None
        except (IndexError, ValueError):
            self._logger.warning("Ignoring malformed PID file %s", path)
            return None, None
        return pid, started

    def _running_pid(self, name: str) -> Optional[int]:
        """PID of the unit's process, or None.

        A PID is only trusted while the process it names has the start time
        recorded at spawn. A reused PID leaves a stale file, which is removed.
        """
        pid, started = self._read_pid(name)
        if pid is None or not is_process_alive(pid):
            return None
        actual = process_create_time(pid)
        if started is None or actual is None or abs(actual - started) > _START_TIME_TOLERANCE:
            self._logger.warning(
                "PID %s no longer belongs to %s, discarding stale PID file", pid, name
            )
            self._pid_path(name).unlink(missing_ok=True)
            return None
        return pid

    def preflight(self) -> None:
        try:
            platform_arch()
        except ValueError as e:
            raise SubstrateError(str(e)) from e
        try:
            ensure_dir(self.units_dir)
            ensure_dir(self.volumes_dir)
        except FilesystemError as e:
            raise SubstrateError(f"State directory is not writable: {e}") from e

    def list_units(self) -> List[UnitInfo]:
        if not self.units_dir.exists():
            return []
        units = []
        for record_path in sorted(self.units_dir.glob("*.json")):
            name = record_path.stem
            parsed = parse_unit_name(name)
            if parsed is None:
                continue
            try:
                record = self._read_record(name)
            except SubstrateError as e:
                self._logger.warning("%s", e)
                record = {}
            pid = self._running_pid(name)
            ports = ", ".join(f"0.0.0.0:{port}" for port in record.get("ports", []))
            units.append(
                UnitInfo(
                    name=name,
                    component=parsed.component,
                    instance=parsed.instance,
                    state=UnitState.RUNNING if pid else UnitState.STOPPED,
                    status=f"running (pid {pid})" if pid else "stopped",
                    ports=ports,
                    image=record.get("image", ""),
                )
            )
        return units

    def list_volumes(self) -> List[VolumeInfo]:
        if not self.volumes_dir.exists():
            return []
        volumes = []
        for path in sorted(self.volumes_dir.iterdir()):
            parsed = parse_volume_name(path.name)
            if path.is_dir() and parsed is not None:
                volumes.append(
                    VolumeInfo(name=path.name, component=parsed.component, instance=parsed.instance)
                )
        return volumes

    def unit_state(self, name: str) -> UnitState:
        if not self._record_path(name).exists():
            return UnitState.ABSENT
        return UnitState.RUNNING if self._running_pid(name) else UnitState.STOPPED

    def ensure_network(self, name: str) -> bool:
        # Native units share the host network
        return False

    def remove_network(self, name: str) -> None:
        return None

    def run_unit(self, spec: UnitSpec) -> None:
        if self._running_pid(spec.name):
            self.stop_unit(spec.name)
        if spec.volume:
            ensure_dir(volume_dir(self._state_dir, spec.volume))
        record = {
            "command": list(spec.command),
            "workdir": str(spec.workdir) if spec.workdir else None,
            "log_file": str(spec.log_file) if spec.log_file else None,
            "env": spec.env,
            "image": spec.image,
            "ports": sorted(spec.ports),
            "volume": spec.volume,
        }
        ensure_dir(self.units_dir)
        atomic_write(self._record_path(spec.name), json.dumps(record, indent=2))
        log_unit_event(self._logger, "created", spec.name)
        self.start_unit(spec.name)

    def start_unit(self, name: str) -> None:
        record = self._read_record(name)
        if self._running_pid(name):
            self._logger.info("Unit %s is already running", name)
            return
        if not record.get("command"):
            raise SubstrateError(f"Unit {name} has no command", unit=name)
        log_file = Path(record.get("log_file") or self.units_dir / f"{name}.log")
        workdir = Path(record["workdir"]) if record.get("workdir") else None
        try:
            pid = self._executor.spawn_detached(
                record["command"], log_file=log_file, cwd=workdir, env=record.get("env") or None
            )
        except ProcessError as e:
            raise SubstrateError(f"Failed to start {name}: {e}", unit=name) from e
        started = process_create_time(pid)
        atomic_write(self._pid_path(name), f"{pid} {started}\n" if started is not None else f"{pid}\n")
        log_unit_event(self._logger, "started", name, pid=pid)

    def stop_unit(self, name: str) -> None:
        pid = self._running_pid(name)
        if pid is not None:
            if not terminate_process_tree(pid, timeout=self._timeouts.unit_stop):
                raise SubstrateError(f"Process {pid} for {name} did not exit", unit=name)
        self._pid_path(name).unlink(missing_ok=True)
        log_unit_event(self._logger, "stopped", name)

    def restart_unit(self, name: str) -> None:
        self.stop_unit(name)
        self.start_unit(name)
        log_unit_event(self._logger, "restarted", name)

    def remove_unit(self, name: str) -> None:
        if not self._record_path(name).exists():
            raise SubstrateError(f"Unit {name} does not exist", unit=name)
        self.stop_unit(name)
        self._record_path(name).unlink(missing_ok=True)
        log_unit_event(self._logger, "removed", name)

    def remove_volume(self, name: str) -> None:
        try:
            removed = safe_remove(volume_dir(self._state_dir, name))
        except FilesystemError as e:
            raise SubstrateError(f"Failed to remove volume {name}: {e}", unit=name) from e
        if removed:
            self._logger.info("Removed volume %s", name)

    def stream_logs(self, name: str, follow: bool = True, tail: int = 100) -> int:
        record = self._read_record(name)
        log_file = record.get("log_file")
        if not log_file or not Path(log_file).exists():
            raise SubstrateError(f"No log file recorded for {name}", unit=name)
        tail_binary = shutil.which("tail") or "tail"
        args = ["-n", str(tail)]
        if follow:
            args.append("-F")
        args.append(log_file)
        try:
            return self._executor.stream(CommandSpec(tail_binary, tuple(args), timeout=None))
        except ProcessError as e:
            raise SubstrateError(f"Failed to read logs for {name}: {e}", unit=name) from e

    def collector_path(self, host_path: str) -> str:
        return host_path
