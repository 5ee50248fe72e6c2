"""Podman container substrate."""

import json
from typing import Any, Dict, List, Optional

from ..core.enums import SubstrateKind, UnitState
from ..core.errors import ProcessError, SubstrateError
from ..core.log import Logger, get_logger, log_unit_event
from ..core.naming import UNIT_PREFIX, parse_unit_name, parse_volume_name
from ..core.process import CommandSpec, ProcessExecutor, ProcessResult
from ..core.types import TimeoutConfig, UnitInfo, VolumeInfo
from .substrate import UnitSpec

HOST_ROOT_MOUNT = "/host/root"


def _format_ports(raw_ports: Any) -> str:
    """Render podman's port list as `0.0.0.0:3000->3000/tcp, ...`."""
    if not raw_ports:
        return ""
    if isinstance(raw_ports, str):
        return raw_ports
    rendered = []
    for port in raw_ports:
        host_ip = port.get("host_ip") or "0.0.0.0"
        host_port = port.get("host_port")
        container_port = port.get("container_port")
        protocol = port.get("protocol", "tcp")
        rendered.append(f"{host_ip}:{host_port}->{container_port}/{protocol}")
    return ", ".join(rendered)


def _container_name(entry: Dict[str, Any]) -> str:
    names = entry.get("Names") or entry.get("Name") or ""
    if isinstance(names, list):
        return names[0] if names else ""
    return names


def _state_from_podman(state: str) -> UnitState:
    return UnitState.RUNNING if state.lower() == "running" else UnitState.STOPPED


class PodmanSubstrate:
    """Runs units as Podman containers.

    Every call is a structured `podman` invocation with a declared timeout;
    failures surface as SubstrateError naming the unit.
    """

    kind = SubstrateKind.CONTAINER

    def __init__(
        self,
        executor: Optional[ProcessExecutor] = None,
        timeouts: Optional[TimeoutConfig] = None,
        logger: Optional[Logger] = None,
        binary: str = "podman",
    ) -> None:
        self._executor = executor or ProcessExecutor()
        self._timeouts = timeouts or TimeoutConfig()
        self._logger = logger or get_logger(__name__)
        self._binary = binary

    def _run(self, *args: str, unit: Optional[str] = None,
             timeout: Optional[float] = None) -> ProcessResult:
        spec = CommandSpec(
            self._binary,
            tuple(args),
            timeout=timeout if timeout is not None else self._timeouts.substrate_command,
        )
        try:
            return self._executor.run(spec)
        except ProcessError as e:
            raise SubstrateError(f"{spec} failed: {e}", unit=unit) from e

    def _check(self, result: ProcessResult, action: str, unit: Optional[str] = None) -> ProcessResult:
        if not result.ok:
            message = result.stderr.strip() or result.stdout.strip() or f"exit {result.returncode}"
            raise SubstrateError(f"Failed to {action}: {message}", unit=unit)
        return result

    def preflight(self) -> None:
        try:
            result = self._run("info", timeout=self._timeouts.preflight)
        except SubstrateError as e:
            raise SubstrateError(
                "Podman is not installed or not on PATH. Install podman and retry."
            ) from e
        if not result.ok:
            raise SubstrateError(
                f"Podman is installed but not working: {result.stderr.strip()}"
            )

    def list_units(self) -> List[UnitInfo]:
        result = self._check(
            self._run("ps", "-a", "--filter", f"name=^{UNIT_PREFIX}-", "--format", "json"),
            "list containers",
        )
        try:
            entries = json.loads(result.stdout or "[]") or []
        except json.JSONDecodeError as e:
            raise SubstrateError(f"Unexpected podman ps output: {e}") from e

        units: List[UnitInfo] = []
        for entry in entries:
            name = _container_name(entry)
            parsed = parse_unit_name(name)
            if parsed is None:
                continue
            units.append(
                UnitInfo(
                    name=name,
                    component=parsed.component,
                    instance=parsed.instance,
                    state=_state_from_podman(entry.get("State", "")),
                    status=entry.get("Status", "") or entry.get("State", ""),
                    ports=_format_ports(entry.get("Ports")),
                    image=entry.get("Image", ""),
                )
            )
        return sorted(units, key=lambda unit: unit.name)

    def list_volumes(self) -> List[VolumeInfo]:
        result = self._check(
            self._run("volume", "ls", "--format", "{{.Name}}"), "list volumes"
        )
        volumes = []
        for line in result.stdout.splitlines():
            name = line.strip()
            parsed = parse_volume_name(name)
            if parsed is not None:
                volumes.append(
                    VolumeInfo(name=name, component=parsed.component, instance=parsed.instance)
                )
        return sorted(volumes, key=lambda volume: volume.name)

    def unit_state(self, name: str) -> UnitState:
        result = self._run("inspect", "--format", "{{.State.Status}}", name, unit=name)
        if not result.ok:
            return UnitState.ABSENT
        return _state_from_podman(result.stdout.strip())

    def ensure_network(self, name: str) -> bool:
        if self._run("network", "exists", name).ok:
            self._logger.info("Network %s already exists", name)
            return False
        self._check(self._run("network", "create", name), f"create network {name}")
        self._logger.info("Created network %s", name)
        return True

    def remove_network(self, name: str) -> None:
        if not self._run("network", "exists", name).ok:
            return
        self._check(self._run("network", "rm", name), f"remove network {name}")

    def run_unit(self, spec: UnitSpec) -> None:
        args: List[str] = ["run", "-d", "--name", spec.name, "--replace"]
        if spec.user:
            args.append(f"--user={spec.user}")
        if spec.network:
            args.extend(["--network", spec.network])
        if spec.privileged:
            args.append("--privileged")
        for host_port, unit_port in spec.ports.items():
            args.extend(["-p", f"{host_port}:{unit_port}"])
        for mount in spec.mounts:
            args.extend(["-v", mount.as_podman_arg()])
        for key, value in spec.env.items():
            args.extend(["-e", f"{key}={value}"])
        args.append(spec.image)
        args.extend(spec.args)

        self._check(
            self._run(*args, unit=spec.name, timeout=self._timeouts.image_pull),
            f"start container {spec.name}",
            unit=spec.name,
        )
        log_unit_event(self._logger, "created", spec.name, image=spec.image)

    def start_unit(self, name: str) -> None:
        self._check(self._run("start", name, unit=name), f"start {name}", unit=name)
        log_unit_event(self._logger, "started", name)

    def stop_unit(self, name: str) -> None:
        stop_timeout = str(int(self._timeouts.unit_stop))
        self._check(
            self._run(
                "stop", "-t", stop_timeout, name,
                unit=name,
                timeout=self._timeouts.substrate_command + self._timeouts.unit_stop,
            ),
            f"stop {name}",
            unit=name,
        )
        log_unit_event(self._logger, "stopped", name)

    def restart_unit(self, name: str) -> None:
        self._check(
            self._run(
                "restart", name,
                unit=name,
                timeout=self._timeouts.substrate_command + self._timeouts.unit_stop,
            ),
            f"restart {name}",
            unit=name,
        )
        log_unit_event(self._logger, "restarted", name)

    def remove_unit(self, name: str) -> None:
        self._check(self._run("rm", "-f", name, unit=name), f"remove {name}", unit=name)
        log_unit_event(self._logger, "removed", name)

    def remove_volume(self, name: str) -> None:
        self._check(
            self._run("volume", "rm", name, unit=name), f"remove volume {name}", unit=name
        )
        self._logger.info("Removed volume %s", name)

    def stream_logs(self, name: str, follow: bool = True, tail: int = 100) -> int:
        args = ["logs", "--tail", str(tail)]
        if follow:
            args.append("-f")
        args.append(name)
        try:
            return self._executor.stream(CommandSpec(self._binary, tuple(args), timeout=None))
        except ProcessError as e:
            raise SubstrateError(f"Failed to read logs for {name}: {e}", unit=name) from e

    def collector_path(self, host_path: str) -> str:
        return f"{HOST_ROOT_MOUNT}{host_path}"

    def image_exists(self, image: str) -> bool:
        return self._run("image", "exists", image).ok

    def pull_image(self, image: str) -> bool:
        result = self._run("pull", image, timeout=self._timeouts.image_pull)
        if not result.ok:
            self._logger.warning("Pull of %s failed: %s", image, result.stderr.strip())
        return result.ok
