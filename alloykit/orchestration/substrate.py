"""Substrate interface: the engine that runs component units.

The substrate is the single source of truth for unit state. Nothing above it
caches unit handles; every fleet operation re-derives names and asks again.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

from ..core.enums import SubstrateKind, UnitState
from ..core.types import UnitInfo, VolumeInfo


@dataclass(frozen=True)
class Mount:
    """Bind mount or named volume attached to a unit."""

    source: str
    target: str
    read_only: bool = False
    named_volume: bool = False

    def as_podman_arg(self) -> str:
        suffix = ":ro" if self.read_only else ""
        return f"{self.source}:{self.target}{suffix}"


@dataclass(frozen=True)
class UnitSpec:
    """Everything a substrate needs to create and start one unit."""

    name: str
    component: str
    instance: str
    # Container substrate
    image: str = ""
    args: Tuple[str, ...] = field(default_factory=tuple)
    network: Optional[str] = None
    ports: Dict[int, int] = field(default_factory=dict)  # host -> unit
    mounts: Tuple[Mount, ...] = field(default_factory=tuple)
    env: Dict[str, str] = field(default_factory=dict)
    privileged: bool = False
    user: Optional[str] = None
    # Native substrate
    command: Tuple[str, ...] = field(default_factory=tuple)
    workdir: Optional[Path] = None
    log_file: Optional[Path] = None
    volume: Optional[str] = None


class Substrate(Protocol):
    """Protocol for unit engines (Podman containers or native processes)."""

    kind: SubstrateKind

    def preflight(self) -> None:
        """Verify the engine is usable. Raises SubstrateError if not."""

    def list_units(self) -> List[UnitInfo]:
        """All AlloyKit units known to the engine, across instances."""

    def list_volumes(self) -> List[VolumeInfo]:
        """All AlloyKit data volumes, across instances."""

    def unit_state(self, name: str) -> UnitState:
        """Current state of one unit; ABSENT if unknown."""

    def ensure_network(self, name: str) -> bool:
        """Create the network if missing. Returns True if it was created."""

    def remove_network(self, name: str) -> None:
        """Remove a network; missing networks are not an error."""

    def run_unit(self, spec: UnitSpec) -> None:
        """Create (replacing any previous definition) and start a unit."""

    def start_unit(self, name: str) -> None:
        """Start an existing unit."""

    def stop_unit(self, name: str) -> None:
        """Stop a unit; stopping a stopped unit is not an error."""

    def restart_unit(self, name: str) -> None:
        """Restart one unit."""

    def remove_unit(self, name: str) -> None:
        """Delete a unit definition."""

    def remove_volume(self, name: str) -> None:
        """Delete a data volume."""

    def stream_logs(self, name: str, follow: bool = True, tail: int = 100) -> int:
        """Stream a unit's output to the terminal; returns the exit code."""

    def collector_path(self, host_path: str) -> str:
        """Translate a host path to the path the collector unit sees."""
