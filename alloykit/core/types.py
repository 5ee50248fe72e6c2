"""Core type definitions for AlloyKit."""

import re
from typing import Dict, List, Optional, Any
from pathlib import Path

from pydantic import BaseModel, Field, model_validator

from .enums import Component, UnitState, SubstrateKind, TaskOutcome, ReconfigState

_INSTANCE_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


class PortConfig(BaseModel):
    """Host port for each component of one instance."""

    grafana: int = 3000
    prometheus: int = 9090
    loki: int = 3100
    alloy: int = 12345

    def for_component(self, component: Component) -> int:
        return getattr(self, component.value)

    def as_dict(self) -> Dict[str, int]:
        return {c.value: self.for_component(c) for c in Component}


class TimeoutConfig(BaseModel):
    """Centralized timeout configuration to eliminate magical constants."""

    # Network timeouts
    http_connect: float = 10.0
    http_read: float = 30.0
    health_check: float = 5.0

    # Substrate command timeouts
    substrate_command: float = 30.0
    image_pull: float = 600.0
    preflight: float = 15.0
    unit_stop: float = 10.0

    # Polling
    download_poll_interval: float = 2.0
    readiness_poll_interval: float = 2.0
    readiness_max_wait: float = 30.0
    install_readiness_attempts: int = 60
    restart_settle: float = 2.0

    # Locking
    config_lock: float = 10.0


class RetryConfig(BaseModel):
    """Retry policy for transient operations."""

    max_attempts: int = 3
    delay: float = 2.0


class AlloyKitConfig(BaseModel):
    """Main configuration for one AlloyKit instance."""

    instance_name: str = "default"
    install_dir: Path = Path("./alloykit")
    substrate: SubstrateKind = SubstrateKind.CONTAINER
    ports: PortConfig = Field(default_factory=PortConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)

    # Artifacts downloaded for native installs; defaults to <install_dir>/../downloads
    download_dir: Optional[Path] = None
    # Native unit records (pid/spec files and data volumes), shared by all instances
    native_state_dir: Path = Path("~/.local/state/alloykit")

    grafana_admin_password: str = "admin"

    # Runtime configuration
    log_level: str = "INFO"
    verbose: int = 0

    @model_validator(mode="after")
    def validate_config(self) -> "AlloyKitConfig":
        """Validate configuration - NO SIDE EFFECTS.

        Checks that the configuration is internally consistent: instance name
        alphabet, port ranges, distinct ports and install path characters.
        Host-dependent checks (ports in use, directory creatable) live in
        core.validation and run separately before any install action.
        """
        from .errors import ConfigurationError

        errors: List[str] = []

        if not _INSTANCE_PATTERN.match(self.instance_name or ""):
            errors.append(
                f"Invalid instance name '{self.instance_name}': "
                "use only letters, numbers, hyphens and underscores"
            )

        seen: Dict[int, str] = {}
        for component in Component:
            port = self.ports.for_component(component)  # pylint: disable=no-member
            if port < 1 or port > 65535:
                errors.append(
                    f"Invalid {component.value} port {port}: must be between 1 and 65535"
                )
                continue
            if port in seen:
                errors.append(
                    f"Port conflict: {component.value} and {seen[port]} both use port {port}"
                )
            else:
                seen[port] = component.value

        if _CONTROL_CHARS.search(str(self.install_dir)):
            errors.append("Install directory path contains control characters")

        if self.retry.max_attempts < 1:  # pylint: disable=no-member
            errors.append("Retry max_attempts must be at least 1")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed with {len(errors)} error(s)",
                errors=errors,
            )

        return self

    @property
    def resolved_install_dir(self) -> Path:
        return self.install_dir.expanduser().absolute()

    @property
    def resolved_download_dir(self) -> Path:
        if self.download_dir is not None:
            return self.download_dir.expanduser().absolute()
        return self.resolved_install_dir.parent / "downloads"

    @property
    def resolved_state_dir(self) -> Path:
        return self.native_state_dir.expanduser().absolute()


# Unit and fleet result types
class UnitInfo(BaseModel):
    """Snapshot of one unit as reported by the substrate."""

    name: str
    component: str
    instance: str
    state: UnitState
    status: str = ""
    ports: str = ""
    image: str = ""


class VolumeInfo(BaseModel):
    """Persistent data volume owned by one unit."""

    name: str
    component: str
    instance: str


class BatchResult(BaseModel):
    """Aggregated outcome of applying one action to many units."""

    action: str
    succeeded: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)  # unit -> error message

    @property
    def ok(self) -> bool:
        return not self.failed

    def merge(self, other: "BatchResult") -> "BatchResult":
        merged_failed = dict(self.failed)
        merged_failed.update(other.failed)
        return BatchResult(
            action=f"{self.action}+{other.action}",
            succeeded=self.succeeded + other.succeeded,
            failed=merged_failed,
        )

    def summary(self) -> str:
        return f"{len(self.succeeded)} succeeded / {len(self.failed)} failed"


class FleetStatus(BaseModel):
    """Result of a status query."""

    instance_filter: Optional[str] = None
    units: List[UnitInfo] = Field(default_factory=list)
    volumes: List[VolumeInfo] = Field(default_factory=list)
    # instance -> {"running": n, "stopped": m}
    instance_summary: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    available_instances: List[str] = Field(default_factory=list)


class CleanResult(BaseModel):
    """Result of removing an instance's units and volumes."""

    stopped: BatchResult = Field(default_factory=lambda: BatchResult(action="stop"))
    removed_units: List[str] = Field(default_factory=list)
    removed_volumes: List[str] = Field(default_factory=list)
    failures: Dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures and self.stopped.ok


# Download types
class TaskResult(BaseModel):
    """Resolved outcome of one download task."""

    component: Component
    outcome: TaskOutcome = TaskOutcome.PENDING
    artifact: Optional[str] = None
    error_message: Optional[str] = None


class FetchResult(BaseModel):
    """Aggregated verdict of a download batch."""

    succeeded: List[Component] = Field(default_factory=list)
    failed: List[Component] = Field(default_factory=list)
    errors: Dict[str, str] = Field(default_factory=dict)  # component -> error message

    @property
    def ok(self) -> bool:
        return not self.failed


# Health and reconfiguration types
class HealthStatus(BaseModel):
    """Component health status."""

    is_healthy: bool
    response_time: float
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class PermissionReport(BaseModel):
    """Outcome of checking whether the collector can read a log location."""

    path: str
    expanded_path: str
    readable_paths: List[str] = Field(default_factory=list)
    watch_for_creation: bool = False
    warnings: List[str] = Field(default_factory=list)


class RegistrationResult(BaseModel):
    """Outcome of a log-source registration."""

    state: ReconfigState
    job_name: str
    section_id: str
    config_path: Path
    backup_path: Optional[Path] = None
    collector_path: str
    unit: str
    ready: bool = False
    warnings: List[str] = Field(default_factory=list)
