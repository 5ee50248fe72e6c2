"""Live registration of a new log source with a running collector.

The workflow is strictly ordered and never mutates anything until access to
the log location, the collector unit and the config file have all been
verified:

    REQUESTED -> PERMISSION_CHECKED -> CONFIG_BACKED_UP -> CONFIG_MUTATED
              -> UNIT_RESTARTED -> READINESS_POLLED -> ACTIVE | DEGRADED
"""

import re
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from ..core.components import get_spec
from ..core.enums import Component, ReconfigState, UnitState
from ..core.errors import (
    ConfigMutationError,
    FilesystemError,
    LockTimeoutError,
    SubstrateError,
)
from ..core.log import Logger, get_logger, log_context, log_event
from ..core.naming import unit_name
from ..core.types import AlloyKitConfig, RegistrationResult
from ..utils.crypto import timestamp_token
from ..utils.filesystem import InstallLayout, atomic_write, backup_file, read_text
from ..utils.locking import exclusive_lock, instance_lock_path
from .fleet import FleetManager
from .health_checker import HealthChecker, readiness_url
from .permissions import PermissionChecker, default_job_name, expand_log_path, sanitize_job_name

DEFAULT_JOB_NAME = "custom"


def section_label(job_name: str) -> str:
    """Identifier-safe form of a job name for collector component labels."""
    label = re.sub(r"[^a-z0-9_]", "_", job_name.lower())
    if not label or label[0].isdigit():
        label = f"log_{label}"
    return label


def quote_string(value: str) -> str:
    """Escape value for use inside a double-quoted collector config string."""
    escaped = value.replace("\\", "\\\\").replace("\"", "\\\"")
    return escaped.replace("\n", "\\n").replace("\t", "\\t")


def render_log_section(section_id: str, job_name: str, collector_path: str, added_on: str) -> str:
    """Collector config blocks watching one path and forwarding to Loki."""
    return f"""
// SECTION: Custom Log - {job_name}
// Added on {added_on}

local.file_match "{section_id}" {{
  path_targets = [{{
    __address__ = "localhost",
    __path__    = "{quote_string(collector_path)}",
    instance    = constants.hostname,
    job         = "{job_name}",
  }}]
}}

loki.source.file "{section_id}" {{
  targets    = local.file_match.{section_id}.targets
  forward_to = [loki.write.default.receiver]
}}
"""


def unique_section_id(existing: str, base: str) -> str:
    """base, or base_<n> if base is already declared in existing config text."""
    candidate = base
    counter = 1
    while f'local.file_match "{candidate}"' in existing:
        counter += 1
        candidate = f"{base}_{counter}"
    return candidate


class LogSourceRegistrar:
    """Adds a file-tailing source to an instance's collector and restarts it."""

    def __init__(
        self,
        config: AlloyKitConfig,
        fleet: FleetManager,
        health_checker: HealthChecker,
        permission_checker: Optional[PermissionChecker] = None,
        logger: Optional[Logger] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._config = config
        self._fleet = fleet
        self._health = health_checker
        self._permissions = permission_checker or PermissionChecker()
        self._logger = logger or get_logger(__name__)
        self._clock = clock

    @property
    def config_path(self) -> Path:
        layout = InstallLayout(self._config.resolved_install_dir)
        return layout.config_file(get_spec(Component.ALLOY).config_name)

    def register(
        self,
        path: str,
        job_name: Optional[str] = None,
        instance: Optional[str] = None,
    ) -> RegistrationResult:
        """Register path with the collector of instance.

        Raises:
            LogPermissionError: The path is not readable (nothing changed)
            SubstrateError: The collector unit is not running, or its restart failed
            ConfigMutationError: The config file is missing or could not be backed up
        """
        instance = instance or self._config.instance_name
        with log_context(instance=instance, log_path=path):
            return self._register(path, job_name, instance)

    def _register(self, path: str, job_name: Optional[str], instance: str) -> RegistrationResult:
        self._advance(ReconfigState.REQUESTED)
        self._logger.info("Registering log location %s for instance %s", path, instance)

        report = self._permissions.check(path)
        self._advance(ReconfigState.PERMISSION_CHECKED)
        for warning in report.warnings:
            self._logger.warning("%s", warning)

        job = sanitize_job_name(job_name or default_job_name(path)) or DEFAULT_JOB_NAME
        collector_unit = unit_name(Component.ALLOY, instance)
        if self._fleet.substrate.unit_state(collector_unit) != UnitState.RUNNING:
            raise SubstrateError(
                f"Collector {collector_unit} is not running; start the stack first",
                unit=collector_unit,
            )

        config_path = self.config_path
        if not config_path.is_file():
            raise ConfigMutationError(f"Collector configuration not found: {config_path}")

        collector_path = self._fleet.substrate.collector_path(expand_log_path(path))
        lock_path = instance_lock_path(config_path.parent, instance)
        try:
            with exclusive_lock(lock_path, timeout=self._config.timeouts.config_lock):
                backup, section_id = self._mutate_config(config_path, job, collector_path)
                self._advance(ReconfigState.CONFIG_MUTATED)

                try:
                    self._fleet.restart_unit(collector_unit)
                except SubstrateError as e:
                    raise SubstrateError(
                        f"Configuration updated but restarting {collector_unit} failed: {e}. "
                        f"Restart it manually; backup at {backup}",
                        unit=collector_unit,
                    ) from e
                self._advance(ReconfigState.UNIT_RESTARTED)
        except LockTimeoutError as e:
            raise ConfigMutationError(
                f"Another registration for instance '{instance}' is in progress: {e}"
            ) from e

        url = readiness_url(Component.ALLOY, self._config.ports.alloy)
        ready = self._health.wait_until_ready(
            url,
            max_wait=self._config.timeouts.readiness_max_wait,
            interval=self._config.timeouts.readiness_poll_interval,
        )
        self._advance(ReconfigState.READINESS_POLLED)

        result = RegistrationResult(
            state=ReconfigState.ACTIVE if ready else ReconfigState.DEGRADED,
            job_name=job,
            section_id=section_id,
            config_path=config_path,
            backup_path=backup,
            collector_path=collector_path,
            unit=collector_unit,
            ready=ready,
            warnings=list(report.warnings),
        )
        if not ready:
            result.warnings.append(
                f"{collector_unit} did not report ready within "
                f"{self._config.timeouts.readiness_max_wait:.0f}s; check its logs"
            )
        log_event(
            self._logger,
            "event",
            f"Log source '{job}' registered ({result.state.value})",
            job_name=job,
            section_id=section_id,
        )
        return result

    def _advance(self, state: ReconfigState) -> ReconfigState:
        self._logger.debug("Registration state: %s", state.value)
        return state

    def _mutate_config(self, config_path: Path, job: str, collector_path: str):
        """Back up, then append one new section. Returns (backup path, section id)."""
        try:
            existing = read_text(config_path)
            backup = backup_file(config_path)
        except FilesystemError as e:
            raise ConfigMutationError(f"Failed to back up {config_path}: {e}") from e
        self._logger.info("Created backup: %s", backup)
        self._advance(ReconfigState.CONFIG_BACKED_UP)

        section_id = unique_section_id(existing, f"{section_label(job)}_{timestamp_token()}")
        added_on = self._clock().strftime("%Y-%m-%d %H:%M:%S")
        snippet = render_log_section(section_id, job, collector_path, added_on)
        separator = "" if existing.endswith("\n") or not existing else "\n"
        try:
            atomic_write(config_path, existing + separator + snippet)
        except FilesystemError as e:
            raise ConfigMutationError(f"Failed to update {config_path}: {e}") from e
        self._logger.info("Appended section %s to %s", section_id, config_path)
        return backup, section_id
