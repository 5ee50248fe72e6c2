"""Transactional install and uninstall of one instance.

Every side effect registers its compensating action on the workflow's
rollback ledger as soon as it happens. Any failure before the stack is up
replays the ledger in reverse and re-raises.
"""

import os
import shutil
import stat
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..core.components import INSTALL_ORDER, get_spec
from ..core.enums import Component, SubstrateKind
from ..core.errors import DownloadError, FilesystemError, InstallationError
from ..core.log import Logger, add_file_logging, get_logger, log_context
from ..core.naming import network_name
from ..core.types import AlloyKitConfig, CleanResult
from ..core.validation import validate_for_install
from ..utils.filesystem import InstallLayout, atomic_write, ensure_dir, safe_remove
from ..utils.output import print_status, print_success, print_warning
from .downloads import DownloadCoordinator
from .fetchers import HttpArtifactFetcher
from .fleet import FleetManager
from .health_checker import HealthChecker, readiness_url
from .substrate import Substrate, UnitSpec
from .templates import write_default_configs
from .unit_specs import build_unit_specs, data_dirs
from .workflow import WorkflowContext

MARKER_NAME = "alloykit.conf"
SEARCH_LOCATIONS = (Path("./alloykit"), Path("~/alloykit"), Path("/opt/alloykit"))


class InstallReport(BaseModel):
    """What an install did (or, for a dry run, would do)."""

    dry_run: bool = False
    install_dir: Path
    instance: str
    planned_actions: List[str] = Field(default_factory=list)
    readiness: Dict[str, bool] = Field(default_factory=dict)
    urls: Dict[str, str] = Field(default_factory=dict)


def marker_content(config: AlloyKitConfig) -> str:
    """KEY=VALUE record of an installation, loadable with --config."""
    lines = [
        "# AlloyKit installation settings",
        f"INSTALL_DIR={config.resolved_install_dir}",
        f"INSTANCE_NAME={config.instance_name}",
        f"SUBSTRATE={config.substrate.value}",
        f"GRAFANA_PORT={config.ports.grafana}",
        f"PROMETHEUS_PORT={config.ports.prometheus}",
        f"LOKI_PORT={config.ports.loki}",
        f"ALLOY_PORT={config.ports.alloy}",
    ]
    return "\n".join(lines) + "\n"


def find_installations(extra: Optional[List[Path]] = None) -> List[Path]:
    """Install directories carrying an AlloyKit marker, in search order."""
    found: List[Path] = []
    for candidate in list(extra or []) + list(SEARCH_LOCATIONS):
        path = candidate.expanduser().absolute()
        if (path / MARKER_NAME).is_file() and path not in found:
            found.append(path)
    return found


def _make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def _find_binary(root: Path, name: str) -> Optional[Path]:
    for candidate in sorted(root.rglob("*")):
        if not candidate.is_file():
            continue
        if candidate.name == name or (
            candidate.name.startswith(f"{name}-") and not candidate.name.endswith((".zip", ".gz"))
        ):
            return candidate
    return None


class Installer:
    """Installs an instance onto a substrate and removes it again."""

    def __init__(
        self,
        config: AlloyKitConfig,
        substrate: Substrate,
        fleet: FleetManager,
        downloads: DownloadCoordinator,
        health_checker: HealthChecker,
        logger: Optional[Logger] = None,
    ) -> None:
        self._config = config
        self._substrate = substrate
        self._fleet = fleet
        self._downloads = downloads
        self._health = health_checker
        self._logger = logger or get_logger(__name__)
        self._layout = InstallLayout(config.resolved_install_dir)
        self._install_log = self._layout.install_log
        self._workflow: Optional[WorkflowContext] = None

    @property
    def layout(self) -> InstallLayout:
        return self._layout

    @property
    def install_log(self) -> Path:
        """Where the install log currently lives; moved out of a rolled-back install dir."""
        return self._install_log

    @property
    def rolled_back(self) -> bool:
        """True once a failed install has replayed its rollback actions."""
        return self._workflow is not None and self._workflow.rolled_back

    @property
    def rollback_failures(self) -> List[str]:
        return list(self._workflow.rollback_failures) if self._workflow else []

    def plan(self) -> List[str]:
        """Human-readable list of every action install would take."""
        instance = self._config.instance_name
        actions = [
            f"Create installation directory {self._layout.root}",
            f"Write component configuration to {self._layout.config_dir}",
        ]
        if self._config.substrate == SubstrateKind.NATIVE:
            actions.append(
                f"Download release archives to {self._config.resolved_download_dir}"
            )
            actions.append(f"Unpack binaries to {self._layout.bin_dir}")
        else:
            actions.append("Pull images: " + ", ".join(get_spec(c).image for c in INSTALL_ORDER))
            actions.append(f"Create network {network_name(instance)}")
        for spec in build_unit_specs(self._config):
            actions.append(
                f"Start {spec.name} on port {self._config.ports.for_component(Component(spec.component))}"
            )
        actions.append("Wait for all services to report ready")
        return actions

    def install(self, dry_run: bool = False, check_ports: bool = True) -> InstallReport:
        """Validate, then install and start every component.

        Raises:
            ValidationError: Configuration or host checks failed (nothing changed)
            SubstrateError: The engine is unusable or a unit could not start
            InstallationError: A later step failed; the install was rolled back
        """
        report = InstallReport(
            dry_run=dry_run,
            install_dir=self._layout.root,
            instance=self._config.instance_name,
        )
        validate_for_install(self._config, check_ports=check_ports)

        if dry_run:
            report.planned_actions = self.plan()
            return report

        self._substrate.preflight()

        with log_context(instance=self._config.instance_name, operation="install"):
            self._workflow = WorkflowContext("install")
            with self._workflow as ctx:
                self._create_layout(ctx)
                self._fetch_artifacts()
                if self._config.substrate == SubstrateKind.NATIVE:
                    self._unpack_all(ctx)
                self._create_network(ctx)
                self._start_units(ctx)

            report.readiness = self.wait_for_services()
            report.urls = {
                c.value: f"http://localhost:{self._config.ports.for_component(c)}"
                for c in INSTALL_ORDER
            }
        return report

    def _create_layout(self, ctx: WorkflowContext) -> None:
        root = self._layout.root
        created = not root.exists()
        print_status(f"Creating configuration files in {root}")
        self._layout.create()
        if created:
            ctx.push_rollback(f"remove {root}", self._discard_install_dir)
        add_file_logging(self._layout.install_log)
        self._logger.info("Installing instance %s into %s", self._config.instance_name, root)

        write_default_configs(self._config, self._layout, data_dirs(self._config))
        atomic_write(root / MARKER_NAME, marker_content(self._config))

    def _discard_install_dir(self) -> None:
        log = self._layout.install_log
        if log.exists():
            kept = Path(tempfile.gettempdir()) / f"alloykit-install-{self._config.instance_name}.log"
            shutil.copy2(log, kept)
            self._install_log = kept
        safe_remove(self._layout.root)

    def _fetch_artifacts(self) -> None:
        print_status("Fetching component artifacts...")
        result = self._downloads.fetch_all(INSTALL_ORDER)
        if not result.ok:
            names = [c.value for c in result.failed]
            raise DownloadError(
                f"Failed to fetch: {', '.join(names)}",
                failed=names,
                details={"errors": result.errors},
            )
        print_success("All artifacts available")

    def _unpack_all(self, ctx: WorkflowContext) -> None:
        fetcher = self._downloads.fetcher
        if not isinstance(fetcher, HttpArtifactFetcher):
            raise InstallationError("Native install requires an HTTP artifact fetcher")
        for component in INSTALL_ORDER:
            archive = fetcher.artifact_path(component)
            staging = ctx.temp_dir(prefix=f"alloykit-{component.value}-")
            self._unpack(component, archive, staging)

    def _unpack(self, component: Component, archive: Path, staging: Path) -> None:
        print_status(f"Installing {get_spec(component).display_name}...")
        try:
            shutil.unpack_archive(str(archive), str(staging))
        except (shutil.ReadError, ValueError, OSError) as e:
            raise InstallationError(f"Failed to unpack {archive.name}: {e}") from e

        bin_dir = ensure_dir(self._layout.bin_dir)
        try:
            if component == Component.GRAFANA:
                home = next((p.parent.parent for p in staging.rglob("bin/grafana")), None)
                if home is None:
                    raise InstallationError(f"No grafana binary in {archive.name}")
                target_home = self._layout.share_dir / "grafana"
                safe_remove(target_home)
                shutil.copytree(home, target_home, symlinks=True)
                for binary in (target_home / "bin").iterdir():
                    shutil.copy2(binary, bin_dir / binary.name)
                    _make_executable(bin_dir / binary.name)
                return

            binary = _find_binary(staging, component.value)
            if binary is None:
                raise InstallationError(f"No {component.value} binary in {archive.name}")
            target = bin_dir / component.value
            shutil.copy2(binary, target)
            _make_executable(target)
            if component == Component.PROMETHEUS:
                promtool = _find_binary(staging, "promtool")
                if promtool is not None:
                    shutil.copy2(promtool, bin_dir / "promtool")
                    _make_executable(bin_dir / "promtool")
        except (OSError, FilesystemError) as e:
            raise InstallationError(f"Failed to install {component.value}: {e}") from e

    def _create_network(self, ctx: WorkflowContext) -> None:
        name = network_name(self._config.instance_name)
        if self._substrate.ensure_network(name):
            ctx.push_rollback(f"remove network {name}", lambda: self._substrate.remove_network(name))

    def _start_units(self, ctx: WorkflowContext) -> None:
        print_status("Starting services...")
        for spec in build_unit_specs(self._config):
            if spec.user:
                self._logger.info("High host UID detected, running %s as root in container", spec.name)
            print_status(f"Starting {get_spec(Component(spec.component)).display_name}...")
            self._substrate.run_unit(spec)
            ctx.push_rollback(f"stop and remove {spec.name}", self._remover(spec))
        print_success("All services started")

    def _remover(self, spec: UnitSpec):
        def remove() -> None:
            self._substrate.stop_unit(spec.name)
            self._substrate.remove_unit(spec.name)

        return remove

    def wait_for_services(self) -> Dict[str, bool]:
        """Poll every readiness endpoint. A timeout is a warning, not a failure."""
        timeouts = self._config.timeouts
        max_wait = timeouts.install_readiness_attempts * timeouts.readiness_poll_interval
        readiness: Dict[str, bool] = {}
        print_status("Waiting for services to be ready...")
        for component in INSTALL_ORDER:
            display = get_spec(component).display_name
            url = readiness_url(component, self._config.ports.for_component(component))
            ready = self._health.wait_until_ready(
                url, max_wait=max_wait, interval=timeouts.readiness_poll_interval
            )
            readiness[component.value] = ready
            if ready:
                print_success(f"{display} is ready")
            else:
                print_warning(f"{display} may not be fully ready yet")
        return readiness

    def uninstall(self, remove_files: bool = True) -> CleanResult:
        """Clean this instance's units and volumes, then delete its directory."""
        instance = self._config.instance_name
        with log_context(instance=instance, operation="uninstall"):
            print_status(f"Removing AlloyKit instance {instance}")
            result = self._fleet.clean(instance)
            self._substrate.remove_network(network_name(instance))
            root = self._layout.root
            if remove_files and root.exists():
                if os.path.samefile(root, Path.cwd()) or root in Path.cwd().parents:
                    print_warning(f"Not removing {root}: it contains the working directory")
                else:
                    safe_remove(root)
                    self._logger.info("Removed %s", root)
        return result
