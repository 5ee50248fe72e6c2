"""Application context for explicit dependency management.

ApplicationContext is the single immutable container for the services a
command needs. The CLI builds one per invocation; tests build one with
fakes through ``for_testing``.

Usage:
    config = load_config(config_file)
    ctx = ApplicationContext.create(config)
    ctx.fleet.status("prod")
    ctx.installer().install()
"""

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from .enums import SubstrateKind
from .log import Logger
from .process import ProcessExecutor
from .types import AlloyKitConfig

if TYPE_CHECKING:
    from ..orchestration.downloads import DownloadCoordinator
    from ..orchestration.fleet import FleetManager
    from ..orchestration.health_checker import HealthChecker
    from ..orchestration.installer import Installer
    from ..orchestration.permissions import PermissionChecker
    from ..orchestration.reconfigure import LogSourceRegistrar
    from ..orchestration.retry import RetryExecutor
    from ..orchestration.substrate import Substrate


@dataclass(frozen=True)
class ApplicationContext:
    """Immutable application-wide context containing all dependencies.

    Attributes:
        config: Validated configuration for this invocation
        logger: Logging instance
        executor: Subprocess runner shared by substrate and tooling
        substrate: Container engine or native process backend
        fleet: Fleet operations over the substrate
        health_checker: HTTP readiness prober
        permission_checker: Log path readability checker
        retry_executor: Retry policy for transient failures
    """

    config: AlloyKitConfig
    logger: Logger
    executor: ProcessExecutor
    substrate: "Substrate"
    fleet: "FleetManager"
    health_checker: "HealthChecker"
    permission_checker: "PermissionChecker"
    retry_executor: "RetryExecutor"

    @classmethod
    def create(
        cls,
        config: AlloyKitConfig,
        *,
        logger: Optional[Logger] = None,
        executor: Optional[ProcessExecutor] = None,
        substrate: Optional["Substrate"] = None,
        health_checker: Optional["HealthChecker"] = None,
        permission_checker: Optional["PermissionChecker"] = None,
    ) -> "ApplicationContext":
        """Create application context with default implementations.

        Any dependency not passed explicitly is built from the config.
        Logging must already be configured by the caller.
        """
        # Import here to avoid circular dependencies at module level
        from .log import get_logger
        from ..orchestration.fleet import FleetManager
        from ..orchestration.health_checker import ServiceHealthChecker
        from ..orchestration.native import NativeSubstrate
        from ..orchestration.permissions import PermissionChecker as PermissionCheckerImpl
        from ..orchestration.podman import PodmanSubstrate
        from ..orchestration.retry import RetryExecutor

        if logger is None:
            logger = get_logger("alloykit")

        if executor is None:
            executor = ProcessExecutor()

        if substrate is None:
            if config.substrate == SubstrateKind.NATIVE:
                substrate = NativeSubstrate(
                    config.resolved_state_dir, executor, config.timeouts, logger
                )
            else:
                substrate = PodmanSubstrate(executor, config.timeouts, logger)

        if health_checker is None:
            health_checker = ServiceHealthChecker(logger, config.timeouts)

        if permission_checker is None:
            permission_checker = PermissionCheckerImpl(logger)

        return cls(
            config=config,
            logger=logger,
            executor=executor,
            substrate=substrate,
            fleet=FleetManager(substrate, config.timeouts, logger),
            health_checker=health_checker,
            permission_checker=permission_checker,
            retry_executor=RetryExecutor(config.retry),
        )

    @classmethod
    def for_testing(
        cls,
        config: Optional[AlloyKitConfig] = None,
        **overrides,
    ) -> "ApplicationContext":
        """Create application context for testing.

        Example:
            >>> ctx = ApplicationContext.for_testing(substrate=FakeSubstrate())
        """
        if config is None:
            config = AlloyKitConfig(install_dir=Path("/tmp/alloykit-test"))
        return cls.create(config, **overrides)

    def downloads(self) -> "DownloadCoordinator":
        """Download coordinator with the fetcher matching the substrate."""
        from ..orchestration.downloads import DownloadCoordinator
        from ..orchestration.fetchers import HttpArtifactFetcher, ImageArtifactFetcher
        from ..orchestration.native import platform_arch, platform_os

        if self.config.substrate == SubstrateKind.NATIVE:
            fetcher = HttpArtifactFetcher(
                self.config.resolved_download_dir,
                platform_os(),
                platform_arch(),
                self.config.timeouts,
                logger=self.logger,
            )
        else:
            fetcher = ImageArtifactFetcher(self.substrate, self.logger)
        return DownloadCoordinator(fetcher, self.retry_executor, self.config.timeouts, self.logger)

    def installer(self) -> "Installer":
        from ..orchestration.installer import Installer

        return Installer(
            self.config,
            self.substrate,
            self.fleet,
            self.downloads(),
            self.health_checker,
            self.logger,
        )

    def registrar(self) -> "LogSourceRegistrar":
        from ..orchestration.reconfigure import LogSourceRegistrar

        return LogSourceRegistrar(
            self.config,
            self.fleet,
            self.health_checker,
            self.permission_checker,
            self.logger,
        )
