"""
AlloyKit: Observability Stack Installer and Fleet Manager

Installs and operates Prometheus, Loki, Grafana and Grafana Alloy as containers
or native processes, with multiple named instances per host. Provides
transactional installs with rollback, parallel artifact downloads, fleet
lifecycle commands scoped by instance, and live registration of new log
sources with the telemetry collector.
"""

__version__ = "1.0.0"

# Core exports
from .core.enums import Component, UnitState, ReconfigState, SubstrateKind
from .core.types import (
    PortConfig,
    TimeoutConfig,
    RetryConfig,
    AlloyKitConfig,
)

__all__ = [
    "__version__",
    "Component",
    "UnitState",
    "ReconfigState",
    "SubstrateKind",
    "PortConfig",
    "TimeoutConfig",
    "RetryConfig",
    "AlloyKitConfig",
]
