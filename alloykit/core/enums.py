"""Core enumerations for AlloyKit.

Separated from types.py to break circular dependencies. This module contains
only enum definitions with no dependencies on other core modules.
"""

from enum import Enum


class Component(Enum):
    """Observability stack component, keyed by its short name."""

    PROMETHEUS = "prometheus"
    LOKI = "loki"
    GRAFANA = "grafana"
    ALLOY = "alloy"


class UnitState(Enum):
    """Lifecycle state of one component unit as reported by the substrate."""

    ABSENT = "absent"
    STOPPED = "stopped"
    RUNNING = "running"


class SubstrateKind(Enum):
    """Engine that runs the units."""

    CONTAINER = "container"
    NATIVE = "native"


class TaskOutcome(Enum):
    """Outcome of one download task."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ReconfigState(Enum):
    """Progress of a log-source registration."""

    REQUESTED = "requested"
    PERMISSION_CHECKED = "permission_checked"
    CONFIG_BACKED_UP = "config_backed_up"
    CONFIG_MUTATED = "config_mutated"
    UNIT_RESTARTED = "unit_restarted"
    READINESS_POLLED = "readiness_polled"
    ACTIVE = "active"
    DEGRADED = "degraded"
