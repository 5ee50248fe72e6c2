"""Instance-scoped lifecycle operations over every AlloyKit unit on the host.

Unit identity is the derived name. The manager keeps no unit handles; every
call re-queries the substrate and filters by the exact instance segment.
"""

import time
from typing import Callable, Dict, List, Optional, Sequence

from ..core.enums import Component, UnitState
from ..core.errors import AmbiguousUnitError, SubstrateError, UnitNotFoundError
from ..core.log import Logger, get_logger
from ..core.naming import discover_instances, matches_instance
from ..core.types import BatchResult, CleanResult, FleetStatus, TimeoutConfig, UnitInfo
from .substrate import Substrate

UnitSelector = Callable[[List[str]], str]


class FleetManager:
    """Applies status/start/stop/restart/logs/clean to units matched by instance.

    Bulk operations attempt every matching unit; failures are collected in the
    returned BatchResult rather than aborting the batch.
    """

    def __init__(
        self,
        substrate: Substrate,
        timeouts: Optional[TimeoutConfig] = None,
        logger: Optional[Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._substrate = substrate
        self._timeouts = timeouts or TimeoutConfig()
        self._logger = logger or get_logger(__name__)
        self._sleep = sleep

    @property
    def substrate(self) -> Substrate:
        return self._substrate

    def matching_units(self, instance_filter: Optional[str] = None) -> List[UnitInfo]:
        return [
            unit for unit in self._substrate.list_units()
            if matches_instance(unit.name, instance_filter)
        ]

    def status(self, instance_filter: Optional[str] = None) -> FleetStatus:
        all_units = self._substrate.list_units()
        units = [u for u in all_units if matches_instance(u.name, instance_filter)]
        volumes = [
            v for v in self._substrate.list_volumes()
            if matches_instance(v.name, instance_filter)
        ]

        summary: Dict[str, Dict[str, int]] = {}
        for unit in units:
            counts = summary.setdefault(unit.instance, {"running": 0, "stopped": 0})
            key = "running" if unit.state == UnitState.RUNNING else "stopped"
            counts[key] += 1

        return FleetStatus(
            instance_filter=instance_filter or None,
            units=units,
            volumes=volumes,
            instance_summary=summary,
            available_instances=discover_instances(u.name for u in all_units),
        )

    def _apply(
        self,
        action: str,
        units: Sequence[UnitInfo],
        operation: Callable[[str], None],
    ) -> BatchResult:
        result = BatchResult(action=action)
        for unit in units:
            try:
                operation(unit.name)
                result.succeeded.append(unit.name)
            except SubstrateError as e:
                self._logger.error("Failed to %s %s: %s", action, unit.name, e)
                result.failed[unit.name] = str(e)
        self._logger.info("%s: %s", action, result.summary())
        return result

    def start(self, instance_filter: Optional[str] = None) -> BatchResult:
        """Start every stopped unit of the instance.

        No matching units is a failure: there is nothing to start until the
        instance is installed.
        """
        units = self.matching_units(instance_filter)
        if not units:
            result = BatchResult(action="start")
            result.failed["*"] = _no_units_message(instance_filter)
            return result
        return self._apply("start", units, self._substrate.start_unit)

    def stop(self, instance_filter: Optional[str] = None) -> BatchResult:
        units = self.matching_units(instance_filter)
        return self._apply("stop", units, self._substrate.stop_unit)

    def restart(self, instance_filter: Optional[str] = None) -> BatchResult:
        """Stop all, let the units settle, then start all."""
        stopped = self.stop(instance_filter)
        self._sleep(self._timeouts.restart_settle)
        started = self.start(instance_filter)
        return stopped.merge(started)

    def restart_unit(self, name: str) -> None:
        """Restart a single unit by name. Raises SubstrateError on failure."""
        if self._substrate.unit_state(name) == UnitState.ABSENT:
            raise UnitNotFoundError(f"Unit {name} does not exist", unit=name)
        self._substrate.restart_unit(name)

    def resolve_unit(
        self,
        component: Component,
        instance_filter: Optional[str] = None,
        selector: Optional[UnitSelector] = None,
    ) -> str:
        """Pick exactly one unit of component.

        Raises:
            UnitNotFoundError: No unit matched
            AmbiguousUnitError: Several matched and no selector was given
        """
        names = [
            unit.name for unit in self.matching_units(instance_filter)
            if unit.component == component.value
        ]
        if not names:
            raise UnitNotFoundError(
                f"No {component.value} unit found"
                + (f" for instance '{instance_filter}'" if instance_filter else "")
            )
        if len(names) == 1:
            return names[0]
        if selector is None:
            raise AmbiguousUnitError(
                f"Multiple {component.value} units found; specify an instance",
                candidates=names,
            )
        chosen = selector(names)
        if chosen not in names:
            raise AmbiguousUnitError(f"Invalid selection: {chosen}", candidates=names)
        return chosen

    def logs(
        self,
        component: Component,
        instance_filter: Optional[str] = None,
        follow: bool = True,
        selector: Optional[UnitSelector] = None,
    ) -> int:
        name = self.resolve_unit(component, instance_filter, selector)
        self._logger.info("Showing logs for %s", name)
        return self._substrate.stream_logs(name, follow=follow)

    def clean(self, instance_filter: Optional[str] = None) -> CleanResult:
        """Stop and remove the instance's units, then remove its volumes."""
        result = CleanResult(stopped=self.stop(instance_filter))

        for unit in self.matching_units(instance_filter):
            try:
                self._substrate.remove_unit(unit.name)
                result.removed_units.append(unit.name)
            except SubstrateError as e:
                self._logger.error("Failed to remove %s: %s", unit.name, e)
                result.failures[unit.name] = str(e)

        for volume in self._substrate.list_volumes():
            if not matches_instance(volume.name, instance_filter):
                continue
            try:
                self._substrate.remove_volume(volume.name)
                result.removed_volumes.append(volume.name)
            except SubstrateError as e:
                self._logger.error("Failed to remove volume %s: %s", volume.name, e)
                result.failures[volume.name] = str(e)

        return result


def _no_units_message(instance_filter: Optional[str]) -> str:
    if instance_filter:
        return f"No units found for instance '{instance_filter}'; run install first"
    return "No AlloyKit units found; run install first"
