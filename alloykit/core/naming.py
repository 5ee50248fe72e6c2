"""Deterministic naming for units, volumes and networks.

Every name for an instance is derived from the instance name and the component
short name, so units can be discovered by pattern alone:

    unit:    obs-<component>-<instance>
    volume:  obs_<component>_data_<instance>
    network: obs-network-<instance>
"""

import re
from typing import Iterable, List, Optional, Union

from .enums import Component
from .value_objects import UnitName

UNIT_PREFIX = "obs"

_COMPONENTS = "|".join(c.value for c in Component)
_UNIT_RE = re.compile(rf"^{UNIT_PREFIX}-({_COMPONENTS})-([a-zA-Z0-9_-]+)$")
_VOLUME_RE = re.compile(rf"^{UNIT_PREFIX}_({_COMPONENTS})_data_([a-zA-Z0-9_-]+)$")

ComponentLike = Union[Component, str]


def _short(component: ComponentLike) -> str:
    return component.value if isinstance(component, Component) else component


def unit_name(component: ComponentLike, instance: str) -> str:
    return f"{UNIT_PREFIX}-{_short(component)}-{instance}"


def volume_name(component: ComponentLike, instance: str) -> str:
    return f"{UNIT_PREFIX}_{_short(component)}_data_{instance}"


def network_name(instance: str) -> str:
    return f"{UNIT_PREFIX}-network-{instance}"


def parse_unit_name(name: str) -> Optional[UnitName]:
    """Split a unit name into component and instance, or None if foreign."""
    match = _UNIT_RE.match(name)
    if not match:
        return None
    return UnitName(component=match.group(1), instance=match.group(2))


def parse_volume_name(name: str) -> Optional[UnitName]:
    match = _VOLUME_RE.match(name)
    if not match:
        return None
    return UnitName(component=match.group(1), instance=match.group(2))


def matches_instance(name: str, instance_filter: Optional[str]) -> bool:
    """True if a unit or volume name belongs to the filtered instance.

    The trailing instance segment must equal the filter exactly, so `prod`
    never matches `prod2`. An empty filter matches every AlloyKit name.
    """
    parsed = parse_unit_name(name) or parse_volume_name(name)
    if parsed is None:
        return False
    if not instance_filter:
        return True
    return parsed.instance == instance_filter


def discover_instances(names: Iterable[str]) -> List[str]:
    """Sorted distinct instance names found in unit names."""
    found = set()
    for name in names:
        parsed = parse_unit_name(name)
        if parsed is not None:
            found.add(parsed.instance)
    return sorted(found)
