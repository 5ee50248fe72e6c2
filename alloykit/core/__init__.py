"""Core framework components."""

from .value_objects import InstanceName, UnitName

__all__ = ["InstanceName", "UnitName"]
