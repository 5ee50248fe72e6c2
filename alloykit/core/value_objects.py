"""Domain primitives for instance and unit identification."""

import re
from dataclasses import dataclass

_INSTANCE_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


@dataclass(frozen=True)
class InstanceName:
    """Validated instance name. Hashable for use as dictionary key."""

    value: str

    def __post_init__(self) -> None:
        if not self.value or not self.value.strip():
            raise ValueError("InstanceName cannot be empty")

        if not _INSTANCE_PATTERN.match(self.value):
            raise ValueError(
                f"InstanceName must be alphanumeric with _ or -: {self.value}"
            )

    def __str__(self) -> str:
        return self.value

    @classmethod
    def is_valid(cls, value: str) -> bool:
        return bool(value) and bool(_INSTANCE_PATTERN.match(value))


@dataclass(frozen=True)
class UnitName:
    """Parsed unit identity: component short name plus owning instance."""

    component: str
    instance: str

    def __str__(self) -> str:
        return f"obs-{self.component}-{self.instance}"
