"""Host-dependent configuration checks, run before any install side effect.

Pure, internal consistency checks live in AlloyKitConfig's model validator;
this module adds the checks that need the host: ports already bound and an
install directory that can actually be created.
"""

import os
from typing import List

from .errors import ValidationError
from .log import get_logger
from .types import AlloyKitConfig
from ..utils.filesystem import nearest_existing_parent
from ..utils.ports import find_ports_in_use

logger = get_logger(__name__)


def check_install_dir(config: AlloyKitConfig) -> List[str]:
    install_dir = config.resolved_install_dir
    if install_dir.exists() and not install_dir.is_dir():
        return [f"Install path {install_dir} exists and is not a directory"]
    anchor = nearest_existing_parent(install_dir)
    if not anchor.is_dir() or not os.access(anchor, os.W_OK | os.X_OK):
        return [f"Cannot create installation directory {install_dir}: {anchor} is not writable"]
    return []


def validate_for_install(config: AlloyKitConfig, check_ports: bool = True) -> None:
    """Collect every host-level problem and raise them together.

    Raises:
        ValidationError: With one entry per problem found
    """
    errors: List[str] = []
    errors.extend(check_install_dir(config))
    if check_ports:
        errors.extend(find_ports_in_use(config.ports.as_dict()))

    if errors:
        for error in errors:
            logger.debug("Validation error: %s", error)
        raise ValidationError(
            f"Configuration validation failed with {len(errors)} error(s)", errors=errors
        )
    logger.info("Configuration validation passed")
