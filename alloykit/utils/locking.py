"""Exclusive advisory file locks serializing mutations of one instance."""

import fcntl
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from ..core.errors import LockTimeoutError
from ..core.log import get_logger

logger = get_logger(__name__)


@contextmanager
def exclusive_lock(lock_path: Path, timeout: float = 10.0, poll_interval: float = 0.1) -> Iterator[Path]:
    """Hold an exclusive flock on lock_path for the duration of the block.

    Raises:
        LockTimeoutError: If another holder keeps the lock past timeout
    """
    lock_path = Path(lock_path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o644)
    try:
        deadline = time.monotonic() + timeout
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise LockTimeoutError(
                        f"Timed out after {timeout}s waiting for lock {lock_path}",
                        details={"lock": str(lock_path)},
                    )
                time.sleep(poll_interval)
        logger.debug("Acquired lock %s", lock_path)
        try:
            yield lock_path
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug("Released lock %s", lock_path)
    finally:
        os.close(fd)


def instance_lock_path(config_dir: Path, instance: str) -> Path:
    return Path(config_dir) / f".alloykit-{instance}.lock"
