"""Explicit per-workflow context owning rollback and temporary resources."""

import os
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

from ..core.log import get_logger
from .ledger import RollbackLedger

logger = get_logger(__name__)


class WorkflowContext:
    """Context manager passed to every step of a transactional workflow.

    On abnormal exit the ledger is replayed in reverse; on success it is
    discarded. Temporary files and directories acquired through the context
    are removed on every exit path.

    Usage:
        with WorkflowContext("install") as ctx:
            create_network()
            ctx.ledger.push("remove network", remove_network)
    """

    def __init__(self, name: str, temp_root: Optional[Path] = None) -> None:
        self.name = name
        self.ledger = RollbackLedger()
        self._temp_root = temp_root
        self._temp_paths: List[Path] = []
        self.rollback_failures: List[str] = []
        self.rolled_back = False

    def __enter__(self) -> "WorkflowContext":
        logger.debug("Workflow '%s' started", self.name)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc_type is not None:
                logger.error("Workflow '%s' failed: %s", self.name, exc)
                self.rollback_failures = self.ledger.execute_all()
                self.rolled_back = True
            else:
                self.ledger.discard()
                logger.debug("Workflow '%s' completed", self.name)
        finally:
            self.release_temp()
        return False

    def push_rollback(self, description: str, operation) -> None:
        self.ledger.push(description, operation)

    def temp_path(self, suffix: str = "", prefix: str = "alloykit-") -> Path:
        """Reserve a temp file path that is deleted when the workflow ends."""
        handle, name = tempfile.mkstemp(suffix=suffix, prefix=prefix, dir=self._temp_root)
        os.close(handle)
        path = Path(name)
        self._temp_paths.append(path)
        return path

    def temp_dir(self, prefix: str = "alloykit-") -> Path:
        path = Path(tempfile.mkdtemp(prefix=prefix, dir=self._temp_root))
        self._temp_paths.append(path)
        return path

    def release_temp(self) -> None:
        paths, self._temp_paths = self._temp_paths, []
        for path in reversed(paths):
            try:
                if path.is_dir():
                    shutil.rmtree(path)
                elif path.exists():
                    path.unlink()
            except OSError as e:
                logger.warning("Failed to clean up temp path %s: %s", path, e)
