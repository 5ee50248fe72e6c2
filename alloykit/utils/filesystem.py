"""Filesystem helpers: atomic writes, backups and the install directory layout."""

import os
import tempfile
import shutil
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from ..core.errors import FilesystemError, PathError, AtomicWriteError
from ..core.log import get_logger
from .crypto import timestamp_token

logger = get_logger(__name__)


# =============================================================================
# Pure Utility Functions (no state required)
# =============================================================================


def atomic_write(path: Path, data: Union[str, bytes], mode: str = "w") -> None:
    """Atomically write data to a file.

    The data goes to a temp file in the same directory, is fsynced and then
    renamed over the target. Readers see either the old or the new content.
    The target's permission bits are preserved when it already exists.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    is_binary = isinstance(data, bytes) or "b" in mode
    write_mode = mode if is_binary else mode.replace("b", "")
    tmp_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            mode=write_mode,
            dir=path.parent,
            delete=False,
            prefix=f".{path.name}.tmp",
        ) as tmp_file:
            tmp_path = Path(tmp_file.name)
            tmp_file.write(data)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())
        if path.exists():
            shutil.copymode(path, tmp_path)
        tmp_path.replace(path)
        logger.debug(
            "Atomically wrote %s %s to %s",
            len(data),
            "bytes" if is_binary else "chars",
            path,
        )
    except OSError as e:
        if tmp_path is not None and tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass
        raise AtomicWriteError(f"Failed to atomically write to {path}: {e}") from e


def read_text(path: Path, encoding: str = "utf-8") -> str:
    """Read text file with proper error handling."""
    try:
        return Path(path).read_text(encoding=encoding)
    except FileNotFoundError as e:
        raise PathError(f"File not found: {path}") from e
    except PermissionError as e:
        raise FilesystemError(f"Permission denied reading {path}") from e
    except UnicodeDecodeError as e:
        raise FilesystemError(f"Encoding error reading {path}: {e}") from e
    except OSError as e:
        raise FilesystemError(f"Error reading {path}: {e}") from e


def ensure_dir(path: Path) -> Path:
    """Ensure directory exists and return it."""
    try:
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        return path
    except PermissionError as e:
        raise FilesystemError(f"Permission denied creating directory {path}") from e
    except OSError as e:
        raise FilesystemError(f"Error creating directory {path}: {e}") from e


def safe_remove(path: Path) -> bool:
    """Remove a file or directory tree, returning False if nothing was there.

    Raises:
        FilesystemError: If the path exists but cannot be removed
    """
    path = Path(path)
    try:
        if path.is_symlink() or path.is_file():
            path.unlink()
            return True
        if path.is_dir():
            shutil.rmtree(path)
            return True
        return False
    except OSError as e:
        raise FilesystemError(f"Failed to remove {path}: {e}") from e


def copy_file(src: Path, dst: Path, preserve_metadata: bool = True) -> None:
    """Copy file with proper error handling."""
    try:
        src = Path(src)
        dst = Path(dst)
        dst.parent.mkdir(parents=True, exist_ok=True)
        if preserve_metadata:
            shutil.copy2(src, dst)
        else:
            shutil.copy(src, dst)
        logger.debug("Copied %s to %s", src, dst)
    except FileNotFoundError as e:
        raise PathError(f"Source file not found: {src}") from e
    except PermissionError as e:
        raise FilesystemError(f"Permission denied copying from {src} to {dst}") from e
    except OSError as e:
        raise FilesystemError(f"Error copying {src} to {dst}: {e}") from e


def backup_file(path: Path, token: Optional[str] = None) -> Path:
    """Copy path to a timestamped sibling `<name>.backup.<token>` and return it.

    A numeric suffix is added when a backup with the same token exists.
    """
    path = Path(path)
    token = token or timestamp_token()
    backup = path.with_name(f"{path.name}.backup.{token}")
    counter = 1
    while backup.exists():
        backup = path.with_name(f"{path.name}.backup.{token}.{counter}")
        counter += 1
    copy_file(path, backup)
    logger.info("Backed up %s to %s", path, backup)
    return backup


def tail_lines(path: Path, count: int = 10) -> List[str]:
    """Return the last count lines of a text file, or [] if it does not exist."""
    path = Path(path)
    if not path.exists():
        return []
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as handle:
            return [line.rstrip("\n") for line in deque(handle, maxlen=count)]
    except OSError as e:
        raise FilesystemError(f"Error reading {path}: {e}") from e


def nearest_existing_parent(path: Path) -> Path:
    """Walk up from path to the first ancestor that exists."""
    current = Path(path).absolute()
    while not current.exists() and current != current.parent:
        current = current.parent
    return current


# =============================================================================
# InstallLayout (paths derived from one install directory)
# =============================================================================


INSTALL_LOG_NAME = "alloykit-install.log"


@dataclass(frozen=True)
class InstallLayout:
    """Directory layout of one instance installation.

    <root>/
        config/            component configs (alloy.alloy, prometheus.yml, ...)
        config/grafana/    provisioning and dashboards
        bin/               native binaries
        share/             unpacked native distributions (grafana homepath)
        data/<component>/  native data directories
        logs/              native component logs
        alloykit-install.log
    """

    root: Path

    @property
    def config_dir(self) -> Path:
        return self.root / "config"

    @property
    def grafana_dir(self) -> Path:
        return self.config_dir / "grafana"

    @property
    def bin_dir(self) -> Path:
        return self.root / "bin"

    @property
    def share_dir(self) -> Path:
        return self.root / "share"

    @property
    def data_dir(self) -> Path:
        return self.root / "data"

    @property
    def logs_dir(self) -> Path:
        return self.root / "logs"

    @property
    def install_log(self) -> Path:
        return self.root / INSTALL_LOG_NAME

    def config_file(self, name: str) -> Path:
        return self.config_dir / name

    def directories(self) -> List[Path]:
        return [
            self.config_dir,
            self.grafana_dir / "provisioning" / "datasources",
            self.grafana_dir / "provisioning" / "dashboards",
            self.grafana_dir / "dashboards",
            self.bin_dir,
            self.share_dir,
            self.data_dir,
            self.logs_dir,
        ]

    def create(self) -> None:
        for directory in self.directories():
            ensure_dir(directory)
