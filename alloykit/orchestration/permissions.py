"""Access checks for log locations before they are handed to the collector."""

import getpass
import glob
import grp
import os
import pwd
import stat
from pathlib import Path
from typing import List, Optional

from ..core.errors import LogPermissionError
from ..core.log import Logger, get_logger
from ..core.types import PermissionReport


def expand_log_path(path: str) -> str:
    """Expand a leading ~ to the home directory; globs are left intact."""
    return os.path.expanduser(path)


def _static_parent(pattern: str) -> str:
    """Deepest directory of pattern that contains no glob characters."""
    parent = os.path.dirname(pattern) or "."
    while glob.has_magic(parent):
        parent = os.path.dirname(parent) or "."
    return parent


def _describe(path: str) -> str:
    try:
        info = os.stat(path)
    except OSError as e:
        return f"unavailable ({e.strerror})"
    try:
        owner = pwd.getpwuid(info.st_uid).pw_name
    except KeyError:
        owner = str(info.st_uid)
    try:
        group = grp.getgrgid(info.st_gid).gr_name
    except KeyError:
        group = str(info.st_gid)
    return f"{stat.filemode(info.st_mode)} {owner}:{group} {path}"


def _owning_group(path: str) -> str:
    try:
        return grp.getgrgid(os.stat(path).st_gid).gr_name
    except (OSError, KeyError):
        return "<group>"


class PermissionChecker:
    """Decides whether the collector can read a log path or pattern.

    Existing matches must be readable. When nothing matches yet, the parent
    directory must be readable and traversable and the collector will watch
    for the file to appear.
    """

    def __init__(self, logger: Optional[Logger] = None, user: Optional[str] = None) -> None:
        self._logger = logger or get_logger(__name__)
        self._user = user or getpass.getuser()

    def remediation_for(self, path: str) -> List[str]:
        return [
            f"Add user to the owning group: sudo usermod -a -G {_owning_group(path)} {self._user}",
            f"Change file permissions: sudo chmod +r {path}",
            "Run the collector with elevated privileges",
        ]

    def check(self, path: str) -> PermissionReport:
        """Validate access to path.

        Raises:
            LogPermissionError: A matched file or the parent directory is not accessible
        """
        expanded = expand_log_path(path)
        report = PermissionReport(path=path, expanded_path=expanded)

        if glob.has_magic(expanded):
            matches = sorted(glob.glob(expanded))
        else:
            matches = [expanded] if os.path.exists(expanded) else []

        for match in matches:
            if not os.access(match, os.R_OK):
                raise LogPermissionError(
                    f"{match} is not readable by user {self._user}",
                    path=match,
                    remediation=self.remediation_for(match),
                    details={"file_info": _describe(match)},
                )
            if os.path.isdir(match) and not os.access(match, os.X_OK):
                raise LogPermissionError(
                    f"Directory {match} is not traversable by user {self._user}",
                    path=match,
                    remediation=[f"Change directory permissions: sudo chmod +rx {match}"],
                    details={"file_info": _describe(match)},
                )
            report.readable_paths.append(match)
            self._logger.debug("%s is readable", match)

        if matches:
            return report

        parent = _static_parent(expanded)
        if os.path.isdir(parent):
            if not (os.access(parent, os.R_OK) and os.access(parent, os.X_OK)):
                raise LogPermissionError(
                    f"Parent directory {parent} is not accessible; log files cannot be discovered",
                    path=parent,
                    remediation=[
                        f"Change directory permissions: sudo chmod +rx {parent}",
                        f"Add user to the owning group: sudo usermod -a -G {_owning_group(parent)} {self._user}",
                        "Run the collector with elevated privileges",
                    ],
                    details={"file_info": _describe(parent)},
                )
            report.watch_for_creation = True
            report.warnings.append(
                f"No file matches {expanded} yet; the collector will pick it up once created"
            )
        else:
            report.watch_for_creation = True
            report.warnings.append(
                f"Path {expanded} does not exist; the collector will monitor for file creation"
            )
        return report


def sanitize_job_name(raw: str) -> str:
    """Keep only [A-Za-z0-9_-] and lowercase the result."""
    kept = "".join(ch for ch in raw if (ch.isascii() and ch.isalnum()) or ch in "_-")
    return kept.lower()


def default_job_name(path: str) -> str:
    """Basename of path with a trailing .log removed."""
    name = Path(expand_log_path(path)).name
    if name.endswith(".log"):
        name = name[: -len(".log")]
    return name
