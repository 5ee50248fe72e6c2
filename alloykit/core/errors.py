"""Error hierarchy and exception system for AlloyKit."""

from typing import Optional, Dict, Any, List


class AlloyKitError(Exception):
    """Base exception for all AlloyKit errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# Validation and Configuration Errors
class ValidationError(AlloyKitError):
    """Input or configuration failed validation. Always raised before side effects."""

    def __init__(self, message: str, errors: Optional[List[str]] = None,
                 details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.errors = errors or [message]


class ConfigurationError(ValidationError):
    """Error in configuration file or overrides."""


class AmbiguousUnitError(ValidationError):
    """More than one unit matched where exactly one was required."""

    def __init__(self, message: str, candidates: List[str],
                 details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details=details)
        self.candidates = candidates


# Network Errors
class NetworkError(AlloyKitError):
    """Network-related error."""


class TransientNetworkError(NetworkError):
    """Network failure that is worth retrying."""


# Process Errors
class ProcessError(AlloyKitError):
    """Base class for process-related errors."""


class ProcessTimeoutError(ProcessError):
    """Process operation timed out."""

    def __init__(self, message: str, timeout: float, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.timeout = timeout


# Substrate and Unit Errors
class SubstrateError(AlloyKitError):
    """A container or process engine operation failed for a unit."""

    def __init__(self, message: str, unit: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.unit = unit


class UnitNotFoundError(SubstrateError):
    """No unit matched the requested component and instance."""


# Reconfiguration Errors
class LogPermissionError(AlloyKitError):
    """The collector cannot read the requested log location."""

    def __init__(self, message: str, path: str, remediation: Optional[List[str]] = None,
                 details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.path = path
        self.remediation = remediation or []


class ConfigMutationError(AlloyKitError):
    """Collector configuration could not be backed up or changed."""


# Filesystem and IO Errors
class FilesystemError(AlloyKitError):
    """Filesystem operation error."""


class PathError(FilesystemError):
    """Path resolution or validation error."""


class AtomicWriteError(FilesystemError):
    """Atomic write operation failed."""


class LockTimeoutError(FilesystemError):
    """Timed out waiting for an exclusive lock."""


# Installation Errors
class InstallationError(AlloyKitError):
    """Install workflow failed and was rolled back."""


class DownloadError(InstallationError):
    """One or more artifacts could not be fetched."""

    def __init__(self, message: str, failed: List[str],
                 details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.failed = failed
