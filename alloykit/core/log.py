"""Structured logging system with JSON output and rich terminal formatting."""

import logging
from typing import Any, Dict, Optional, Union, Protocol
from pathlib import Path

from .log_formatters import _log_context
from .logger_factory import IsolatedLogManager


class Logger(Protocol):
    """Protocol for logger instances to enable dependency injection."""

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log debug message."""

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log info message."""

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log warning message."""

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log error message."""

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log exception with traceback."""


class LogManager:
    """Central logging configuration and management.

    Thin process-wide wrapper around an IsolatedLogManager so modules can call
    get_logger() at import time and receive handlers once the CLI configures
    logging.
    """

    def __init__(self) -> None:
        self._manager = IsolatedLogManager("alloykit")
        self._configured = False

    def configure(
        self,
        level: Union[int, str] = logging.INFO,
        log_file: Optional[Path] = None,
        enable_json: bool = True,
        enable_console: bool = True,
        console_level: Optional[Union[int, str]] = None,
    ) -> None:
        """Configure logging system. Subsequent calls are ignored until reset."""
        if self._configured:
            return

        self._manager.configure(
            level=level,
            log_file=log_file,
            enable_json=enable_json,
            enable_console=enable_console,
            console_level=console_level,
        )
        self._configured = True

    def add_file_logging(self, log_file: Path, level: Union[int, str] = logging.DEBUG) -> None:
        self._manager.add_file_handler(log_file, level)

    def get_logger(self, name: str) -> logging.Logger:
        """Get a logger instance."""
        return self._manager.create_logger(name)

    def shutdown(self) -> None:
        """Shutdown logging system."""
        self._manager.shutdown()
        self._configured = False

    def reset_configuration(self) -> None:
        """Reset configuration to allow reconfiguration.

        Used for test isolation where different tests need different
        logging configurations.
        """
        self._configured = False
        self._manager.reset()


# Global log manager instance
_log_manager = LogManager()


def configure_logging(**kwargs: Any) -> None:
    """Configure the global logging system."""
    _log_manager.configure(**kwargs)


def add_file_logging(log_file: Path, level: Union[int, str] = logging.DEBUG) -> None:
    """Add file logging to an already-configured logging system.

    The installer calls this once the install directory exists, so the
    JSON install log lands next to the installation without disrupting the
    console handler.

    Args:
        log_file: Path to the log file
        level: Logging level for the file handler (default: DEBUG for detailed logs)
    """
    _log_manager.add_file_logging(Path(log_file), level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return _log_manager.get_logger(name)


def shutdown_logging() -> None:
    """Shutdown the logging system."""
    _log_manager.shutdown()


def reset_logging() -> None:
    """Reset logging configuration to allow reconfiguration."""
    _log_manager.reset_configuration()


def log_event(
    logger: Logger, event_type: str, message: str, **kwargs: Any
) -> None:
    """Log a structured event with context."""
    logger.info(message, extra={"event_type": event_type, **kwargs})


def log_process_event(
    logger: Logger, event: str, pid: Optional[int] = None, **kwargs: Any
) -> None:
    """Log a process-related event."""
    extra: Dict[str, Any] = {"event_type": "process", "process_event": event}
    if pid is not None:
        extra["pid"] = pid
    extra.update(kwargs)
    logger.info("Process %s %s", pid, event, extra=extra)


def log_unit_event(
    logger: Logger, event: str, unit: Optional[str] = None, **kwargs: Any
) -> None:
    """Log a unit lifecycle event (start, stop, remove, restart)."""
    extra: Dict[str, Any] = {"event_type": "unit", "unit_event": event}
    if unit is not None:
        extra["unit"] = unit
    extra.update(kwargs)
    logger.info("Unit %s %s", unit, event, extra=extra)


def log_context(**kwargs: Any) -> Any:
    """Context manager for temporary logging context."""
    return _log_context.context(**kwargs)
