"""Logger factory for creating isolated logging environments."""

import logging
import threading
from typing import Dict, Optional, Union
from pathlib import Path

from .log_formatters import StructuredFormatter, AlloyKitRichHandler, _log_context


class IsolatedLogManager:
    """Non-singleton log manager for isolated logging environments."""

    def __init__(self, namespace: str = "") -> None:
        """Initialize isolated log manager.

        Args:
            namespace: Namespace prefix for logger names to ensure isolation
        """
        self._namespace = namespace
        self._configured = False
        self._log_file: Optional[Path] = None
        self._json_handler: Optional[logging.Handler] = None
        self._console_handler: Optional[logging.Handler] = None
        self._loggers: Dict[str, logging.Logger] = {}
        self._lock = threading.RLock()

    @property
    def log_file(self) -> Optional[Path]:
        return self._log_file

    def configure(self,
                  level: Union[int, str] = logging.INFO,
                  log_file: Optional[Path] = None,
                  enable_json: bool = True,
                  enable_console: bool = True,
                  console_level: Optional[Union[int, str]] = None) -> None:
        """Configure this logging instance."""
        with self._lock:
            # Allow reconfiguration for test isolation
            if self._configured:
                self._clear_configuration()

            if enable_json and log_file:
                self._attach_file_handler(Path(log_file), level)

            if enable_console:
                console_level = console_level or level
                self._console_handler = AlloyKitRichHandler(
                    show_time=True,
                    show_path=False,
                    markup=False
                )
                self._console_handler.setLevel(console_level)
                for logger in self._loggers.values():
                    logger.addHandler(self._console_handler)

            self._configured = True

    def add_file_handler(self, log_file: Path, level: Union[int, str] = logging.DEBUG) -> None:
        """Attach (or replace) the JSON file handler on every managed logger."""
        with self._lock:
            self._attach_file_handler(Path(log_file), level)

    def _attach_file_handler(self, log_file: Path, level: Union[int, str]) -> None:
        if self._json_handler is not None:
            for logger in self._loggers.values():
                logger.removeHandler(self._json_handler)
            self._json_handler.close()

        log_file.parent.mkdir(parents=True, exist_ok=True)
        self._log_file = log_file
        self._json_handler = logging.FileHandler(log_file)
        self._json_handler.setFormatter(
            StructuredFormatter(include_context=True, context_getter=_log_context.get_context)
        )
        self._json_handler.setLevel(level)
        for logger in self._loggers.values():
            logger.addHandler(self._json_handler)

    def create_logger(self, name: str) -> logging.Logger:
        """Create a logger instance with namespace isolation."""
        with self._lock:
            full_name = f"{self._namespace}.{name}" if self._namespace else name

            if full_name in self._loggers:
                return self._loggers[full_name]

            logger = logging.getLogger(full_name)

            # Ensure logger doesn't propagate to root to avoid global interference
            logger.propagate = False
            logger.setLevel(logging.DEBUG)

            if self._json_handler:
                logger.addHandler(self._json_handler)
            if self._console_handler:
                logger.addHandler(self._console_handler)

            self._loggers[full_name] = logger
            return logger

    def reset(self) -> None:
        """Drop handlers but keep managed loggers so they can be reconfigured."""
        with self._lock:
            self._clear_configuration()

    def shutdown(self) -> None:
        """Shutdown this logging instance."""
        with self._lock:
            self._clear_configuration()
            self._loggers.clear()

    def _clear_configuration(self) -> None:
        """Clear current configuration and handlers."""
        for logger in self._loggers.values():
            for handler in logger.handlers[:]:
                logger.removeHandler(handler)

        for handler in (self._json_handler, self._console_handler):
            if handler is None:
                continue
            try:
                handler.close()
            except (OSError, RuntimeError):
                pass  # Ignore handler close errors

        self._json_handler = None
        self._console_handler = None
        self._log_file = None
        self._configured = False
