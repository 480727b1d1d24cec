"""Structured logging with JSON file output and rich terminal formatting."""

import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

from .log_formatters import StructuredFormatter, ElasticRichHandler

ROOT_NAMESPACE = "elastic_memory_server"


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

    Loggers handed out by the manager never propagate to the root logger,
    so configuring the library does not interfere with the host test suite.
    """

    def __init__(self) -> None:
        self._configured = False
        self._json_handler: Optional[logging.Handler] = None
        self._console_handler: Optional[logging.Handler] = None
        self._loggers: Dict[str, logging.Logger] = {}
        self._lock = threading.RLock()

    @property
    def is_configured(self) -> bool:
        return self._configured

    def configure(
        self,
        level: Union[int, str] = logging.INFO,
        log_file: Optional[Path] = None,
        enable_json: bool = True,
        enable_console: bool = True,
        console_level: Optional[Union[int, str]] = None,
    ) -> None:
        """Configure logging system. Later calls are ignored until reset."""
        with self._lock:
            if self._configured:
                return

            if enable_json and log_file:
                log_file = Path(log_file)
                log_file.parent.mkdir(parents=True, exist_ok=True)
                self._json_handler = logging.FileHandler(log_file)
                self._json_handler.setFormatter(StructuredFormatter())
                self._json_handler.setLevel(level)

            if enable_console:
                self._console_handler = ElasticRichHandler(
                    show_time=True, show_path=False, markup=False
                )
                self._console_handler.setLevel(console_level or level)

            for logger in self._loggers.values():
                self._attach_handlers(logger)

            self._configured = True

    def get_logger(self, name: str) -> logging.Logger:
        """Get a logger instance inside the library namespace."""
        with self._lock:
            if name != ROOT_NAMESPACE and not name.startswith(ROOT_NAMESPACE + "."):
                name = f"{ROOT_NAMESPACE}.{name}"

            if name in self._loggers:
                return self._loggers[name]

            logger = logging.getLogger(name)
            logger.propagate = False
            logger.setLevel(logging.DEBUG)
            self._attach_handlers(logger)

            self._loggers[name] = logger
            return logger

    def shutdown(self) -> None:
        """Detach and close all handlers."""
        with self._lock:
            for logger in self._loggers.values():
                for handler in logger.handlers[:]:
                    logger.removeHandler(handler)

            for handler in (self._json_handler, self._console_handler):
                if handler is not None:
                    try:
                        handler.close()
                    except (OSError, RuntimeError):
                        pass  # Ignore handler close errors

            self._json_handler = None
            self._console_handler = None
            self._configured = False

    def reset_configuration(self) -> None:
        """Reset configuration to allow reconfiguration.

        This is useful for test isolation where different tests
        might need different logging configurations.
        """
        self.shutdown()

    def _attach_handlers(self, logger: logging.Logger) -> None:
        for handler in (self._json_handler, self._console_handler):
            if handler is not None and handler not in logger.handlers:
                logger.addHandler(handler)


# Global log manager instance
_log_manager = LogManager()


def configure_logging(**kwargs: Any) -> None:
    """Configure the global logging system."""
    _log_manager.configure(**kwargs)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return _log_manager.get_logger(name)


def shutdown_logging() -> None:
    """Shutdown the logging system."""
    _log_manager.shutdown()


def reset_logging() -> None:
    """Reset logging configuration to allow reconfiguration."""
    _log_manager.reset_configuration()


def log_process_event(
    logger: Logger, event: str, pid: Optional[int] = None, **kwargs: Any
) -> None:
    """Log a process-related event."""
    extra: Dict[str, Any] = {"event_type": "process", "process_event": event}
    if pid is not None:
        extra["pid"] = pid
    extra.update(kwargs)
    logger.info("Process %s %s", pid, event, extra=extra)


def log_server_event(
    logger: Logger, event: str, uri: Optional[str] = None, **kwargs: Any
) -> None:
    """Log a session-related event."""
    extra: Dict[str, Any] = {"event_type": "server", "server_event": event}
    if uri is not None:
        extra["uri"] = uri
    extra.update(kwargs)
    logger.info("Server %s %s", uri or "-", event, extra=extra)
