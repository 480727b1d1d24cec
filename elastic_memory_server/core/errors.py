"""Error hierarchy for the elastic memory server."""

from typing import Optional, Dict, Any, List


class ElasticMemoryServerError(Exception):
    """Base exception for all elastic memory server errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# Configuration Errors
class ConfigurationError(ElasticMemoryServerError):
    """Error in server or instance configuration."""


# Binary Resolution Errors
class BinaryResolutionError(ElasticMemoryServerError):
    """The server binary could not be resolved or fetched."""


class BinaryNotFoundError(BinaryResolutionError):
    """No usable server binary was found."""

    def __init__(self, message: str, searched: Optional[List[str]] = None,
                 details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.searched = searched or []


# Launch Errors
class LaunchError(ElasticMemoryServerError):
    """Base class for failures while bringing an instance up."""


class SpawnError(LaunchError):
    """The operating system refused to execute the server binary."""


class PrematureExitError(LaunchError):
    """Server process exited before it became ready."""

    def __init__(self, message: str, exit_code: Optional[int], signal: Optional[int] = None,
                 stderr_tail: Optional[List[str]] = None,
                 details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.exit_code = exit_code
        self.signal = signal
        self.stderr_tail = stderr_tail or []


class KilledBeforeReadyError(LaunchError):
    """The instance was killed while it was still starting."""


class ReadinessTimeoutError(LaunchError):
    """No readiness signal arrived within the probe budget."""

    def __init__(self, message: str, timeout: float, attempts: int,
                 details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.timeout = timeout
        self.attempts = attempts


# Session State Errors
class ServerStateError(ElasticMemoryServerError):
    """Operation not valid in the current session state."""


class AlreadyStartedError(ServerStateError):
    """start() called while a session is active or starting."""


# Resource Errors
class NetworkError(ElasticMemoryServerError):
    """Network-related error."""


class FilesystemError(ElasticMemoryServerError):
    """Filesystem operation error."""
