"""Core type definitions for the elastic memory server."""

import os
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_IP = "127.0.0.1"
DEFAULT_HTTP_PORT = 9200
DEFAULT_READY_MARKER = "started"


class TimeoutConfig(BaseModel):
    """Centralized timeout configuration for readiness and shutdown."""

    # Readiness probing (150 x 200ms = 30s budget)
    probe_interval: float = 0.2
    probe_max_attempts: int = 150
    probe_request_timeout: float = 2.0

    # Shutdown
    shutdown_graceful: float = 10.0
    shutdown_force: float = 5.0

    @property
    def readiness_deadline(self) -> float:
        """Total time the HTTP probe loop may spend before giving up."""
        return self.probe_interval * self.probe_max_attempts

    @model_validator(mode="after")
    def validate_timeouts(self) -> "TimeoutConfig":
        """Reject non-positive timing values."""
        from .errors import ConfigurationError

        if self.probe_interval <= 0:
            raise ConfigurationError("Probe interval must be positive")
        if self.probe_max_attempts < 1:
            raise ConfigurationError("Probe attempts must be at least 1")
        if self.probe_request_timeout <= 0:
            raise ConfigurationError("Probe request timeout must be positive")
        if self.shutdown_graceful <= 0 or self.shutdown_force <= 0:
            raise ConfigurationError("Shutdown timeouts must be positive")
        return self


class InstanceOptions(BaseModel):
    """Caller-supplied options for a memory server instance.

    Every field is optional: the session manager fills in a free port,
    the loopback address and a temporary data directory when absent.
    """

    port: Optional[int] = None
    ip: Optional[str] = None
    db_path: Optional[Path] = None
    args: List[str] = Field(default_factory=list)
    binary: Optional[Path] = None
    env: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_port(self) -> "InstanceOptions":
        """Validate the requested port range."""
        from .errors import ConfigurationError

        if self.port is not None and not 0 < self.port < 65536:
            raise ConfigurationError(f"Invalid port: {self.port}")
        return self


class InstanceConfig(BaseModel):
    """Resolved, immutable configuration for one server process."""

    model_config = ConfigDict(frozen=True)

    ip: str = DEFAULT_IP
    port: Optional[int] = None
    db_path: Optional[Path] = None
    args: List[str] = Field(default_factory=list)
    binary: Optional[Path] = None
    env: Dict[str, str] = Field(default_factory=dict)
    ready_marker: str = DEFAULT_READY_MARKER
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)

    @property
    def data_path(self) -> Optional[Path]:
        """Directory passed as ``path.data``."""
        if self.db_path is None:
            return None
        return Path(os.path.abspath(self.db_path)) / "path"

    @property
    def logs_path(self) -> Optional[Path]:
        """Directory passed as ``path.logs``."""
        if self.db_path is None:
            return None
        return Path(os.path.abspath(self.db_path)) / "logs"

    @property
    def endpoint(self) -> str:
        """HTTP endpoint probed for readiness."""
        return f"http://{self.ip}:{self.port or DEFAULT_HTTP_PORT}"


class MemoryServerConfig(BaseModel):
    """Main configuration for an ElasticMemoryServer."""

    instance: InstanceOptions = Field(default_factory=InstanceOptions)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    log_level: str = "INFO"
    tmp_root: Optional[Path] = None


class HealthStatus(BaseModel):
    """Result of one readiness probe."""

    is_healthy: bool
    response_time: float
    error_message: Optional[str] = None
