"""
Elastic Memory Server: throwaway search servers for integration tests

Starts a real single-node search server on a free port with a temporary
data directory, waits until it is ready, and tears the whole process tree
down again when the test session is over.
"""

__version__ = "1.0.0"

# Core exports
from .core.errors import (
    ElasticMemoryServerError,
    ConfigurationError,
    BinaryResolutionError,
    BinaryNotFoundError,
    LaunchError,
    SpawnError,
    PrematureExitError,
    KilledBeforeReadyError,
    ReadinessTimeoutError,
    ServerStateError,
    AlreadyStartedError,
)
from .core.types import (
    TimeoutConfig,
    InstanceOptions,
    InstanceConfig,
    MemoryServerConfig,
)
from .core.config import load_config
from .instances.instance import ElasticInstance
from .instances.registry import InstanceRegistry
from .instances.server import ElasticMemoryServer, InstanceInfo

__all__ = [
    "__version__",
    "ElasticMemoryServerError",
    "ConfigurationError",
    "BinaryResolutionError",
    "BinaryNotFoundError",
    "LaunchError",
    "SpawnError",
    "PrematureExitError",
    "KilledBeforeReadyError",
    "ReadinessTimeoutError",
    "ServerStateError",
    "AlreadyStartedError",
    "TimeoutConfig",
    "InstanceOptions",
    "InstanceConfig",
    "MemoryServerConfig",
    "load_config",
    "ElasticInstance",
    "InstanceRegistry",
    "ElasticMemoryServer",
    "InstanceInfo",
]
