"""Instance management components.

API:
    - ElasticMemoryServer: Session manager, one instance per handle
    - ElasticInstance: Supervisor of a single server process
    - InstanceRegistry: Explicit registry for bulk teardown
"""

from .server import ElasticMemoryServer, InstanceInfo
from .instance import ElasticInstance
from .registry import InstanceRegistry

__all__ = [
    "ElasticMemoryServer",
    "InstanceInfo",
    "ElasticInstance",
    "InstanceRegistry",
]
