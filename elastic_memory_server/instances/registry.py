"""Registry of live server instances for bulk teardown."""

import asyncio
import threading
from typing import TYPE_CHECKING, Dict, List, Optional

from ..core.log import get_logger

if TYPE_CHECKING:
    from .instance import ElasticInstance

logger = get_logger(__name__)


class InstanceRegistry:
    """Thread-safe registry of running ElasticInstance objects, keyed by PID.

    Instances register themselves after a successful spawn and unregister
    when killed. Owners create one explicitly (e.g. per test session) and
    call :meth:`stop_all` during teardown.
    """

    def __init__(self) -> None:
        self._instances: Dict[int, "ElasticInstance"] = {}
        self._lock = threading.RLock()

    def register(self, pid: int, instance: "ElasticInstance") -> None:
        """Register an instance.

        Raises:
            ValueError: If pid is already registered
        """
        with self._lock:
            if pid in self._instances:
                raise ValueError(f"Instance with pid {pid} is already registered")
            self._instances[pid] = instance

    def unregister(self, pid: int) -> Optional["ElasticInstance"]:
        """Unregister and return an instance, or None if not found."""
        with self._lock:
            return self._instances.pop(pid, None)

    def get(self, pid: int) -> Optional["ElasticInstance"]:
        with self._lock:
            return self._instances.get(pid)

    def get_all(self) -> List["ElasticInstance"]:
        with self._lock:
            return list(self._instances.values())

    def count(self) -> int:
        with self._lock:
            return len(self._instances)

    def clear(self) -> None:
        """Forget all instances without stopping them."""
        with self._lock:
            self._instances.clear()

    async def stop_all(self) -> None:
        """Kill every registered instance and wait for all of them to exit."""
        instances = self.get_all()
        if not instances:
            return

        logger.info("Stopping %s registered instances", len(instances))
        results = await asyncio.gather(
            *(instance.kill() for instance in instances), return_exceptions=True
        )
        for instance, result in zip(instances, results):
            if isinstance(result, BaseException):
                logger.error("Error stopping instance %s: %s", instance.pid, result)
        self.clear()
