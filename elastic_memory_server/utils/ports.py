"""Ephemeral port allocation for test isolation."""

import socket
import threading
from typing import Optional, Protocol, Set

from ..core.errors import NetworkError
from ..core.log import get_logger

logger = get_logger(__name__)

MAX_ALLOCATION_ATTEMPTS = 50


class PortAllocator(Protocol):
    """Protocol for port allocation to enable dependency injection."""

    def allocate_port(self, preferred: Optional[int] = None) -> int:
        """Allocate an available port."""

    def release_port(self, port: int) -> None:
        """Release a previously allocated port."""


class PortManager:
    """Thread-safe allocator of free TCP ports.

    A preferred port is honored when it is still free; otherwise the OS
    picks an ephemeral port. Ports stay reserved in this process until
    released, so concurrent sessions never receive the same port before
    their servers have bound it.
    """

    def __init__(self, host: str = "127.0.0.1") -> None:
        self.host = host
        self._allocated: Set[int] = set()
        self._lock = threading.Lock()

    def allocate_port(self, preferred: Optional[int] = None) -> int:
        """Allocate an available port.

        Args:
            preferred: Optional preferred port number

        Returns:
            Allocated port number

        Raises:
            NetworkError: If no free port could be obtained
        """
        with self._lock:
            if preferred and self._is_available(preferred):
                self._allocated.add(preferred)
                logger.debug("Allocated preferred port %s", preferred)
                return preferred

            if preferred:
                logger.debug("Preferred port %s is busy, picking a free one", preferred)

            for _ in range(MAX_ALLOCATION_ATTEMPTS):
                port = self._ephemeral_port()
                if port not in self._allocated:
                    self._allocated.add(port)
                    logger.debug("Allocated ephemeral port %s", port)
                    return port

            raise NetworkError(
                f"Could not allocate a free port on {self.host} "
                f"after {MAX_ALLOCATION_ATTEMPTS} attempts"
            )

    def release_port(self, port: int) -> None:
        """Release a previously allocated port."""
        with self._lock:
            self._allocated.discard(port)
            logger.debug("Released port %s", port)

    def is_allocated(self, port: int) -> bool:
        with self._lock:
            return port in self._allocated

    def _is_available(self, port: int) -> bool:
        """Check if port is neither reserved here nor bound by anyone else."""
        if port in self._allocated:
            return False

        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.bind((self.host, port))
                return True
        except OSError:
            return False

    def _ephemeral_port(self) -> int:
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
                sock.bind((self.host, 0))
                return sock.getsockname()[1]
        except OSError as e:
            raise NetworkError(f"Could not bind an ephemeral port on {self.host}: {e}") from e


_port_manager = PortManager()


def get_port_manager() -> PortManager:
    """Return the process-wide port manager shared by all sessions."""
    return _port_manager
