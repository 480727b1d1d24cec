"""Readiness detection for a starting server process.

Two detectors race into one ReadinessSignal: a marker on standard output
and an HTTP probe of the server endpoint. The first settlement wins;
later ones are ignored.
"""

import asyncio
import time
from typing import Optional, Protocol

import aiohttp

from ..core.log import Logger, get_logger
from ..core.types import DEFAULT_READY_MARKER, HealthStatus

SOURCE_STDOUT = "stdout"
SOURCE_HTTP = "http"


def is_ready_line(line: str, marker: str = DEFAULT_READY_MARKER) -> bool:
    """Case-insensitive substring match for the readiness marker."""
    return marker.lower() in line.lower()


class ReadinessSignal:
    """One-shot completion slot: ready with a source, or failed with an error.

    Only the first call to :meth:`set_ready` or :meth:`set_failed` has an
    effect; both return whether they won.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()
        self.source: Optional[str] = None

    @property
    def done(self) -> bool:
        return self._future.done()

    @property
    def is_ready(self) -> bool:
        return self.source is not None

    def set_ready(self, source: str) -> bool:
        if self._future.done():
            return False
        self.source = source
        self._future.set_result(source)
        return True

    def set_failed(self, error: BaseException) -> bool:
        if self._future.done():
            return False
        self._future.set_exception(error)
        return True

    async def wait(self) -> str:
        """Wait for settlement; returns the winning source or raises the failure."""
        return await asyncio.shield(self._future)


class ReadinessProbe(Protocol):
    """Protocol for HTTP readiness probes to enable dependency injection."""

    async def check(self, url: str) -> HealthStatus:
        """Probe ``url`` once."""


class HttpReadinessProbe:
    """Single-shot HTTP GET probe; healthy on status 200."""

    def __init__(self, request_timeout: float = 2.0, logger: Optional[Logger] = None) -> None:
        self._request_timeout = request_timeout
        self._logger = logger or get_logger(__name__)

    async def check(self, url: str) -> HealthStatus:
        start_time = time.time()
        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._request_timeout)
            ) as session:
                async with session.get(url) as response:
                    response_time = time.time() - start_time
                    if response.status == 200:
                        return HealthStatus(is_healthy=True, response_time=response_time)
                    return HealthStatus(
                        is_healthy=False,
                        response_time=response_time,
                        error_message=f"HTTP {response.status}: {response.reason}",
                    )
        except asyncio.TimeoutError:
            return HealthStatus(
                is_healthy=False,
                response_time=time.time() - start_time,
                error_message="Connection timeout",
            )
        except (aiohttp.ClientError, OSError) as e:
            # Expected while the server is still binding its port
            return HealthStatus(
                is_healthy=False,
                response_time=time.time() - start_time,
                error_message=f"Connection error: {e}",
            )
