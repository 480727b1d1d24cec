"""Main pytest plugin for elastic memory server integration."""

import asyncio
import logging
import threading
from typing import Any, Awaitable, Iterator, Optional, TypeVar

import pytest
from pytest import StashKey

from ..core.config import load_config
from ..core.errors import ElasticMemoryServerError
from ..core.log import configure_logging, get_logger, shutdown_logging
from ..core.types import MemoryServerConfig
from ..instances.registry import InstanceRegistry
from ..instances.server import ElasticMemoryServer

logger = get_logger(__name__)

T = TypeVar("T")


class EventLoopThread:
    """Event loop running in a daemon thread.

    Server processes stay attached to this loop for the whole session, so
    their output pipes keep draining while synchronous tests run.
    """

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self.loop.run_forever, name="elastic-memory-server-loop", daemon=True
        )
        self._thread.start()

    def run(self, coro: Awaitable[T], timeout: Optional[float] = None) -> T:
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout)

    def close(self) -> None:
        if self.loop.is_closed():
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join()
        self.loop.close()


class ElasticPlugin:
    """Owns the session event loop and instance registry."""

    def __init__(self) -> None:
        self.config: Optional[MemoryServerConfig] = None
        self.registry = InstanceRegistry()
        self._loop_thread: Optional[EventLoopThread] = None

    @property
    def loop_thread(self) -> EventLoopThread:
        if self._loop_thread is None:
            self._loop_thread = EventLoopThread()
        return self._loop_thread

    def pytest_configure(self, config: pytest.Config) -> None:
        self.config = load_config()
        if self.config.log_level != "DEBUG":
            logging.getLogger("asyncio").setLevel(logging.WARNING)
            logging.getLogger("aiohttp").setLevel(logging.WARNING)
        configure_logging(level=self.config.log_level, enable_console=True)
        config.addinivalue_line(
            "markers", "elastic: Requires a running ephemeral search server"
        )
        logger.debug("Elastic memory server pytest plugin configured")

    def pytest_unconfigure(self, _config: pytest.Config) -> None:
        """Safety net: kill anything fixtures failed to stop."""
        if self._loop_thread is not None:
            self._stop_leftovers(self._loop_thread)
            self._loop_thread.close()
            self._loop_thread = None
        logger.debug("Elastic memory server pytest plugin unconfigured")
        shutdown_logging()

    def _stop_leftovers(self, loop_thread: EventLoopThread) -> None:
        if self.registry.count():
            logger.warning(
                "Plugin safety cleanup: %s instances still running", self.registry.count()
            )
            try:
                loop_thread.run(self.registry.stop_all())
            except (OSError, ElasticMemoryServerError) as e:
                logger.error("Error during plugin cleanup: %s", e)


plugin_key = StashKey[ElasticPlugin]()


def pytest_configure(config: pytest.Config) -> None:
    """Plugin entry point - create and store plugin in stash."""
    plugin = ElasticPlugin()
    config.stash[plugin_key] = plugin
    plugin.pytest_configure(config)


def pytest_unconfigure(config: pytest.Config) -> None:
    """Plugin cleanup entry point."""
    plugin = config.stash.get(plugin_key, None)
    if plugin is not None:
        plugin.pytest_unconfigure(config)


@pytest.fixture(scope="session")
def elastic_registry(pytestconfig: pytest.Config) -> Iterator[InstanceRegistry]:
    """Registry of every instance started by the plugin fixtures."""
    plugin = pytestconfig.stash[plugin_key]
    yield plugin.registry
    if plugin.registry.count():
        plugin.loop_thread.run(plugin.registry.stop_all())


@pytest.fixture(scope="session")
def elastic_server(
    pytestconfig: pytest.Config, elastic_registry: InstanceRegistry
) -> Iterator[ElasticMemoryServer]:
    """A started ElasticMemoryServer shared by the whole test session."""
    plugin = pytestconfig.stash[plugin_key]
    server = ElasticMemoryServer(plugin.config, registry=elastic_registry)
    loop_thread = plugin.loop_thread
    loop_thread.run(server.start())
    logger.info("Session search server ready at %s", server.instance_info.uri)
    try:
        yield server
    finally:
        loop_thread.run(server.stop())


@pytest.fixture(scope="session")
def elastic_uri(elastic_server: ElasticMemoryServer) -> str:
    """Base URI of the session search server."""
    return elastic_server.instance_info.uri


def pytest_collection_modifyitems(session: Any, config: pytest.Config, items: list) -> None:
    """Tests marked ``elastic`` get the session server without asking for it."""
    for item in items:
        if item.get_closest_marker("elastic") and "elastic_server" not in item.fixturenames:
            item.fixturenames.append("elastic_server")
