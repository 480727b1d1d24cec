"""Per-session handle owning at most one running search server."""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from ..core.binary import BinaryResolver
from ..core.config import load_config
from ..core.errors import (
    AlreadyStartedError,
    ConfigurationError,
    ServerStateError,
)
from ..core.log import Logger, get_logger, log_server_event
from ..core.types import DEFAULT_IP, InstanceConfig, MemoryServerConfig
from ..utils.filesystem import TemporaryDataDir, ensure_dir
from ..utils.ports import PortAllocator, get_port_manager
from .instance import ElasticInstance
from .readiness import ReadinessProbe
from .registry import InstanceRegistry


@dataclass
class InstanceInfo:
    """Description of a running session."""

    port: int
    ip: str
    db_path: Path
    uri: str
    instance: ElasticInstance
    tmp_dir: Optional[TemporaryDataDir] = None

    @property
    def pid(self) -> Optional[int]:
        return self.instance.pid


class ElasticMemoryServer:
    """Starts a throwaway search server on demand and tears it down again.

    At most one instance is running or starting per handle. Concurrent
    callers of :meth:`ensure_instance` share the same in-flight start.

    Example:
        >>> async with ElasticMemoryServer() as server:
        ...     uri = await server.get_uri()
    """

    def __init__(
        self,
        config: Union[MemoryServerConfig, Dict[str, Any], None] = None,
        *,
        binary_resolver: Optional[BinaryResolver] = None,
        port_allocator: Optional[PortAllocator] = None,
        probe: Optional[ReadinessProbe] = None,
        registry: Optional[InstanceRegistry] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        if config is None:
            config = MemoryServerConfig()
        elif isinstance(config, dict):
            try:
                config = MemoryServerConfig(**config)
            except ValidationError as e:
                raise ConfigurationError(f"Invalid server configuration: {e}") from e

        self.config = config
        self._binary_resolver = binary_resolver
        self._port_allocator = port_allocator or get_port_manager()
        self._probe = probe
        self._registry = registry
        self._logger = logger or get_logger(__name__)

        self._running: Optional[asyncio.Task] = None
        self._instance_info: Optional[InstanceInfo] = None

    @classmethod
    def from_env(cls, **overrides: Any) -> "ElasticMemoryServer":
        """Create a handle configured from ``ESMS_*`` environment variables."""
        return cls(load_config(**overrides))

    @classmethod
    async def create(
        cls, config: Union[MemoryServerConfig, Dict[str, Any], None] = None, **kwargs: Any
    ) -> "ElasticMemoryServer":
        """Create a handle and start its instance."""
        server = cls(config, **kwargs)
        await server.start()
        return server

    @property
    def instance_info(self) -> Optional[InstanceInfo]:
        """Info of the running instance, or None while stopped or starting."""
        return self._instance_info

    @property
    def is_running(self) -> bool:
        return self._instance_info is not None and self._instance_info.instance.is_running()

    async def start(self) -> None:
        """Start the server instance.

        Raises:
            AlreadyStartedError: If an instance is running or starting
        """
        if self._running is not None:
            raise AlreadyStartedError(
                "Elastic instance already started",
                details={"uri": self._instance_info.uri if self._instance_info else None},
            )

        self._running = asyncio.ensure_future(self._start_instance())
        self._running.add_done_callback(self._on_start_done)
        await asyncio.shield(self._running)

    async def ensure_instance(self) -> InstanceInfo:
        """Return the running instance, starting one if needed."""
        running = self._running
        if running is None:
            await self.start()
            running = self._running
            if running is None:
                raise ServerStateError("ensure_instance failed to start instance")
        return await asyncio.shield(running)

    async def get_uri(self) -> str:
        """Base URI of the running instance, starting one if needed."""
        info = await self.ensure_instance()
        return info.uri

    async def stop(self) -> None:
        """Kill the instance and release its port and temporary directory.

        Idempotent; a start still in progress is awaited first.
        """
        running = self._running
        if running is None:
            self._logger.debug("stop(): no instance to stop")
            return

        try:
            info = await asyncio.shield(running)
        except BaseException:
            if not running.done():
                raise
            # A failed or cancelled start has already released what it held
            self._logger.debug("stop(): start did not complete, nothing to stop")
            return

        log_server_event(self._logger, "stopping", uri=info.uri, pid=info.pid)
        try:
            await info.instance.kill()
        finally:
            if self._running is running:
                self._running = None
                self._instance_info = None
            self._port_allocator.release_port(info.port)
            if info.tmp_dir is not None:
                info.tmp_dir.cleanup()
        log_server_event(self._logger, "stopped", uri=info.uri)

    async def _start_instance(self) -> InstanceInfo:
        options = self.config.instance
        ip = options.ip or DEFAULT_IP
        port = self._port_allocator.allocate_port(options.port)
        tmp_dir: Optional[TemporaryDataDir] = None
        try:
            if options.db_path is not None:
                db_path = ensure_dir(options.db_path)
            else:
                tmp_dir = TemporaryDataDir(root=self.config.tmp_root)
                db_path = tmp_dir.path

            instance_config = InstanceConfig(
                ip=ip,
                port=port,
                db_path=db_path,
                args=options.args,
                binary=options.binary,
                env=options.env,
                timeouts=self.config.timeouts,
            )
            uri = f"http://{ip}:{port}"
            log_server_event(self._logger, "starting", uri=uri, db_path=str(db_path))
            instance = await ElasticInstance.launch(
                instance_config,
                binary_resolver=self._binary_resolver,
                probe=self._probe,
                registry=self._registry,
            )
        except BaseException:
            self._port_allocator.release_port(port)
            if tmp_dir is not None:
                tmp_dir.cleanup()
            raise

        log_server_event(self._logger, "started", uri=uri, pid=instance.pid)
        return InstanceInfo(
            port=port,
            ip=ip,
            db_path=db_path,
            uri=uri,
            instance=instance,
            tmp_dir=tmp_dir,
        )

    def _on_start_done(self, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is not None:
            if self._running is task:
                self._running = None
            return
        if self._running is task:
            self._instance_info = task.result()

    async def __aenter__(self) -> "ElasticMemoryServer":
        await self.ensure_instance()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    def __repr__(self) -> str:
        uri = self._instance_info.uri if self._instance_info else None
        return f"ElasticMemoryServer(uri={uri!r})"
