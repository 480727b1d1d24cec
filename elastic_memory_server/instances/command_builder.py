"""Server command line builder."""

from pathlib import Path
from typing import List, Optional, Protocol

from ..core.log import Logger, get_logger
from ..core.types import InstanceConfig


class CommandBuilder(Protocol):
    """Protocol for command builders to enable dependency injection."""

    def build_arguments(self, config: InstanceConfig) -> List[str]:
        """Build command line arguments for server startup."""

    def build_command(self, binary: Path, config: InstanceConfig) -> List[str]:
        """Build the full command line, binary first."""


class ServerCommandBuilder:
    """Builds ``-E key=value`` override flags for the search server.

    Order is fixed: host, port, data path, logs path, then caller args
    verbatim. The server keeps the last occurrence of a repeated setting,
    so caller args can override anything computed here.
    """

    def __init__(self, logger: Optional[Logger] = None) -> None:
        self._logger = logger or get_logger(__name__)

    def build_arguments(self, config: InstanceConfig) -> List[str]:
        """Build server command line arguments."""
        arguments: List[str] = []
        if config.ip:
            arguments.extend(["-E", f"network.host={config.ip}"])
        if config.port:
            arguments.extend(["-E", f"http.port={config.port}"])
        if config.db_path is not None:
            arguments.extend(["-E", f"path.data={config.data_path}"])
            arguments.extend(["-E", f"path.logs={config.logs_path}"])
        arguments.extend(config.args)
        return arguments

    def build_command(self, binary: Path, config: InstanceConfig) -> List[str]:
        command = [str(binary), *self.build_arguments(config)]
        self._logger.debug("Server command: %s", " ".join(command))
        return command
