"""Server binary resolution."""

import os
import shutil
from pathlib import Path
from typing import List, Optional, Protocol

from .errors import BinaryNotFoundError
from .log import get_logger
from .types import InstanceConfig

logger = get_logger(__name__)

BINARY_NAME = "elasticsearch"


class BinaryResolver(Protocol):
    """Protocol for binary resolvers to enable dependency injection."""

    async def resolve(self, config: InstanceConfig) -> Path:
        """Return the path of an executable server binary for ``config``."""


def is_executable(path: Path) -> bool:
    """Check that path is a regular file the current user may execute."""
    return path.is_file() and os.access(path, os.X_OK)


class SystemBinaryResolver:
    """Locates an already-installed server binary.

    Lookup order:
    1. ``config.binary`` when set (no fallback if it is unusable)
    2. ``elasticsearch`` on PATH
    3. ``$ES_HOME/bin/elasticsearch``
    """

    def __init__(self, binary_name: str = BINARY_NAME) -> None:
        self.binary_name = binary_name

    async def resolve(self, config: InstanceConfig) -> Path:
        if config.binary is not None:
            binary = Path(config.binary)
            if not is_executable(binary):
                raise BinaryNotFoundError(
                    f"Configured binary is not an executable file: {binary}",
                    searched=[str(binary)],
                )
            logger.debug("Using configured binary: %s", binary)
            return binary

        searched: List[str] = [f"PATH:{self.binary_name}"]
        on_path = shutil.which(self.binary_name)
        if on_path:
            logger.debug("Found %s in PATH: %s", self.binary_name, on_path)
            return Path(on_path)

        home_binary = self._from_home()
        if home_binary is not None:
            searched.append(str(home_binary))
            if is_executable(home_binary):
                logger.debug("Found %s in ES_HOME: %s", self.binary_name, home_binary)
                return home_binary

        raise BinaryNotFoundError(
            f"Could not find {self.binary_name} binary. "
            f"Set the 'binary' option, put it on PATH or set ES_HOME.",
            searched=searched,
        )

    def _from_home(self) -> Optional[Path]:
        es_home = os.environ.get("ES_HOME")
        if not es_home:
            return None
        return Path(es_home) / "bin" / self.binary_name
