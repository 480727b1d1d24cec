"""Data directory helpers."""

import tempfile
from pathlib import Path
from typing import Optional

from ..core.errors import FilesystemError
from ..core.log import get_logger

logger = get_logger(__name__)

TEMP_DIR_PREFIX = "elastic-mem-"


def ensure_dir(path: Path) -> Path:
    """Ensure directory exists and return it."""
    try:
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        return path
    except PermissionError as e:
        raise FilesystemError(f"Permission denied creating directory {path}") from e
    except OSError as e:
        raise FilesystemError(f"Error creating directory {path}: {e}") from e


class TemporaryDataDir:
    """A uniquely named data directory owned by one session.

    The directory is created owner-only (mode 0700) and removed
    recursively by :meth:`cleanup`, or at interpreter exit if cleanup
    was never called.
    """

    def __init__(self, prefix: str = TEMP_DIR_PREFIX, root: Optional[Path] = None) -> None:
        if root is not None:
            ensure_dir(root)
        try:
            self._tmp = tempfile.TemporaryDirectory(
                prefix=prefix,
                dir=str(root) if root is not None else None,
                ignore_cleanup_errors=True,
            )
        except OSError as e:
            raise FilesystemError(f"Could not create temporary data directory: {e}") from e
        self.path = Path(self._tmp.name)
        logger.debug("Created temporary data directory %s", self.path)

    @property
    def exists(self) -> bool:
        return self.path.exists()

    def cleanup(self) -> None:
        """Remove the directory and everything below it. Idempotent."""
        self._tmp.cleanup()
        logger.debug("Removed temporary data directory %s", self.path)

    def __repr__(self) -> str:
        return f"TemporaryDataDir({str(self.path)!r})"
