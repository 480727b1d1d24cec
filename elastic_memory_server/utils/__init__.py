"""Utility modules for the elastic memory server."""

from .filesystem import TemporaryDataDir, ensure_dir
from .ports import PortManager, get_port_manager

__all__ = ["TemporaryDataDir", "ensure_dir", "PortManager", "get_port_manager"]
