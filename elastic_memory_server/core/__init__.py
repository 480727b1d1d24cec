"""Core framework components."""

from .binary import BinaryResolver, SystemBinaryResolver

__all__ = ["BinaryResolver", "SystemBinaryResolver"]
