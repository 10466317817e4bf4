"""Memory module."""

from .memory_service import IMemoryService, MemoryService

__all__ = ["IMemoryService", "MemoryService"]
