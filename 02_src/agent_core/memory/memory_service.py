"""MemoryService implementation."""

from typing import Protocol

from ..logging_config import get_logger
from ..models import MemoryEntry
from ..storage import IStorage

logger = get_logger(__name__)


class IMemoryService(Protocol):
    """Agent memory: store entries, find relevant ones by query."""

    async def store(self, entry: MemoryEntry) -> None:
        """Persist a memory entry."""
        ...

    async def search(self, query: str, limit: int = 5) -> list[MemoryEntry]:
        """Find entries relevant to query, most important first."""
        ...


class MemoryService:
    """Keyword memory over Storage."""

    def __init__(self, storage: IStorage):
        self._storage = storage

    async def store(self, entry: MemoryEntry) -> None:
        await self._storage.save_memory_entry(entry)
        logger.debug(f"Memory stored: {entry.id} ({entry.type}, importance={entry.importance})")

    async def search(self, query: str, limit: int = 5) -> list[MemoryEntry]:
        entries = await self._storage.search_memory_entries(query, limit)
        logger.debug(f"Memory search '{query[:50]}' -> {len(entries)} entries")
        return entries
