"""aiosqlite persistence for agent memory and event traces."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import aiosqlite

from ..config import resolve_db_path
from ..models import MemoryEntry, TraceEvent

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

_MEMORY_COLUMNS = "id, content, type, importance, metadata, timestamp"
_TRACE_COLUMNS = "id, event_type, agent_id, session_id, execution_id, payload, timestamp"

# Words this short carry no signal for keyword recall
_MIN_KEYWORD_LEN = 3


class IStorage(Protocol):
    """Persistent store behind the memory service and the tracker."""

    async def init(self) -> None:
        """Open the database and apply the schema."""
        ...

    async def close(self) -> None:
        ...

    async def save_memory_entry(self, entry: MemoryEntry) -> None:
        """Insert or replace a memory entry by id."""
        ...

    async def search_memory_entries(self, query: str, limit: int = 5) -> list[MemoryEntry]:
        """Keyword search over memory entries, most important first."""
        ...

    async def save_trace_event(self, event: TraceEvent) -> None:
        ...

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        agent_id: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Newest trace events first, optionally filtered."""
        ...

    async def clear(self) -> None:
        """Delete all memory entries and trace events."""
        ...


class Storage:
    """Single-connection SQLite store. ``":memory:"`` keeps it in-process."""

    def __init__(self, db_path: str | Path | None = None):
        self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None

    @property
    def _db(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Storage not initialized")
        return self._conn

    async def init(self) -> None:
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.executescript(SCHEMA_PATH.read_text(encoding="utf-8"))
        await self._conn.commit()

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def _write(self, sql: str, params: tuple | list = ()) -> None:
        await self._db.execute(sql, params)
        await self._db.commit()

    async def _read(self, sql: str, params: tuple | list = ()) -> list[aiosqlite.Row]:
        async with self._db.execute(sql, params) as cursor:
            return list(await cursor.fetchall())

    # Memory

    async def save_memory_entry(self, entry: MemoryEntry) -> None:
        await self._write(
            f"INSERT OR REPLACE INTO memory_entries ({_MEMORY_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
            (
                entry.id,
                entry.content,
                entry.type,
                entry.importance,
                json.dumps(entry.metadata, default=str),
                entry.timestamp,
            ),
        )

    async def search_memory_entries(self, query: str, limit: int = 5) -> list[MemoryEntry]:
        """
        Match entries containing any keyword of ``query``.

        Case-insensitive substring match per word. Ordered by importance,
        then recency.
        """
        keywords = [w for w in query.lower().split() if len(w) >= _MIN_KEYWORD_LEN]
        if not keywords:
            return []

        any_keyword = " OR ".join(["LOWER(content) LIKE ?"] * len(keywords))
        rows = await self._read(
            f"SELECT {_MEMORY_COLUMNS} FROM memory_entries WHERE {any_keyword} "
            "ORDER BY importance DESC, timestamp DESC LIMIT ?",
            [*(f"%{w}%" for w in keywords), limit],
        )
        return [_memory_from_row(row) for row in rows]

    # Traces

    async def save_trace_event(self, event: TraceEvent) -> None:
        await self._write(
            f"INSERT INTO trace_events ({_TRACE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                event.id,
                event.event_type,
                event.agent_id,
                event.session_id,
                event.execution_id,
                json.dumps(event.payload, default=str),
                event.timestamp.isoformat(),
            ),
        )

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        agent_id: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        filters: list[str] = []
        params: list = []
        if after:
            filters.append("timestamp > ?")
            params.append(after.isoformat())
        if event_types:
            filters.append(f"event_type IN ({', '.join('?' * len(event_types))})")
            params.extend(event_types)
        if agent_id:
            filters.append("agent_id = ?")
            params.append(agent_id)

        where = f"WHERE {' AND '.join(filters)} " if filters else ""
        rows = await self._read(
            f"SELECT {_TRACE_COLUMNS} FROM trace_events {where}ORDER BY timestamp DESC LIMIT ?",
            [*params, limit],
        )
        return [_trace_from_row(row) for row in rows]

    async def clear(self) -> None:
        await self._db.execute("DELETE FROM memory_entries")
        await self._db.execute("DELETE FROM trace_events")
        await self._db.commit()


def _memory_from_row(row: aiosqlite.Row) -> MemoryEntry:
    return MemoryEntry(
        id=row["id"],
        content=row["content"],
        type=row["type"],
        importance=row["importance"],
        metadata=json.loads(row["metadata"]),
        timestamp=row["timestamp"],
    )


def _trace_from_row(row: aiosqlite.Row) -> TraceEvent:
    timestamp = datetime.fromisoformat(row["timestamp"])
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return TraceEvent(
        id=row["id"],
        event_type=row["event_type"],
        agent_id=row["agent_id"],
        session_id=row["session_id"],
        execution_id=row["execution_id"],
        payload=json.loads(row["payload"]),
        timestamp=timestamp,
    )
