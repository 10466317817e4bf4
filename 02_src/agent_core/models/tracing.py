"""Tracing and observability data models."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class TraceEvent:
    """A persisted bus event."""

    id: str
    event_type: str
    agent_id: str
    payload: dict  # full self-contained data for display
    timestamp: datetime
    session_id: str | None = None
    execution_id: str | None = None
