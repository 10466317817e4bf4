"""Observability API routes."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel
from fastapi import APIRouter, HTTPException, Query

from ...app import IApplication


class TraceEventResponse(BaseModel):
    """Response model for trace event."""

    id: str
    event_type: str
    agent_id: str
    session_id: str | None = None
    execution_id: str | None = None
    payload: dict[str, Any]
    timestamp: datetime


class AgentStatusResponse(BaseModel):
    """Response model for agent status."""

    id: str
    name: str
    state: str
    sessions: list[str]
    tools: list[str]
    skills: list[str]
    subscriptions: int
    events_published: int


def create_observability_router(app: IApplication) -> APIRouter:
    """Create observability router."""
    router = APIRouter(prefix="/api", tags=["observability"])

    @router.get("/trace-events", response_model=list[TraceEventResponse])
    async def get_trace_events(
        after: str | None = Query(None, description="ISO timestamp filter"),
        limit: int = Query(100, ge=1, le=1000),
        event_type: str | None = Query(None, description="Filter by event type"),
        agent_id: str | None = Query(None, description="Filter by agent"),
    ) -> list[dict]:
        """Get trace events with optional filters."""
        try:
            # Parse after timestamp
            after_dt = None
            if after:
                try:
                    after_dt = datetime.fromisoformat(after)
                except ValueError:
                    raise HTTPException(
                        status_code=400, detail="Invalid after timestamp format"
                    )

            # Parse event_types
            event_types = [event_type] if event_type else None

            # Get events
            events = await app.storage.get_trace_events(
                after=after_dt,
                event_types=event_types,
                agent_id=agent_id,
                limit=limit,
            )

            # Convert to response format
            return [
                {
                    "id": e.id,
                    "event_type": e.event_type,
                    "agent_id": e.agent_id,
                    "session_id": e.session_id,
                    "execution_id": e.execution_id,
                    "payload": e.payload,
                    "timestamp": e.timestamp.isoformat(),
                }
                for e in events
            ]

        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/agent", response_model=AgentStatusResponse)
    async def get_agent() -> dict:
        """Current agent state, sessions and bus statistics."""
        try:
            agent = app.agent
            stats = agent.event_bus.get_stats()
            return {
                "id": agent.id,
                "name": agent.name,
                "state": agent.state.value,
                "sessions": agent.sessions,
                "tools": [t.name for t in agent.tools.values()],
                "skills": [s.name for s in agent.skills.values()],
                "subscriptions": stats.total_subscriptions,
                "events_published": stats.published,
            }
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    return router
