"""Tracker implementation for creating TraceEvents."""

from datetime import datetime, timezone
from typing import Protocol

from ..event_bus import IEventBus, Subscription
from ..logging_config import get_logger
from ..models import WILDCARD, TraceEvent, UnifiedEvent, new_id
from ..storage import IStorage

logger = get_logger(__name__)


class ITracker(Protocol):
    """Creating TraceEvents. Two channels: EventBus subscription + direct calls."""

    async def track(
        self,
        event_type: str,
        agent_id: str,
        payload: dict,
        session_id: str | None = None,
        execution_id: str | None = None,
    ) -> None:
        """Create TraceEvent and save to Storage."""
        ...

    async def stop(self) -> None:
        """Stop receiving bus events."""
        ...


class Tracker:
    """Persists every bus event as a TraceEvent, plus direct track() calls."""

    def __init__(self, event_bus: IEventBus, storage: IStorage):
        self._event_bus = event_bus
        self._storage = storage
        self._subscription: Subscription | None = None

    async def start(self) -> None:
        """Subscribe to all EventBus events."""
        if self._subscription is None:
            self._subscription = self._event_bus.subscribe(WILDCARD, self._handle_event)

    async def _handle_event(self, event: UnifiedEvent) -> None:
        """Handle incoming UnifiedEvent from EventBus."""
        await self.track(
            event_type=event.type,
            agent_id=event.metadata.agent_id,
            payload=event.payload,
            session_id=event.metadata.session_id,
            execution_id=event.metadata.execution_id,
            timestamp=datetime.fromtimestamp(event.timestamp / 1000, tz=timezone.utc),
        )

    async def track(
        self,
        event_type: str,
        agent_id: str,
        payload: dict,
        session_id: str | None = None,
        execution_id: str | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        """Create TraceEvent and save to Storage."""
        trace_event = TraceEvent(
            id=new_id("trace"),
            event_type=event_type,
            agent_id=agent_id,
            payload=payload,
            timestamp=timestamp or datetime.now(timezone.utc),
            session_id=session_id,
            execution_id=execution_id,
        )
        try:
            await self._storage.save_trace_event(trace_event)
        except Exception as e:
            logger.warning(f"Failed to save trace event {event_type}: {e}")

    async def stop(self) -> None:
        """Stop receiving bus events."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
