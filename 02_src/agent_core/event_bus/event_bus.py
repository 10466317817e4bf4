"""EventBus implementation for typed pub/sub of agent events."""

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Protocol, Union

from ..logging_config import get_logger
from ..models import WILDCARD, EventMetadata, UnifiedEvent

logger = get_logger(__name__)


EventHandler = Callable[[UnifiedEvent], Union[Awaitable[None], None]]
EventFilter = Callable[[UnifiedEvent], bool]


@dataclass(eq=False)
class _Subscriber:
    handler: EventHandler
    types: list[str]
    filter: EventFilter | None = None
    once: bool = False
    fired: bool = False


@dataclass
class EventBusStats:
    """Subscription and publish counters."""

    total_subscriptions: int
    subscriptions_by_type: dict[str, int] = field(default_factory=dict)
    published: int = 0


class Subscription:
    """Handle returned by subscribe(); releases the handler on unsubscribe()."""

    def __init__(self, bus: "EventBus", event_types: list[str], subscriber: _Subscriber):
        self._bus = bus
        self._event_types = event_types
        self._subscriber = subscriber
        self._active = True

    @property
    def active(self) -> bool:
        return self._active and not (self._subscriber.once and self._subscriber.fired)

    def unsubscribe(self) -> None:
        """Remove the handler from every type it was registered for."""
        if not self._active:
            return
        self._active = False
        self._bus._remove(self._event_types, self._subscriber)


class IEventBus(Protocol):
    """Typed publish/subscribe hub."""

    def subscribe(
        self,
        event_type: str | Iterable[str],
        handler: EventHandler,
        filter: EventFilter | None = None,
    ) -> Subscription:
        """Subscribe a handler to one or more event types."""
        ...

    def once(
        self, event_type: str, handler: EventHandler, filter: EventFilter | None = None
    ) -> Subscription:
        """Subscribe a handler for the first matching event only."""
        ...

    def publish(
        self, event_type: str, payload: dict[str, Any], metadata: EventMetadata
    ) -> UnifiedEvent:
        """Build an event and deliver it synchronously."""
        ...

    def clear(self) -> None:
        """Drop all subscriptions."""
        ...

    def get_stats(self) -> EventBusStats:
        """Subscription statistics."""
        ...


class EventBus:
    """In-memory synchronous pub/sub event bus.

    Delivery is fan-out in registration order for a given event type;
    subscribers of the ``*`` wildcard are served after type-specific ones.
    Coroutine handlers are scheduled on the running loop and never awaited
    by the publisher. Handler failures are logged, never propagated.
    """

    def __init__(self):
        self._subscribers: dict[str, list[_Subscriber]] = {}
        self._pending: set[asyncio.Future] = set()
        self._published = 0

    def subscribe(
        self,
        event_type: str | Iterable[str],
        handler: EventHandler,
        filter: EventFilter | None = None,
    ) -> Subscription:
        """Subscribe a handler to one or more event types."""
        types = [event_type] if isinstance(event_type, str) else list(event_type)
        if not types:
            raise ValueError("At least one event type is required")

        subscriber = _Subscriber(handler=handler, types=types, filter=filter)
        for t in types:
            self._subscribers.setdefault(t, []).append(subscriber)
        return Subscription(self, types, subscriber)

    def once(
        self, event_type: str, handler: EventHandler, filter: EventFilter | None = None
    ) -> Subscription:
        """Subscribe a handler for the first matching event only."""
        subscriber = _Subscriber(handler=handler, types=[event_type], filter=filter, once=True)
        self._subscribers.setdefault(event_type, []).append(subscriber)
        return Subscription(self, [event_type], subscriber)

    def publish(
        self,
        event_type: str,
        payload: dict[str, Any] | None,
        metadata: EventMetadata,
    ) -> UnifiedEvent:
        """Build an event and deliver it synchronously."""
        event = UnifiedEvent(type=event_type, payload=payload or {}, metadata=metadata)
        self.emit(event)
        return event

    def emit(self, event: UnifiedEvent) -> None:
        """Deliver an already-built event to matching subscribers."""
        self._published += 1

        targets = list(self._subscribers.get(event.type, []))
        if event.type != WILDCARD:
            targets.extend(self._subscribers.get(WILDCARD, []))

        for subscriber in targets:
            if subscriber.once and subscriber.fired:
                continue
            if not self._matches(subscriber, event):
                continue
            if subscriber.once:
                subscriber.fired = True
                self._remove(subscriber.types, subscriber)
            self._deliver(subscriber, event)

    def clear(self) -> None:
        """Drop all subscriptions."""
        self._subscribers.clear()

    def get_stats(self) -> EventBusStats:
        """Subscription statistics."""
        by_type = {t: len(subs) for t, subs in self._subscribers.items() if subs}
        return EventBusStats(
            total_subscriptions=sum(by_type.values()),
            subscriptions_by_type=by_type,
            published=self._published,
        )

    async def wait_pending(self) -> None:
        """Wait until scheduled async handlers have finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _matches(self, subscriber: _Subscriber, event: UnifiedEvent) -> bool:
        if subscriber.filter is None:
            return True
        try:
            return bool(subscriber.filter(event))
        except Exception as e:
            logger.error("Error in event filter for %s: %s", event.type, e, exc_info=True)
            return False

    def _deliver(self, subscriber: _Subscriber, event: UnifiedEvent) -> None:
        try:
            result = subscriber.handler(event)
        except Exception as e:
            logger.error("Error in handler for %s: %s", event.type, e, exc_info=True)
            return

        if inspect.isawaitable(result):
            self._schedule(result, event)

    def _schedule(self, awaitable: Awaitable, event: UnifiedEvent) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, dropping async handler for %s", event.type)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        future = asyncio.ensure_future(awaitable)
        self._pending.add(future)
        future.add_done_callback(lambda f: self._on_handler_done(f, event.type))

    def _on_handler_done(self, future: asyncio.Future, event_type: str) -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(
                "Error in async handler for %s: %s",
                event_type,
                exc,
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    def _remove(self, event_types: list[str], subscriber: _Subscriber) -> None:
        for t in event_types:
            subs = self._subscribers.get(t)
            if not subs:
                continue
            self._subscribers[t] = [s for s in subs if s is not subscriber]
            if not self._subscribers[t]:
                del self._subscribers[t]
