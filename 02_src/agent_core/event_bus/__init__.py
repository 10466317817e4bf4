"""EventBus module."""

from .event_bus import (
    EventBus,
    EventBusStats,
    EventFilter,
    EventHandler,
    IEventBus,
    Subscription,
)

__all__ = [
    "EventBus",
    "EventBusStats",
    "EventFilter",
    "EventHandler",
    "IEventBus",
    "Subscription",
]
