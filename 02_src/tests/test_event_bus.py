"""Tests for EventBus."""

import asyncio

import pytest

from agent_core.models import WILDCARD, EventMetadata, UnifiedEvent

META = EventMetadata(agent_id="agent-test")


class TestEventBusSubscribe:
    """Tests for EventBus subscription."""

    def test_subscribe_single_handler(self, event_bus):
        """Test subscribing a single handler."""
        event_bus.subscribe("chat:started", lambda e: None)

        assert len(event_bus._subscribers["chat:started"]) == 1

    def test_subscribe_multiple_types(self, event_bus):
        """Test that one handler can subscribe to several types."""
        calls = []
        event_bus.subscribe(["tool:invoking", "tool:completed"], calls.append)

        event_bus.publish("tool:invoking", {}, META)
        event_bus.publish("tool:completed", {}, META)
        event_bus.publish("tool:failed", {}, META)

        assert [e.type for e in calls] == ["tool:invoking", "tool:completed"]

    def test_subscribe_requires_type(self, event_bus):
        """Test that an empty type list is rejected."""
        with pytest.raises(ValueError):
            event_bus.subscribe([], lambda e: None)

    def test_unsubscribe_stops_delivery(self, event_bus):
        """Test that unsubscribe() stops delivery."""
        calls = []
        subscription = event_bus.subscribe("a", calls.append)

        event_bus.publish("a", {}, META)
        subscription.unsubscribe()
        event_bus.publish("a", {}, META)

        assert len(calls) == 1
        assert not subscription.active

    def test_unsubscribe_twice_is_harmless(self, event_bus):
        """Test that unsubscribing twice does not fail."""
        subscription = event_bus.subscribe("a", lambda e: None)
        subscription.unsubscribe()
        subscription.unsubscribe()

        assert event_bus.get_stats().total_subscriptions == 0


class TestEventBusPublish:
    """Tests for EventBus publishing."""

    def test_publish_builds_event(self, event_bus):
        """Test that publish() returns the delivered event."""
        calls = []
        event_bus.subscribe("chat:started", calls.append)

        event = event_bus.publish("chat:started", {"chatId": "c1"}, META)

        assert isinstance(event, UnifiedEvent)
        assert calls == [event]
        assert event.payload == {"chatId": "c1"}
        assert event.metadata.agent_id == "agent-test"
        assert event.timestamp > 0

    def test_handlers_fire_in_subscription_order(self, event_bus):
        """Test that two handlers on one type fire once each, in order."""
        calls = []
        event_bus.subscribe("a", lambda e: calls.append("h1"))
        event_bus.subscribe("a", lambda e: calls.append("h2"))

        event_bus.publish("a", {}, META)

        assert calls == ["h1", "h2"]

    def test_wildcard_served_after_specific(self, event_bus):
        """Test that wildcard subscribers run after type-specific ones."""
        calls = []
        event_bus.subscribe(WILDCARD, lambda e: calls.append("any"))
        event_bus.subscribe("a", lambda e: calls.append("a"))

        event_bus.publish("a", {}, META)
        event_bus.publish("b", {}, META)

        assert calls == ["a", "any", "any"]

    def test_publish_without_subscribers(self, event_bus):
        """Test publishing with no subscribers is a no-op."""
        event_bus.publish("nobody:listens", {}, META)

        assert event_bus.get_stats().published == 1

    def test_filter_gates_delivery(self, event_bus):
        """Test that a filter decides delivery per handler."""
        calls = []
        event_bus.subscribe("a", calls.append, filter=lambda e: e.payload.get("ok"))

        event_bus.publish("a", {"ok": False}, META)
        event_bus.publish("a", {"ok": True}, META)

        assert len(calls) == 1
        assert calls[0].payload == {"ok": True}

    def test_emit_prebuilt_event(self, event_bus):
        """Test that emit() delivers an already built event."""
        calls = []
        event_bus.subscribe("a", calls.append)
        event = UnifiedEvent(type="a", payload={}, metadata=META)

        event_bus.emit(event)

        assert calls == [event]

    def test_wire_shape(self, event_bus):
        """Test the camelCase wire shape of an event."""
        meta = EventMetadata(agent_id="a1", session_id="s1", execution_id="e1")

        wire = event_bus.publish("state:changed", {"from": "idle", "to": "ready"}, meta).to_wire()

        assert wire["type"] == "state:changed"
        assert wire["payload"] == {"from": "idle", "to": "ready"}
        assert wire["metadata"] == {"agentId": "a1", "sessionId": "s1", "executionId": "e1"}


class TestEventBusOnce:
    """Tests for once() subscriptions."""

    def test_once_fires_once(self, event_bus):
        """Test that a once handler never fires twice."""
        calls = []
        event_bus.once("a", calls.append)

        event_bus.publish("a", {}, META)
        event_bus.publish("a", {}, META)

        assert len(calls) == 1
        assert event_bus.get_stats().total_subscriptions == 0

    def test_once_waits_for_matching_event(self, event_bus):
        """Test that a filtered once handler is kept until a match."""
        calls = []
        event_bus.once("a", calls.append, filter=lambda e: e.payload.get("n") == 2)

        event_bus.publish("a", {"n": 1}, META)
        event_bus.publish("a", {"n": 2}, META)
        event_bus.publish("a", {"n": 2}, META)

        assert [e.payload["n"] for e in calls] == [2]

    def test_once_reentrant_publish(self, event_bus):
        """Test that publishing from a once handler does not re-deliver to it."""
        calls = []

        def handler(event):
            calls.append(event)
            event_bus.publish("a", {}, META)

        event_bus.once("a", handler)
        event_bus.publish("a", {}, META)

        assert len(calls) == 1


class TestEventBusErrors:
    """Tests for handler failure isolation."""

    def test_sync_handler_error_is_isolated(self, event_bus):
        """Test that a raising handler does not block later handlers."""
        calls = []

        def broken(event):
            raise RuntimeError("boom")

        event_bus.subscribe("a", broken)
        event_bus.subscribe("a", calls.append)

        event_bus.publish("a", {}, META)

        assert len(calls) == 1

    def test_filter_error_skips_handler(self, event_bus):
        """Test that a raising filter only skips its own handler."""
        calls = []

        def broken_filter(event):
            raise RuntimeError("boom")

        event_bus.subscribe("a", lambda e: calls.append("filtered"), filter=broken_filter)
        event_bus.subscribe("a", lambda e: calls.append("plain"))

        event_bus.publish("a", {}, META)

        assert calls == ["plain"]

    @pytest.mark.asyncio
    async def test_async_handler_scheduled(self, event_bus):
        """Test that coroutine handlers are scheduled, not awaited by publish()."""
        calls = []

        async def handler(event):
            await asyncio.sleep(0)
            calls.append(event.type)

        event_bus.subscribe("a", handler)
        event_bus.publish("a", {}, META)

        assert calls == []
        await event_bus.wait_pending()
        assert calls == ["a"]

    @pytest.mark.asyncio
    async def test_async_handler_error_is_logged(self, event_bus, caplog):
        """Test that a failing coroutine handler does not propagate."""

        async def broken(event):
            raise RuntimeError("async boom")

        event_bus.subscribe("a", broken)
        event_bus.publish("a", {}, META)
        await event_bus.wait_pending()

        assert "async boom" in caplog.text


class TestEventBusStats:
    """Tests for clear() and get_stats()."""

    def test_stats_by_type(self, event_bus):
        """Test subscription counts per type."""
        event_bus.subscribe("a", lambda e: None)
        event_bus.subscribe("a", lambda e: None)
        event_bus.subscribe("b", lambda e: None)

        stats = event_bus.get_stats()

        assert stats.total_subscriptions == 3
        assert stats.subscriptions_by_type == {"a": 2, "b": 1}

    def test_clear(self, event_bus):
        """Test that clear() drops all subscriptions."""
        calls = []
        event_bus.subscribe("a", calls.append)

        event_bus.clear()
        event_bus.publish("a", {}, META)

        assert calls == []
        assert event_bus.get_stats().total_subscriptions == 0
