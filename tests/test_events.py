"""Unit tests for policy lifecycle events."""

import asyncio
import json
from datetime import datetime

import pytest

from events import EventBus, EventSubscription, EventType, PolicyEvent
from plugins.base import PolicyInstance


def _event(event_type=EventType.CREATED, name="web-app", timestamp="t"):
    return PolicyEvent(
        event_type=event_type,
        repository_name=name,
        key=name,
        registry_id="123456789012",
        message="",
        timestamp=timestamp,
    )


class TestEventType:
    def test_values(self):
        assert [e.value for e in EventType] == [
            "CREATED",
            "MODIFIED",
            "DELETED",
            "DRIFTED",
            "IMPORTED",
        ]


class TestPolicyEvent:
    """Tests for the PolicyEvent dataclass."""

    def test_to_dict_renders_event_type(self):
        data = _event(timestamp="2024-01-15T10:30:00Z").to_dict()
        assert data == {
            "event_type": "CREATED",
            "repository_name": "web-app",
            "key": "web-app",
            "registry_id": "123456789012",
            "message": "",
            "timestamp": "2024-01-15T10:30:00Z",
        }

    def test_to_json(self):
        parsed = json.loads(_event(EventType.DELETED).to_json())
        assert parsed["event_type"] == "DELETED"
        assert parsed["repository_name"] == "web-app"

    def test_from_instance(self):
        instance = PolicyInstance(
            key="api", repository_name="api", registry_id="42", policy_text="{}"
        )
        event = PolicyEvent.from_instance(EventType.IMPORTED, instance, "imported")

        assert event.event_type is EventType.IMPORTED
        assert event.repository_name == "api"
        assert event.key == "api"
        assert event.registry_id == "42"
        assert event.message == "imported"
        assert event.timestamp.endswith("Z")
        # Should be parseable as ISO 8601 (strip trailing Z)
        datetime.fromisoformat(event.timestamp.rstrip("Z"))


@pytest.mark.asyncio
class TestEventSubscription:
    """Tests for the EventSubscription async iterator."""

    async def test_iterates_until_closed(self):
        sub = EventSubscription()
        event = _event()
        sub.offer(event)
        sub.close()

        received = [e async for e in sub]

        assert received == [event]
        assert sub.closed is True

    async def test_type_filter(self):
        sub = EventSubscription([EventType.DRIFTED])

        assert sub.wants(_event(EventType.DRIFTED))
        assert not sub.wants(_event(EventType.MODIFIED))
        assert EventSubscription().wants(_event(EventType.MODIFIED))

    async def test_full_queue_counts_drops(self):
        sub = EventSubscription(queue_size=1)

        assert sub.offer(_event(name="first")) is True
        assert sub.offer(_event(name="second")) is False
        assert sub.dropped == 1

    async def test_close_with_full_queue_drains(self):
        sub = EventSubscription(queue_size=1)
        first = _event()
        sub.offer(first)
        sub.close()

        assert [e async for e in sub] == [first]

    async def test_offer_after_close_rejected(self):
        sub = EventSubscription()
        sub.close()

        assert sub.offer(_event()) is False
        assert [e async for e in sub] == []

    async def test_close_wakes_waiting_consumer(self):
        sub = EventSubscription()

        async def drain():
            return [e async for e in sub]

        consumer = asyncio.create_task(drain())
        await asyncio.sleep(0)

        sub.close()

        assert await asyncio.wait_for(consumer, timeout=1.0) == []


@pytest.mark.asyncio
class TestEventBus:
    """Tests for the EventBus pub/sub system."""

    @pytest.fixture
    def bus(self):
        return EventBus(queue_size=16)

    async def test_publish_no_subscribers(self, bus):
        await bus.publish(_event())

    async def test_multiple_subscribers_all_receive(self, bus):
        sub1 = await bus.subscribe()
        sub2 = await bus.subscribe()
        event = _event()

        await bus.publish(event)

        assert await asyncio.wait_for(sub1.__anext__(), timeout=1.0) is event
        assert await asyncio.wait_for(sub2.__anext__(), timeout=1.0) is event

    async def test_filtered_subscription_skips_other_types(self, bus):
        sub = await bus.subscribe(EventType.DELETED)

        await bus.publish(_event(EventType.CREATED))
        await bus.publish(_event(EventType.DELETED, name="gone"))

        received = await asyncio.wait_for(sub.__anext__(), timeout=1.0)
        assert received.repository_name == "gone"

    async def test_unsubscribe_stops_iteration(self, bus):
        sub = await bus.subscribe()
        assert bus.subscriber_count() == 1

        await bus.unsubscribe(sub.id)

        assert bus.subscriber_count() == 0
        assert [e async for e in sub] == []

    async def test_slow_subscriber_drops(self):
        bus = EventBus(queue_size=1)
        sub = await bus.subscribe()
        first = _event(name="first")

        await bus.publish(first)
        await bus.publish(_event(name="second"))

        assert sub.dropped == 1
        assert await asyncio.wait_for(sub.__anext__(), timeout=1.0) is first

    async def test_close_ends_all_subscriptions(self, bus):
        subs = [await bus.subscribe(), await bus.subscribe()]

        await bus.close()

        assert bus.subscriber_count() == 0
        assert all(sub.closed for sub in subs)

    async def test_unsubscribe_nonexistent_is_noop(self, bus):
        await bus.unsubscribe("nonexistent-id")
        assert bus.subscriber_count() == 0
