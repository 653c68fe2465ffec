"""
Event Streaming - In-memory pub/sub for policy lifecycle events.

The reconciler publishes an event for every state transition it makes so
that the controller, the CLI or tests can observe convergence as it
happens.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Dict, FrozenSet, Iterable, Optional

from plugins.base import PolicyInstance

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of policy events."""

    CREATED = "CREATED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    DRIFTED = "DRIFTED"
    IMPORTED = "IMPORTED"


@dataclass
class PolicyEvent:
    """Event emitted when a policy instance changes state."""

    event_type: EventType
    repository_name: str
    key: str
    registry_id: Optional[str]
    message: str
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type.value
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_instance(
        cls,
        event_type: EventType,
        instance: PolicyInstance,
        message: str = "",
    ) -> "PolicyEvent":
        """
        Create an event from a policy instance.

        Args:
            event_type: The type of event.
            instance: The instance after the transition.
            message: Human-readable detail.

        Returns:
            A new PolicyEvent instance.
        """
        return cls(
            event_type=event_type,
            repository_name=instance.repository_name,
            key=instance.key,
            registry_id=instance.registry_id,
            message=message,
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        )


class EventSubscription:
    """
    One subscriber's view of the bus.

    Iterating yields events until the subscription is closed; events queued
    before close() are still delivered. Events whose type is not in
    ``event_types`` never reach the queue.
    """

    def __init__(self, event_types: Iterable[EventType] = (), queue_size: int = 256):
        self.id = str(uuid.uuid4())
        self.event_types: FrozenSet[EventType] = frozenset(event_types)
        self.dropped = 0
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def wants(self, event: PolicyEvent) -> bool:
        return not self.event_types or event.event_type in self.event_types

    def offer(self, event: PolicyEvent) -> bool:
        """Queue an event without waiting. Returns False if it was dropped."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Wake a consumer blocked in get(); a full queue drains to the end
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    def __aiter__(self) -> AsyncIterator[PolicyEvent]:
        return self

    async def __anext__(self) -> PolicyEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event


class EventBus:
    """
    In-memory pub/sub bus for policy events.

    Publishing never blocks: a subscriber whose queue is full loses the
    event (counted in ``EventSubscription.dropped``) so that a slow consumer
    cannot stall reconciliation.
    """

    def __init__(self, queue_size: int = 256):
        self._queue_size = queue_size
        self._subscriptions: Dict[str, EventSubscription] = {}

    async def publish(self, event: PolicyEvent) -> None:
        """
        Deliver an event to every interested subscriber.

        Args:
            event: The event to publish.
        """
        for subscription in list(self._subscriptions.values()):
            if subscription.wants(event) and not subscription.offer(event):
                logger.warning(
                    f"Dropped {event.event_type.value} event for subscriber "
                    f"{subscription.id}: queue full"
                )

    async def subscribe(self, *event_types: EventType) -> EventSubscription:
        """
        Open a subscription.

        Args:
            event_types: Event types to receive; none means all.

        Returns:
            The new EventSubscription; its ``id`` is used to unsubscribe.
        """
        subscription = EventSubscription(event_types, self._queue_size)
        self._subscriptions[subscription.id] = subscription
        logger.debug(f"New event subscriber: {subscription.id}")
        return subscription

    async def unsubscribe(self, subscription_id: str) -> None:
        """Close a subscription. Unknown ids are ignored."""
        subscription = self._subscriptions.pop(subscription_id, None)
        if subscription is not None:
            subscription.close()
            logger.debug(f"Unsubscribed: {subscription_id}")

    async def close(self) -> None:
        """Close every open subscription."""
        for subscription_id in list(self._subscriptions):
            await self.unsubscribe(subscription_id)

    def subscriber_count(self) -> int:
        return len(self._subscriptions)
