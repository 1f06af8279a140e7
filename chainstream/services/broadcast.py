"""In-process broadcast gateway for live enrichment results.

Delivery is at-most-once: subscribers that are disconnected or too slow
simply miss messages. Usage metering hangs off delivery acknowledgment,
never off ``publish``.
"""

from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from chainstream.core.logging import get_logger

log = get_logger("broadcast")

BLOCKS_TOPIC = "blocks"

_subscription_ids = itertools.count(1)


@dataclass(eq=False)
class Subscription:
    topic: str
    queue: asyncio.Queue
    subscriber_id: Optional[str] = None
    id: int = field(default_factory=lambda: next(_subscription_ids))
    dropped: int = 0

    async def receive(self) -> Dict[str, Any]:
        return await self.queue.get()


class DeliveryMeter:
    """Counts acknowledged deliveries per subscriber."""

    def __init__(self) -> None:
        self.deliveries: Dict[str, int] = defaultdict(int)

    def record_delivery(self, subscription: Subscription) -> None:
        if subscription.subscriber_id is None:
            return
        self.deliveries[subscription.subscriber_id] += 1


class BroadcastGateway:
    def __init__(self, queue_size: int = 100, meter: Optional[DeliveryMeter] = None):
        self.queue_size = queue_size
        self.meter = meter or DeliveryMeter()
        self._subscriptions: Dict[str, Dict[int, Subscription]] = defaultdict(dict)
        self.running = False

    def start(self) -> None:
        self.running = True

    def stop(self) -> None:
        """Stop accepting messages and forget every subscription."""
        self.running = False
        count = self.subscriber_count()
        self._subscriptions.clear()
        log.info(f"Broadcast gateway stopped, dropped {count} subscription(s)")

    def subscribe(self, topic: str, subscriber_id: Optional[str] = None) -> Subscription:
        subscription = Subscription(
            topic=topic,
            queue=asyncio.Queue(maxsize=self.queue_size),
            subscriber_id=subscriber_id,
        )
        self._subscriptions[topic][subscription.id] = subscription
        log.debug(f"Subscription {subscription.id} joined {topic}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        topic_subs = self._subscriptions.get(subscription.topic)
        if topic_subs is None:
            return
        topic_subs.pop(subscription.id, None)
        if not topic_subs:
            self._subscriptions.pop(subscription.topic, None)

    def subscriber_count(self, topic: Optional[str] = None) -> int:
        if topic is not None:
            return len(self._subscriptions.get(topic, {}))
        return sum(len(subs) for subs in self._subscriptions.values())

    def publish(self, topic: str, message: Dict[str, Any]) -> int:
        """Hand ``message`` to every current subscriber of ``topic``; returns how many accepted it."""
        if not self.running:
            return 0
        delivered = 0
        for subscription in list(self._subscriptions.get(topic, {}).values()):
            try:
                subscription.queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                subscription.dropped += 1
                log.warning(f"Dropped message on {topic} for slow subscription {subscription.id}")
        return delivered

    def acknowledge(self, subscription: Subscription) -> None:
        """Called by the transport once a message reached the client."""
        self.meter.record_delivery(subscription)
