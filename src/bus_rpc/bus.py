"""Bus abstraction consumed by the request/response layer.

The core only needs three things from a bus:
- publish(topic, payload): fire-and-forget, best effort
- subscribe(topic, listener): returns an unsubscribe function
- subscribe_once(topic, listener): optional, auto-unsubscribes after one delivery

InMemoryBus is an in-process implementation, behaving like an event
emitter. It is what the tests and the demo CLI run on; any other transport
(socket broker, IPC channel, ...) can be plugged in by implementing EventBus.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

# Listeners receive the published payload as-is
Listener = Callable[[Any], None]
Unsubscribe = Callable[[], None]


@runtime_checkable
class EventBus(Protocol):
    """Minimal publish/subscribe interface required by requesters and responders.

    Delivery may be synchronous (inside publish) or scheduled on the event
    loop; the core assumes nothing beyond FIFO delivery per listener per topic.
    """

    def publish(self, topic: str, payload: Any) -> None:
        """Publish a payload to current subscribers of the exact topic."""
        ...

    def subscribe(self, topic: str, listener: Listener) -> Unsubscribe:
        """Subscribe a listener to a topic.

        Returns:
            Unsubscribe function (safe to call more than once)
        """
        ...


def subscribe_once(bus: EventBus, topic: str, listener: Listener) -> Unsubscribe:
    """Subscribe a listener for a single delivery.

    Uses the bus's own ``subscribe_once`` when it has one, otherwise wraps
    the listener so it unsubscribes itself before the first delivery.
    """
    native = getattr(bus, "subscribe_once", None)
    if callable(native):
        return native(topic, listener)

    fired = False
    unsubscribe: Unsubscribe | None = None

    def once(payload: Any) -> None:
        nonlocal fired
        if fired:
            return
        fired = True
        if unsubscribe is not None:
            unsubscribe()
        listener(payload)

    unsubscribe = bus.subscribe(topic, once)
    return unsubscribe


class InMemoryBus:
    """In-process event bus with per-topic listener lists.

    Args:
        asynchronous: When False (default) listeners run inside publish().
            When True each delivery is scheduled with ``loop.call_soon`` on the
            running event loop, so publish() returns before any listener runs.
    """

    def __init__(self, asynchronous: bool = False) -> None:
        self.asynchronous = asynchronous
        self._subscriptions: dict[str, list[Listener]] = {}

    def publish(self, topic: str, payload: Any) -> None:
        """Publish a payload to every listener of the topic.

        Publishing to a topic with no listeners is a no-op.
        """
        # Copy so listeners may (un)subscribe while being notified
        listeners = list(self._subscriptions.get(topic, []))
        if not listeners:
            logger.debug(f"No listeners for {topic}, dropping payload")
            return

        if self.asynchronous:
            loop = asyncio.get_running_loop()
            for listener in listeners:
                loop.call_soon(self._deliver, topic, listener, payload)
            return

        for listener in listeners:
            self._deliver(topic, listener, payload)

    def _deliver(self, topic: str, listener: Listener, payload: Any) -> None:
        try:
            listener(payload)
        except Exception:
            logger.exception(f"Error in subscriber for {topic}")

    def subscribe(self, topic: str, listener: Listener) -> Unsubscribe:
        """Subscribe a listener to a topic.

        Returns:
            Unsubscribe function
        """
        if topic not in self._subscriptions:
            self._subscriptions[topic] = []
        self._subscriptions[topic].append(listener)

        def unsubscribe() -> None:
            listeners = self._subscriptions.get(topic)
            if listeners and listener in listeners:
                listeners.remove(listener)
                if not listeners:
                    del self._subscriptions[topic]

        return unsubscribe

    def subscribe_once(self, topic: str, listener: Listener) -> Unsubscribe:
        """Subscribe a listener that is removed after its first delivery."""
        fired = False

        def once(payload: Any) -> None:
            nonlocal fired
            # Deliveries already scheduled before removal must not fire twice
            if fired:
                return
            fired = True
            unsubscribe()
            listener(payload)

        unsubscribe = self.subscribe(topic, once)
        return unsubscribe

    def listener_count(self, topic: str) -> int:
        """Number of listeners currently subscribed to a topic."""
        return len(self._subscriptions.get(topic, []))

    def topics(self) -> list[str]:
        """Topics that currently have at least one listener."""
        return list(self._subscriptions)

    def reset(self) -> None:
        """Drop all subscriptions (for testing)."""
        self._subscriptions = {}
