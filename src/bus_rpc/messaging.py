"""Fire-and-forget messaging: no correlation ID, no reply.

Receivers follow the same one-handler-per-topic rule as responders, but a
message for a topic nobody handles is simply dropped; there is no sender
waiting to be told.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any

from .bus import EventBus
from .envelopes import MessageEnvelope
from .errors import InvalidEnvelopeError
from .registry import Handler, HandlerRegistry, Registration

logger = logging.getLogger(__name__)


class Sender:
    """Publishes one-way messages."""

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus

    def send(self, topic: str, message: Any = None) -> None:
        """Publish a message on a topic. No acknowledgement, no delivery guarantee."""
        self._bus.publish(topic, MessageEnvelope(topic=topic, payload=message).to_wire())


class Receiver:
    """Delivers one-way messages to a single handler per topic.

    Handlers run inside bus delivery. If a handler returns an awaitable it is
    scheduled as a task. Handler errors are logged and go no further.
    """

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self._handlers = HandlerRegistry()
        self._tasks: set[asyncio.Task[Any]] = set()

    def add_receiver(self, topic: str, handler: Handler) -> Registration:
        """Register the handler for messages on a topic.

        Raises:
            DuplicateHandlerError: The topic already has a handler
        """
        registration = self._handlers.register(topic, handler)

        def on_message(raw: Any) -> None:
            if registration.cancelled:
                return
            try:
                envelope = MessageEnvelope.from_wire(raw)
            except InvalidEnvelopeError as e:
                logger.warning(f"Dropping malformed message on {topic}: {e}")
                return
            self._deliver(topic, registration.handler, envelope.payload)

        registration.add_cleanup(self._bus.subscribe(topic, on_message))
        return registration

    def topics(self) -> list[str]:
        """Topics that currently have a handler."""
        return self._handlers.topics()

    def close(self) -> None:
        """Cancel every registration."""
        self._handlers.clear()

    def _deliver(self, topic: str, handler: Handler, payload: Any) -> None:
        try:
            result = handler(payload)
        except Exception:
            logger.exception(f"Receiver for {topic} failed")
            return

        if not inspect.isawaitable(result):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(f"Receiver for {topic} returned an awaitable outside an event loop")
            close = getattr(result, "close", None)
            if close is not None:
                close()
            return
        task = loop.create_task(self._await_handler(topic, result))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _await_handler(self, topic: str, pending: Any) -> None:
        try:
            await pending
        except Exception:
            logger.exception(f"Receiver for {topic} failed")
