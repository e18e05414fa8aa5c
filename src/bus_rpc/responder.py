"""Responder side: one handler per topic, replies tagged with correlation IDs.

Handlers run in their own asyncio task. Whatever they return is published
as a success reply; whatever they raise is caught, logged, and published
as a failure reply carrying the stringified error. A failing handler never
takes the responder down.

The two variants answer unregistered topics differently, and that
difference is part of their contract:
- DirectResponder subscribes on each registered topic. A request for an
  unregistered topic reaches nobody, so the requester times out.
- SharedChannelResponder listens on one shared request channel and replies
  "no responder for <topic>" straight away.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import weakref
from abc import ABC, abstractmethod
from typing import Any

from .bus import EventBus, Unsubscribe
from .envelopes import (
    DEFAULT_REPLY_CHANNEL,
    DEFAULT_REQUEST_CHANNEL,
    ReplyEnvelope,
    RequestEnvelope,
    reply_channel,
)
from .errors import InvalidEnvelopeError
from .registry import Handler, HandlerRegistry, Registration

logger = logging.getLogger(__name__)


def failure_reason(error: BaseException) -> str:
    """Stringify a handler error for the failure reply."""
    return str(error) or type(error).__name__


class Responder(ABC):
    """Answers requests with registered handlers."""

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self._handlers = HandlerRegistry()
        self._tasks: set[asyncio.Task[None]] = set()

    def add_responder(self, topic: str, handler: Handler) -> Registration:
        """Register the handler answering requests for a topic.

        Args:
            topic: Request name to answer
            handler: Called with the request payload; returns the result
                or an awaitable of it

        Returns:
            Registration whose ``cancel()`` frees the topic again

        Raises:
            DuplicateHandlerError: The topic already has a handler
        """
        registration = self._handlers.register(topic, handler)
        self._on_register(registration)
        return registration

    def topics(self) -> list[str]:
        """Topics that currently have a handler."""
        return self._handlers.topics()

    @property
    def in_flight(self) -> int:
        """Number of handler invocations still running."""
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until every dispatched handler has replied."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        """Cancel every registration. In-flight handlers still reply."""
        self._handlers.clear()

    def _parse_request(self, raw: Any, source: str) -> RequestEnvelope | None:
        try:
            return RequestEnvelope.from_wire(raw)
        except InvalidEnvelopeError as e:
            logger.warning(f"Dropping malformed request on {source}: {e}")
            return None

    def _dispatch(self, envelope: RequestEnvelope, handler: Handler, reply_topic: str) -> None:
        task = asyncio.get_running_loop().create_task(
            self._run_handler(envelope, handler, reply_topic)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_handler(
        self,
        envelope: RequestEnvelope,
        handler: Handler,
        reply_topic: str,
    ) -> None:
        try:
            result = handler(envelope.payload)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.exception(f"Handler for {envelope.topic} failed ({envelope.correlation_id})")
            reply = ReplyEnvelope.failed(envelope.correlation_id, failure_reason(e))
        else:
            reply = ReplyEnvelope.success(envelope.correlation_id, result)

        self._bus.publish(reply_topic, reply.to_wire())
        logger.debug(f"Replied to {envelope.correlation_id} on {reply_topic}")

    @abstractmethod
    def _on_register(self, registration: Registration) -> None:
        """Hook up a new registration to the bus."""


class DirectResponder(Responder):
    """Subscribes on each registered topic and replies on per-call channels."""

    def _on_register(self, registration: Registration) -> None:
        topic = registration.topic

        def on_request(raw: Any) -> None:
            if registration.cancelled:
                return
            envelope = self._parse_request(raw, topic)
            if envelope is None:
                return
            self._dispatch(
                envelope,
                registration.handler,
                reply_channel(topic, envelope.correlation_id),
            )

        registration.add_cleanup(self._bus.subscribe(topic, on_request))


class SharedChannelResponder(Responder):
    """Serves every topic from one shared request channel.

    Requests for topics without a handler get an immediate failure reply
    instead of being left to time out.

    Several SharedChannelResponders may listen on the same bus and channels.
    Each answers only the topics it registered; a topic none of them holds
    gets a single no_responder reply from the earliest one still open.
    """

    def __init__(
        self,
        bus: EventBus,
        request_channel: str = DEFAULT_REQUEST_CHANNEL,
        reply_channel: str = DEFAULT_REPLY_CHANNEL,
    ) -> None:
        super().__init__(bus)
        self.request_channel = request_channel
        self.reply_channel = reply_channel
        self._peers = _channel_peers.setdefault(bus, {}).setdefault(
            (request_channel, reply_channel), []
        )
        self._peers.append(self)
        self._unsubscribe: Unsubscribe | None = bus.subscribe(request_channel, self._on_request)

    def _on_register(self, registration: Registration) -> None:
        # Dispatch looks the handler up per request, nothing to subscribe
        pass

    def _on_request(self, raw: Any) -> None:
        envelope = self._parse_request(raw, self.request_channel)
        if envelope is None:
            return

        handler = self._handlers.lookup(envelope.topic)
        if handler is not None:
            self._dispatch(envelope, handler, self.reply_channel)
            return

        if self._peers[0] is not self or any(
            envelope.topic in peer._handlers for peer in self._peers
        ):
            return

        logger.info(f"No responder for {envelope.topic} ({envelope.correlation_id})")
        reply = ReplyEnvelope.no_responder(envelope.correlation_id, envelope.topic)
        self._bus.publish(self.reply_channel, reply.to_wire())

    def close(self) -> None:
        """Cancel every registration and stop listening for requests."""
        super().close()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
            self._peers.remove(self)


# Open shared responders per bus and (request, reply) channel pair
_channel_peers: weakref.WeakKeyDictionary[
    Any, dict[tuple[str, str], list[SharedChannelResponder]]
] = weakref.WeakKeyDictionary()
