"""Requester side: pending calls, reply routing and timeouts.

A request is settled exactly once. The reply path and the timer path both
go through PendingCall, whose ``done`` flag decides which one wins; the
loser becomes a no-op.

Two variants differ only in how requests and replies travel:
- DirectRequester publishes on the topic itself and waits on a per-call
  reply channel ("<topic>_response_<correlation_id>").
- SharedChannelRequester publishes on one shared request channel and
  receives every reply on one shared reply channel, routing by the
  correlation ID embedded in the reply.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from .bus import EventBus, Unsubscribe, subscribe_once
from .correlation import CorrelationIdGenerator
from .envelopes import (
    DEFAULT_REPLY_CHANNEL,
    DEFAULT_REQUEST_CHANNEL,
    FailureCode,
    ReplyEnvelope,
    RequestEnvelope,
    reply_channel,
)
from .errors import (
    InvalidEnvelopeError,
    NoResponderError,
    RemoteHandlerError,
    RequesterClosedError,
    RequestTimeoutError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 2.0  # seconds


@dataclass
class PendingCall:
    """An outstanding request waiting for its reply or its timeout."""

    correlation_id: str
    topic: str
    future: asyncio.Future[Any]
    done: bool = False
    timer: asyncio.TimerHandle | None = None
    unsubscribe: Unsubscribe | None = None
    created_at: float = field(default_factory=lambda: asyncio.get_running_loop().time())

    def _finish(self) -> bool:
        """Flip the call to done and release its timer and reply listener.

        Returns:
            False if the call was already settled
        """
        if self.done:
            return False
        self.done = True
        if self.timer is not None:
            self.timer.cancel()
        if self.unsubscribe is not None:
            self.unsubscribe()
        return True

    def resolve(self, value: Any) -> bool:
        """Settle the call successfully. Returns False if it was already settled."""
        if not self._finish():
            return False
        if not self.future.done():
            self.future.set_result(value)
        return True

    def reject(self, error: BaseException) -> bool:
        """Settle the call with an error. Returns False if it was already settled."""
        if not self._finish():
            return False
        if not self.future.done():
            self.future.set_exception(error)
        return True

    def abandon(self) -> None:
        """Release resources without settling (the waiting task went away)."""
        self._finish()


class PendingCallRegistry:
    """Pending calls of one requester, keyed by correlation ID."""

    def __init__(self) -> None:
        self._calls: dict[str, PendingCall] = {}

    def add(self, call: PendingCall) -> None:
        if call.correlation_id in self._calls:
            raise ValueError(f"Correlation ID already pending: {call.correlation_id}")
        self._calls[call.correlation_id] = call

    def get(self, correlation_id: str) -> PendingCall | None:
        return self._calls.get(correlation_id)

    def pop(self, correlation_id: str) -> PendingCall | None:
        return self._calls.pop(correlation_id, None)

    def values(self) -> list[PendingCall]:
        return list(self._calls.values())

    def __contains__(self, correlation_id: object) -> bool:
        return correlation_id in self._calls

    def __len__(self) -> int:
        return len(self._calls)


class Requester(ABC):
    """Issues requests and waits for exactly one correlated reply.

    Args:
        bus: Bus to publish requests and receive replies on
        timeout: Seconds to wait for a reply before failing the call
        id_generator: Correlation ID source (one per requester by default)
    """

    def __init__(
        self,
        bus: EventBus,
        timeout: float = DEFAULT_TIMEOUT,
        id_generator: CorrelationIdGenerator | None = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        self._bus = bus
        self.timeout = timeout
        self._ids = id_generator or CorrelationIdGenerator()
        self._pending = PendingCallRegistry()

    @property
    def pending_count(self) -> int:
        """Number of calls still waiting for a reply or timeout."""
        return len(self._pending)

    async def request(self, topic: str, payload: Any = None) -> Any:
        """Send a request and wait for its reply.

        Args:
            topic: Request name the responder registered under
            payload: Request body, passed to the handler unchanged

        Returns:
            The value the remote handler returned

        Raises:
            RequestTimeoutError: No reply within ``timeout`` seconds
            NoResponderError: The responder reported no handler for the topic
            RemoteHandlerError: The remote handler raised
        """
        loop = asyncio.get_running_loop()
        call = PendingCall(
            correlation_id=self._next_correlation_id(),
            topic=topic,
            future=loop.create_future(),
        )
        self._pending.add(call)

        try:
            call.unsubscribe = self._listen_for_reply(call)
            call.timer = loop.call_later(self.timeout, self._on_timeout, call)
            envelope = RequestEnvelope(
                topic=topic,
                correlation_id=call.correlation_id,
                payload=payload,
            )
            self._publish_request(envelope)
            logger.debug(f"Sent request {call.correlation_id} on {topic}")
            return await call.future
        finally:
            # Covers cancellation of the awaiting task and publish failures
            call.abandon()
            self._pending.pop(call.correlation_id)

    def _next_correlation_id(self) -> str:
        correlation_id = self._ids.next_id()
        while correlation_id in self._pending:
            correlation_id = self._ids.next_id()
        return correlation_id

    def _on_timeout(self, call: PendingCall) -> None:
        if call.done:
            return
        logger.info(
            f"Request {call.correlation_id} on {call.topic} timed out after {self.timeout}s"
        )
        call.reject(RequestTimeoutError(call.topic, call.correlation_id, self.timeout))

    def _settle(self, call: PendingCall, reply: ReplyEnvelope) -> bool:
        """Settle a pending call from a reply. Returns False if it already was."""
        if reply.correlation_id != call.correlation_id:
            logger.debug(
                f"Ignoring reply {reply.correlation_id} for call {call.correlation_id}"
            )
            return False

        if not reply.is_failure():
            return call.resolve(reply.result)

        reason = reply.failure or ""
        if reply.code == FailureCode.NO_RESPONDER:
            return call.reject(NoResponderError(call.topic, reason))
        return call.reject(RemoteHandlerError(call.topic, reason))

    @abstractmethod
    def _listen_for_reply(self, call: PendingCall) -> Unsubscribe | None:
        """Arrange for the call's reply to reach ``_settle``.

        Returns:
            Unsubscribe function for a per-call listener, or None
        """

    @abstractmethod
    def _publish_request(self, envelope: RequestEnvelope) -> None:
        """Publish the request envelope on the bus."""


class DirectRequester(Requester):
    """Publishes requests on the topic itself.

    Each call listens once on its own reply channel. Without a responder
    nobody answers, so such calls always end in RequestTimeoutError.
    """

    def _listen_for_reply(self, call: PendingCall) -> Unsubscribe:
        channel = reply_channel(call.topic, call.correlation_id)

        def on_reply(raw: Any) -> None:
            try:
                reply = ReplyEnvelope.from_wire(raw)
            except InvalidEnvelopeError as e:
                logger.warning(f"Malformed reply on {channel}: {e}")
                call.reject(e)
                return
            if reply.correlation_id != call.correlation_id:
                logger.warning(
                    f"Reply on {channel} carries {reply.correlation_id}, "
                    f"expected {call.correlation_id}"
                )
                call.reject(
                    InvalidEnvelopeError(
                        f"Reply on {channel} is for {reply.correlation_id}, "
                        f"not {call.correlation_id}"
                    )
                )
                return
            self._settle(call, reply)

        return subscribe_once(self._bus, channel, on_reply)

    def _publish_request(self, envelope: RequestEnvelope) -> None:
        self._bus.publish(envelope.topic, envelope.to_wire())


class SharedChannelRequester(Requester):
    """Publishes every request on one shared request channel.

    A single subscription on the shared reply channel routes replies to
    pending calls by correlation ID. Replies nobody is waiting for (late
    ones, or ones meant for another requester) are dropped.
    """

    def __init__(
        self,
        bus: EventBus,
        timeout: float = DEFAULT_TIMEOUT,
        id_generator: CorrelationIdGenerator | None = None,
        request_channel: str = DEFAULT_REQUEST_CHANNEL,
        reply_channel: str = DEFAULT_REPLY_CHANNEL,
    ) -> None:
        super().__init__(bus, timeout=timeout, id_generator=id_generator)
        self.request_channel = request_channel
        self.reply_channel = reply_channel
        self._unsubscribe: Unsubscribe | None = bus.subscribe(reply_channel, self._on_reply)

    @property
    def closed(self) -> bool:
        return self._unsubscribe is None

    def _on_reply(self, raw: Any) -> None:
        try:
            reply = ReplyEnvelope.from_wire(raw)
        except InvalidEnvelopeError as e:
            logger.warning(f"Dropping malformed reply on {self.reply_channel}: {e}")
            return

        call = self._pending.get(reply.correlation_id)
        if call is None:
            logger.debug(f"No pending call for reply {reply.correlation_id}, dropping")
            return
        self._settle(call, reply)

    def _listen_for_reply(self, call: PendingCall) -> None:
        if self.closed:
            raise RequesterClosedError("Requester is closed")
        return None

    def _publish_request(self, envelope: RequestEnvelope) -> None:
        self._bus.publish(self.request_channel, envelope.to_wire())

    def close(self) -> int:
        """Stop listening for replies and fail every pending call.

        Returns:
            Number of calls that were failed
        """
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        count = 0
        for call in self._pending.values():
            error = RequesterClosedError(f"Requester closed with {call.correlation_id} pending")
            if call.reject(error):
                count += 1
        return count
