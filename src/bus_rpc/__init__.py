"""Request/response correlation over a fire-and-forget publish/subscribe bus.

Key concepts:
- Requester: publishes a request and waits for exactly one correlated reply
- Responder: answers requests with at most one handler per topic
- Sender / Receiver: one-way messages, no correlation, no reply
- EventBus: the pub/sub transport underneath, supplied by the caller

Example:
    bus = InMemoryBus()
    responder = DirectResponder(bus)
    responder.add_responder("HOW_ARE_YOU", lambda request: {"good": True})

    requester = DirectRequester(bus, timeout=2.0)
    reply = await requester.request("HOW_ARE_YOU", {})
"""

from .bus import EventBus, InMemoryBus, subscribe_once
from .config import RpcConfig, Variant
from .correlation import CorrelationIdGenerator, new_correlation_id
from .envelopes import FailureCode, MessageEnvelope, ReplyEnvelope, RequestEnvelope
from .errors import (
    DuplicateHandlerError,
    InvalidEnvelopeError,
    NoResponderError,
    RemoteHandlerError,
    RequesterClosedError,
    RequestTimeoutError,
    RpcError,
)
from .factory import create_requester, create_responder
from .messaging import Receiver, Sender
from .registry import HandlerRegistry, Registration
from .requester import DirectRequester, Requester, SharedChannelRequester
from .responder import DirectResponder, Responder, SharedChannelResponder

__all__ = [
    # Bus
    "EventBus",
    "InMemoryBus",
    "subscribe_once",
    # Request/response
    "Requester",
    "DirectRequester",
    "SharedChannelRequester",
    "Responder",
    "DirectResponder",
    "SharedChannelResponder",
    "create_requester",
    "create_responder",
    # One-way
    "Sender",
    "Receiver",
    # Registry
    "HandlerRegistry",
    "Registration",
    # Envelopes and IDs
    "RequestEnvelope",
    "ReplyEnvelope",
    "MessageEnvelope",
    "FailureCode",
    "CorrelationIdGenerator",
    "new_correlation_id",
    # Config
    "RpcConfig",
    "Variant",
    # Errors
    "RpcError",
    "RequestTimeoutError",
    "NoResponderError",
    "RemoteHandlerError",
    "DuplicateHandlerError",
    "RequesterClosedError",
    "InvalidEnvelopeError",
]
