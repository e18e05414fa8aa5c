"""Error taxonomy for the request/response layer.

Every failure is local to a single call:
- RequestTimeoutError: no reply observed within the requester's timeout
- NoResponderError: a shared-channel responder reported no handler for the topic
- RemoteHandlerError: the responder's handler raised
- DuplicateHandlerError: a topic already has an active handler (raised at registration)
"""

from __future__ import annotations


class RpcError(Exception):
    """Base class for all bus-rpc errors."""

    pass


class RequestTimeoutError(RpcError, TimeoutError):
    """Raised when no reply arrives before the requester's timeout."""

    def __init__(self, topic: str, correlation_id: str, timeout: float) -> None:
        self.topic = topic
        self.correlation_id = correlation_id
        self.timeout = timeout
        super().__init__(f"Request {correlation_id} on '{topic}' timed out after {timeout}s")


class NoResponderError(RpcError):
    """Raised when the responder side has no handler registered for the topic."""

    def __init__(self, topic: str, reason: str | None = None) -> None:
        self.topic = topic
        self.reason = reason or f"no responder for {topic}"
        super().__init__(self.reason)


class RemoteHandlerError(RpcError):
    """Raised on the requester side when the remote handler failed.

    Only the stringified failure reason crosses the bus, never the
    original exception object.
    """

    def __init__(self, topic: str, reason: str) -> None:
        self.topic = topic
        self.reason = reason
        super().__init__(reason)


class DuplicateHandlerError(RpcError, ValueError):
    """Raised when registering a handler for a topic that already has one."""

    def __init__(self, topic: str) -> None:
        self.topic = topic
        super().__init__(f"A handler is already registered for topic '{topic}'")


class RequesterClosedError(RpcError):
    """Raised for calls still pending when their requester is closed."""

    pass


class InvalidEnvelopeError(RpcError, ValueError):
    """Raised when a wire payload cannot be parsed into an envelope."""

    pass
