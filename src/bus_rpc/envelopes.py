"""Envelopes carried on the bus.

The core never defines a byte-level wire format; envelopes are published
as plain dicts (``to_wire()``) and whatever the bus does with them is its
own business.

- RequestEnvelope: topic + correlation ID + payload
- ReplyEnvelope: correlation ID + exactly one of result / failure
- MessageEnvelope: topic + payload, for one-way messages (no correlation)

Example (successful reply):
    {"correlation_id": "rpc_3f9a0c1b2d4e_7", "result": {"good": true}}

Example (failed reply):
    {"correlation_id": "rpc_3f9a0c1b2d4e_8", "failure": "boom", "code": "handler_error"}
"""

from __future__ import annotations

from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError, model_validator

from .errors import InvalidEnvelopeError

E = TypeVar("E", bound=BaseModel)

# Channels used when all requests and replies share one topic each
DEFAULT_REQUEST_CHANNEL = "rpc.request"
DEFAULT_REPLY_CHANNEL = "rpc.reply"


def reply_channel(topic: str, correlation_id: str) -> str:
    """Per-call reply channel used when requests are published on the topic itself."""
    return f"{topic}_response_{correlation_id}"


class FailureCode(str, Enum):
    """Machine-readable reason attached to failure replies."""

    HANDLER_ERROR = "handler_error"
    NO_RESPONDER = "no_responder"


def _parse(model: type[E], raw: Any) -> E:
    if isinstance(raw, model):
        return raw
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise InvalidEnvelopeError(f"Invalid {model.__name__}: {e}") from e


class RequestEnvelope(BaseModel):
    """A request published by a requester."""

    topic: str
    correlation_id: str
    payload: Any = None

    def to_wire(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "correlation_id": self.correlation_id,
            "payload": self.payload,
        }

    @classmethod
    def from_wire(cls, raw: Any) -> RequestEnvelope:
        return _parse(cls, raw)


class ReplyEnvelope(BaseModel):
    """A reply tagged with the correlation ID of its request.

    Exactly one of ``result`` and ``failure`` is present. A ``None`` result
    is a legitimate success value, so presence is tracked by the fields that
    were actually set rather than by value.
    """

    correlation_id: str
    result: Any = None
    failure: str | None = None
    code: FailureCode | None = None

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> ReplyEnvelope:
        has_result = "result" in self.model_fields_set
        has_failure = self.failure is not None
        if has_result == has_failure:
            raise ValueError("reply must carry exactly one of 'result' or 'failure'")
        if self.code is not None and not has_failure:
            raise ValueError("'code' is only allowed on failure replies")
        return self

    def is_failure(self) -> bool:
        """Check if this reply reports a failure."""
        return self.failure is not None

    @classmethod
    def success(cls, correlation_id: str, result: Any) -> ReplyEnvelope:
        """Create a successful reply."""
        return cls(correlation_id=correlation_id, result=result)

    @classmethod
    def failed(
        cls,
        correlation_id: str,
        reason: str,
        code: FailureCode = FailureCode.HANDLER_ERROR,
    ) -> ReplyEnvelope:
        """Create a failure reply."""
        return cls(correlation_id=correlation_id, failure=reason, code=code)

    @classmethod
    def no_responder(cls, correlation_id: str, topic: str) -> ReplyEnvelope:
        """Create the failure reply sent when no handler is registered."""
        return cls.failed(correlation_id, f"no responder for {topic}", FailureCode.NO_RESPONDER)

    def to_wire(self) -> dict[str, Any]:
        if self.is_failure():
            data: dict[str, Any] = {
                "correlation_id": self.correlation_id,
                "failure": self.failure,
            }
            if self.code is not None:
                data["code"] = self.code.value
            return data
        return {"correlation_id": self.correlation_id, "result": self.result}

    @classmethod
    def from_wire(cls, raw: Any) -> ReplyEnvelope:
        return _parse(cls, raw)


class MessageEnvelope(BaseModel):
    """A one-way message. No correlation ID, no reply."""

    topic: str
    payload: Any = None

    def to_wire(self) -> dict[str, Any]:
        return {"topic": self.topic, "payload": self.payload}

    @classmethod
    def from_wire(cls, raw: Any) -> MessageEnvelope:
        return _parse(cls, raw)
