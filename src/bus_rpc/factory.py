"""Build matching requesters and responders for a configured variant."""

from __future__ import annotations

from .bus import EventBus
from .config import RpcConfig, Variant
from .requester import DirectRequester, Requester, SharedChannelRequester
from .responder import DirectResponder, Responder, SharedChannelResponder


def create_requester(bus: EventBus, config: RpcConfig | None = None) -> Requester:
    """Create a requester for the configured variant."""
    config = config or RpcConfig()
    if config.variant == Variant.SHARED:
        return SharedChannelRequester(
            bus,
            timeout=config.timeout,
            request_channel=config.request_channel,
            reply_channel=config.reply_channel,
        )
    return DirectRequester(bus, timeout=config.timeout)


def create_responder(bus: EventBus, config: RpcConfig | None = None) -> Responder:
    """Create a responder for the configured variant."""
    config = config or RpcConfig()
    if config.variant == Variant.SHARED:
        return SharedChannelResponder(
            bus,
            request_channel=config.request_channel,
            reply_channel=config.reply_channel,
        )
    return DirectResponder(bus)
