"""Configuration for requesters and responders.

Values come from keyword arguments or the environment:

    BUS_RPC_TIMEOUT          Reply timeout in seconds (default 2.0)
    BUS_RPC_VARIANT          "direct" or "shared" (default "direct")
    BUS_RPC_REQUEST_CHANNEL  Shared request channel (default "rpc.request")
    BUS_RPC_REPLY_CHANNEL    Shared reply channel (default "rpc.reply")
"""

from __future__ import annotations

import os
from enum import Enum

from pydantic import BaseModel, Field

from .envelopes import DEFAULT_REPLY_CHANNEL, DEFAULT_REQUEST_CHANNEL
from .requester import DEFAULT_TIMEOUT


class Variant(str, Enum):
    """How requests and replies travel on the bus."""

    # Requests on the topic itself, replies on "<topic>_response_<id>"
    DIRECT = "direct"
    # Requests and replies on two shared channels, routed by envelope fields
    SHARED = "shared"


class RpcConfig(BaseModel):
    """Settings for building requesters and responders."""

    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    variant: Variant = Variant.DIRECT
    request_channel: str = Field(default=DEFAULT_REQUEST_CHANNEL, min_length=1)
    reply_channel: str = Field(default=DEFAULT_REPLY_CHANNEL, min_length=1)

    @classmethod
    def from_env(cls, **overrides: object) -> RpcConfig:
        """Build a config from BUS_RPC_* environment variables.

        Explicit keyword overrides win over the environment; unset variables
        fall back to the defaults.
        """
        values: dict[str, object] = {}
        env_vars = {
            "timeout": "BUS_RPC_TIMEOUT",
            "variant": "BUS_RPC_VARIANT",
            "request_channel": "BUS_RPC_REQUEST_CHANNEL",
            "reply_channel": "BUS_RPC_REPLY_CHANNEL",
        }
        for name, env_var in env_vars.items():
            value = os.getenv(env_var)
            if value:
                values[name] = value
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)
